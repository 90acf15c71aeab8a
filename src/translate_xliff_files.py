import asyncio
import logging
import os
import shutil
import sys
from typing import Dict, List, Optional, Sequence, Tuple

# --- Python Version Check ---
if sys.version_info < (3, 11):
    sys.stderr.write("Error: This script requires Python 3.11 or newer.\n")
    sys.stderr.write(f"You are running Python {sys.version.split()[0]}.\n")
    sys.exit(1)
# --- End Version Check ---

from src.app_config import AppConfig, language_code_to_name, load_app_config
from src.batch_translator import TranslateFn, translate_batch_with_retry
from src.document_writer import apply_translations, save_document
from src.logging_config import LOGGER_NAME
from src.openai_translator import OpenAITranslator
from src.sequencer import BatchSequencer, SequenceReport, rate_limit_interval
from src.unit_extractor import Batch, extract_batches
from src.xliff_document import XliffDocument, XliffParseError

logger = logging.getLogger(LOGGER_NAME)


def ensure_directories(*paths: str) -> None:
    for path in paths:
        os.makedirs(path, exist_ok=True)


def discover_input_files(input_folder: str, extensions: Sequence[str]) -> List[str]:
    """
    List the localization files waiting in the input folder.

    Args:
        input_folder (str): The folder to scan (not recursive).
        extensions (Sequence[str]): Accepted file extensions, e.g. ('.xliff', '.xlf').

    Returns:
        List[str]: Matching file names, sorted for a deterministic processing order.
    """
    lowered = tuple(ext.lower() for ext in extensions)
    return sorted(
        name for name in os.listdir(input_folder)
        if name.lower().endswith(lowered) and os.path.isfile(os.path.join(input_folder, name))
    )


def move_to_completed(file_name: str, input_folder: str, completed_folder: str) -> str:
    os.makedirs(completed_folder, exist_ok=True)
    source_path = os.path.join(input_folder, file_name)
    dest_path = os.path.join(completed_folder, file_name)
    shutil.move(source_path, dest_path)
    logger.info(f"Moved file '{source_path}' to '{dest_path}'.")
    return dest_path


async def translate_file(
        file_name: str,
        config: AppConfig,
        translate: TranslateFn,
        sequencer: Optional[BatchSequencer] = None
) -> SequenceReport:
    """
    Translate one localization file and move its original to the completed folder.

    The output document is rewritten after every batch, so an interrupted run keeps
    the batches finished so far. Failed batches are logged and leave their units
    untouched; they do not stop the file from being completed.

    Args:
        file_name (str): Name of the file inside ``config.input_folder``.
        config (AppConfig): The run configuration.
        translate (TranslateFn): Awaitable ``(text, source_language, target_language) -> text``.
        sequencer (Optional[BatchSequencer]): Pacing shared with other files; a new one is
            built from ``config.rate_limit`` when omitted.

    Returns:
        SequenceReport: Which batches succeeded and which failed.

    Raises:
        XliffParseError: If the file is not a usable XLIFF document. The file is not moved.
    """
    logger.info(f"Starting to translate file {file_name}")
    file_path = os.path.join(config.input_folder, file_name)
    output_path = os.path.join(config.output_folder, file_name)

    document = XliffDocument.load(file_path)
    source_language = language_code_to_name(document.source_language, config.language_codes)
    target_language = language_code_to_name(document.target_language, config.language_codes)
    logger.info(f"Source language: {source_language}, Target language: {target_language}")

    batches = extract_batches(
        document.units(),
        units_per_batch=config.units_per_batch,
        excluded_id_prefixes=config.excluded_id_prefixes,
        retranslate_existing=config.retranslate_existing
    )
    item_count = sum(len(batch) for batch in batches)
    logger.info(f"There are {item_count} of {len(document)} items to translate in {len(batches)} batch(es)")

    async def translate_and_write(batch: Batch) -> None:
        translations = await translate_batch_with_retry(
            batch,
            translate,
            source_language,
            target_language,
            separator=config.separator,
            max_retries=config.max_retries
        )
        apply_translations(document, batch, translations)

    if sequencer is None:
        sequencer = BatchSequencer(rate_limit_interval(config.rate_limit))
    report = await sequencer.run(
        batches,
        translate_and_write,
        checkpoint=lambda: save_document(document, output_path),
        description=f"Translating {file_name}"
    )

    save_document(document, output_path)
    move_to_completed(file_name, config.input_folder, config.completed_folder)

    if report.failed:
        logger.warning(
            f"Finished '{file_name}' with {len(report.failed)} of {report.total_batches} batch(es) failed; "
            f"their units were left untranslated."
        )
    else:
        logger.info(f"Finished '{file_name}': {report.total_batches} batch(es) translated.")
    return report


async def process_input_folder(config: AppConfig, translate: TranslateFn) -> Tuple[int, Dict[str, str]]:
    """
    Translate every localization file in the input folder, one file at a time.

    Returns:
        A tuple containing:
        - The number of files completed and moved to the completed folder.
        - A dictionary of skipped files, mapping file name to the parse error.
    """
    ensure_directories(config.input_folder, config.output_folder, config.completed_folder)

    files = discover_input_files(config.input_folder, config.file_extensions)
    if not files:
        logger.info(f"No localization files found in '{config.input_folder}'.")
        return 0, {}
    logger.info(f"Found {len(files)} file(s) to translate.")

    # Pacing spans file boundaries
    sequencer = BatchSequencer(rate_limit_interval(config.rate_limit))
    completed_count = 0
    skipped_files: Dict[str, str] = {}
    for file_name in files:
        try:
            await translate_file(file_name, config, translate, sequencer)
        except XliffParseError as parse_exc:
            logger.error(f"Skipping '{file_name}': {parse_exc}")
            skipped_files[file_name] = str(parse_exc)
            continue
        completed_count += 1

    logger.info(f"Completed {completed_count} file(s); skipped {len(skipped_files)}.")
    return completed_count, skipped_files


async def main():
    """
    Main function to orchestrate the translation process.
    """
    config = load_app_config()
    translator = OpenAITranslator(
        client=config.openai_client,
        model_name=config.model_name,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        separator=config.separator,
        app_context=config.app_context,
        timeout=config.request_timeout
    )
    await process_input_folder(config, translator)


def run():
    try:
        asyncio.run(main())
    except Exception as main_exc:
        logger.error(f"An unexpected error occurred during execution: {main_exc}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run()
