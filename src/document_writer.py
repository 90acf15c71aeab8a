import logging
from typing import Sequence

from src.logging_config import LOGGER_NAME
from src.unit_extractor import Batch
from src.xliff_document import XliffDocument, is_xml_compatible

logger = logging.getLogger(LOGGER_NAME)


def apply_translations(document: XliffDocument, batch: Batch, translations: Sequence[str]) -> None:
    """
    Write the translations of a batch into the targets of its units.

    Args:
        document: The document that owns the units.
        batch: The translated batch.
        translations: One translated string per unit, in batch order.

    Raises:
        ValueError: If the translations don't fit the batch. No unit is written.
    """
    if len(translations) != len(batch):
        raise ValueError(
            f"Got {len(translations)} translations for a batch of {len(batch)} units."
        )
    for unit, translated_text in zip(batch.units, translations):
        if not is_xml_compatible(translated_text):
            raise ValueError(f"Translation for unit '{unit.unit_id}' contains characters that are not allowed in XML.")
    for unit, translated_text in zip(batch.units, translations):
        document.set_target(unit.unit_id, translated_text, unit.escaped_block)
        logger.debug(f"Integrated translation for unit '{unit.unit_id}': '{translated_text}'")


def save_document(document: XliffDocument, output_path: str) -> None:
    document.write(output_path)
    logger.debug(f"Saved document to '{output_path}'.")
