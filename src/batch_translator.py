import asyncio
import logging
from typing import Awaitable, Callable, List, TypeVar

from src.logging_config import LOGGER_NAME
from src.unit_extractor import Batch
from src.xliff_document import is_xml_compatible

logger = logging.getLogger(LOGGER_NAME)

# Private delimiter used to pack several unit texts into a single request.
DEFAULT_SEPARATOR = '<|->'

TranslateFn = Callable[[str, str, str], Awaitable[str]]
T = TypeVar('T')


class BatchTranslationError(Exception):
    """Base class for failures while translating a batch."""


class CountMismatchError(BatchTranslationError):
    """Raised when the translated payload does not split back into one piece per unit."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"String count mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class SeparatorCollisionError(BatchTranslationError):
    """Raised when a source text already contains the separator token."""


class EmptyResponseError(BatchTranslationError):
    """Raised when the translation service returns no content."""


class InvalidCharacterError(BatchTranslationError):
    """Raised when a translated piece contains characters that XML cannot hold."""


def build_combined_payload(batch: Batch, separator: str = DEFAULT_SEPARATOR) -> str:
    """
    Join the texts of a batch into one request payload.

    Args:
        batch: The batch to serialize.
        separator: The token placed between unit texts.

    Returns:
        The combined text.

    Raises:
        SeparatorCollisionError: If any unit text contains ``separator``, which would
            make the response impossible to split back reliably.
    """
    for unit in batch.units:
        if separator in unit.text:
            raise SeparatorCollisionError(
                f"Source text of unit '{unit.unit_id}' contains the separator token '{separator}'."
            )
    return separator.join(unit.text for unit in batch.units)


def split_translated_payload(translated_text: str, separator: str, expected_count: int) -> List[str]:
    pieces = translated_text.split(separator)
    if len(pieces) != expected_count:
        raise CountMismatchError(expected_count, len(pieces))
    return pieces


async def translate_batch(
        batch: Batch,
        translate: TranslateFn,
        source_language: str,
        target_language: str,
        separator: str = DEFAULT_SEPARATOR
) -> List[str]:
    """
    Translate all units of a batch with a single call to ``translate``.

    Returns:
        One translated string per unit, in batch order.

    Raises:
        CountMismatchError: If the response does not contain exactly one piece per unit.
        InvalidCharacterError: If a piece contains characters not allowed in XML.
    """
    combined_text = build_combined_payload(batch, separator)
    translated_text = await translate(combined_text, source_language, target_language)
    pieces = split_translated_payload(translated_text, separator, len(batch))
    for unit, piece in zip(batch.units, pieces):
        if not is_xml_compatible(piece):
            raise InvalidCharacterError(f"Translation for unit '{unit.unit_id}' contains characters not allowed in XML.")
    return pieces


def retry_delay(attempt: int) -> float:
    """Seconds to wait before retry number ``attempt`` (the first retry is 1)."""
    return float(2 ** (attempt - 1))


async def call_with_retry(
        operation: Callable[[], Awaitable[T]],
        max_retries: int,
        description: str
) -> T:
    """
    Await ``operation()``, retrying it up to ``max_retries`` more times on failure.

    The delay before retry k is ``2 ** (k - 1)`` seconds. When all retries are
    used up the last exception is re-raised.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            logger.error(f"{description} failed on attempt {attempt + 1}: {exc}")
            if attempt >= max_retries:
                logger.error(f"Max retries ({max_retries}) reached for {description}. Giving up.")
                raise
            attempt += 1
            delay = retry_delay(attempt)
            logger.info(f"Retrying {description} in {delay:g} seconds (retry {attempt}/{max_retries})...")
            await asyncio.sleep(delay)


async def translate_batch_with_retry(
        batch: Batch,
        translate: TranslateFn,
        source_language: str,
        target_language: str,
        separator: str = DEFAULT_SEPARATOR,
        max_retries: int = 3
) -> List[str]:
    """
    Translate a batch, retrying transport errors and unusable responses with exponential backoff.

    A separator collision is raised immediately since retrying cannot fix it.
    """
    build_combined_payload(batch, separator)
    return await call_with_retry(
        lambda: translate_batch(batch, translate, source_language, target_language, separator),
        max_retries,
        f"Batch {batch.index + 1}",
    )
