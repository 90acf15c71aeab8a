from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from src.xliff_document import UnitView, is_escaped_block, unwrap_escaped_block


@dataclass(frozen=True)
class BatchUnit:
    """An extracted copy of one unit's translatable text."""
    unit_id: str
    text: str
    escaped_block: bool


@dataclass(frozen=True)
class Batch:
    """A group of units sent to the translator in one call."""
    index: int
    units: Tuple[BatchUnit, ...]

    def __len__(self) -> int:
        return len(self.units)


def classify_source(source_markup: str) -> Tuple[str, bool]:
    """
    Split a unit's source markup into the text to translate and its escaped-block flag.

    Args:
        source_markup: The raw inner markup of the <source> element.

    Returns:
        The text with any CDATA marker removed, and whether the marker was present.
    """
    if is_escaped_block(source_markup):
        return unwrap_escaped_block(source_markup), True
    return source_markup, False


def is_excluded(unit: UnitView, excluded_id_prefixes: Sequence[str], retranslate_existing: bool) -> bool:
    if any(unit.unit_id.startswith(prefix) for prefix in excluded_id_prefixes):
        return True
    return unit.has_target_content and not retranslate_existing


def extract_batches(
        units: Iterable[UnitView],
        units_per_batch: int,
        excluded_id_prefixes: Sequence[str] = (),
        retranslate_existing: bool = False
) -> List[Batch]:
    """
    Group the translatable units of a document into ordered, fixed-size batches.

    Args:
        units: Unit snapshots in document order.
        units_per_batch: Maximum number of units per batch.
        excluded_id_prefixes: Units whose id starts with any of these are skipped.
        retranslate_existing: If False, units that already have a non-empty target are skipped.

    Returns:
        The batches in document order; only the last one may be shorter than ``units_per_batch``.
    """
    if units_per_batch < 1:
        raise ValueError(f"units_per_batch must be at least 1, got {units_per_batch}.")

    chunks: List[List[BatchUnit]] = []
    selected_count = 0
    for unit in units:
        if is_excluded(unit, excluded_id_prefixes, retranslate_existing):
            continue
        if selected_count % units_per_batch == 0:
            chunks.append([])
        text, escaped_block = classify_source(unit.source_markup)
        chunks[-1].append(BatchUnit(unit_id=unit.unit_id, text=text, escaped_block=escaped_block))
        selected_count += 1

    return [Batch(index=i, units=tuple(chunk)) for i, chunk in enumerate(chunks)]
