import contextlib
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Sequence

from aiolimiter import AsyncLimiter
from tqdm.asyncio import tqdm

from src.logging_config import LOGGER_NAME
from src.unit_extractor import Batch

logger = logging.getLogger(LOGGER_NAME)


@dataclass
class SequenceReport:
    """Outcome of running every batch of one document."""
    total_batches: int
    succeeded: List[int] = field(default_factory=list)
    failed: Dict[int, str] = field(default_factory=dict)


def rate_limit_interval(rate_limit: float) -> float:
    """Minimum seconds between batch starts at ``rate_limit`` requests per minute."""
    if rate_limit <= 0:
        raise ValueError(f"rate_limit must be positive, got {rate_limit}.")
    return 60.0 / rate_limit


class BatchSequencer:
    """
    Runs batch steps strictly one after another, spacing their starts by at least ``interval`` seconds.

    The spacing is enforced with a leaky bucket of capacity one: each start
    waits until the bucket has drained, i.e. until ``interval`` seconds after
    the previous start. Failed steps count towards the schedule like successful
    ones.
    """

    def __init__(self, interval: float):
        self.interval = interval
        self._limiter = AsyncLimiter(max_rate=1, time_period=interval) if interval > 0 else None

    def _slot(self):
        return self._limiter if self._limiter is not None else contextlib.nullcontext()

    async def run(
            self,
            batches: Sequence[Batch],
            step: Callable[[Batch], Awaitable[None]],
            checkpoint: Callable[[], None],
            description: str = "Translating"
    ) -> SequenceReport:
        """
        Execute ``step`` for every batch in order.

        A step that raises is logged and recorded as failed without stopping the
        remaining batches. ``checkpoint`` runs after every step regardless of its
        outcome.
        """
        report = SequenceReport(total_batches=len(batches))
        with tqdm(total=len(batches), desc=description, unit="batch") as progress:
            for batch in batches:
                # The slot is only claimed; the step itself runs after the wait.
                async with self._slot():
                    pass
                try:
                    await step(batch)
                    report.succeeded.append(batch.index)
                except Exception as exc:
                    logger.error(f"Batch {batch.index + 1}/{len(batches)} failed: {exc}")
                    report.failed[batch.index] = str(exc)
                finally:
                    checkpoint()
                    progress.update(1)
        return report
