"""
Batched processing primitives.

Expensive stages (fingerprinting every column, full-data validation, lookup
construction for large joins) run in bounded batches so a host can report
progress and abandon work between batches. Nothing here depends on a
particular event loop: callers get a synchronous progress callback and a
thread-safe cancellation token.
"""

import threading
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from data_connector.core.exceptions import OperationCancelledError

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 5_000


@dataclass
class BatchProgress:
    """
    Progress snapshot emitted after each batch.

    Attributes:
        stage: Name of the running stage (e.g. "fingerprint", "validate")
        processed: Items processed so far
        total: Total items in the stage
        partial: Results-so-far payload (stage specific, may be None)
    """

    stage: str
    processed: int
    total: int
    partial: Any = None

    @property
    def done(self) -> bool:
        return self.processed >= self.total

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 1.0
        return min(self.processed / self.total, 1.0)


ProgressCallback = Callable[[BatchProgress], None]


class CancellationToken:
    """
    Caller-owned cancellation flag checked between batches.

    Safe to set from another thread while an operation is running.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


def iter_batches(items: Sequence[T], batch_size: int) -> Iterator[tuple[int, Sequence[T]]]:
    """
    Yield (start_index, batch) slices of ``items``.

    Raises:
        ValueError: If batch_size is not positive
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    for start in range(0, len(items), batch_size):
        yield start, items[start : start + batch_size]


def check_cancelled(cancel: CancellationToken | None, stage: str, processed: int, total: int) -> None:
    """Raise OperationCancelledError if the token has been set."""
    if cancel is not None and cancel.is_cancelled:
        raise OperationCancelledError(stage, processed, total)


def report_progress(
    on_progress: ProgressCallback | None,
    stage: str,
    processed: int,
    total: int,
    partial: Any = None,
) -> None:
    if on_progress is not None:
        on_progress(BatchProgress(stage=stage, processed=processed, total=total, partial=partial))
