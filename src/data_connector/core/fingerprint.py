"""
Column Fingerprinter - comparable per-column signatures.

For every column of a dataset this computes type, cardinality ratio, null rate
and the set of normalized values, using a bounded uniform-stride sample so the
cost stays O(sample_cap) regardless of table size.

Fingerprints are a pure function of the dataset: fingerprinting the same
snapshot twice yields identical results.
"""

import math
from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING, Any

import structlog

from data_connector.core.batching import (
    BatchProgress,
    CancellationToken,
    check_cancelled,
    iter_batches,
)
from data_connector.core.config_loader import EngineConfig
from data_connector.core.models import ColumnFingerprint, ColumnInfo, ColumnType, Dataset
from data_connector.core.type_aliases import Record
from data_connector.core.values import normalize_series

if TYPE_CHECKING:
    from data_connector.core.fingerprint_cache import FingerprintCache

logger = structlog.get_logger()


def sample_rows(rows: Sequence[Record], cap: int) -> list[Record]:
    """
    Uniform-stride sample of at most ``cap`` rows.

    Keeps every ``ceil(len(rows) / cap)``-th row starting at index 0, which is
    deterministic and spreads the sample over the whole dataset (a head()
    sample would miss keys that only appear late in sorted exports).

    Raises:
        ValueError: If cap is not positive
    """
    if cap <= 0:
        raise ValueError(f"Sample cap must be positive, got {cap}")
    if len(rows) <= cap:
        return list(rows)
    step = math.ceil(len(rows) / cap)
    return list(rows[::step])


def summarize_column(name: str, column_type: ColumnType, values: list[Any]) -> ColumnInfo:
    """
    Derive a ColumnInfo manifest entry from raw column values.

    Null and distinct counts are taken over normalized values so they agree
    with how the engine compares keys.
    """
    series = normalize_series(name, values, column_type)
    non_null = series.drop_nulls()
    samples = [value for value, key in zip(values, series.to_list()) if key is not None][:5]
    return ColumnInfo(
        name=name,
        type=column_type,
        null_count=series.null_count(),
        unique_count=non_null.n_unique() if non_null.len() > 0 else 0,
        sample_values=samples,
    )


class ColumnFingerprinter:
    """
    Computes ColumnFingerprints for datasets.

    Example:
        >>> fingerprinter = ColumnFingerprinter()
        >>> fingerprints = fingerprinter.fingerprint_dataset(orders)
        >>> fingerprints["customer_id"].cardinality_ratio
        0.42
    """

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()

    def fingerprint_column(self, dataset: Dataset, column: ColumnInfo, sample: list[Record]) -> ColumnFingerprint:
        """
        Fingerprint one column over a pre-drawn sample.

        An empty sample yields an empty value set with zero ratios; downstream
        detectors treat that as "no match possible".
        """
        if not sample:
            return ColumnFingerprint(
                dataset_id=dataset.id,
                column_name=column.name,
                type=column.type,
                cardinality_ratio=0.0,
                value_set=frozenset(),
                null_rate=0.0,
                sampled_rows=0,
            )

        series = normalize_series(column.name, [row.get(column.name) for row in sample], column.type)
        non_null = series.drop_nulls()
        value_set = frozenset(non_null.unique().to_list()) if non_null.len() > 0 else frozenset()

        return ColumnFingerprint(
            dataset_id=dataset.id,
            column_name=column.name,
            type=column.type,
            cardinality_ratio=len(value_set) / len(sample),
            value_set=value_set,
            null_rate=series.null_count() / len(sample),
            sampled_rows=len(sample),
        )

    def iter_fingerprint_batches(
        self,
        dataset: Dataset,
        batch_size: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> Iterator[BatchProgress]:
        """
        Fingerprint a dataset column-batch by column-batch.

        Yields a BatchProgress after each batch whose ``partial`` holds the
        fingerprints computed so far (column name -> fingerprint). The host
        can yield to its event loop between iterations or stop iterating.

        Args:
            dataset: Dataset snapshot
            batch_size: Columns per batch (defaults to all columns at once)
            cancel: Optional cancellation token checked between batches

        Raises:
            OperationCancelledError: If the token is set between batches
        """
        sample = sample_rows(dataset.rows, self.config.sample_cap)
        columns = dataset.columns
        total = len(columns)
        fingerprints: dict[str, ColumnFingerprint] = {}

        if total == 0:
            yield BatchProgress(stage="fingerprint", processed=0, total=0, partial={})
            return

        for start, batch in iter_batches(columns, batch_size or total):
            check_cancelled(cancel, "fingerprint", start, total)
            for column in batch:
                fingerprints[column.name] = self.fingerprint_column(dataset, column, sample)
            yield BatchProgress(
                stage="fingerprint",
                processed=start + len(batch),
                total=total,
                partial=dict(fingerprints),
            )

    def fingerprint_dataset(
        self,
        dataset: Dataset,
        batch_size: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> dict[str, ColumnFingerprint]:
        """Fingerprint every column of ``dataset``; returns column name -> fingerprint."""
        fingerprints: dict[str, ColumnFingerprint] = {}
        for progress in self.iter_fingerprint_batches(dataset, batch_size=batch_size, cancel=cancel):
            fingerprints = progress.partial

        logger.debug(
            "dataset_fingerprinted",
            dataset_id=dataset.id,
            columns=len(fingerprints),
            rows=dataset.row_count,
            sampled_rows=min(dataset.row_count, self.config.sample_cap),
        )
        return fingerprints


def fingerprint_all(
    datasets: Sequence[Dataset],
    fingerprinter: ColumnFingerprinter | None = None,
    cache: "FingerprintCache | None" = None,
) -> dict[str, dict[str, ColumnFingerprint]]:
    """
    Fingerprint several datasets.

    Args:
        datasets: Dataset snapshots
        fingerprinter: Fingerprinter to use (default config if None)
        cache: Optional caller-owned FingerprintCache

    Returns:
        dataset_id -> column name -> fingerprint
    """
    fingerprinter = fingerprinter or ColumnFingerprinter()
    index: dict[str, dict[str, ColumnFingerprint]] = {}
    for dataset in datasets:
        if cache is not None:
            index[dataset.id] = cache.get_or_compute(dataset, fingerprinter)
        else:
            index[dataset.id] = fingerprinter.fingerprint_dataset(dataset)
    return index
