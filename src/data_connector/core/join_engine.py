"""
Join/Merge Engine - materializes composite views.

Executes inner/left/right/full joins between two datasets on a chosen column
pair. The lookup side keeps every row per key, so one-to-many matches expand
into one output row per matching pair (a genuine cross product, never
deduplicated); callers see the expansion through ``row_count`` and ``stats``.

Column collisions use last-write-wins: when both sides carry a column of the
same name, a matched row takes the "to" side's value. Unmatched rows keep
their own side's values and null-fill the other side's columns.
"""

from collections.abc import Sequence

import polars as pl
import structlog

from data_connector.core.batching import (
    CancellationToken,
    ProgressCallback,
    check_cancelled,
    iter_batches,
    report_progress,
)
from data_connector.core.config_loader import EngineConfig
from data_connector.core.fingerprint import summarize_column
from data_connector.core.models import (
    ColumnInfo,
    CompositeView,
    Dataset,
    JoinStats,
    JoinType,
    Relationship,
)
from data_connector.core.relationship_validator import require_column
from data_connector.core.type_aliases import NormalizedKey, Record
from data_connector.core.values import normalize_series

logger = structlog.get_logger()


def _keys(rows: Sequence[Record], column: ColumnInfo) -> pl.Series:
    return normalize_series("key", [row.get(column.name) for row in rows], column.type)


def _merged_manifest(ds1: Dataset, ds2: Dataset) -> list[ColumnInfo]:
    """Union of both manifests in from-then-to order; collisions take the "to" type."""
    columns: dict[str, ColumnInfo] = {col.name: col for col in ds1.columns}
    for col in ds2.columns:
        columns[col.name] = col
    ordered = [col.name for col in ds1.columns] + [col.name for col in ds2.columns if not ds1.has_column(col.name)]
    return [columns[name] for name in ordered]


class JoinEngine:
    """
    Two-dataset joins producing CompositeViews.

    Example:
        >>> engine = JoinEngine()
        >>> view = engine.merge_datasets(orders, customers, "customer_id", "id", JoinType.LEFT)
        >>> view.row_count
        3
    """

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()

    def build_lookup(
        self,
        dataset: Dataset,
        column: ColumnInfo,
        batch_size: int | None = None,
        on_progress: ProgressCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> dict[NormalizedKey, list[int]]:
        """
        Map normalized key -> indices of every row carrying it, in row order.

        Null keys are left out so they never match.
        """
        lookup: dict[NormalizedKey, list[int]] = {}
        total = dataset.row_count
        for start, batch in iter_batches(dataset.rows, batch_size or self.config.batch_size):
            check_cancelled(cancel, "join_lookup", start, total)
            frame = pl.DataFrame(
                {
                    "key": _keys(batch, column),
                    "row": pl.int_range(start, start + len(batch), eager=True),
                }
            )
            grouped = frame.drop_nulls("key").group_by("key", maintain_order=True).agg(pl.col("row"))
            for key, indices in grouped.iter_rows():
                lookup.setdefault(key, []).extend(indices)
            report_progress(on_progress, "join_lookup", start + len(batch), total)
        return lookup

    def merge_datasets(
        self,
        ds1: Dataset,
        ds2: Dataset,
        from_column: str,
        to_column: str,
        join_type: JoinType | str = JoinType.LEFT,
        batch_size: int | None = None,
        on_progress: ProgressCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> CompositeView:
        """
        Join ``ds1.from_column`` with ``ds2.to_column``.

        - inner: one row per matching pair
        - left: inner plus unmatched ds1 rows
        - right: inner plus unmatched ds2 rows, driven by ds2 row order
        - full: left, then each unmatched ds2 row exactly once

        Output columns are always ds1's followed by ds2's new columns. For a
        ds2-only row the ds1 join column carries the ds2 key value.

        Raises:
            InvalidColumnReferenceError: If either join column is missing
            ValueError: If join_type is not inner/left/right/full
            OperationCancelledError: If cancelled during lookup construction
        """
        from_info = require_column(ds1, from_column)
        to_info = require_column(ds2, to_column)
        join_type = JoinType(join_type)

        columns = _merged_manifest(ds1, ds2)
        column_names = [col.name for col in columns]

        def merged(from_row: Record | None, to_row: Record | None) -> Record:
            row: Record = dict.fromkeys(column_names)
            if from_row is not None:
                row.update(from_row)
            if to_row is not None:
                row.update(to_row)
                if from_row is None:
                    row[from_column] = to_row.get(to_column)
            return row

        data: list[Record] = []
        matched = left_only = right_only = 0

        if join_type == JoinType.RIGHT:
            lookup = self.build_lookup(ds1, from_info, batch_size, on_progress, cancel)
            for to_row, key in zip(ds2.rows, _keys(ds2.rows, to_info)):
                indices = lookup.get(key, []) if key is not None else []
                for index in indices:
                    data.append(merged(ds1.rows[index], to_row))
                matched += len(indices)
                if not indices:
                    data.append(merged(None, to_row))
                    right_only += 1
        else:
            lookup = self.build_lookup(ds2, to_info, batch_size, on_progress, cancel)
            used_to_rows: set[int] = set()
            for from_row, key in zip(ds1.rows, _keys(ds1.rows, from_info)):
                indices = lookup.get(key, []) if key is not None else []
                for index in indices:
                    data.append(merged(from_row, ds2.rows[index]))
                    used_to_rows.add(index)
                matched += len(indices)
                if not indices and join_type in (JoinType.LEFT, JoinType.FULL):
                    data.append(merged(from_row, None))
                    left_only += 1

            if join_type == JoinType.FULL:
                for index, to_row in enumerate(ds2.rows):
                    if index not in used_to_rows:
                        data.append(merged(None, to_row))
                        right_only += 1

        manifest = [summarize_column(col.name, col.type, [row.get(col.name) for row in data]) for col in columns]
        stats = JoinStats(matched_rows=matched, left_only_rows=left_only, right_only_rows=right_only)

        logger.info(
            "datasets_merged",
            from_dataset=ds1.id,
            to_dataset=ds2.id,
            join_type=join_type.value,
            rows=len(data),
            matched=matched,
            left_only=left_only,
            right_only=right_only,
        )

        return CompositeView(
            data=data,
            columns=manifest,
            name=f"{ds1.name} + {ds2.name}",
            source_datasets=[ds1.id, ds2.id],
            join_type=join_type,
            stats=stats,
        )

    def create_composite_view(
        self,
        datasets: Sequence[Dataset],
        relationships: Sequence[Relationship],
        join_type: JoinType | str = JoinType.LEFT,
    ) -> CompositeView:
        """
        Chain joins starting from the first dataset.

        Relationships are applied breadth-first: each pass joins every
        relationship with exactly one side already in the composite, until no
        relationship adds a dataset. The composite always stays the primary
        (left) side. Datasets no relationship reaches are left out.

        Raises:
            ValueError: If ``datasets`` is empty
        """
        if not datasets:
            raise ValueError("At least one dataset is required")

        join_type = JoinType(join_type)
        by_id = {dataset.id: dataset for dataset in datasets}
        first = datasets[0]

        current = Dataset(id=first.id, name=first.name, rows=list(first.rows), columns=list(first.columns))
        used = [first.id]
        applied: list[Relationship] = []
        stats = JoinStats()

        progressed = True
        while progressed:
            progressed = False
            for rel in relationships:
                if rel in applied or rel.from_dataset not in by_id or rel.to_dataset not in by_id:
                    continue
                from_in = rel.from_dataset in used
                to_in = rel.to_dataset in used
                if from_in == to_in:
                    continue

                if from_in:
                    other, current_col, other_col = by_id[rel.to_dataset], rel.from_column, rel.to_column
                else:
                    other, current_col, other_col = by_id[rel.from_dataset], rel.to_column, rel.from_column

                view = self.merge_datasets(current, other, current_col, other_col, join_type)
                current = Dataset(id="composite", name=current.name, rows=view.data, columns=view.columns)
                used.append(other.id)
                applied.append(rel)
                stats = view.stats
                progressed = True

        names = " + ".join(by_id[ds_id].name.split(".")[0] for ds_id in used)
        logger.info("composite_view_created", datasets=len(used), joins=len(applied), rows=current.row_count)

        return CompositeView(
            data=current.rows,
            columns=current.columns,
            name=f"Composite View - {names}",
            source_datasets=used,
            relationships=applied,
            join_type=join_type,
            stats=stats,
        )


def merge_datasets(
    ds1: Dataset,
    ds2: Dataset,
    from_column: str,
    to_column: str,
    join_type: JoinType | str = JoinType.LEFT,
    config: EngineConfig | None = None,
) -> CompositeView:
    """Module-level shortcut for ``JoinEngine(config).merge_datasets``."""
    return JoinEngine(config).merge_datasets(ds1, ds2, from_column, to_column, join_type)
