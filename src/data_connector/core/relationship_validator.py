"""
Relationship Validator - full-data sanity check of a chosen relationship.

Unlike detection, which works on bounded samples, validation scans every row
of both datasets: match rate, orphan rows, duplicate keys and the expected
join size. Data-quality problems come back as warnings and recommendations
inside the result; only an invalid column reference raises.
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
from data_connector.core.exceptions import InvalidColumnReferenceError
from data_connector.core.models import (
    ColumnInfo,
    Dataset,
    IntegrityReport,
    KeyCounts,
    RelationshipType,
    ValidationResult,
)
from data_connector.core.type_aliases import Record
from data_connector.core.values import normalize_series

logger = structlog.get_logger()

_KEY = "key"
_COUNT = "count"
_COUNT_TO = "count_to"


def require_column(dataset: Dataset, column: str) -> ColumnInfo:
    """
    Resolve a column from the dataset manifest.

    Raises:
        InvalidColumnReferenceError: If the column is not in the manifest
    """
    info = dataset.get_column(column)
    if info is None:
        raise InvalidColumnReferenceError(dataset.id, column, dataset.column_names)
    return info


def _empty_counts() -> pl.DataFrame:
    return pl.DataFrame(schema={_KEY: pl.Utf8, _COUNT: pl.Int64})


def _key_counts(column: ColumnInfo, rows: Sequence[Record]) -> pl.DataFrame:
    """Non-null normalized key -> number of rows carrying it."""
    keys = normalize_series(_KEY, [row.get(column.name) for row in rows], column.type).drop_nulls()
    if keys.len() == 0:
        return _empty_counts()
    return keys.value_counts().with_columns(pl.col(_COUNT).cast(pl.Int64))


def _merge_counts(frames: list[pl.DataFrame]) -> pl.DataFrame:
    if not frames:
        return _empty_counts()
    return pl.concat(frames).group_by(_KEY).agg(pl.col(_COUNT).sum())


def _matched_rows(counts: pl.DataFrame, other: pl.DataFrame) -> int:
    """Rows in ``counts`` whose key also appears in ``other``."""
    return int(counts.join(other.select(_KEY), on=_KEY, how="semi")[_COUNT].sum())


class RelationshipValidator:
    """
    Validates a relationship over full data.

    Example:
        >>> validator = RelationshipValidator()
        >>> result = validator.validate(orders, customers, "customer_id", "id")
        >>> result.match_rate
        0.6666666666666666
    """

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()

    def validate(
        self,
        ds1: Dataset,
        ds2: Dataset,
        column1: str,
        column2: str,
        declared_type: RelationshipType | str | None = None,
        batch_size: int | None = None,
        on_progress: ProgressCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> ValidationResult:
        """
        Validate ``ds1.column1 -> ds2.column2``.

        Match rate is directional: the share of ds1 rows whose key finds at
        least one ds2 row. Null keys never match, so a null key row is an
        orphan and ``orphan_count.ds1 + matched_rows.ds1 == ds1.row_count``.

        Args:
            ds1: "From" dataset
            ds2: "To" dataset
            column1: Key column in ds1
            column2: Key column in ds2
            declared_type: Relationship type the caller expects (enables the
                one-to-one duplicate warning)
            batch_size: Rows per batch (default from config)
            on_progress: Called after each batch with matched/scanned rows so far
            cancel: Checked between batches

        Returns:
            ValidationResult

        Raises:
            InvalidColumnReferenceError: If either column is missing
            OperationCancelledError: If cancelled between batches
        """
        info1 = require_column(ds1, column1)
        info2 = require_column(ds2, column2)
        if declared_type is not None and not isinstance(declared_type, RelationshipType):
            declared_type = RelationshipType(declared_type)

        batch_size = batch_size or self.config.batch_size
        rows1, rows2 = ds1.row_count, ds2.row_count
        total = rows1 + rows2

        frames2: list[pl.DataFrame] = []
        for start, batch in iter_batches(ds2.rows, batch_size):
            check_cancelled(cancel, "validate", start, total)
            frames2.append(_key_counts(info2, batch))
            report_progress(on_progress, "validate", start + len(batch), total)
        counts2 = _merge_counts(frames2)

        frames1: list[pl.DataFrame] = []
        matched1 = 0
        for start, batch in iter_batches(ds1.rows, batch_size):
            check_cancelled(cancel, "validate", rows2 + start, total)
            batch_counts = _key_counts(info1, batch)
            matched1 += _matched_rows(batch_counts, counts2)
            frames1.append(batch_counts)
            report_progress(
                on_progress,
                "validate",
                rows2 + start + len(batch),
                total,
                {"matched_rows": matched1, "scanned_rows": start + len(batch)},
            )
        counts1 = _merge_counts(frames1)

        matched2 = _matched_rows(counts2, counts1)
        orphan1 = rows1 - matched1
        orphan2 = rows2 - matched2
        match_rate = matched1 / rows1 if rows1 else 0.0

        dup1 = counts1.filter(pl.col(_COUNT) > 1).height
        dup2 = counts2.filter(pl.col(_COUNT) > 1).height
        pairs = counts1.join(counts2, on=_KEY, how="inner", suffix="_to")
        estimated_rows = int((pairs[_COUNT] * pairs[_COUNT_TO]).sum())
        explosion = (
            dup1 > 0
            and dup2 > 0
            and estimated_rows > self.config.explosion_factor * max(rows1, rows2)
        )

        warnings: list[str] = []
        recommendations: list[str] = []

        for dataset, column, counts in ((ds1, column1, counts1), (ds2, column2, counts2)):
            if dataset.row_count > 0 and counts.height == 0:
                warnings.append(
                    f"Join key '{column}' in {dataset.name} is empty or entirely null; no rows can match."
                )

        if match_rate < self.config.min_match_rate:
            warnings.append(f"Low match rate ({match_rate * 100:.1f}%). Many records won't join.")

        if rows1 and orphan1 / rows1 > self.config.high_orphan_ratio:
            warnings.append(f"{orphan1} of {rows1} rows in {ds1.name} have no match in {ds2.name}.{column2}.")
        if rows2 and orphan2 / rows2 > self.config.high_orphan_ratio:
            warnings.append(f"{orphan2} of {rows2} rows in {ds2.name} have no match in {ds1.name}.{column1}.")

        if declared_type == RelationshipType.ONE_TO_ONE and (dup1 or dup2):
            warnings.append(
                f"Relationship declared one-to-one but duplicate keys exist "
                f"({dup1} in {ds1.name}, {dup2} in {ds2.name})."
            )

        if dup1 or dup2:
            warnings.append("Duplicate keys detected. This may result in row multiplication.")
            recommendations.append("Consider using aggregation before joining to avoid duplicates.")
        if dup1 and dup2:
            warnings.append(
                "Duplicate keys on both sides (many-to-many). Every matching pair becomes an output row."
            )

        if explosion:
            warnings.append(
                f"Cartesian explosion risk: the join would produce about {estimated_rows:,} rows "
                f"from {rows1:,} and {rows2:,} input rows."
            )

        if match_rate > 0.8:
            recommendations.append("High match rate. An inner join is recommended.")
        elif match_rate > 0.5:
            recommendations.append(
                "Moderate match rate. Consider left join to preserve all records from primary dataset."
            )
        else:
            recommendations.append("Low match rate. Verify column selection or consider data cleaning first.")

        result = ValidationResult(
            is_valid=match_rate >= self.config.min_match_rate and not explosion,
            match_rate=match_rate,
            orphan_count=KeyCounts(ds1=orphan1, ds2=orphan2),
            duplicate_key_count=KeyCounts(ds1=dup1, ds2=dup2),
            warnings=warnings,
            recommendations=recommendations,
            matched_rows=KeyCounts(ds1=matched1, ds2=matched2),
            estimated_join_rows=estimated_rows,
        )

        logger.info(
            "relationship_validated",
            from_dataset=ds1.id,
            to_dataset=ds2.id,
            match_rate=round(match_rate, 4),
            is_valid=result.is_valid,
            warnings=len(warnings),
        )
        return result

    def check_referential_integrity(
        self,
        parent: Dataset,
        child: Dataset,
        parent_column: str,
        child_column: str,
    ) -> IntegrityReport:
        """
        Parent/child integrity report.

        Orphans are child rows (with a non-null key) whose key is missing
        from the parent; unused parents are distinct parent keys no child
        references.

        Scoring: ``round(clamp(match_rate * 0.7 + (100 - unused_parent_pct) * 0.3, 0, 100))``
        """
        parent_info = require_column(parent, parent_column)
        child_info = require_column(child, child_column)

        parent_keys = _key_counts(parent_info, parent.rows)
        child_counts = _key_counts(child_info, child.rows)

        total_child = int(child_counts[_COUNT].sum())
        orphan_count = int(child_counts.join(parent_keys.select(_KEY), on=_KEY, how="anti")[_COUNT].sum())
        unused_parents = parent_keys.join(child_counts.select(_KEY), on=_KEY, how="anti").height

        orphan_pct = orphan_count / total_child * 100 if total_child else 0.0
        unused_pct = unused_parents / parent_keys.height * 100 if parent_keys.height else 0.0
        match_rate = (total_child - orphan_count) / total_child * 100 if total_child else 0.0

        issues = []
        if orphan_pct > 10:
            issues.append(
                f"{orphan_count} orphan records ({orphan_pct:.1f}%) in child table have no match in parent."
            )
        if unused_pct > 50:
            issues.append(f"{unused_parents} parent records ({unused_pct:.1f}%) are never referenced.")

        score = round(max(0.0, min(100.0, match_rate * 0.7 + (100 - unused_pct) * 0.3)))

        return IntegrityReport(
            orphan_count=orphan_count,
            orphan_percentage=round(orphan_pct, 1),
            unused_parent_count=unused_parents,
            unused_parent_percentage=round(unused_pct, 1),
            match_rate=round(match_rate, 1),
            integrity_score=score,
            issues=issues,
        )

    def detect_cardinality(self, ds1: Dataset, column1: str, ds2: Dataset, column2: str) -> RelationshipType:
        """
        Exact cardinality over full data, counting only keys present on both sides.

        No shared keys -> many-to-many.
        """
        info1 = require_column(ds1, column1)
        info2 = require_column(ds2, column2)
        counts1 = _key_counts(info1, ds1.rows)
        shared = counts1.join(_key_counts(info2, ds2.rows), on=_KEY, how="inner", suffix="_to")
        if shared.height == 0:
            return RelationshipType.MANY_TO_MANY

        unique1 = bool((shared[_COUNT] == 1).all())
        unique2 = bool((shared[_COUNT_TO] == 1).all())
        if unique1 and unique2:
            return RelationshipType.ONE_TO_ONE
        if unique1 or unique2:
            return RelationshipType.ONE_TO_MANY
        return RelationshipType.MANY_TO_MANY


def validate_relationship(
    ds1: Dataset,
    ds2: Dataset,
    column1: str,
    column2: str,
    config: EngineConfig | None = None,
) -> ValidationResult:
    """Module-level shortcut for ``RelationshipValidator(config).validate``."""
    return RelationshipValidator(config).validate(ds1, ds2, column1, column2)
