"""
Data model for the relationship and schema inference engine.

Datasets are owned by the host application and only read here. Every result
type (fingerprints, relationships, schema results, validation results,
composite views) is freshly allocated per call and handed to the caller.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import polars as pl

from data_connector.core.type_aliases import Record


class ColumnType(str, Enum):
    """Inferred column type supplied by the ingestion layer."""

    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


class RelationshipType(str, Enum):
    ONE_TO_ONE = "one-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_MANY = "many-to-many"


class JoinType(str, Enum):
    INNER = "inner"
    LEFT = "left"
    RIGHT = "right"
    FULL = "full"


class SchemaType(str, Enum):
    STAR = "star"
    SNOWFLAKE = "snowflake"
    FLAT = "flat"
    NONE = "none"


class TableRole(str, Enum):
    FACT = "fact"
    DIMENSION = "dimension"
    UNKNOWN = "unknown"


def _column_type_from_dtype(dtype: pl.DataType) -> ColumnType:
    """Map a Polars dtype onto the engine's column type."""
    if dtype == pl.Boolean:
        return ColumnType.BOOLEAN
    if dtype == pl.Date or dtype == pl.Datetime:
        return ColumnType.DATE
    if dtype.is_numeric():
        return ColumnType.NUMBER
    return ColumnType.STRING


@dataclass
class ColumnInfo:
    """
    Column manifest entry derived once per dataset by the ingestion layer.

    Attributes:
        name: Column name
        type: Inferred column type (trusted by the engine)
        null_count: Number of null/empty cells
        unique_count: Number of distinct non-null values (<= row count)
        sample_values: A few representative values for display
    """

    name: str
    type: ColumnType
    null_count: int = 0
    unique_count: int = 0
    sample_values: list[Any] = field(default_factory=list)


@dataclass
class Dataset:
    """
    One uploaded tabular dataset.

    The engine treats a Dataset as an immutable snapshot: it never writes to
    ``rows`` or ``columns``. Merges produce a new CompositeView instead.
    """

    id: str
    name: str
    rows: list[Record]
    columns: list[ColumnInfo]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_names(self) -> list[str]:
        return [col.name for col in self.columns]

    def has_column(self, name: str) -> bool:
        return any(col.name == name for col in self.columns)

    def get_column(self, name: str) -> ColumnInfo | None:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    @classmethod
    def from_polars(cls, df: pl.DataFrame, dataset_id: str, name: str | None = None) -> "Dataset":
        """
        Build a Dataset from a Polars DataFrame.

        Column types are mapped from Polars dtypes (numeric -> number,
        Date/Datetime -> date, Boolean -> boolean, everything else -> string).

        Args:
            df: Materialized Polars DataFrame
            dataset_id: Identifier assigned by the host
            name: Display name (defaults to dataset_id)

        Returns:
            Dataset with rows as dicts and a derived column manifest
        """
        columns = []
        for col_name in df.columns:
            series = df[col_name]
            non_null = series.drop_nulls()
            columns.append(
                ColumnInfo(
                    name=col_name,
                    type=_column_type_from_dtype(series.dtype),
                    null_count=series.null_count(),
                    unique_count=non_null.n_unique() if non_null.len() > 0 else 0,
                    sample_values=non_null.head(5).to_list(),
                )
            )
        return cls(id=dataset_id, name=name or dataset_id, rows=df.to_dicts(), columns=columns)

    def to_polars(self) -> pl.DataFrame:
        """Materialize rows as a Polars DataFrame (columns in manifest order)."""
        if not self.rows:
            return pl.DataFrame({name: [] for name in self.column_names})
        return pl.from_dicts(self.rows, infer_schema_length=None)


@dataclass(frozen=True)
class ColumnFingerprint:
    """
    Comparable signature of one column, computed from a bounded sample.

    Ephemeral: lives for one detection pass and is never persisted.
    """

    dataset_id: str
    column_name: str
    type: ColumnType
    cardinality_ratio: float
    value_set: frozenset[str]
    null_rate: float
    sampled_rows: int = 0

    @property
    def unique_count(self) -> int:
        return len(self.value_set)


@dataclass(frozen=True)
class Relationship:
    """
    Candidate (or confirmed) relationship between two dataset columns.

    Candidates are immutable once created by the detector; re-tagging with a
    schema type goes through dataclasses.replace and yields a new value.
    For one-to-many relationships ``from_*`` is the referencing (many) side
    and ``to_*`` the referenced (one) side.
    """

    from_dataset: str
    to_dataset: str
    from_column: str
    to_column: str
    type: RelationshipType
    match_score: float
    confidence: float
    matching_values: int
    auto_join_recommended: bool = False
    schema_type: SchemaType | None = None
    is_fact_table: bool = False
    is_dimension_table: bool = False
    name_similarity: float = 0.0
    total_values: int = 0
    suggestion: str = ""

    @property
    def pair_key(self) -> tuple[str, str]:
        """Order-independent dataset pair identifier."""
        return tuple(sorted((self.from_dataset, self.to_dataset)))  # type: ignore[return-value]

    def __str__(self) -> str:
        return (
            f"{self.from_dataset}.{self.from_column} → {self.to_dataset}.{self.to_column} "
            f"({self.type.value}, score={self.match_score:.2f}, conf={self.confidence:.2f})"
        )


@dataclass
class TableMetrics:
    """Structural metrics backing a fact/dimension label."""

    row_count: int
    numeric_column_ratio: float
    foreign_key_score: float
    cardinality_ratio: float
    descriptive_column_ratio: float
    has_high_cardinality: bool


@dataclass
class TableClassification:
    dataset_id: str
    dataset_name: str
    role: TableRole
    confidence: float
    reasons: list[str]
    metrics: TableMetrics


@dataclass
class DimensionHierarchy:
    """Dimension-to-dimension link (the snowflake indicator)."""

    parent_dimension: str
    child_dimension: str
    link_column: str


@dataclass
class SchemaDetectionResult:
    """
    Outcome of one classification pass. Recomputed fully on every run.
    """

    schema_type: SchemaType
    confidence: float
    fact_tables: list[TableClassification] = field(default_factory=list)
    dimension_tables: list[TableClassification] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    explanation: str = ""
    dimension_hierarchies: list[DimensionHierarchy] = field(default_factory=list)


@dataclass(frozen=True)
class KeyCounts:
    """Per-side counter pair (ds1 = first/"from" dataset, ds2 = second/"to")."""

    ds1: int = 0
    ds2: int = 0


@dataclass
class ValidationResult:
    is_valid: bool
    match_rate: float
    orphan_count: KeyCounts
    duplicate_key_count: KeyCounts
    warnings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    matched_rows: KeyCounts = field(default_factory=KeyCounts)
    estimated_join_rows: int = 0


@dataclass
class IntegrityReport:
    """
    Parent/child referential integrity summary.

    Percentages are on a 0-100 scale, rounded to one decimal.
    """

    orphan_count: int
    orphan_percentage: float
    unused_parent_count: int
    unused_parent_percentage: float
    match_rate: float
    integrity_score: int
    issues: list[str] = field(default_factory=list)


@dataclass
class CommonDimension:
    dimension: str
    datasets: list[str]
    columns: list[tuple[str, str]]
    reason: str = ""


@dataclass(frozen=True)
class JoinStats:
    """Row accounting for a join: output = matched + left_only + right_only."""

    matched_rows: int = 0
    left_only_rows: int = 0
    right_only_rows: int = 0

    @property
    def total_rows(self) -> int:
        return self.matched_rows + self.left_only_rows + self.right_only_rows


@dataclass
class CompositeView:
    """
    Materialized join result. Ownership transfers to the caller.

    ``row_count`` can exceed either input's row count: one-to-many matches
    expand into one output row per matching pair.
    """

    data: list[Record]
    columns: list[ColumnInfo]
    name: str = ""
    source_datasets: list[str] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    join_type: JoinType = JoinType.LEFT
    stats: JoinStats = field(default_factory=JoinStats)

    @property
    def row_count(self) -> int:
        return len(self.data)

    @property
    def column_names(self) -> list[str]:
        return [col.name for col in self.columns]

    def to_polars(self) -> pl.DataFrame:
        """Materialize the composite rows as a Polars DataFrame."""
        if not self.data:
            return pl.DataFrame({name: [] for name in self.column_names})
        return pl.from_dicts(self.data, infer_schema_length=None)


@dataclass
class JoinSuggestion:
    primary: Relationship
    alternatives: list[Relationship]
    explanation: str
