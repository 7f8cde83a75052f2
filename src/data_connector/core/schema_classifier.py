"""
Schema Classifier - star / snowflake / flat / none.

Builds a graph over datasets from candidate relationships and labels the
topology:

- none: fewer than 2 datasets, or no relationship clears the confidence floor
- flat: relationships exist but no dataset references two or more others
- star: one hub (fact) references 2+ dimensions, no dimension references further
- snowflake: hub structure plus at least one dimension -> dimension reference

Only one-to-many edges are directed references (from = referencing side).
One-to-one and many-to-many edges connect datasets without implying a role,
and never displace a reference between the same two datasets.

Hub selection when several datasets reference 2+ others is a heuristic, not a
formally justified rule, so it is exposed as a pluggable policy.
"""

import re
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import replace

import structlog

from data_connector.core.config_loader import EngineConfig
from data_connector.core.models import (
    ColumnType,
    Dataset,
    DimensionHierarchy,
    Relationship,
    RelationshipType,
    SchemaDetectionResult,
    SchemaType,
    TableClassification,
    TableMetrics,
    TableRole,
)
from data_connector.core.relationship_detector import RelationshipDetector

logger = structlog.get_logger()

_FK_NAME = re.compile(r"(_id|_key|_code|_no|_ref|_num|_number|_reference)$", re.IGNORECASE)

# hub candidates, reference edges, datasets by id -> chosen hub id
HubSelectionPolicy = Callable[[list[str], list[Relationship], dict[str, Dataset]], str]


def most_matching_values_policy(
    candidates: list[str], edges: list[Relationship], datasets: dict[str, Dataset]
) -> str:
    """
    Default hub policy.

    Tie-breakers (deterministic, in order):
    1. Most total matching values across the candidate's reference edges
    2. Larger row count
    3. Dataset name (alphabetical)
    """

    def sort_key(dataset_id: str) -> tuple[int, int, str]:
        matching = sum(edge.matching_values for edge in edges if edge.from_dataset == dataset_id)
        dataset = datasets[dataset_id]
        return (-matching, -dataset.row_count, dataset.name)

    return sorted(candidates, key=sort_key)[0]


def compute_table_metrics(dataset: Dataset, all_datasets: Sequence[Dataset]) -> TableMetrics:
    """
    Structural metrics from the column manifest.

    - numeric_column_ratio: share of number columns
    - foreign_key_score: share of columns named like keys (``*_id``, ``id``...)
    - cardinality_ratio: mean unique_count / row_count (0.5 for empty datasets)
    - descriptive_column_ratio: share of string columns
    - has_high_cardinality: more rows than the median dataset
    """
    total_columns = len(dataset.columns)
    if total_columns == 0:
        return TableMetrics(
            row_count=dataset.row_count,
            numeric_column_ratio=0.0,
            foreign_key_score=0.0,
            cardinality_ratio=0.0,
            descriptive_column_ratio=0.0,
            has_high_cardinality=False,
        )

    numeric = sum(1 for col in dataset.columns if col.type == ColumnType.NUMBER)
    descriptive = sum(1 for col in dataset.columns if col.type == ColumnType.STRING)
    fk_like = sum(1 for col in dataset.columns if _FK_NAME.search(col.name) or col.name.lower() == "id")

    if dataset.row_count > 0:
        ratios = [min(col.unique_count / dataset.row_count, 1.0) for col in dataset.columns]
        cardinality_ratio = sum(ratios) / len(ratios)
    else:
        cardinality_ratio = 0.5

    row_counts = sorted(ds.row_count for ds in all_datasets) or [0]
    median_rows = row_counts[len(row_counts) // 2]

    return TableMetrics(
        row_count=dataset.row_count,
        numeric_column_ratio=numeric / total_columns,
        foreign_key_score=fk_like / total_columns,
        cardinality_ratio=cardinality_ratio,
        descriptive_column_ratio=descriptive / total_columns,
        has_high_cardinality=dataset.row_count > median_rows,
    )


def _metric_reasons(metrics: TableMetrics, role: TableRole) -> list[str]:
    reasons = []
    if role == TableRole.FACT:
        if metrics.has_high_cardinality:
            reasons.append(f"Higher row count ({metrics.row_count:,} rows)")
        if metrics.numeric_column_ratio > 0.4:
            reasons.append(f"High numeric ratio ({metrics.numeric_column_ratio * 100:.0f}%)")
        if metrics.foreign_key_score > 0.2:
            reasons.append(f"Multiple FK-like columns ({metrics.foreign_key_score * 100:.0f}% of columns)")
    else:
        if not metrics.has_high_cardinality:
            reasons.append(f"Lower row count ({metrics.row_count:,} rows)")
        if metrics.descriptive_column_ratio > 0.5:
            reasons.append(f"High descriptive ratio ({metrics.descriptive_column_ratio * 100:.0f}%)")
        if metrics.cardinality_ratio > 0.7:
            reasons.append("High cardinality (lookup table)")
    return reasons


def _edge_rank(rel: Relationship) -> tuple[float, float, int]:
    return (-rel.confidence, -rel.match_score, -rel.matching_values)


def _pair_rank(rel: Relationship) -> tuple[bool, float, float, int]:
    return (rel.type != RelationshipType.ONE_TO_MANY, *_edge_rank(rel))


def _reach(start: str, references: dict[str, list[str]], visited: set[str]) -> list[str]:
    """Datasets newly reached from ``start`` over reference edges, breadth-first."""
    reached: list[str] = []
    queue = deque([start])
    while queue:
        current = queue.popleft()
        for target in references.get(current, []):
            if target not in visited:
                visited.add(target)
                reached.append(target)
                queue.append(target)
    return reached


class SchemaClassifier:
    """
    Classifies dataset topology from candidate relationships.

    Pure and idempotent: classifying the same datasets and candidates twice
    yields equal results, and input relationships are never modified.
    """

    def __init__(self, config: EngineConfig | None = None, hub_policy: HubSelectionPolicy | None = None):
        self.config = config or EngineConfig()
        self.hub_policy = hub_policy or most_matching_values_policy

    def _qualifying(self, datasets: Sequence[Dataset], relationships: Sequence[Relationship]) -> list[Relationship]:
        ids = {dataset.id for dataset in datasets}
        return [
            rel
            for rel in relationships
            if rel.confidence >= self.config.confidence_floor
            and rel.from_dataset in ids
            and rel.to_dataset in ids
            and rel.from_dataset != rel.to_dataset
        ]

    def build_edges(self, datasets: Sequence[Dataset], relationships: Sequence[Relationship]) -> list[Relationship]:
        """
        Graph edges: relationships above the confidence floor between present
        datasets, one per dataset pair.

        A one-to-many candidate beats any other type for its pair, so a shared
        attribute column (many-to-many) never hides a foreign key.
        """
        best: dict[tuple[str, str], Relationship] = {}
        for rel in sorted(self._qualifying(datasets, relationships), key=_pair_rank):
            best.setdefault(rel.pair_key, rel)
        return list(best.values())

    def build_reference_edges(
        self, datasets: Sequence[Dataset], relationships: Sequence[Relationship]
    ) -> list[Relationship]:
        """Every one-to-many relationship above the floor, best per (from, to) direction."""
        best: dict[tuple[str, str], Relationship] = {}
        for rel in sorted(self._qualifying(datasets, relationships), key=_edge_rank):
            if rel.type == RelationshipType.ONE_TO_MANY:
                best.setdefault((rel.from_dataset, rel.to_dataset), rel)
        return list(best.values())

    def _neutral(self, explanation: str) -> SchemaDetectionResult:
        return SchemaDetectionResult(schema_type=SchemaType.NONE, confidence=0.0, explanation=explanation)

    def classify(self, datasets: Sequence[Dataset], relationships: Sequence[Relationship]) -> SchemaDetectionResult:
        """
        Classify the schema formed by ``datasets`` and candidate ``relationships``.

        Returns:
            SchemaDetectionResult with schema type, fact/dimension tables,
            re-tagged relationships and a generated explanation
        """
        if len(datasets) < 2:
            return self._neutral("At least two datasets are needed to infer a schema.")

        by_id = {dataset.id: dataset for dataset in datasets}
        edges = self.build_edges(datasets, relationships)
        if not edges:
            return self._neutral("No relationships above the confidence floor were found between the datasets.")

        reference_edges = self.build_reference_edges(datasets, relationships)
        references: dict[str, list[str]] = {}
        for edge in reference_edges:
            references.setdefault(edge.from_dataset, []).append(edge.to_dataset)

        hubs = sorted(ds_id for ds_id, targets in references.items() if len(set(targets)) >= 2)
        if not hubs:
            return self._flat(by_id, edges)

        fact_id = self.hub_policy(hubs, reference_edges, by_id)

        # Dimensions: everything reachable from the fact over reference edges
        visited = {fact_id}
        dimension_ids = _reach(fact_id, references, visited)

        # Hubs the fact does not reach demote to dimensions; their targets are second-level dimensions
        demoted = [hub for hub in hubs if hub != fact_id and hub not in visited]
        for hub in demoted:
            if hub not in visited:
                visited.add(hub)
                dimension_ids.append(hub)
            dimension_ids.extend(_reach(hub, references, visited))
        dimension_set = set(dimension_ids)

        hierarchies = [
            DimensionHierarchy(
                parent_dimension=edge.from_dataset,
                child_dimension=edge.to_dataset,
                link_column=edge.from_column,
            )
            for edge in reference_edges
            if edge.from_dataset in dimension_set and edge.to_dataset in dimension_set
        ]
        schema_type = SchemaType.SNOWFLAKE if hierarchies else SchemaType.STAR

        labeled = dimension_set | {fact_id}
        participating = [
            edge for edge in reference_edges if edge.from_dataset in labeled and edge.to_dataset in labeled
        ]
        confidence = sum(edge.confidence for edge in participating) / len(participating)

        fact_table = self._table(by_id[fact_id], datasets, TableRole.FACT, participating)
        fact_table.reasons.insert(0, f"References {len(set(references[fact_id]))} datasets")
        if len(hubs) > 1:
            fact_table.reasons.append(f"Selected over {len(hubs) - 1} other hub candidate(s)")

        dimension_tables = []
        for dim_id in dimension_ids:
            table = self._table(by_id[dim_id], datasets, TableRole.DIMENSION, participating)
            if dim_id in demoted:
                table.reasons.insert(0, "Demoted hub candidate")
            else:
                table.reasons.insert(0, "Referenced by a fact or dimension table")
            dimension_tables.append(table)

        tagged = [
            replace(
                edge,
                schema_type=schema_type,
                is_fact_table=edge.from_dataset == fact_id,
                is_dimension_table=edge.to_dataset in dimension_set,
            )
            for edge in participating
        ]

        fact_targets = list(dict.fromkeys(references[fact_id]))
        explanation = self._explain(schema_type, by_id, fact_id, fact_targets, hierarchies)

        logger.info(
            "schema_classified",
            schema_type=schema_type.value,
            fact=fact_id,
            dimensions=len(dimension_ids),
            hub_candidates=len(hubs),
            confidence=round(confidence, 3),
        )

        return SchemaDetectionResult(
            schema_type=schema_type,
            confidence=confidence,
            fact_tables=[fact_table],
            dimension_tables=dimension_tables,
            relationships=tagged,
            explanation=explanation,
            dimension_hierarchies=hierarchies,
        )

    def _flat(self, by_id: dict[str, Dataset], edges: list[Relationship]) -> SchemaDetectionResult:
        confidence = sum(edge.confidence for edge in edges) / len(edges)
        linked = sorted({by_id[ds_id].name for edge in edges for ds_id in (edge.from_dataset, edge.to_dataset)})
        logger.info("schema_classified", schema_type=SchemaType.FLAT.value, edges=len(edges))
        return SchemaDetectionResult(
            schema_type=SchemaType.FLAT,
            confidence=confidence,
            relationships=[replace(edge, schema_type=None) for edge in edges],
            explanation=(
                f"{', '.join(linked)} are related, but no dataset references two or more others, "
                "so there is no central fact table. Treat them as flat joinable tables."
            ),
        )

    def _table(
        self,
        dataset: Dataset,
        datasets: Sequence[Dataset],
        role: TableRole,
        edges: list[Relationship],
    ) -> TableClassification:
        metrics = compute_table_metrics(dataset, datasets)
        touching = [edge.confidence for edge in edges if dataset.id in (edge.from_dataset, edge.to_dataset)]
        return TableClassification(
            dataset_id=dataset.id,
            dataset_name=dataset.name,
            role=role,
            confidence=sum(touching) / len(touching) if touching else 0.0,
            reasons=_metric_reasons(metrics, role),
            metrics=metrics,
        )

    def _explain(
        self,
        schema_type: SchemaType,
        by_id: dict[str, Dataset],
        fact_id: str,
        fact_targets: list[str],
        hierarchies: list[DimensionHierarchy],
    ) -> str:
        fact_name = by_id[fact_id].name
        dim_names = [by_id[dim_id].name for dim_id in fact_targets]
        if len(dim_names) > 1:
            dims_text = f"{', '.join(dim_names[:-1])} and {dim_names[-1]}"
        else:
            dims_text = dim_names[0]

        if schema_type == SchemaType.STAR:
            return f"Star schema: {fact_name} references {dims_text} via shared id-like columns."

        chains = ", ".join(
            f"{by_id[h.parent_dimension].name} → {by_id[h.child_dimension].name} ({h.link_column})"
            for h in hierarchies
        )
        return (
            f"Snowflake schema: {fact_name} references {dims_text} via shared id-like columns, "
            f"and dimensions reference further dimensions: {chains}."
        )


def classify_schema(
    datasets: Sequence[Dataset],
    relationships: Sequence[Relationship],
    config: EngineConfig | None = None,
) -> SchemaDetectionResult:
    """Module-level shortcut for ``SchemaClassifier(config).classify``."""
    return SchemaClassifier(config).classify(datasets, relationships)


def detect_schema(datasets: Sequence[Dataset], config: EngineConfig | None = None) -> SchemaDetectionResult:
    """
    Fingerprint, detect candidates and classify in one call.

    Example:
        >>> result = detect_schema([sales, customers, products, categories])
        >>> result.schema_type
        <SchemaType.SNOWFLAKE: 'snowflake'>
    """
    config = config or EngineConfig()
    if len(datasets) < 2:
        return SchemaClassifier(config).classify(datasets, [])
    relationships = RelationshipDetector(config).detect_relationships(datasets)
    return SchemaClassifier(config).classify(datasets, relationships)
