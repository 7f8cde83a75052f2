"""
Candidate -> confirmed relationship promotion.

The detector is schema-agnostic; schema-type consistency is enforced here, at
the point where the caller confirms a candidate: a dataset pair may never
carry both star- and snowflake-tagged confirmed relationships.
"""

from collections.abc import Iterable, Sequence
from dataclasses import replace

import structlog

from data_connector.core.exceptions import SchemaTypeConflictError
from data_connector.core.models import Relationship, SchemaType

logger = structlog.get_logger()


def promote_candidate(
    candidate: Relationship,
    confirmed: Sequence[Relationship],
    schema_type: SchemaType | str | None = None,
) -> Relationship:
    """
    Promote a detector candidate into a confirmed relationship.

    Args:
        candidate: Candidate relationship (left untouched)
        confirmed: Relationships the caller has already confirmed
        schema_type: Optional star/snowflake tag for the confirmed relationship
            (defaults to the candidate's own tag)

    Returns:
        New Relationship carrying the schema tag

    Raises:
        ValueError: If schema_type is not star or snowflake
        SchemaTypeConflictError: If a confirmed relationship for the same
            dataset pair carries a different schema type
    """
    if schema_type is not None:
        schema_type = SchemaType(schema_type)
        if schema_type not in (SchemaType.STAR, SchemaType.SNOWFLAKE):
            raise ValueError(f"Relationships can only be tagged star or snowflake, got '{schema_type.value}'")
    else:
        schema_type = candidate.schema_type

    if schema_type is not None:
        for existing in confirmed:
            if existing.pair_key != candidate.pair_key or existing.schema_type is None:
                continue
            if existing.schema_type != schema_type:
                raise SchemaTypeConflictError(
                    f"Dataset pair {candidate.pair_key[0]} / {candidate.pair_key[1]} already has a "
                    f"{existing.schema_type.value} relationship ({existing}); cannot add a {schema_type.value} one"
                )

    promoted = replace(candidate, schema_type=schema_type)
    logger.info(
        "relationship_promoted",
        from_dataset=promoted.from_dataset,
        to_dataset=promoted.to_dataset,
        schema_type=schema_type.value if schema_type else None,
    )
    return promoted


def has_circular_dependency(relationships: Iterable[Relationship], new_from: str, new_to: str) -> bool:
    """
    Check whether adding the edge ``new_from -> new_to`` creates a cycle.

    Edges follow relationship direction (from_dataset -> to_dataset).
    """
    graph: dict[str, list[str]] = {}
    for rel in relationships:
        graph.setdefault(rel.from_dataset, []).append(rel.to_dataset)
    graph.setdefault(new_from, []).append(new_to)

    visited: set[str] = set()
    in_stack: set[str] = set()

    def visit(node: str) -> bool:
        visited.add(node)
        in_stack.add(node)
        for neighbor in graph.get(node, []):
            if neighbor in in_stack:
                return True
            if neighbor not in visited and visit(neighbor):
                return True
        in_stack.discard(node)
        return False

    return any(visit(node) for node in list(graph) if node not in visited)
