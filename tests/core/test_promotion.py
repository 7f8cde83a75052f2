"""Tests for candidate promotion and cycle detection."""

from dataclasses import replace

import pytest

from data_connector.core.exceptions import SchemaTypeConflictError
from data_connector.core.models import Relationship, RelationshipType, SchemaType
from data_connector.core.promotion import has_circular_dependency, promote_candidate


@pytest.fixture
def candidate():
    return Relationship(
        from_dataset="sales",
        to_dataset="products",
        from_column="product_id",
        to_column="id",
        type=RelationshipType.ONE_TO_MANY,
        match_score=1.0,
        confidence=0.96,
        matching_values=3,
    )


def _edge(from_ds: str, to_ds: str) -> Relationship:
    return Relationship(
        from_dataset=from_ds,
        to_dataset=to_ds,
        from_column="ref",
        to_column="id",
        type=RelationshipType.ONE_TO_MANY,
        match_score=1.0,
        confidence=0.9,
        matching_values=1,
    )


class TestPromoteCandidate:
    """Test suite for promote_candidate."""

    def test_promote_candidate_tags_copy_and_leaves_candidate_untouched(self, candidate):
        # Act
        promoted = promote_candidate(candidate, [], "star")

        # Assert
        assert promoted.schema_type == SchemaType.STAR
        assert candidate.schema_type is None
        assert replace(promoted, schema_type=None) == candidate

    def test_promote_candidate_defaults_to_candidate_tag(self, candidate):
        # Arrange
        tagged = replace(candidate, schema_type=SchemaType.SNOWFLAKE)

        # Act & Assert
        assert promote_candidate(tagged, []).schema_type == SchemaType.SNOWFLAKE

    def test_promote_candidate_conflicting_tag_on_same_pair_raises(self, candidate):
        """Pair identity ignores direction: products -> sales is the same pair."""
        # Arrange
        confirmed = [replace(_edge("products", "sales"), schema_type=SchemaType.STAR)]

        # Act & Assert
        with pytest.raises(SchemaTypeConflictError, match="already has a star relationship"):
            promote_candidate(candidate, confirmed, SchemaType.SNOWFLAKE)

    def test_promote_candidate_matching_tag_or_other_pair_is_allowed(self, candidate):
        # Arrange
        confirmed = [
            replace(_edge("sales", "products"), schema_type=SchemaType.STAR),
            replace(_edge("sales", "stores"), schema_type=SchemaType.SNOWFLAKE),
            _edge("products", "sales"),
        ]

        # Act
        promoted = promote_candidate(candidate, confirmed, SchemaType.STAR)

        # Assert
        assert promoted.schema_type == SchemaType.STAR

    def test_promote_candidate_untagged_skips_conflict_check(self, candidate):
        # Arrange
        confirmed = [replace(_edge("sales", "products"), schema_type=SchemaType.STAR)]

        # Act
        promoted = promote_candidate(candidate, confirmed)

        # Assert
        assert promoted.schema_type is None

    @pytest.mark.parametrize("schema_type", ["flat", "none"])
    def test_promote_candidate_non_schema_tag_raises_valueerror(self, candidate, schema_type):
        # Act & Assert
        with pytest.raises(ValueError, match="can only be tagged star or snowflake"):
            promote_candidate(candidate, [], schema_type)


class TestHasCircularDependency:
    """Test suite for has_circular_dependency."""

    def test_has_circular_dependency_closing_edge_is_detected(self):
        # Arrange
        relationships = [_edge("a", "b"), _edge("b", "c")]

        # Act & Assert
        assert has_circular_dependency(relationships, "c", "a") is True

    def test_has_circular_dependency_forward_edge_is_acyclic(self):
        # Arrange
        relationships = [_edge("a", "b"), _edge("b", "c")]

        # Act & Assert
        assert has_circular_dependency(relationships, "a", "c") is False

    def test_has_circular_dependency_self_reference_is_a_cycle(self):
        # Act & Assert
        assert has_circular_dependency([], "a", "a") is True
