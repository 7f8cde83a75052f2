"""Tests for the common-dimension finder."""

import pytest

from data_connector.core.common_dimensions import (
    CommonDimensionFinder,
    find_common_dimensions,
    normalize_dimension_name,
    vocabulary_term,
)


@pytest.fixture
def tiered_datasets(make_dataset):
    """Factory: datasets sharing a low-cardinality 'tier' column with no vocabulary name."""

    def _make(*ids: str):
        return [
            make_dataset(ds_id, [{"tier": tier} for tier in ("gold", "silver", "gold", "silver")], name=ds_id.title())
            for ds_id in ids
        ]

    return _make


class TestDimensionNames:
    """Test suite for name normalization and vocabulary lookup."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [("Region_ID", "region"), ("product-category", "productcategory"), ("Key", "key"), ("store code", "store")],
    )
    def test_normalize_dimension_name_strips_separators_and_key_suffix(self, name, expected):
        # Act & Assert
        assert normalize_dimension_name(name) == expected

    @pytest.mark.parametrize(
        ("name", "expected"),
        [("region", "region"), ("Sales_Region", "region"), ("OrderDate", "date"), ("country_code", "country")],
    )
    def test_vocabulary_term_matches_whole_name_or_last_word(self, name, expected):
        # Act & Assert
        assert vocabulary_term(name) == expected

    @pytest.mark.parametrize("name", ["capacity", "mayday", "customer_id", "amount"])
    def test_vocabulary_term_embedded_substring_does_not_match(self, name):
        # Act & Assert
        assert vocabulary_term(name) is None


class TestFindCommonDimensions:
    """Test suite for CommonDimensionFinder.find."""

    def test_find_region_shared_by_two_datasets(self, make_dataset):
        """Both datasets carry a region column with different casing."""
        # Arrange
        sales = make_dataset("sales", [{"region": "West", "amount": 10}, {"region": "East", "amount": 5}])
        targets = make_dataset(
            "targets",
            [{"Region": "West", "goal": 100}, {"Region": "East", "goal": 80}, {"Region": "North", "goal": 60}],
        )

        # Act
        result = CommonDimensionFinder().find([sales, targets])

        # Assert
        assert len(result) == 1
        dimension = result[0]
        assert dimension.dimension == "region"
        assert dimension.datasets == ["sales", "targets"]
        assert dimension.columns == [("sales", "region"), ("targets", "Region")]
        assert dimension.reason == "'region' is a common dimension name"

    def test_find_orders_results_by_shared_count_then_name(self, make_dataset):
        # Arrange
        a = make_dataset("a", [{"region": "West", "OrderDate": "2024-01-01"}])
        b = make_dataset("b", [{"Region": "West", "order_date": "2024-01-02"}])
        c = make_dataset("c", [{"sales_region": "East"}])

        # Act
        result = find_common_dimensions([a, b, c])

        # Assert
        assert [(dim.dimension, dim.datasets) for dim in result] == [
            ("region", ["a", "b", "c"]),
            ("date", ["a", "b"]),
        ]

    def test_find_low_cardinality_overlap_across_three_datasets(self, tiered_datasets):
        # Arrange
        datasets = tiered_datasets("north", "south", "west")

        # Act
        result = CommonDimensionFinder().find(datasets)

        # Assert
        assert len(result) == 1
        assert result[0].dimension == "tier"
        assert result[0].datasets == ["north", "south", "west"]
        assert result[0].columns == [("north", "tier"), ("south", "tier"), ("west", "tier")]

    def test_find_value_overlap_in_only_two_datasets_is_not_enough(self, tiered_datasets):
        # Arrange
        datasets = tiered_datasets("north", "south")

        # Act & Assert
        assert CommonDimensionFinder().find(datasets) == []

    def test_find_capacity_is_not_mistaken_for_city(self, make_dataset):
        # Arrange
        venues = make_dataset("venues", [{"capacity": 100}, {"capacity": 200}])
        offices = make_dataset("offices", [{"city": "Paris"}, {"city": "Oslo"}])

        # Act & Assert
        assert CommonDimensionFinder().find([venues, offices]) == []

    def test_find_single_dataset_returns_empty_list(self, make_dataset):
        # Arrange
        sales = make_dataset("sales", [{"region": "West"}])

        # Act & Assert
        assert CommonDimensionFinder().find([sales]) == []
