"""
Pytest configuration and fixtures for data connector tests.
"""

import sys
from datetime import date
from pathlib import Path
from typing import Any

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from data_connector.core.fingerprint import summarize_column  # noqa: E402
from data_connector.core.models import ColumnType, Dataset  # noqa: E402


def _infer_type(values: list[Any]) -> ColumnType:
    for value in values:
        if value is None:
            continue
        if isinstance(value, bool):
            return ColumnType.BOOLEAN
        if isinstance(value, int | float):
            return ColumnType.NUMBER
        if isinstance(value, date):
            return ColumnType.DATE
        return ColumnType.STRING
    return ColumnType.STRING


@pytest.fixture(scope="session")
def project_root():
    """Return project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def make_dataset():
    """
    Factory for Dataset snapshots built from plain row dicts.

    Column order follows the first row (plus any keys first seen later).
    Column types are inferred from the first non-null value unless given.

    Usage:
        def test_example(make_dataset):
            orders = make_dataset("orders", [{"order_id": "O1", "customer_id": "C1"}])
    """

    def _make(
        dataset_id: str,
        rows: list[dict[str, Any]],
        name: str | None = None,
        types: dict[str, ColumnType] | None = None,
        columns: list[str] | None = None,
    ) -> Dataset:
        names: list[str] = list(columns or [])
        for row in rows:
            for key in row:
                if key not in names:
                    names.append(key)

        manifest = []
        for col in names:
            values = [row.get(col) for row in rows]
            col_type = (types or {}).get(col) or _infer_type(values)
            manifest.append(summarize_column(col, col_type, values))

        return Dataset(id=dataset_id, name=name or dataset_id, rows=rows, columns=manifest)

    return _make


@pytest.fixture
def orders_and_customers(make_dataset):
    """
    Three orders, two customers; order O3 references a customer that does not exist.
    """
    orders = make_dataset(
        "orders",
        [
            {"orderId": "O1", "customerId": "C1"},
            {"orderId": "O2", "customerId": "C2"},
            {"orderId": "O3", "customerId": "C9"},
        ],
        name="Orders",
    )
    customers = make_dataset(
        "customers",
        [
            {"id": "C1", "name": "Ada"},
            {"id": "C2", "name": "Grace"},
        ],
        name="Customers",
    )
    return orders, customers


@pytest.fixture
def make_schema_setup(make_dataset):
    """
    Factory for a sales schema: sales -> products, sales -> stores and,
    with ``snowflake=True``, products -> categories.

    Key values carry a per-table prefix (S, B, C, D) so only the intended
    columns overlap.

    Usage:
        def test_example(make_schema_setup):
            datasets = make_schema_setup(snowflake=True)
            sales, products, stores, categories = datasets
    """

    def _make(snowflake: bool = True, num_sales: int = 12) -> list[Dataset]:
        sales = make_dataset(
            "sales",
            [
                {
                    "id": f"S{i}",
                    "product_id": f"B{i % 3 + 1}",
                    "store_id": f"C{i % 2 + 1}",
                    "amount": 10.5 * i,
                }
                for i in range(1, num_sales + 1)
            ],
            name="Sales",
        )

        product_rows = [
            {"id": "B1", "name": "Widget"},
            {"id": "B2", "name": "Gadget"},
            {"id": "B3", "name": "Gizmo"},
        ]
        if snowflake:
            for row, category in zip(product_rows, ["D1", "D1", "D2"]):
                row["category_id"] = category
        products = make_dataset("products", product_rows, name="Products")

        stores = make_dataset(
            "stores",
            [
                {"id": "C1", "city": "Paris"},
                {"id": "C2", "city": "Oslo"},
            ],
            name="Stores",
        )

        datasets = [sales, products, stores]
        if snowflake:
            datasets.append(
                make_dataset(
                    "categories",
                    [
                        {"id": "D1", "label": "Tools"},
                        {"id": "D2", "label": "Toys"},
                    ],
                    name="Categories",
                )
            )
        return datasets

    return _make
