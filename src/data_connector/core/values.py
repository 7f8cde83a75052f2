"""
Value normalization for cross-dataset comparison.

Row values arrive loosely typed (a customer id can be ``42``, ``42.0`` or
``" 42 "`` depending on the source file). Every comparison in the engine goes
through ``normalize_value`` which dispatches on the column's inferred type and
produces a canonical string key, or ``None`` for null/empty cells.

Canonical forms:
- number: integral values without a decimal part ("42"), others via repr ("2.5")
- boolean: "true" / "false"
- date: ISO-8601 ("2024-01-31", or full timestamp when a time part exists)
- string: trimmed and case-folded; numeric-looking strings use the number form
"""

import math
import re
from datetime import date, datetime
from numbers import Real
from typing import Any

import polars as pl

from data_connector.core.models import ColumnType

_NUMERIC_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

_TRUE_TOKENS = frozenset({"true", "t", "yes", "y", "1"})
_FALSE_TOKENS = frozenset({"false", "f", "no", "n", "0"})


def is_null(value: Any) -> bool:
    """True for None, NaN and blank strings."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _format_number(number: float) -> str:
    if math.isfinite(number) and number == int(number) and abs(number) < 1e15:
        return str(int(number))
    return repr(float(number))


def _format_datetime(value: datetime) -> str:
    if value.tzinfo is None and (value.hour, value.minute, value.second, value.microsecond) == (0, 0, 0, 0):
        return value.date().isoformat()
    return value.isoformat()


def _normalize_text(text: str, column_type: ColumnType | None) -> str:
    if column_type == ColumnType.BOOLEAN:
        lowered = text.casefold()
        if lowered in _TRUE_TOKENS:
            return "true"
        if lowered in _FALSE_TOKENS:
            return "false"

    if column_type == ColumnType.DATE:
        try:
            return _format_datetime(datetime.fromisoformat(text))
        except ValueError:
            pass

    if _NUMERIC_PATTERN.match(text):
        return _format_number(float(text))

    return text.casefold()


def normalize_value(value: Any, column_type: ColumnType | str | None = None) -> str | None:
    """
    Normalize a raw cell into a comparable key.

    Args:
        value: Raw cell value from a dataset row
        column_type: Inferred type of the column the value came from

    Returns:
        Canonical string key, or None for null/empty values
    """
    if is_null(value):
        return None

    if column_type is not None and not isinstance(column_type, ColumnType):
        column_type = ColumnType(column_type)

    # bool is a subclass of int, check it first
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Real):
        return _format_number(float(value))
    if isinstance(value, datetime):
        return _format_datetime(value)
    if isinstance(value, date):
        return value.isoformat()

    return _normalize_text(str(value).strip(), column_type)


def normalize_column(values: list[Any], column_type: ColumnType | str | None = None) -> list[str | None]:
    """Normalize a sequence of cells from one column."""
    return [normalize_value(value, column_type) for value in values]


def normalize_series(name: str, values: list[Any], column_type: ColumnType | str | None = None) -> pl.Series:
    """Normalized keys as a Utf8 series; null cells stay null."""
    return pl.Series(name, normalize_column(values, column_type), dtype=pl.Utf8)
