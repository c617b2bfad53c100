"""Null-safe column accessors used by row mappers."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, TypeVar

from .models import Row

T = TypeVar("T")

_MISSING = object()


def _lookup(row: Row, column: str) -> Any:
    """Fetch a column by exact name, falling back to a case-insensitive match."""

    if column in row:
        return row[column]
    folded = column.casefold()
    for key, value in row.items():
        if str(key).casefold() == folded:
            return value
    raise KeyError(column)


def has_column(row: Row, column: str) -> bool:
    try:
        _lookup(row, column)
    except KeyError:
        return False
    return True


def get_str(row: Row, column: str) -> str | None:
    value = _lookup(row, column)
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    return str(value)


def get_str_or_empty(row: Row, column: str) -> str:
    return get_str(row, column) or ""


def get_int(row: Row, column: str, default: int = 0) -> int:
    value = _lookup(row, column)
    return default if value is None else int(value)


def get_float(row: Row, column: str, default: float = 0.0) -> float:
    value = _lookup(row, column)
    return default if value is None else float(value)


def get_decimal(row: Row, column: str, default: Decimal = Decimal(0)) -> Decimal:
    value = _lookup(row, column)
    return default if value is None else Decimal(str(value))


def get_bool(row: Row, column: str, default: bool = False) -> bool:
    value = _lookup(row, column)
    if value is None:
        return default
    if isinstance(value, (bytes, bytearray)):
        # BIT(1) columns arrive as a single byte.
        return any(value)
    return bool(value)


def get_datetime(row: Row, column: str) -> datetime | None:
    value = _lookup(row, column)
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(str(value))


def get_timedelta_from_string(row: Row, column: str) -> timedelta:
    """Parse an ``HH:MM:SS`` text column; malformed or NULL values give zero."""

    value = _lookup(row, column)
    if isinstance(value, timedelta):
        return value
    return parse_clock(value)


def parse_clock(value: object) -> timedelta:
    """Parse ``HH:MM:SS`` (fractional seconds allowed); anything else is zero."""

    text = "" if value is None else str(value).strip()
    parts = text.split(":")
    if len(parts) != 3:
        return timedelta(0)
    try:
        hours, minutes = int(parts[0]), int(parts[1])
        seconds = float(parts[2])
    except ValueError:
        return timedelta(0)
    return timedelta(hours=hours, minutes=minutes, seconds=seconds)


def format_clock(value: timedelta) -> str:
    """Render a duration or time of day as ``HH:MM:SS``, dropping fractions."""

    total = int(value.total_seconds())
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def get_value(row: Row, column: str, default: T, cast: Callable[[Any], T] | None = None) -> T:
    """Return the column coerced with ``cast``, or ``default`` when that is impossible."""

    try:
        value = _lookup(row, column)
    except KeyError:
        return default
    if value is None:
        return default
    if cast is None:
        return value
    try:
        return cast(value)
    except (TypeError, ValueError, ArithmeticError, InvalidOperation):
        return default


__all__ = [
    "format_clock",
    "get_bool",
    "get_datetime",
    "get_decimal",
    "get_float",
    "get_int",
    "get_str",
    "get_str_or_empty",
    "get_timedelta_from_string",
    "get_value",
    "has_column",
    "parse_clock",
]
