"""Conversions from the raw CSV strings to Python values.

Missing values are returned as ``None`` so they can be told apart from empty
ones (``0`` or ``False``) when the data is serialized to JSON.
"""

from __future__ import annotations

import datetime
import math
import re
import struct

DATE_INPUT_FORMAT = "%Y%m%d"
DATE_OUTPUT_FORMAT = "%Y-%m-%d"

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INPUT_DATE_PATTERN = re.compile(r"[0-9]{8}")
_OUTPUT_DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def to_int(value: str) -> int | None:
    """Parse a decimal integer; an empty string means a missing value."""
    if value == "":
        return None
    if not _INT_PATTERN.fullmatch(value):
        raise ValueError(f"error converting {value} to int: invalid syntax")
    number = int(value)
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise ValueError(f"error converting {value} to int: value out of range")
    return number


def _as_float32(number: float, original: str) -> float:
    """Round to single precision, keeping the shortest decimal form."""
    try:
        packed = struct.pack("<f", number)
    except OverflowError as error:
        raise ValueError(
            f"error converting {original} to float32: value out of range"
        ) from error
    single = struct.unpack("<f", packed)[0]
    if not math.isfinite(single):
        return single
    for digits in range(1, 10):
        candidate = float(f"{single:.{digits}g}")
        if struct.pack("<f", candidate) == packed:
            return candidate
    return single


def to_float(value: str) -> float | None:
    """Parse a single precision number, accepting a comma as decimal mark."""
    if value == "":
        return None
    normalized = value.replace(",", ".")
    if normalized != normalized.strip() or "_" in normalized:
        raise ValueError(f"error converting {value} to float32: invalid syntax")
    try:
        number = float(normalized)
    except ValueError as error:
        raise ValueError(
            f"error converting {value} to float32: invalid syntax"
        ) from error
    return _as_float32(number, value)


def to_bool(value: str) -> bool | None:
    """Map ``S`` to ``True`` and ``N`` to ``False``, anything else to ``None``."""
    return {"S": True, "N": False}.get(value.upper())


def _only_zeros(value: str) -> bool:
    try:
        return to_int(value) == 0
    except ValueError:
        return False


def to_date(value: str) -> datetime.date | None:
    """Parse a ``YYYYMMDD`` date; empty or all-zero values are missing."""
    if value == "" or _only_zeros(value):
        return None
    if not _INPUT_DATE_PATTERN.fullmatch(value):
        raise ValueError(f"error converting {value} to date: invalid format")
    try:
        return datetime.date(int(value[:4]), int(value[4:6]), int(value[6:]))
    except ValueError as error:
        raise ValueError(f"error converting {value} to date: {error}") from error


def format_date(value: datetime.date) -> str:
    """Format a date as ``YYYY-MM-DD``."""
    return value.strftime(DATE_OUTPUT_FORMAT)


def parse_date(value: str | None) -> datetime.date | None:
    """Parse a ``YYYY-MM-DD`` date as written by :func:`format_date`."""
    if value is None or value == "":
        return None
    if not _OUTPUT_DATE_PATTERN.fullmatch(value):
        raise ValueError(f"cannot parse {value} as YYYY-MM-DD")
    return datetime.date.fromisoformat(value)