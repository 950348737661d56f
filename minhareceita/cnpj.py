"""Helpers to clean, format and validate CNPJ numbers."""

from __future__ import annotations

import re

_SEPARATORS = str.maketrans("", "", "./-")
_DIGITS = re.compile(r"[0-9]{14}")
_FIRST_WEIGHTS = (5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)
_SECOND_WEIGHTS = (6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)


def unmask(value: str) -> str:
    """Remove the dots, slashes and dashes used to format a CNPJ."""
    return value.translate(_SEPARATORS)


def mask(value: str) -> str:
    """Format a CNPJ as ``XX.XXX.XXX/XXXX-XX``; other values are only unmasked."""
    digits = unmask(value)
    if len(digits) != 14:
        return digits
    return f"{digits[:2]}.{digits[2:5]}.{digits[5:8]}/{digits[8:12]}-{digits[12:]}"


def _check_digit(digits: str, weights: tuple[int, ...]) -> str:
    remainder = sum(int(d) * w for d, w in zip(digits, weights)) % 11
    return "0" if remainder < 2 else str(11 - remainder)


def is_valid(value: str) -> bool:
    """Whether the value, masked or not, is a CNPJ with valid check digits."""
    digits = unmask(value)
    if not _DIGITS.fullmatch(digits):
        return False
    if len(set(digits)) == 1:
        return False
    first = _check_digit(digits[:12], _FIRST_WEIGHTS)
    second = _check_digit(digits[:12] + first, _SECOND_WEIGHTS)
    return digits[12:] == first + second


def base(value: str) -> str:
    """The first eight digits of a CNPJ, shared by all venues of a company."""
    return unmask(value)[:8]