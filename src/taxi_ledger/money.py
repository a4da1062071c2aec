"""Integer currency helpers used by entry forms, imports and reports."""

from __future__ import annotations

import math
import re

_NON_DIGITS = re.compile(r"[^0-9]")
_LEADING_INT = re.compile(r"^[+-]?\d+")
TAX_RATE = 0.10


def to_comma_separated(value: int | str) -> str:
    """Render digits with thousands separators; non-digits are dropped."""
    digits = _NON_DIGITS.sub("", str(value))
    if not digits:
        return ""
    return f"{int(digits):,}"


def parse_int(value: str | int | float | None) -> int:
    """Read the leading integer of a loosely formatted field, or 0.

    Quotes, commas and whitespace are ignored, so ``' "2,800" '`` reads as 2800
    and ``"12.5"`` as 12.
    """
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else 0
    cleaned = re.sub(r'[",\s]', "", value)
    match = _LEADING_INT.match(cleaned)
    return int(match.group()) if match else 0


def from_comma_separated(value: str) -> int:
    return parse_int(value)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def calculate_net_total(total: int) -> int:
    """Amount before 10% tax, rounded to the nearest 10 (9900 -> 9000)."""
    return _round_half_up(total / (1 + TAX_RATE) / 10) * 10


def calculate_tax_amount(total: int) -> int:
    return total - calculate_net_total(total)


__all__ = [
    "calculate_net_total",
    "calculate_tax_amount",
    "from_comma_separated",
    "parse_int",
    "to_comma_separated",
]
