"""Numeric coercion and rounding for stock quantities."""

from __future__ import annotations

import math
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any, Optional

MAX_DECIMALS = 8


def to_number(value: Any) -> Optional[float]:
    """Coerce user input to a finite float, or None when that is impossible."""

    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def clamp_number(
    value: Any, *, minimum: float = -math.inf, maximum: float = math.inf
) -> Optional[float]:
    number = to_number(value)
    if number is None:
        return None
    return min(max(number, minimum), maximum)


def round_quantity(value: Any, max_decimals: Any = 3) -> Optional[float]:
    """Round to ``max_decimals`` places (capped at 8), ties toward +infinity.

    2.5 rounds to 3 and -2.5 to -2, so a negative tie moves up like a positive one.
    """

    number = to_number(value)
    if number is None:
        return None
    decimals = int(clamp_number(max_decimals, minimum=0, maximum=MAX_DECIMALS) or 0)
    try:
        scaled = Decimal(str(number)).scaleb(decimals) + Decimal("0.5")
        rounded = scaled.to_integral_value(rounding=ROUND_FLOOR).scaleb(-decimals)
    except InvalidOperation:
        return None
    result = float(rounded)
    return 0.0 if result == 0 else result


def format_quantity(value: float) -> str:
    """Render a quantity without a trailing ``.0``: 4.0 -> "4", 2.50 -> "2.5"."""

    text = f"{value:.{MAX_DECIMALS}f}".rstrip("0").rstrip(".")
    return "0" if text in {"", "-0"} else text


__all__ = ["MAX_DECIMALS", "to_number", "clamp_number", "round_quantity", "format_quantity"]
