# Overview: Fixed-precision money helpers for currency fields and record coercion.

"""
Money and quantity helpers.

All monetary arithmetic in the engines runs on Decimal. Records coming from
the database or from JSON payloads may carry strings, floats or nulls; every
numeric read goes through to_decimal().

Precision:
- Line totals, sale totals and payment amounts are kept at 2 places.
- Unit prices are kept at 4 places so the discount redistribution done at
  completion does not lose cents on multi-unit lines.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError

CENT = Decimal("0.01")
PRICE_QUANTUM = Decimal("0.0001")
ZERO = Decimal("0")

# Largest magnitude a Numeric(12, 2) column holds
MAX_AMOUNT = Decimal("9999999999.99")

# Single payment-method allocation may overshoot the remaining balance by this much
PAYMENT_ALLOCATION_TOLERANCE = Decimal("0.001")

# Total paid vs grand total tolerance at confirmation time
SETTLEMENT_TOLERANCE = Decimal("0.05")

_NON_DIGITS = re.compile(r"\D")


def to_decimal(value) -> Decimal:
    """
    Coerce a record or payload value to Decimal.

    - None / "" / unparseable / NaN / Infinity -> Decimal("0")
    - floats go through str() so 0.1 stays 0.1
    - bools are rejected as numbers (treated as 0)
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        s = str(value).strip()
        if not s:
            return ZERO
        try:
            result = Decimal(s)
        except InvalidOperation:
            return ZERO
    return result if result.is_finite() else ZERO


def _bounded(value) -> Decimal:
    amount = to_decimal(value)
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(
            "Amount out of range",
            details={"value": str(value), "max_allowed": str(MAX_AMOUNT)},
        )
    return amount


def round_money(value) -> Decimal:
    return _bounded(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round_price(value) -> Decimal:
    return _bounded(value).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


def parse_money(raw: str | None) -> Decimal:
    """
    Parse a currency field typed as raw digits.

    Every non-digit is discarded and the remaining digits are read as cents:
    "1.234,56" -> 1234.56, "R$ 5" -> 0.05, "" -> 0.00.
    """
    digits = _NON_DIGITS.sub("", raw or "")
    return round_money(Decimal(int(digits or "0")) / 100)


def format_money(value) -> str:
    """Format as 1.234,56 (dot thousands, comma decimals)."""
    amount = round_money(value)
    text = f"{abs(amount):,.2f}"
    text = text.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"-{text}" if amount < 0 else text


def money_matches(a, b, tolerance=SETTLEMENT_TOLERANCE) -> bool:
    return abs(to_decimal(a) - to_decimal(b)) <= to_decimal(tolerance)


def to_json_number(value, *, places: int = 2) -> float:
    """Decimal -> float for JSON columns and API payloads."""
    quantum = CENT if places == 2 else Decimal(1).scaleb(-places)
    return float(to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))
