"""Amounts are stored as integers in the currency's minor unit.

XAF/XOF (the church's currencies) have no minor unit, so minor == major there.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from giving.errors import ValidationError

# ISO 4217 exponents that differ from the usual 2
_ZERO_DECIMAL = {"XAF", "XOF", "XPF", "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA", "PYG", "RWF", "UGX", "VND", "VUV"}
_THREE_DECIMAL = {"BHD", "JOD", "KWD", "OMR", "TND"}


def normalize_currency(raw: Any, default: str = "XAF") -> str:
    c = str(raw or "").strip().upper()
    if len(c) == 3 and c.isalpha():
        return c
    return default


def exponent(currency: str) -> int:
    c = normalize_currency(currency)
    if c in _ZERO_DECIMAL:
        return 0
    if c in _THREE_DECIMAL:
        return 3
    return 2


def to_minor(raw: Any, currency: str) -> int:
    """Parse a major-unit amount (string or number) into integer minor units.

    Floats go through ``str`` first so ``0.1`` stays ``0.1``. More decimals than
    the currency allows is a validation error rather than a silent rounding.
    """
    if raw is None or isinstance(raw, bool):
        raise ValidationError("amount is required")
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("amount must be a number") from None
    if not value.is_finite():
        raise ValidationError("amount must be a number")

    scale = Decimal(10) ** exponent(currency)
    minor = value * scale
    if minor != minor.to_integral_value():
        raise ValidationError(f"amount has too many decimal places for {normalize_currency(currency)}")
    minor_int = int(minor)
    if minor_int <= 0:
        raise ValidationError("amount must be positive")
    return minor_int


def to_major(minor: int, currency: str) -> Decimal:
    exp = exponent(currency)
    if exp == 0:
        return Decimal(int(minor or 0))
    q = Decimal(1).scaleb(-exp)
    return (Decimal(int(minor or 0)) / (Decimal(10) ** exp)).quantize(q, rounding=ROUND_HALF_UP)


def as_json_number(minor: int, currency: str) -> Any:
    """Major-unit amount for API payloads: int for zero-decimal currencies, str otherwise."""
    major = to_major(minor, currency)
    if exponent(currency) == 0:
        return int(major)
    return str(major)


def format_amount(minor: int, currency: str) -> str:
    major = to_major(minor, currency)
    if exponent(currency) == 0:
        return f"{int(major):,}".replace(",", " ") + f" {normalize_currency(currency)}"
    return f"{major:,} {normalize_currency(currency)}"
