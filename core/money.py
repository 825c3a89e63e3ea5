"""
Fixed-point money helpers.

Everything that moves money goes through Decimal with the currency's minor-unit
precision; floats are only accepted as input and converted through ``str()``.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from .exceptions import ValidationError

ZERO = Decimal("0.00")
DEFAULT_MINOR_UNITS = 2
# Integer digits a journal line can hold (DecimalField max_digits=19, decimal_places=4).
MAX_INTEGER_DIGITS = 15

# ISO 4217 exponents that differ from the default of 2.
CURRENCY_MINOR_UNITS = {
    "BHD": 3,
    "BIF": 0,
    "CLP": 0,
    "IQD": 3,
    "ISK": 0,
    "JOD": 3,
    "JPY": 0,
    "KRW": 0,
    "KWD": 3,
    "LYD": 3,
    "OMR": 3,
    "PYG": 0,
    "RWF": 0,
    "TND": 3,
    "UGX": 0,
    "VND": 0,
    "XAF": 0,
    "XOF": 0,
}


def minor_units(currency: str | None) -> int:
    return CURRENCY_MINOR_UNITS.get((currency or "").upper(), DEFAULT_MINOR_UNITS)


def quantum(currency: str | None) -> Decimal:
    return Decimal(1).scaleb(-minor_units(currency))


def to_decimal(value) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValidationError(f"Invalid amount: {value!r}.", code="invalid_amount", value=value)
        return value
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {value!r}.", code="invalid_amount", value=value) from exc
    if not result.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}.", code="invalid_amount", value=value)
    return result


def quantize_money(
    value,
    currency: str | None,
    *,
    strict: bool = False,
    max_integer_digits: int = MAX_INTEGER_DIGITS,
) -> Decimal:
    """
    Round ``value`` to the currency's minor unit.

    In strict mode a value carrying sub-minor-unit precision is rejected instead of
    rounded, so 10.005 can never silently become 10.01 on a posting path. Values with
    more than ``max_integer_digits`` digits before the point are rejected.
    """
    amount = to_decimal(value)
    if amount.copy_abs() >= Decimal(10) ** max_integer_digits:
        raise ValidationError(
            f"Amount {amount} is too large.",
            code="amount_too_large",
            amount=amount,
            max_integer_digits=max_integer_digits,
        )
    q = quantum(currency)
    try:
        rounded = amount.quantize(q, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {amount}.", code="invalid_amount", amount=amount) from exc
    if strict and rounded != amount:
        raise ValidationError(
            f"Amount {amount} has more precision than {currency or 'the currency'} allows.",
            code="invalid_precision",
            amount=amount,
            currency=currency,
        )
    return rounded


def to_minor_units(value, currency: str | None) -> int:
    amount = quantize_money(value, currency, strict=True)
    return int(amount.scaleb(minor_units(currency)))


def from_minor_units(units: int, currency: str | None) -> Decimal:
    return Decimal(int(units)).scaleb(-minor_units(currency)).quantize(quantum(currency))


def format_amount(value, currency: str | None = None) -> str:
    """Plain decimal string, no thousands separators: 1234.5 -> '1234.50'."""
    return f"{quantize_money(value, currency):f}"


def money_equal(a, b, currency: str | None = None) -> bool:
    return quantize_money(a, currency) == quantize_money(b, currency)


def sum_money(values: Iterable) -> Decimal:
    return sum((to_decimal(v) for v in values), ZERO)
