"""
Fixed-point money helpers.

Money is carried as integer minor units (cents) everywhere it is stored or
crosses the API. Percentages, tax extraction and fractional quantities are
computed with Decimal inside a fixed local context and rounded back to cents
with ROUND_HALF_UP. Binary floats are rejected at every entry point.
"""

from __future__ import annotations

from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any

from .validation import ValidationError

MONEY_ROUNDING = ROUND_HALF_UP
CALC_PRECISION = 34

ONE_HUNDRED = Decimal(100)
ZERO = Decimal(0)
CENT = Decimal(1)
QUANTITY_EXPONENT = Decimal("0.001")
PERCENT_EXPONENT = Decimal("0.0001")

# Column limits: *_cents are INTEGER, quantities NUMERIC(12, 3)
MAX_CENTS = 2_147_483_647
MAX_QUANTITY = Decimal("999999999.999")


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"


class AmountOutOfRange(InvalidAmount):
    code = "AMOUNT_OUT_OF_RANGE"


def money_context():
    """Decimal context used for all monetary arithmetic (independent of the thread's context)."""
    return localcontext(Context(prec=CALC_PRECISION, rounding=MONEY_ROUNDING))


def to_decimal(
    value: Any,
    field: str = "value",
    error_cls: type[ValidationError] = ValidationError,
    *,
    max_value: Decimal | int | None = None,
) -> Decimal:
    """
    Convert an exact numeric input to Decimal.

    Accepts Decimal, int and decimal strings. Floats and bools are rejected:
    a binary float has already lost the exact value. With max_value, values
    whose magnitude exceeds it are rejected before any arithmetic runs.
    """
    if isinstance(value, bool) or value is None:
        raise error_cls(f"{field} must be a number")
    if isinstance(value, float):
        raise error_cls(f"{field} must be an exact decimal (string or integer), not a float")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise error_cls(f"{field} must be a decimal number")
    else:
        raise error_cls(f"{field} must be a number")

    if not result.is_finite():
        raise error_cls(f"{field} must be a finite number")
    if max_value is not None and abs(result) > max_value:
        raise error_cls(f"{field} must be at most {max_value}", details={"max": str(max_value)})
    return result


def round_cents(value: Decimal) -> int:
    """Round a Decimal amount of cents to a whole cent, half-up."""
    with money_context():
        try:
            return int(value.quantize(CENT, rounding=MONEY_ROUNDING))
        except InvalidOperation:
            raise AmountOutOfRange("Amount exceeds the supported precision")


def check_cents_range(cents: int, field: str) -> int:
    """Reject computed amounts that would not fit the *_cents columns."""
    if abs(cents) > MAX_CENTS:
        raise AmountOutOfRange(
            f"{field} exceeds the maximum supported amount",
            details={field: cents, "max": MAX_CENTS},
        )
    return cents


def percent_of(amount_cents: int, percent: Decimal) -> int:
    with money_context():
        return round_cents(Decimal(amount_cents) * percent / ONE_HUNDRED)


def parse_cents(
    value: Any,
    field: str,
    *,
    allow_zero: bool = True,
    error_cls: type[ValidationError] = InvalidAmount,
) -> int:
    """
    Parse an amount in integer minor units.

    "12.50" style strings are refused here; the wire format is cents.
    """
    amount = to_decimal(value, field, error_cls, max_value=MAX_CENTS)
    if amount != amount.to_integral_value():
        raise error_cls(f"{field} must be a whole number of cents")
    cents = int(amount)
    if cents < 0:
        raise error_cls(f"{field} cannot be negative")
    if cents == 0 and not allow_zero:
        raise error_cls(f"{field} must be positive")
    return cents


def parse_percent(
    value: Any,
    field: str,
    error_cls: type[ValidationError] = ValidationError,
) -> Decimal:
    percent = to_decimal(value, field, error_cls)
    if percent < ZERO or percent > ONE_HUNDRED:
        raise error_cls(f"{field} must be between 0 and 100")
    return percent


def format_cents(cents: int) -> str:
    """12345 -> '123.45' (used in notes and log lines only)."""
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole}.{frac:02d}"
