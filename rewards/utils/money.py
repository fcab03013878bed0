"""
Money helpers. All currency amounts are Decimal; floats are converted via str().
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .exceptions import InvalidInputError

CENT = Decimal('0.01')


def to_decimal(value, field: str = None) -> Decimal:
    """Coerce a number or numeric string to Decimal, rejecting junk and NaN."""
    if isinstance(value, bool) or value is None:
        raise InvalidInputError(f"{field or 'amount'} must be a number", field)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidInputError(f"{field or 'amount'} must be a number", field)
    if not result.is_finite():
        raise InvalidInputError(f"{field or 'amount'} must be a finite number", field)
    return result


def to_cents(value: Decimal) -> Decimal:
    """Round to the minor currency unit, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value) -> str:
    """20 -> '20', 20.5 -> '20.50'."""
    value = Decimal(str(value))
    if value == value.to_integral_value():
        return str(int(value))
    return f"{to_cents(value):.2f}"
