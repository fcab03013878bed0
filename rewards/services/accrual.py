"""
Points accrual arithmetic.

Both steps floor: the base is floored first, then the tier multiplier is
applied to the floored base and floored again. The order matters at tier
boundaries and must not be collapsed into floor(total * rate * multiplier).
"""
from decimal import Decimal, ROUND_FLOOR

from ..utils.exceptions import InvalidInputError
from ..utils.money import to_decimal


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def compute_base_points(order_total, points_per_unit) -> int:
    """floor(order_total * points_per_unit)."""
    total = to_decimal(order_total, 'order_total')
    if total < 0:
        raise InvalidInputError('Order total cannot be negative', 'order_total')
    rate = to_decimal(points_per_unit, 'points_per_unit')
    if rate < 0:
        raise InvalidInputError('Points rate cannot be negative', 'points_per_unit')
    return _floor(total * rate)


def compute_earned_points(order_total, points_per_unit, multiplier) -> int:
    """floor(floor(order_total * points_per_unit) * multiplier)."""
    base = compute_base_points(order_total, points_per_unit)
    factor = to_decimal(multiplier, 'multiplier')
    if factor < 0:
        raise InvalidInputError('Tier multiplier cannot be negative', 'multiplier')
    return _floor(Decimal(base) * factor)
