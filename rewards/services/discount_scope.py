"""
Discount scope resolution.

Works out which cart lines an offer reaches and how much of the cart it may
discount. Pure functions over CartLine values.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from ..models.offer import ApplicableTo
from ..utils.exceptions import InvalidInputError
from ..utils.money import to_decimal


@dataclass(frozen=True)
class CartLine:
    """One checkout line. Not persisted."""
    product_id: str
    unit_price: Decimal
    quantity: int = 1
    category_id: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


def parse_cart(items: Any) -> List[CartLine]:
    """
    Build CartLines from a JSON payload.

    Accepts productId/product_id, categoryId/category_id, price/unit_price
    and quantity keys.

    Raises:
        InvalidInputError: the cart or one of its lines is malformed
    """
    if items is None:
        return []
    if not isinstance(items, list):
        raise InvalidInputError('Cart must be a list of items', 'cart')

    lines = []
    for position, item in enumerate(items):
        if not isinstance(item, dict):
            raise InvalidInputError(f'Cart item {position} must be an object', 'cart')

        product_id = item.get('productId', item.get('product_id'))
        if product_id in (None, ''):
            raise InvalidInputError(f'Cart item {position} is missing a product id', 'cart')

        price = to_decimal(item.get('price', item.get('unit_price')), 'price')
        if price < 0:
            raise InvalidInputError(f'Cart item {position} has a negative price', 'cart')

        quantity = item.get('quantity', 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidInputError(f'Cart item {position} must have a quantity of at least 1', 'cart')

        category_id = item.get('categoryId', item.get('category_id'))
        lines.append(CartLine(
            product_id=str(product_id),
            unit_price=price,
            quantity=quantity,
            category_id=str(category_id) if category_id not in (None, '') else None,
        ))
    return lines


def cart_subtotal(cart: Iterable[CartLine]) -> Decimal:
    return sum((line.subtotal for line in cart), Decimal('0'))


def line_matches(line: CartLine, applicable_to: str, applicable_ids: Iterable) -> bool:
    """Whether an offer with this scope reaches the given line."""
    if applicable_to == ApplicableTo.PRODUCT.value:
        return line.product_id in {str(i) for i in (applicable_ids or [])}
    if applicable_to == ApplicableTo.CATEGORY.value:
        return line.category_id is not None and line.category_id in {str(i) for i in (applicable_ids or [])}
    # all, first_order and user_group restrict who, not what
    return True


def matching_lines(cart: Iterable[CartLine], applicable_to: str, applicable_ids: Iterable) -> List[CartLine]:
    ids = [str(i) for i in (applicable_ids or [])]
    return [line for line in cart if line_matches(line, applicable_to, ids)]


def scope_subtotal(cart: Iterable[CartLine], applicable_to: str, applicable_ids: Iterable) -> Decimal:
    """
    Portion of the cart an offer may discount.

    Returns 0 when a product/category offer matches no line; callers treat
    that as "not applicable", never as a free discount.
    """
    return cart_subtotal(matching_lines(cart, applicable_to, applicable_ids))
