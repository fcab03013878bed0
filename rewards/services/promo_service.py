"""
Promo Code Service - validate offers against a cart and compute discounts.

validate_promo_code() runs the gates in a fixed order and stops at the first
failure. Every business-rule rejection comes back as
ValidationResult(valid=False, message=...) with a message specific to the
gate that failed, ready to show at checkout. Exceptions are reserved for bad
input (negative totals, malformed cart).

Validation is read-only: usage counters are only touched by
commit_promo_usage() once the order is placed.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_DOWN
from typing import Optional, List, Dict, Any, Iterable, Tuple
from flask import current_app

from ..extensions import db
from ..models.offer import Offer, OfferType, ApplicableTo, RESTRICTED_SCOPES
from ..models.order import Order
from ..utils.clock import utcnow
from ..utils.exceptions import InvalidInputError
from ..utils.money import to_decimal, to_cents, format_money, CENT
from .discount_scope import CartLine, line_matches, scope_subtotal


# ==================== Messages ====================

MSG_CODE_REQUIRED = "Please enter a promo code"
MSG_UNKNOWN_CODE = "Invalid promo code"
MSG_INACTIVE = "This promo code is no longer active"
MSG_NOT_STARTED = "This promo code is not yet active"
MSG_EXPIRED = "This promo code has expired"
MSG_USAGE_LIMIT = "This promo code has reached its usage limit"
MSG_MIN_ORDER = "Minimum order amount is ${amount}"
MSG_FIRST_ORDER = "This offer is only for first orders"
MSG_USER_GROUP = "This offer is not available for your account type"
MSG_NOT_APPLICABLE = "This offer is not applicable to items in your cart"


@dataclass
class ValidationResult:
    valid: bool
    message: str
    offer_id: Optional[str] = None
    offer_title: Optional[str] = None
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    max_discount: Optional[Decimal] = None
    calculated_discount: Decimal = Decimal('0')
    scope_amount: Decimal = Decimal('0')
    free_shipping: bool = False

    @classmethod
    def rejected(cls, message: str) -> 'ValidationResult':
        return cls(valid=False, message=message)

    def to_dict(self) -> Dict[str, Any]:
        if not self.valid:
            return {'valid': False, 'message': self.message}
        return {
            'valid': True,
            'message': self.message,
            'offer_id': self.offer_id,
            'offer_title': self.offer_title,
            'discount_type': self.discount_type,
            'discount_value': float(self.discount_value or 0),
            'max_discount': float(self.max_discount) if self.max_discount is not None else None,
            'calculated_discount': float(self.calculated_discount),
            'scope_amount': float(self.scope_amount),
            'free_shipping': self.free_shipping,
        }


def calculate_discount(offer: Offer, scope_amount: Decimal) -> Tuple[Decimal, bool]:
    """
    Discount an offer gives on the amount it covers.

    Returns:
        (discount rounded to cents, free_shipping flag)
    """
    value = Decimal(str(offer.discount_value or 0))

    if offer.offer_type == OfferType.PERCENTAGE.value:
        discount = scope_amount * value / Decimal('100')
        if offer.max_discount_amount is not None:
            discount = min(discount, Decimal(str(offer.max_discount_amount)))
        return to_cents(discount), False

    if offer.offer_type == OfferType.FLAT.value:
        return to_cents(min(value, scope_amount)), False

    if offer.offer_type == OfferType.FREE_SHIPPING.value:
        # Shipping is waived separately; item subtotal is untouched
        return Decimal('0.00'), True

    current_app.logger.warning(f"Offer {offer.id} has unknown type {offer.offer_type!r}")
    return Decimal('0.00'), False


def apportion_discount(cart: Iterable[CartLine], offer: Offer, total_discount) -> Dict[str, Decimal]:
    """
    Split a discount across cart lines by their share of the offer's scope.

    Each matching line gets lineSubtotal / scopeSubtotal of the discount,
    in cents. The rounding remainder goes to the largest matching line, so
    the amounts always add up to total_discount exactly. Non-matching lines
    get 0; lines with the same product id are summed.
    """
    cart = list(cart)
    total = to_cents(to_decimal(total_discount, 'total_discount'))
    ids = offer.applicable_id_set()

    allocations: Dict[str, Decimal] = {line.product_id: Decimal('0.00') for line in cart}
    matching = [line for line in cart if line_matches(line, offer.applicable_to, ids)]
    scope = sum((line.subtotal for line in matching), Decimal('0'))

    if total <= 0 or scope <= 0 or not matching:
        return allocations

    shares = []
    allocated = Decimal('0.00')
    for line in matching:
        share = (line.subtotal * total / scope).quantize(CENT, rounding=ROUND_DOWN)
        shares.append((line, share))
        allocated += share

    remainder = total - allocated
    largest = max(range(len(shares)), key=lambda i: shares[i][0].subtotal)
    line, share = shares[largest]
    shares[largest] = (line, share + remainder)

    for line, share in shares:
        allocations[line.product_id] += share
    return allocations


class PromoService:
    """
    Validates promo codes and finds offers for a cart.

    Usage:
        service = PromoService()
        result = service.validate_promo_code('SAVE20', Decimal('50.00'), cart, user_id, 'pharmacy')
        if result.valid:
            per_line = service.apportion(cart, result)
    """

    # ==================== Validation ====================

    def find_offer_by_code(self, code: str) -> Optional[Offer]:
        """Case-insensitive promo code lookup. Codes are stored upper-case."""
        return Offer.query.filter_by(promo_code=code.strip().upper()).first()

    def validate_promo_code(
        self,
        code: str,
        order_total,
        cart: List[CartLine],
        user_id: str = None,
        user_type: str = None,
        now: datetime = None
    ) -> ValidationResult:
        """
        Validate a promo code against an order and compute its discount.

        Gates, in order:
        1. code entered
        2. offer exists and is active
        3. within the start/end window
        4. usage limit not reached
        5. order meets the minimum amount
        6. first_order offers: no prior non-cancelled orders
        7. user_group offers: account type is in the audience
        8. product/category offers: at least one cart line matches

        Raises:
            InvalidInputError: negative order total or malformed cart
        """
        if not code or not str(code).strip():
            return ValidationResult.rejected(MSG_CODE_REQUIRED)

        total = self._checked_total(order_total, cart)

        offer = self.find_offer_by_code(str(code))
        if offer is None:
            return ValidationResult.rejected(MSG_UNKNOWN_CODE)
        if not offer.is_active:
            return ValidationResult.rejected(MSG_INACTIVE)

        rejection = self._check_offer(offer, total, cart, user_id, user_type, now or utcnow())
        if rejection:
            current_app.logger.info(f"Promo code {offer.promo_code} rejected: {rejection}")
            return ValidationResult.rejected(rejection)

        return self._accepted(offer, cart)

    def _checked_total(self, order_total, cart) -> Decimal:
        total = to_decimal(order_total, 'order_total')
        if total < 0:
            raise InvalidInputError('Order total cannot be negative', 'order_total')
        if cart is None or not all(isinstance(line, CartLine) for line in cart):
            raise InvalidInputError('Cart must be a list of cart lines', 'cart')
        return total

    def _check_offer(
        self,
        offer: Offer,
        total: Decimal,
        cart: List[CartLine],
        user_id: Optional[str],
        user_type: Optional[str],
        now: datetime
    ) -> Optional[str]:
        """Gates 3-8. Returns the rejection message, or None if the offer applies."""
        if not offer.is_within_window(now):
            return MSG_NOT_STARTED if now < offer.start_date else MSG_EXPIRED

        if offer.usage_exhausted:
            return MSG_USAGE_LIMIT

        if offer.min_order_amount is not None and total < Decimal(str(offer.min_order_amount)):
            return MSG_MIN_ORDER.format(amount=format_money(offer.min_order_amount))

        if offer.applicable_to == ApplicableTo.FIRST_ORDER.value and user_id:
            if Order.count_placed_for(str(user_id)) > 0:
                return MSG_FIRST_ORDER

        if offer.applicable_to == ApplicableTo.USER_GROUP.value and offer.user_groups:
            if not user_type or user_type not in offer.user_groups:
                return MSG_USER_GROUP

        if offer.applicable_to in RESTRICTED_SCOPES:
            if scope_subtotal(cart, offer.applicable_to, offer.applicable_id_set()) <= 0:
                return MSG_NOT_APPLICABLE

        return None

    def _scope_amount(self, offer: Offer, cart: List[CartLine]) -> Decimal:
        """
        Cart amount the discount is taken from.

        Restricted offers cover their matching lines, the rest cover every
        line. order_total only feeds the minimum-amount gate.
        """
        return scope_subtotal(cart, offer.applicable_to, offer.applicable_id_set())

    def _accepted(self, offer: Offer, cart: List[CartLine]) -> ValidationResult:
        scope_amount = self._scope_amount(offer, cart)
        discount, free_shipping = calculate_discount(offer, scope_amount)

        if free_shipping:
            message = f"{offer.title} applied! Free shipping on this order"
        else:
            message = f"{offer.title} applied! You save ${discount:.2f}"

        return ValidationResult(
            valid=True,
            message=message,
            offer_id=offer.id,
            offer_title=offer.title,
            discount_type=offer.offer_type,
            discount_value=Decimal(str(offer.discount_value or 0)),
            max_discount=(
                Decimal(str(offer.max_discount_amount))
                if offer.max_discount_amount is not None else None
            ),
            calculated_discount=discount,
            scope_amount=scope_amount,
            free_shipping=free_shipping,
        )

    def apportion(self, cart: List[CartLine], result: ValidationResult) -> Dict[str, Decimal]:
        """Per-line split of a successful validation's discount."""
        if not result.valid:
            return {}
        offer = db.session.get(Offer, result.offer_id)
        return apportion_discount(cart, offer, result.calculated_discount)

    # ==================== Offer Discovery ====================

    def get_active_offers(self, now: datetime = None) -> List[Offer]:
        """Active offers within their window, biggest discount value first."""
        now = now or utcnow()
        return (
            Offer.query
            .filter(
                Offer.is_active.is_(True),
                Offer.start_date <= now,
                Offer.end_date >= now,
            )
            .order_by(Offer.discount_value.desc())
            .all()
        )

    def get_auto_apply_offers(
        self,
        order_total,
        cart: List[CartLine],
        user_id: str = None,
        user_type: str = None,
        now: datetime = None
    ) -> List[Offer]:
        """Code-less offers this cart qualifies for right now."""
        total = self._checked_total(order_total, cart)
        now = now or utcnow()
        return [
            offer for offer in self.get_active_offers(now)
            if offer.is_auto_apply
            and self._check_offer(offer, total, cart, user_id, user_type, now) is None
        ]

    def calculate_best_discount(
        self,
        offers: Iterable[Offer],
        order_total,
        cart: List[CartLine]
    ) -> Tuple[Optional[Offer], Decimal]:
        """
        Pick the offer giving the largest monetary discount on this cart.

        Free-shipping offers have no item discount and never win here.
        """
        self._checked_total(order_total, cart)
        best_offer = None
        best_discount = Decimal('0.00')

        for offer in offers:
            discount, _ = calculate_discount(offer, self._scope_amount(offer, cart))
            if discount > best_discount:
                best_offer = offer
                best_discount = discount

        return best_offer, best_discount

    def prepare_display_data(
        self,
        offer: Offer,
        cart: List[CartLine],
        product_names: Dict[str, str] = None
    ) -> Dict[str, Any]:
        """Cart lines flagged with whether the offer discounts them, for the checkout summary."""
        ids = offer.applicable_id_set()
        product_names = product_names or {}
        items = [
            {
                'id': line.product_id,
                'name': product_names.get(line.product_id) or f'Product {line.product_id[:8]}',
                'price': float(line.unit_price),
                'quantity': line.quantity,
                'has_discount': line_matches(line, offer.applicable_to, ids),
            }
            for line in cart
        ]
        return {
            'applicable_items': items,
            'applicable_to': offer.applicable_to,
        }


# Singleton instance
promo_service = PromoService()
