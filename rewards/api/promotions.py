"""
Promotions API for checkout.

Endpoints for:
- Validating a promo code against a cart (with per-line split)
- Recording a redemption once the order is placed
- Listing active and auto-apply offers
"""
from flask import Blueprint, request, jsonify

from ..models.offer import Offer
from ..extensions import db
from ..services.discount_scope import parse_cart
from ..services.promo_recorder import commit_promo_usage, offer_usage_summary
from ..services.promo_service import promo_service, apportion_discount
from ..utils.errors import bad_request, not_found, ErrorCode


promotions_bp = Blueprint('promotions', __name__)


def _money_map(allocations):
    return {product_id: float(amount) for product_id, amount in allocations.items()}


# ==================== Checkout ====================

@promotions_bp.route('/validate', methods=['POST'])
def validate_promo():
    """
    Validate a promo code for the current cart.

    JSON body:
        code: Promo code as typed by the customer
        order_total: Cart total (required)
        cart: [{productId, price, quantity, categoryId}, ...]
        user_id: Customer account id (optional, for first-order offers)
        user_type: Customer account type (optional, for group offers)

    Returns:
        ValidationResult; valid results also carry line_discounts, the
        discount split by product id.
    """
    data = request.json or {}
    if data.get('order_total') is None:
        return bad_request('order_total is required', ErrorCode.MISSING_FIELD)

    cart = parse_cart(data.get('cart'))
    result = promo_service.validate_promo_code(
        data.get('code') or '',
        data['order_total'],
        cart,
        user_id=data.get('user_id'),
        user_type=data.get('user_type'),
    )

    response = result.to_dict()
    if result.valid:
        response['line_discounts'] = _money_map(promo_service.apportion(cart, result))
    return jsonify(response)


@promotions_bp.route('/commit', methods=['POST'])
def commit_usage():
    """
    Count a redemption against the offer's usage limit.

    Call once, after the order is placed.

    JSON body:
        offer_id: Offer (required)
        discount_amount: Discount actually given (required)
        order_id, account_id: For the redemption record (optional)

    Returns:
        recorded=false when the usage limit was reached in the meantime.
    """
    data = request.json or {}
    if not data.get('offer_id') or data.get('discount_amount') is None:
        return bad_request('offer_id and discount_amount are required', ErrorCode.MISSING_FIELD)

    recorded = commit_promo_usage(
        data['offer_id'],
        data['discount_amount'],
        order_id=data.get('order_id'),
        account_id=data.get('account_id'),
    )
    return jsonify({'recorded': recorded, 'offer_id': data['offer_id']})


# ==================== Offers ====================

@promotions_bp.route('/offers/active', methods=['GET'])
def list_active_offers():
    """Offers live right now, largest discount value first."""
    offers = promo_service.get_active_offers()
    return jsonify({
        'offers': [offer.to_dict() for offer in offers],
        'count': len(offers)
    })


@promotions_bp.route('/offers/auto-apply', methods=['POST'])
def auto_apply_offers():
    """
    Code-less offers the cart qualifies for, plus the best one.

    JSON body:
        order_total: Cart total (required)
        cart: Cart lines
        user_id, user_type: Customer (optional)
        product_names: {productId: name} for the display list (optional)
    """
    data = request.json or {}
    if data.get('order_total') is None:
        return bad_request('order_total is required', ErrorCode.MISSING_FIELD)

    cart = parse_cart(data.get('cart'))
    offers = promo_service.get_auto_apply_offers(
        data['order_total'],
        cart,
        user_id=data.get('user_id'),
        user_type=data.get('user_type'),
    )
    best, discount = promo_service.calculate_best_discount(offers, data['order_total'], cart)

    response = {
        'offers': [offer.to_dict() for offer in offers],
        'best_offer_id': best.id if best else None,
        'best_discount': float(discount),
    }
    if best:
        response['line_discounts'] = _money_map(apportion_discount(cart, best, discount))
        response['display'] = promo_service.prepare_display_data(best, cart, data.get('product_names'))
    return jsonify(response)


@promotions_bp.route('/offers/<offer_id>/usage', methods=['GET'])
def offer_usage(offer_id):
    """Usage counters for an offer."""
    if db.session.get(Offer, offer_id) is None:
        return not_found('Offer')
    return jsonify(offer_usage_summary(offer_id))
