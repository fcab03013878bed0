"""
Rewards API endpoints.

Handles:
- Tier table and tier lookup
- Account balance summary and ledger history
- Awarding points for completed orders
- Adjusting points after order edits
- Redeeming points for store value

Service exceptions (RewardsError) are turned into the standard error
envelope by the app-level error handler.
"""
from flask import Blueprint, request, jsonify

from ..services.loyalty_service import loyalty_service
from ..services.program_config import load_loyalty_config
from ..services.tiers import load_tiers, resolve_tier, points_to_next_tier
from ..utils.errors import bad_request, ErrorCode

rewards_bp = Blueprint('rewards', __name__)


def _missing_fields(data: dict, required) -> list:
    return [name for name in required if data.get(name) in (None, '')]


# ==============================================================================
# TIERS
# ==============================================================================

@rewards_bp.route('/tiers', methods=['GET'])
def list_tiers():
    """Tier table, lowest threshold first."""
    tiers = load_tiers()
    return jsonify({
        'tiers': [tier.to_dict() for tier in tiers],
        'count': len(tiers)
    })


@rewards_bp.route('/tiers/resolve', methods=['GET'])
def resolve_tier_for_points():
    """
    Tier for a points balance.

    Query params:
        points: non-negative integer balance (required)
    """
    points = request.args.get('points', type=int)
    if points is None:
        return bad_request('points query parameter must be an integer', ErrorCode.INVALID_FIELD)

    resolution = resolve_tier(points, load_tiers())
    return jsonify({
        'points': points,
        'current': resolution.current.to_dict(),
        'next': resolution.next.to_dict() if resolution.next else None,
        'is_highest': resolution.is_highest,
        'points_to_next_tier': points_to_next_tier(points, resolution),
    })


# ==============================================================================
# ACCOUNTS
# ==============================================================================

@rewards_bp.route('/accounts/<account_id>', methods=['GET'])
def get_account(account_id):
    """Balance, lifetime points and tier progress."""
    return jsonify(loyalty_service.get_account_summary(account_id))


@rewards_bp.route('/accounts/<account_id>/history', methods=['GET'])
def get_account_history(account_id):
    """
    Ledger entries for an account, newest first.

    Query params:
        limit: max entries (default 50, capped at 200)
    """
    limit = min(request.args.get('limit', 50, type=int) or 50, 200)
    entries = loyalty_service.get_account_history(account_id, limit=limit)
    return jsonify({'transactions': entries, 'count': len(entries)})


@rewards_bp.route('/orders/<order_id>/history', methods=['GET'])
def get_order_history(order_id):
    """Accrual and edit adjustments recorded against an order."""
    entries = loyalty_service.get_order_reward_history(order_id)
    return jsonify({
        'order_id': order_id,
        'eligible_for_adjustment': loyalty_service.is_order_eligible_for_adjustment(order_id),
        'transactions': entries,
    })


# ==============================================================================
# LEDGER OPERATIONS
# ==============================================================================

@rewards_bp.route('/award', methods=['POST'])
def award_points():
    """
    Award points for a completed order.

    JSON body:
        account_id: Account to credit (required)
        order_id: Order id, the idempotency key (required)
        order_number: Human-readable order number (required)
        order_total: Order total (required)

    Returns:
        AwardResult. Repeating a call for the same order returns
        success=false with reason=already_awarded.
    """
    data = request.json or {}
    missing = _missing_fields(data, ['account_id', 'order_id', 'order_number', 'order_total'])
    if missing:
        return bad_request(f"{', '.join(missing)} is required", ErrorCode.MISSING_FIELD)

    result = loyalty_service.award_points(
        data['account_id'],
        data['order_id'],
        data['order_number'],
        data['order_total'],
        load_loyalty_config(),
    )
    return jsonify(result.to_dict())


@rewards_bp.route('/adjust', methods=['POST'])
def adjust_points():
    """
    Adjust points after an order total changed.

    JSON body:
        account_id, order_id, order_number: as for /award (required)
        old_total: Total before the edit (required)
        new_total: Total after the edit (required)
    """
    data = request.json or {}
    missing = _missing_fields(data, ['account_id', 'order_id', 'order_number', 'old_total', 'new_total'])
    if missing:
        return bad_request(f"{', '.join(missing)} is required", ErrorCode.MISSING_FIELD)

    result = loyalty_service.adjust_points(
        data['account_id'],
        data['order_id'],
        data['order_number'],
        data['old_total'],
        data['new_total'],
        load_loyalty_config(),
    )
    return jsonify(result.to_dict())


@rewards_bp.route('/redeem', methods=['POST'])
def redeem_points():
    """
    Spend points for store value.

    JSON body:
        account_id: Account to debit (required)
        points: Positive integer (required)
        reference_id: Caller's reference for the credit (optional)
        description: Ledger description (optional)
    """
    data = request.json or {}
    missing = _missing_fields(data, ['account_id', 'points'])
    if missing:
        return bad_request(f"{', '.join(missing)} is required", ErrorCode.MISSING_FIELD)

    result = loyalty_service.redeem_points(
        data['account_id'],
        data['points'],
        load_loyalty_config(),
        reference_id=data.get('reference_id'),
        description=data.get('description'),
    )
    return jsonify(result.to_dict())


@rewards_bp.route('/preview', methods=['POST'])
def preview_points():
    """
    Points an order would earn at the account's current tier.

    JSON body:
        account_id: Account (required)
        order_total: Prospective order total (required)
    """
    data = request.json or {}
    missing = _missing_fields(data, ['account_id', 'order_total'])
    if missing:
        return bad_request(f"{', '.join(missing)} is required", ErrorCode.MISSING_FIELD)

    points = loyalty_service.preview_order_points(
        data['account_id'], data['order_total'], load_loyalty_config()
    )
    return jsonify({'account_id': data['account_id'], 'points': points})
