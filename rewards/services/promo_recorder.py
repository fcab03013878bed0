"""
Records a promo code redemption once the order is placed.

The usage counter is bumped with a single conditional UPDATE so two
checkouts racing for the last use of a limited code cannot both win:

    UPDATE offers SET used_count = used_count + 1, ...
    WHERE id = :id AND (usage_limit IS NULL OR used_count < usage_limit)

The OfferRedemption row is written in the same transaction.
"""

from decimal import Decimal
from flask import current_app
from sqlalchemy import update, or_
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models.offer import Offer, OfferRedemption
from ..utils.exceptions import InvalidInputError, OfferNotFoundError, PersistenceError
from ..utils.money import to_decimal, to_cents


def commit_promo_usage(offer_id: str, discount_amount, order_id: str = None, account_id: str = None) -> bool:
    """
    Count one use of an offer against its usage limit.

    Not idempotent: call exactly once per placed order.

    Returns:
        True if the use was recorded, False if the limit was already reached

    Raises:
        InvalidInputError: negative discount
        OfferNotFoundError: unknown offer
        PersistenceError: storage failure, nothing committed
    """
    discount = to_cents(to_decimal(discount_amount, 'discount_amount'))
    if discount < 0:
        raise InvalidInputError('Discount amount cannot be negative', 'discount_amount')

    statement = (
        update(Offer)
        .where(
            Offer.id == str(offer_id),
            or_(Offer.usage_limit.is_(None), Offer.used_count < Offer.usage_limit),
        )
        .values(
            used_count=Offer.used_count + 1,
            total_discount_given=Offer.total_discount_given + discount,
            total_orders=Offer.total_orders + 1,
        )
        .execution_options(synchronize_session=False)
    )

    try:
        updated = db.session.execute(statement).rowcount
        if updated == 0:
            db.session.rollback()
            if db.session.get(Offer, str(offer_id)) is None:
                raise OfferNotFoundError(offer_id)
            current_app.logger.warning(
                f"Offer {offer_id} usage limit reached, order {order_id} not counted"
            )
            return False

        db.session.add(OfferRedemption(
            offer_id=str(offer_id),
            order_id=str(order_id) if order_id else None,
            account_id=str(account_id) if account_id else None,
            discount_amount=discount,
        ))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to record usage of offer {offer_id}: {e}")
        raise PersistenceError(f'Failed to record usage of offer {offer_id}', original_error=e)

    # Counters were changed behind the ORM's back
    cached = db.session.get(Offer, str(offer_id))
    if cached is not None:
        db.session.refresh(cached)

    current_app.logger.info(
        f"Offer {offer_id} used on order {order_id}: ${discount:.2f} discount"
    )
    return True


def offer_usage_summary(offer_id: str) -> dict:
    """Counters and redemption count for an offer."""
    offer = db.session.get(Offer, str(offer_id))
    if offer is None:
        raise OfferNotFoundError(offer_id)
    remaining = None
    if offer.usage_limit is not None:
        remaining = max(0, offer.usage_limit - (offer.used_count or 0))
    return {
        'offer_id': offer.id,
        'used_count': offer.used_count or 0,
        'usage_limit': offer.usage_limit,
        'remaining_uses': remaining,
        'total_discount_given': float(offer.total_discount_given or Decimal('0')),
        'total_orders': offer.total_orders or 0,
        'redemptions': offer.redemptions.count(),
    }
