"""
Offers and promo codes.

An offer is either code-gated (promo_code set) or auto-applied at checkout
(promo_code null). Its reach is controlled by applicable_to:

- all:         whole cart
- first_order: whole cart, only for customers with no prior orders
- user_group:  whole cart, only for account types in user_groups
- product:     only cart lines whose product id is in applicable_ids
- category:    only cart lines whose category id is in applicable_ids
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, Any
from sqlalchemy.orm import validates
from ..extensions import db
from ..utils.clock import utcnow
from .account import new_id


# ==================== Enums ====================

class OfferType(str, Enum):
    """How the discount is computed."""
    PERCENTAGE = 'percentage'        # % of the scoped subtotal, optionally capped
    FLAT = 'flat'                    # Fixed amount, never more than the scoped subtotal
    FREE_SHIPPING = 'free_shipping'  # Waives shipping, no item discount


class ApplicableTo(str, Enum):
    """Who or what the offer applies to."""
    ALL = 'all'
    FIRST_ORDER = 'first_order'
    USER_GROUP = 'user_group'
    PRODUCT = 'product'
    CATEGORY = 'category'


# Scopes that discount only part of the cart
RESTRICTED_SCOPES = (ApplicableTo.PRODUCT.value, ApplicableTo.CATEGORY.value)


# ==================== Models ====================

class Offer(db.Model):
    """
    Promotional offer.

    used_count, total_discount_given and total_orders are only changed by
    commit_promo_usage, with storage-level increments. Validation never
    writes to this table.
    """
    __tablename__ = 'offers'

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    # Basic info
    title = db.Column(db.String(150), nullable=False)
    description = db.Column(db.String(500))
    promo_code = db.Column(db.String(50), unique=True, index=True)  # Upper-cased on write; null = auto-apply

    # Discount definition
    offer_type = db.Column(db.String(20), nullable=False, default='percentage')
    discount_value = db.Column(db.Numeric(10, 2), nullable=False, default=0)  # 20 = 20% or $20
    max_discount_amount = db.Column(db.Numeric(10, 2))  # Caps percentage discounts
    min_order_amount = db.Column(db.Numeric(10, 2))

    # Usage
    usage_limit = db.Column(db.Integer)  # null = unlimited
    used_count = db.Column(db.Integer, nullable=False, default=0)
    total_discount_given = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0'))
    total_orders = db.Column(db.Integer, nullable=False, default=0)

    # Status and window
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)

    # Scope
    applicable_to = db.Column(db.String(20), nullable=False, default='all')
    applicable_ids = db.Column(db.JSON)  # Product or category ids, per applicable_to
    user_groups = db.Column(db.JSON)     # Account types for user_group offers

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.CheckConstraint('used_count >= 0', name='ck_offers_used_count_non_negative'),
    )

    @validates('promo_code')
    def normalize_promo_code(self, key, code):
        return code.strip().upper() if code is not None else None

    def __repr__(self):
        return f'<Offer {self.promo_code or self.title}>'

    @property
    def is_auto_apply(self) -> bool:
        return self.promo_code is None

    @property
    def usage_exhausted(self) -> bool:
        return self.usage_limit is not None and (self.used_count or 0) >= self.usage_limit

    def applicable_id_set(self) -> set:
        return {str(i) for i in (self.applicable_ids or [])}

    def is_within_window(self, now) -> bool:
        return self.start_date <= now <= self.end_date

    def to_dict(self) -> Dict[str, Any]:
        """Serialize offer to dictionary."""
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'promo_code': self.promo_code,
            'offer_type': self.offer_type,
            'discount_value': float(self.discount_value or 0),
            'max_discount_amount': float(self.max_discount_amount) if self.max_discount_amount is not None else None,
            'min_order_amount': float(self.min_order_amount) if self.min_order_amount is not None else None,
            'usage_limit': self.usage_limit,
            'used_count': self.used_count,
            'total_discount_given': float(self.total_discount_given or 0),
            'total_orders': self.total_orders,
            'is_active': self.is_active,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'applicable_to': self.applicable_to,
            'applicable_ids': list(self.applicable_ids or []),
            'user_groups': list(self.user_groups or []),
        }


class OfferRedemption(db.Model):
    """
    One row per committed redemption, written in the same transaction as the
    counter increment. Answers "who redeemed offer X" and lets the counters
    be audited.
    """
    __tablename__ = 'offer_redemptions'

    id = db.Column(db.Integer, primary_key=True)
    offer_id = db.Column(db.String(36), db.ForeignKey('offers.id'), nullable=False, index=True)
    order_id = db.Column(db.String(36), index=True)
    account_id = db.Column(db.String(36), index=True)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    offer = db.relationship('Offer', backref=db.backref('redemptions', lazy='dynamic'))

    def __repr__(self):
        return f'<OfferRedemption offer={self.offer_id} order={self.order_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'offer_id': self.offer_id,
            'order_id': self.order_id,
            'account_id': self.account_id,
            'discount_amount': float(self.discount_amount),
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
