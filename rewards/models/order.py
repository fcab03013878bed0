"""
Order model.

Orders are owned by the checkout workflow; the rewards engine only reads
them (first-order offers) and keys ledger entries off their ids.
"""
from decimal import Decimal
from ..extensions import db
from ..utils.clock import utcnow
from .account import new_id


class Order(db.Model):
    __tablename__ = 'orders'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    order_number = db.Column(db.String(50), nullable=False, unique=True)
    profile_id = db.Column(db.String(36), db.ForeignKey('accounts.id'), nullable=False, index=True)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0'))
    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, processing, shipped, delivered, cancelled

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f'<Order {self.order_number}>'

    @classmethod
    def count_placed_for(cls, profile_id: str) -> int:
        """Orders a customer has placed, ignoring cancelled ones."""
        return cls.query.filter(
            cls.profile_id == profile_id,
            cls.status != 'cancelled',
        ).count()

    def to_dict(self):
        return {
            'id': self.id,
            'order_number': self.order_number,
            'profile_id': self.profile_id,
            'total': float(self.total),
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
