"""
Reward points ledger.
"""
from enum import Enum
from ..extensions import db
from ..utils.clock import utcnow


class LedgerKind(str, Enum):
    """What a ledger entry did to the spendable balance."""
    EARN = 'earn'        # Points accrued from a completed order
    ADJUST = 'adjust'    # Order total edited after accrual (+/-)
    REDEEM = 'redeem'    # Points spent (negative)


class ReferenceType(str, Enum):
    """What a ledger entry's reference_id points at."""
    ORDER = 'order'
    ORDER_EDIT = 'order_edit'
    REDEMPTION = 'redemption'


_ORDER_EARN_FILTER = "reference_type = 'order' AND kind = 'earn'"


class LedgerEntry(db.Model):
    """
    Append-only record of every points movement.

    Rows are never updated or deleted. The (reference_id, 'order', 'earn')
    entry is the anchor later adjustments key off, so there is at most one
    per order; the partial unique index backs up the check done under the
    account lock.
    """
    __tablename__ = 'reward_transactions'

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(36), db.ForeignKey('accounts.id'), nullable=False, index=True)

    points = db.Column(db.Integer, nullable=False)  # Positive for earn, negative for reductions
    kind = db.Column(db.String(20), nullable=False)
    description = db.Column(db.String(500))

    reference_type = db.Column(db.String(20), nullable=False)
    reference_id = db.Column(db.String(100), nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    account = db.relationship('Account', backref=db.backref('ledger_entries', lazy='dynamic'))

    __table_args__ = (
        db.Index('ix_reward_transactions_reference', 'reference_id', 'reference_type'),
        db.Index(
            'uq_reward_transactions_order_earn',
            'reference_id',
            unique=True,
            sqlite_where=db.text(_ORDER_EARN_FILTER),
            postgresql_where=db.text(_ORDER_EARN_FILTER),
        ),
    )

    def __repr__(self):
        return f'<LedgerEntry {self.id}: {self.kind} {self.points} pts for {self.account_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'account_id': self.account_id,
            'points': self.points,
            'kind': self.kind,
            'description': self.description,
            'reference_type': self.reference_type,
            'reference_id': self.reference_id,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    @classmethod
    def find_order_earn(cls, order_id: str):
        """The original accrual entry for an order, if any."""
        return cls.query.filter_by(
            reference_id=str(order_id),
            reference_type=ReferenceType.ORDER.value,
            kind=LedgerKind.EARN.value,
        ).first()
