"""
Reward tier reference data.
"""
from decimal import Decimal
from ..extensions import db
from ..utils.clock import utcnow


class RewardTier(db.Model):
    """
    A loyalty tier. Tiers are ordered by min_points; a balance belongs to the
    highest tier whose threshold it meets. multiplier scales points earned
    while the account sits in this tier.
    """
    __tablename__ = 'reward_tiers'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False, unique=True)
    min_points = db.Column(db.Integer, nullable=False, unique=True)
    multiplier = db.Column(db.Numeric(4, 2), nullable=False, default=Decimal('1.00'))

    # Display only
    color = db.Column(db.String(50), default='bg-amber-600')
    benefits = db.Column(db.JSON, default=list)  # ["Free shipping over $500", ...]

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.CheckConstraint('multiplier >= 1', name='ck_reward_tiers_multiplier_min'),
        db.CheckConstraint('min_points >= 0', name='ck_reward_tiers_min_points'),
    )

    def __repr__(self):
        return f'<RewardTier {self.name} ({self.min_points}+)>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'min_points': self.min_points,
            'multiplier': float(self.multiplier),
            'color': self.color,
            'benefits': list(self.benefits or []),
        }


# Default tiers seeded by `flask rewards seed-tiers`
DEFAULT_TIERS = [
    {
        'name': 'Bronze',
        'min_points': 0,
        'multiplier': Decimal('1.00'),
        'color': 'bg-amber-600',
        'benefits': ['1 point per $1 spent', 'Birthday bonus'],
    },
    {
        'name': 'Silver',
        'min_points': 5000,
        'multiplier': Decimal('1.50'),
        'color': 'bg-gray-400',
        'benefits': ['1.5x points on every order', 'Priority support'],
    },
    {
        'name': 'Gold',
        'min_points': 15000,
        'multiplier': Decimal('2.00'),
        'color': 'bg-yellow-500',
        'benefits': ['2x points on every order', 'Free shipping', 'Dedicated account manager'],
    },
]


def seed_reward_tiers():
    """Create the default tiers if the table is empty. Returns count created."""
    if RewardTier.query.count() > 0:
        return 0

    for data in DEFAULT_TIERS:
        db.session.add(RewardTier(**data))
    db.session.commit()
    return len(DEFAULT_TIERS)
