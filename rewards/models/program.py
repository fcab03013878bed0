"""
Rewards program configuration (single row).
"""
from decimal import Decimal
from ..extensions import db
from ..utils.clock import utcnow


class RewardsProgramConfig(db.Model):
    """
    Program-wide settings, edited from the admin console.

    Services never read this table directly: callers load it once per
    request with load_loyalty_config() and pass the resulting LoyaltyConfig
    into each operation.
    """
    __tablename__ = 'rewards_config'

    id = db.Column(db.Integer, primary_key=True)

    program_enabled = db.Column(db.Boolean, nullable=False, default=True)

    # Earning rate
    points_per_dollar = db.Column(db.Numeric(8, 4), nullable=False, default=Decimal('1'))

    # Dollar value of one point when redeemed; null = derive from points_per_dollar
    point_redemption_value = db.Column(db.Numeric(8, 4))

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f'<RewardsProgramConfig enabled={self.program_enabled} rate={self.points_per_dollar}>'


def seed_rewards_config():
    """Create the default config row if missing. Returns True if created."""
    if RewardsProgramConfig.query.first():
        return False
    db.session.add(RewardsProgramConfig())
    db.session.commit()
    return True
