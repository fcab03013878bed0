"""
Account model: the customer profile that carries reward balances.
"""
import uuid
from ..extensions import db
from ..utils.clock import utcnow


def new_id() -> str:
    return str(uuid.uuid4())


class Account(db.Model):
    """
    Customer account with loyalty balances.

    reward_points is the spendable balance and never goes below zero.
    lifetime_reward_points only ever grows; decreases (order edits,
    redemptions) never touch it.
    reward_tier is a cache of resolve_tier(reward_points) and is rewritten
    on every balance change.

    version backs SQLAlchemy's optimistic locking: a flush against a stale
    row raises StaleDataError instead of silently losing an update.
    """
    __tablename__ = 'accounts'

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    # Contact info (owned by the user-account service, read for emails)
    email = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    company_name = db.Column(db.String(255))

    # Audience tag used by user_group offers: pharmacy, group, hospital, ...
    user_type = db.Column(db.String(50))

    # Loyalty balances
    reward_points = db.Column(db.Integer, nullable=False, default=0)
    lifetime_reward_points = db.Column(db.Integer, nullable=False, default=0)
    reward_tier = db.Column(db.String(50))

    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {'version_id_col': version}

    __table_args__ = (
        db.CheckConstraint('reward_points >= 0', name='ck_accounts_reward_points_non_negative'),
    )

    def __repr__(self):
        return f'<Account {self.id}: {self.reward_points} pts>'

    @property
    def display_name(self) -> str:
        return self.first_name or self.company_name or 'Valued Customer'

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'company_name': self.company_name,
            'user_type': self.user_type,
            'reward_points': self.reward_points,
            'lifetime_reward_points': self.lifetime_reward_points,
            'reward_tier': self.reward_tier,
        }
