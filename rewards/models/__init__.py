"""
Database models for the rewards engine.
Loyalty balances, tiers, ledger, offers and the reward email queue.
"""
from .account import Account
from .tier import RewardTier, DEFAULT_TIERS, seed_reward_tiers
from .ledger import LedgerEntry, LedgerKind, ReferenceType
from .order import Order
from .offer import (
    Offer,
    OfferRedemption,
    OfferType,
    ApplicableTo,
    RESTRICTED_SCOPES,
)
from .program import RewardsProgramConfig, seed_rewards_config
from .email_queue import EmailQueue

__all__ = [
    'Account',
    # Tiers
    'RewardTier',
    'DEFAULT_TIERS',
    'seed_reward_tiers',
    # Ledger
    'LedgerEntry',
    'LedgerKind',
    'ReferenceType',
    # Orders
    'Order',
    # Offers
    'Offer',
    'OfferRedemption',
    'OfferType',
    'ApplicableTo',
    'RESTRICTED_SCOPES',
    # Program config
    'RewardsProgramConfig',
    'seed_rewards_config',
    # Email
    'EmailQueue',
]
