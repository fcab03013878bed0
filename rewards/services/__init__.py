"""
Business logic services for the rewards engine.
"""
from .loyalty_service import LoyaltyService, AwardResult, AdjustResult, RedeemResult
from .promo_service import PromoService, ValidationResult, apportion_discount
from .promo_recorder import commit_promo_usage
from .notification_service import NotificationService
from .program_config import LoyaltyConfig, load_loyalty_config

__all__ = [
    'LoyaltyService',
    'AwardResult',
    'AdjustResult',
    'RedeemResult',
    'PromoService',
    'ValidationResult',
    'apportion_discount',
    'commit_promo_usage',
    'NotificationService',
    'LoyaltyConfig',
    'load_loyalty_config',
]
