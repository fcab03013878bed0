"""
Loyalty program configuration, as passed into each operation.

Callers load the config once per request and hand it to the service
explicitly; there is no process-wide singleton.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from ..models.program import RewardsProgramConfig
from ..utils.exceptions import ConfigurationError


@dataclass(frozen=True)
class LoyaltyConfig:
    program_enabled: bool = True
    points_per_unit: Decimal = Decimal('1')
    point_redemption_value: Optional[Decimal] = None

    @classmethod
    def from_model(cls, row: RewardsProgramConfig) -> 'LoyaltyConfig':
        return cls(
            program_enabled=bool(row.program_enabled),
            points_per_unit=Decimal(str(row.points_per_dollar)),
            point_redemption_value=(
                Decimal(str(row.point_redemption_value))
                if row.point_redemption_value is not None else None
            ),
        )

    @property
    def point_value(self) -> Decimal:
        """
        Dollar value of one point when redeemed.

        Uses point_redemption_value when set; otherwise earning 1 point per $1
        means 100 points = $1.
        """
        if self.point_redemption_value:
            return self.point_redemption_value
        if self.points_per_unit:
            return Decimal('1') / (self.points_per_unit * 100)
        return Decimal('0.01')


def load_loyalty_config() -> LoyaltyConfig:
    """
    Read the program config row.

    Raises:
        ConfigurationError: the rewards_config row is missing
    """
    row = RewardsProgramConfig.query.order_by(RewardsProgramConfig.id.asc()).first()
    if row is None:
        raise ConfigurationError('Rewards program is not configured')
    return LoyaltyConfig.from_model(row)
