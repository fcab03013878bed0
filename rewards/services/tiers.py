"""
Tier resolution.

resolve_tier() is pure: it maps a points balance onto a tier table. The
table itself is loaded by load_tiers(), which snapshots RewardTier rows into
immutable Tier values and caches them (the table is tiny and read on every
award).
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple
from flask import current_app

from ..models.tier import RewardTier
from ..utils.cache import cache, TIER_TABLE_KEY
from ..utils.exceptions import ConfigurationError, InvalidInputError


@dataclass(frozen=True)
class Tier:
    """Snapshot of a reward tier, safe to cache and pass across sessions."""
    name: str
    min_points: int
    multiplier: Decimal = Decimal('1')
    color: str = 'bg-amber-600'
    benefits: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, tier: RewardTier) -> 'Tier':
        return cls(
            name=tier.name,
            min_points=int(tier.min_points),
            multiplier=Decimal(str(tier.multiplier)),
            color=tier.color or 'bg-amber-600',
            benefits=tuple(tier.benefits or ()),
        )

    def to_dict(self):
        return {
            'name': self.name,
            'min_points': self.min_points,
            'multiplier': float(self.multiplier),
            'color': self.color,
            'benefits': list(self.benefits),
        }


@dataclass(frozen=True)
class TierResolution:
    """Where a balance sits: its tier and the one above it (None at the top)."""
    current: Tier
    next: Optional[Tier]

    @property
    def is_highest(self) -> bool:
        return self.next is None


def sort_tiers(tiers: Iterable[Tier]) -> List[Tier]:
    """Order tiers by threshold, rejecting empty or ambiguous tables."""
    ordered = sorted(tiers, key=lambda t: t.min_points)
    if not ordered:
        raise ConfigurationError('No reward tiers are defined')

    thresholds = [t.min_points for t in ordered]
    if len(set(thresholds)) != len(thresholds):
        raise ConfigurationError('Reward tier thresholds must be unique')
    return ordered


def resolve_tier(points: int, tiers: Sequence[Tier]) -> TierResolution:
    """
    Find the tier a points balance falls into.

    Scans from the highest threshold down and takes the first tier whose
    min_points the balance meets. A balance below every threshold lands in
    the lowest tier.

    Raises:
        ConfigurationError: tiers is empty
        InvalidInputError: points is negative
    """
    if points is None or points < 0:
        raise InvalidInputError('Points balance cannot be negative', 'points')

    ordered = sort_tiers(tiers)

    index = 0
    for i in range(len(ordered) - 1, -1, -1):
        if ordered[i].min_points <= points:
            index = i
            break

    upper = ordered[index + 1] if index + 1 < len(ordered) else None
    return TierResolution(current=ordered[index], next=upper)


def points_to_next_tier(points: int, resolution: TierResolution) -> int:
    """Points still needed to reach the next tier; 0 at the top tier."""
    if resolution.next is None:
        return 0
    return max(0, resolution.next.min_points - points)


def tier_progress_percent(points: int, resolution: TierResolution, baseline: Tier = None) -> int:
    """
    How far (0-100) a balance has moved from `baseline` toward the next tier.

    baseline defaults to the current tier; the reward email passes the tier
    held before the order so the bar reflects the whole climb.
    """
    if resolution.next is None:
        return 100

    start = (baseline or resolution.current).min_points
    span = resolution.next.min_points - start
    if span <= 0:
        return 100
    percent = (points - start) * 100 // span
    return int(min(100, max(0, percent)))


def load_tiers() -> List[Tier]:
    """
    Load the full tier table, ascending by min_points.

    Raises:
        ConfigurationError: no tiers are defined
    """
    cached = cache.get(TIER_TABLE_KEY)
    if cached:
        return [Tier(**dict(data, benefits=tuple(data['benefits']))) for data in cached]

    rows = RewardTier.query.order_by(RewardTier.min_points.asc()).all()
    tiers = sort_tiers(Tier.from_model(row) for row in rows)

    cache.set(
        TIER_TABLE_KEY,
        [
            {
                'name': t.name,
                'min_points': t.min_points,
                'multiplier': t.multiplier,
                'color': t.color,
                'benefits': list(t.benefits),
            }
            for t in tiers
        ],
        timeout=current_app.config.get('TIER_CACHE_TIMEOUT', 300),
    )
    return tiers
