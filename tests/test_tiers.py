"""
Tests for tier resolution.

Covers:
- Resolution at, between and above thresholds
- Balances below the lowest threshold
- Bad tier tables and negative balances
- Progress helpers
- Loading the tier table from the database
"""
import pytest
from decimal import Decimal

from rewards.extensions import db
from rewards.models import RewardTier
from rewards.services.tiers import (
    Tier,
    load_tiers,
    resolve_tier,
    points_to_next_tier,
    tier_progress_percent,
)
from rewards.utils.exceptions import ConfigurationError, InvalidInputError


BRONZE = Tier('Bronze', 0, Decimal('1'))
SILVER = Tier('Silver', 5000, Decimal('1.5'))
GOLD = Tier('Gold', 15000, Decimal('2'))
TIERS = [BRONZE, SILVER, GOLD]


class TestResolveTier:
    """Tests for resolve_tier()."""

    @pytest.mark.parametrize('points,expected', [
        (0, 'Bronze'),
        (4999, 'Bronze'),
        (5000, 'Silver'),
        (14999, 'Silver'),
        (15000, 'Gold'),
        (1000000, 'Gold'),
    ])
    def test_threshold_boundaries(self, points, expected):
        assert resolve_tier(points, TIERS).current.name == expected

    def test_next_tier_is_the_one_above(self):
        resolution = resolve_tier(5050, TIERS)
        assert resolution.current == SILVER
        assert resolution.next == GOLD
        assert resolution.is_highest is False

    def test_highest_tier_has_no_next(self):
        resolution = resolve_tier(20000, TIERS)
        assert resolution.next is None
        assert resolution.is_highest is True

    def test_unsorted_table(self):
        assert resolve_tier(6000, [GOLD, BRONZE, SILVER]).current == SILVER

    def test_below_lowest_threshold_lands_in_lowest(self):
        tiers = [Tier('Starter', 100), Tier('Pro', 1000, Decimal('1.25'))]
        resolution = resolve_tier(10, tiers)
        assert resolution.current.name == 'Starter'
        assert resolution.next.name == 'Pro'

    def test_empty_table_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            resolve_tier(100, [])

    def test_duplicate_thresholds_rejected(self):
        with pytest.raises(ConfigurationError):
            resolve_tier(100, [BRONZE, Tier('Copper', 0)])

    def test_negative_points_rejected(self):
        with pytest.raises(InvalidInputError):
            resolve_tier(-1, TIERS)


class TestTierProgress:
    """Tests for points_to_next_tier() and tier_progress_percent()."""

    def test_points_to_next(self):
        assert points_to_next_tier(4900, resolve_tier(4900, TIERS)) == 100

    def test_points_to_next_at_top(self):
        assert points_to_next_tier(20000, resolve_tier(20000, TIERS)) == 0

    def test_progress_within_tier(self):
        # Silver spans 5000..15000
        assert tier_progress_percent(10000, resolve_tier(10000, TIERS)) == 50

    def test_progress_from_baseline(self):
        resolution = resolve_tier(2500, TIERS)
        assert tier_progress_percent(2500, resolution, baseline=BRONZE) == 50

    def test_progress_at_top(self):
        assert tier_progress_percent(20000, resolve_tier(20000, TIERS)) == 100


class TestLoadTiers:
    """Tests for loading the tier table."""

    def test_loads_seeded_tiers(self, app):
        tiers = load_tiers()
        assert [t.name for t in tiers] == ['Bronze', 'Silver', 'Gold']
        assert tiers[1].multiplier == Decimal('1.5')
        assert isinstance(tiers[0].benefits, tuple)

    def test_no_tiers_is_configuration_error(self, app):
        RewardTier.query.delete()
        db.session.commit()

        with pytest.raises(ConfigurationError):
            load_tiers()
