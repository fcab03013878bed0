"""
Shared fixtures for the rewards engine tests.

The app fixture keeps one application context open for the whole test, so
fixtures and tests share a single SQLAlchemy session on an in-memory SQLite
database.
"""
import pytest
from datetime import timedelta
from decimal import Decimal

from rewards import create_app
from rewards.extensions import db
from rewards.models import (
    Account,
    Offer,
    Order,
    RewardsProgramConfig,
    seed_reward_tiers,
)
from rewards.services.discount_scope import CartLine
from rewards.services.program_config import LoyaltyConfig
from rewards.utils.clock import utcnow


@pytest.fixture
def app():
    """Create test application with seeded tiers and program config."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        seed_reward_tiers()
        db.session.add(RewardsProgramConfig(points_per_dollar=Decimal('1')))
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def loyalty_config():
    return LoyaltyConfig(program_enabled=True, points_per_unit=Decimal('1'))


@pytest.fixture
def make_account(app):
    """Factory for accounts with a given balance."""
    def _make(points=0, lifetime=None, user_type='pharmacy', email='buyer@example.com'):
        account = Account(
            email=email,
            first_name='Dana',
            company_name='Main Street Pharmacy',
            user_type=user_type,
            reward_points=points,
            lifetime_reward_points=points if lifetime is None else lifetime,
        )
        db.session.add(account)
        db.session.commit()
        return account
    return _make


@pytest.fixture
def sample_account(make_account):
    """Bronze account just under the Silver threshold."""
    return make_account(points=4900)


@pytest.fixture
def make_offer(app):
    """Factory for offers live right now unless dates are given."""
    def _make(**overrides):
        now = utcnow()
        data = {
            'title': 'Spring Sale',
            'promo_code': 'SPRING10',
            'offer_type': 'flat',
            'discount_value': Decimal('10'),
            'is_active': True,
            'start_date': now - timedelta(days=1),
            'end_date': now + timedelta(days=30),
            'applicable_to': 'all',
        }
        data.update(overrides)
        offer = Offer(**data)
        db.session.add(offer)
        db.session.commit()
        return offer
    return _make


@pytest.fixture
def make_order(app):
    def _make(account, order_number='ORD-1001', total=Decimal('150.00'), status='delivered'):
        order = Order(order_number=order_number, profile_id=account.id, total=total, status=status)
        db.session.add(order)
        db.session.commit()
        return order
    return _make


@pytest.fixture
def mixed_cart():
    """$40 of category A, $10 of category B."""
    return [
        CartLine(product_id='prod-a', unit_price=Decimal('20.00'), quantity=2, category_id='cat-a'),
        CartLine(product_id='prod-b', unit_price=Decimal('10.00'), quantity=1, category_id='cat-b'),
    ]
