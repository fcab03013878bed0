"""
Tests for promo code validation and discount calculation.

Covers:
- Each validation gate and its message
- Gate ordering
- Percentage, flat and free-shipping discounts
- Apportioning a discount across cart lines
- Auto-apply offers and best-offer selection
"""
import pytest
from datetime import timedelta
from decimal import Decimal
from sqlalchemy.exc import IntegrityError

from rewards.extensions import db
from rewards.models import Offer
from rewards.services.discount_scope import CartLine
from rewards.services.promo_service import PromoService, apportion_discount
from rewards.utils.clock import utcnow
from rewards.utils.exceptions import InvalidInputError


def cart_of(total):
    return [CartLine('prod-x', Decimal(str(total)), 1, 'cat-x')]


@pytest.fixture
def service():
    return PromoService()


class TestValidationGates:
    """Every rejection carries its own message."""

    def test_empty_code(self, app, service):
        result = service.validate_promo_code('  ', Decimal('50'), cart_of(50))
        assert result.valid is False
        assert result.message == 'Please enter a promo code'

    def test_unknown_code(self, app, service):
        result = service.validate_promo_code('NOPE', Decimal('50'), cart_of(50))
        assert result.message == 'Invalid promo code'

    def test_code_is_case_insensitive(self, app, service, make_offer):
        make_offer(promo_code='SPRING10')
        result = service.validate_promo_code('spring10', Decimal('50'), cart_of(50))
        assert result.valid is True

    def test_inactive(self, app, service, make_offer):
        make_offer(is_active=False)
        result = service.validate_promo_code('SPRING10', Decimal('50'), cart_of(50))
        assert result.message == 'This promo code is no longer active'

    def test_not_started(self, app, service, make_offer):
        make_offer(start_date=utcnow() + timedelta(days=2))
        result = service.validate_promo_code('SPRING10', Decimal('50'), cart_of(50))
        assert result.message == 'This promo code is not yet active'

    def test_expired(self, app, service, make_offer):
        make_offer(start_date=utcnow() - timedelta(days=10), end_date=utcnow() - timedelta(days=1))
        result = service.validate_promo_code('SPRING10', Decimal('50'), cart_of(50))
        assert result.message == 'This promo code has expired'

    def test_window_bounds_are_inclusive(self, app, service, make_offer):
        end = utcnow() + timedelta(days=1)
        make_offer(end_date=end)

        on_last_moment = service.validate_promo_code('SPRING10', Decimal('50'), cart_of(50), now=end)
        just_after = service.validate_promo_code(
            'SPRING10', Decimal('50'), cart_of(50), now=end + timedelta(seconds=1)
        )

        assert on_last_moment.valid is True
        assert just_after.message == 'This promo code has expired'

    def test_usage_limit_reached(self, app, service, make_offer):
        """Exhausted offers fail even when everything else qualifies."""
        make_offer(usage_limit=1, used_count=1)
        result = service.validate_promo_code('SPRING10', Decimal('500'), cart_of(500))
        assert result.valid is False
        assert result.message == 'This promo code has reached its usage limit'

    def test_usage_limit_zero(self, app, service, make_offer):
        make_offer(usage_limit=0, used_count=0)
        result = service.validate_promo_code('SPRING10', Decimal('50'), cart_of(50))
        assert result.message == 'This promo code has reached its usage limit'

    def test_minimum_order(self, app, service, make_offer):
        """$10 off with a $20 minimum, $15 cart."""
        make_offer(min_order_amount=Decimal('20'))
        result = service.validate_promo_code('SPRING10', Decimal('15'), cart_of(15))
        assert result.valid is False
        assert result.message == 'Minimum order amount is $20'

    def test_minimum_order_with_cents(self, app, service, make_offer):
        make_offer(min_order_amount=Decimal('20.50'))
        result = service.validate_promo_code('SPRING10', Decimal('15'), cart_of(15))
        assert result.message == 'Minimum order amount is $20.50'

    def test_first_order_only(self, app, service, make_offer, sample_account, make_order):
        make_offer(applicable_to='first_order')
        make_order(sample_account)

        result = service.validate_promo_code('SPRING10', Decimal('50'), cart_of(50), user_id=sample_account.id)
        assert result.message == 'This offer is only for first orders'

    def test_first_order_ignores_cancelled(self, app, service, make_offer, sample_account, make_order):
        make_offer(applicable_to='first_order')
        make_order(sample_account, status='cancelled')

        result = service.validate_promo_code('SPRING10', Decimal('50'), cart_of(50), user_id=sample_account.id)
        assert result.valid is True

    def test_first_order_without_user_is_allowed(self, app, service, make_offer):
        make_offer(applicable_to='first_order')
        result = service.validate_promo_code('SPRING10', Decimal('50'), cart_of(50))
        assert result.valid is True

    def test_user_group_mismatch(self, app, service, make_offer):
        make_offer(applicable_to='user_group', user_groups=['hospital'])
        result = service.validate_promo_code('SPRING10', Decimal('50'), cart_of(50), user_type='pharmacy')
        assert result.message == 'This offer is not available for your account type'

    def test_user_group_match(self, app, service, make_offer):
        make_offer(applicable_to='user_group', user_groups=['hospital', 'pharmacy'])
        result = service.validate_promo_code('SPRING10', Decimal('50'), cart_of(50), user_type='pharmacy')
        assert result.valid is True

    def test_not_applicable_to_cart(self, app, service, make_offer, mixed_cart):
        make_offer(applicable_to='product', applicable_ids=['prod-z'])
        result = service.validate_promo_code('SPRING10', Decimal('50'), mixed_cart)
        assert result.message == 'This offer is not applicable to items in your cart'

    def test_gate_order(self, app, service, make_offer):
        """Expired is reported before the usage limit and the minimum."""
        make_offer(
            end_date=utcnow() - timedelta(hours=1),
            start_date=utcnow() - timedelta(days=5),
            usage_limit=1,
            used_count=1,
            min_order_amount=Decimal('100'),
        )
        result = service.validate_promo_code('SPRING10', Decimal('15'), cart_of(15))
        assert result.message == 'This promo code has expired'

    def test_negative_total_raises(self, app, service, make_offer):
        make_offer()
        with pytest.raises(InvalidInputError):
            service.validate_promo_code('SPRING10', Decimal('-1'), cart_of(1))

    def test_validation_does_not_touch_counters(self, app, service, make_offer):
        offer = make_offer(usage_limit=5)
        service.validate_promo_code('SPRING10', Decimal('50'), cart_of(50))
        assert db.session.get(Offer, offer.id).used_count == 0


class TestDiscountCalculation:

    def test_flat(self, app, service, make_offer):
        make_offer(title='Spring Sale')
        result = service.validate_promo_code('SPRING10', Decimal('50'), cart_of(50))

        assert result.calculated_discount == Decimal('10.00')
        assert result.scope_amount == Decimal('50')
        assert result.message == 'Spring Sale applied! You save $10.00'

    def test_flat_capped_at_scope(self, app, service, make_offer):
        make_offer(discount_value=Decimal('25'))
        result = service.validate_promo_code('SPRING10', Decimal('15'), cart_of(15))
        assert result.calculated_discount == Decimal('15.00')

    def test_percentage_capped_category_scope(self, app, service, make_offer, mixed_cart):
        """20% of the $40 category-A subtotal is $8, capped at $5."""
        make_offer(
            promo_code='CATA20',
            offer_type='percentage',
            discount_value=Decimal('20'),
            max_discount_amount=Decimal('5'),
            applicable_to='category',
            applicable_ids=['cat-a'],
        )
        result = service.validate_promo_code('CATA20', Decimal('50'), mixed_cart)

        assert result.valid is True
        assert result.scope_amount == Decimal('40.00')
        assert result.calculated_discount == Decimal('5.00')
        assert result.max_discount == Decimal('5')

    def test_percentage_rounds_half_up(self, app, service, make_offer):
        make_offer(offer_type='percentage', discount_value=Decimal('15'))
        # 15% of 10.10 = 1.515
        result = service.validate_promo_code('SPRING10', Decimal('10.10'), cart_of('10.10'))
        assert result.calculated_discount == Decimal('1.52')

    def test_free_shipping(self, app, service, make_offer):
        make_offer(title='Ship Free', offer_type='free_shipping', discount_value=Decimal('0'))
        result = service.validate_promo_code('SPRING10', Decimal('50'), cart_of(50))

        assert result.valid is True
        assert result.free_shipping is True
        assert result.calculated_discount == Decimal('0.00')
        assert result.message == 'Ship Free applied! Free shipping on this order'

    def test_order_total_beyond_cart_only_gates_minimum(self, app, service, make_offer):
        """Shipping or tax in the order total is never discounted."""
        make_offer(min_order_amount=Decimal('40'))
        cart = cart_of(5)

        result = service.validate_promo_code('SPRING10', Decimal('50'), cart)
        split = service.apportion(cart, result)

        assert result.valid is True
        assert result.scope_amount == Decimal('5.00')
        assert result.calculated_discount == Decimal('5.00')
        assert split == {'prod-x': Decimal('5.00')}

    def test_empty_cart_has_nothing_to_discount(self, app, service, make_offer):
        make_offer()

        result = service.validate_promo_code('SPRING10', Decimal('50'), [])

        assert result.valid is True
        assert result.calculated_discount == Decimal('0.00')
        assert sum(service.apportion([], result).values(), Decimal('0')) == result.calculated_discount

    def test_percentage_of_cart_not_order_total(self, app, service, make_offer, mixed_cart):
        make_offer(offer_type='percentage', discount_value=Decimal('10'))

        result = service.validate_promo_code('SPRING10', Decimal('65'), mixed_cart)
        split = service.apportion(mixed_cart, result)

        assert result.calculated_discount == Decimal('5.00')
        assert sum(split.values()) == Decimal('5.00')


class TestApportionDiscount:

    def test_sole_matching_line_takes_everything(self, app, make_offer, mixed_cart):
        offer = make_offer(applicable_to='category', applicable_ids=['cat-a'])

        split = apportion_discount(mixed_cart, offer, Decimal('5.00'))

        assert split == {'prod-a': Decimal('5.00'), 'prod-b': Decimal('0.00')}

    def test_remainder_goes_to_largest_line(self, app, make_offer):
        offer = make_offer()
        cart = [
            CartLine('p1', Decimal('10.00')),
            CartLine('p2', Decimal('10.00')),
            CartLine('p3', Decimal('20.00')),
        ]

        split = apportion_discount(cart, offer, Decimal('10.01'))

        assert split['p1'] == Decimal('2.50')
        assert split['p2'] == Decimal('2.50')
        assert split['p3'] == Decimal('5.01')
        assert sum(split.values()) == Decimal('10.01')

    def test_thirds_sum_exactly(self, app, make_offer):
        offer = make_offer()
        cart = [CartLine(f'p{i}', Decimal('3.33')) for i in range(3)]

        split = apportion_discount(cart, offer, Decimal('1.00'))

        assert sum(split.values()) == Decimal('1.00')

    def test_duplicate_products_accumulate(self, app, make_offer):
        offer = make_offer(applicable_to='product', applicable_ids=['p1'])
        cart = [
            CartLine('p1', Decimal('10.00')),
            CartLine('p1', Decimal('30.00')),
            CartLine('p2', Decimal('60.00')),
        ]

        split = apportion_discount(cart, offer, Decimal('8.00'))

        assert split == {'p1': Decimal('8.00'), 'p2': Decimal('0.00')}

    def test_zero_discount(self, app, make_offer, mixed_cart):
        offer = make_offer()
        assert sum(apportion_discount(mixed_cart, offer, Decimal('0')).values()) == 0


class TestOfferDiscovery:

    def test_active_offers_ordered_by_value(self, app, service, make_offer):
        make_offer(promo_code='SMALL', discount_value=Decimal('5'))
        make_offer(promo_code='BIG', discount_value=Decimal('25'))
        make_offer(promo_code='OFF', discount_value=Decimal('50'), is_active=False)

        codes = [offer.promo_code for offer in service.get_active_offers()]

        assert codes == ['BIG', 'SMALL']

    def test_auto_apply_offers(self, app, service, make_offer, mixed_cart):
        make_offer(promo_code=None, title='Auto $5', discount_value=Decimal('5'))
        make_offer(promo_code=None, title='Big spender', discount_value=Decimal('20'), min_order_amount=Decimal('100'))
        make_offer(promo_code='CODED', discount_value=Decimal('15'))

        offers = service.get_auto_apply_offers(Decimal('50'), mixed_cart)

        assert [offer.title for offer in offers] == ['Auto $5']

    def test_best_discount_is_scope_aware(self, app, service, make_offer, mixed_cart):
        flat = make_offer(promo_code=None, title='Flat 6', discount_value=Decimal('6'))
        pct = make_offer(
            promo_code=None,
            title='30% category B',
            offer_type='percentage',
            discount_value=Decimal('30'),
            applicable_to='category',
            applicable_ids=['cat-b'],
        )

        best, discount = service.calculate_best_discount([pct, flat], Decimal('50'), mixed_cart)

        # 30% of the $10 category B subtotal is only $3
        assert best.title == 'Flat 6'
        assert discount == Decimal('6.00')

    def test_display_data(self, app, service, make_offer, mixed_cart):
        offer = make_offer(applicable_to='category', applicable_ids=['cat-a'])

        data = service.prepare_display_data(offer, mixed_cart, {'prod-a': 'Gloves'})

        items = {item['id']: item for item in data['applicable_items']}
        assert items['prod-a']['has_discount'] is True
        assert items['prod-a']['name'] == 'Gloves'
        assert items['prod-b']['has_discount'] is False
        assert items['prod-b']['name'] == 'Product prod-b'


class TestPromoCodeStorage:

    def test_code_upper_cased_on_write(self, app, make_offer):
        offer = make_offer(promo_code='  spring10 ')
        assert db.session.get(Offer, offer.id).promo_code == 'SPRING10'

    def test_codes_differing_in_case_collide(self, app, make_offer):
        make_offer(promo_code='SAVE')
        with pytest.raises(IntegrityError):
            make_offer(promo_code='save')
        db.session.rollback()

    def test_auto_apply_code_stays_null(self, app, make_offer):
        offer = make_offer(promo_code=None)
        assert offer.is_auto_apply is True
