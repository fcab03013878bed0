"""
Tests for cart parsing and discount scope resolution.
"""
import pytest
from decimal import Decimal

from rewards.services.discount_scope import (
    CartLine,
    parse_cart,
    cart_subtotal,
    line_matches,
    scope_subtotal,
)
from rewards.utils.exceptions import InvalidInputError


class TestParseCart:

    def test_storefront_keys(self):
        cart = parse_cart([
            {'productId': 'p1', 'price': 12.5, 'quantity': 2, 'categoryId': 'c1'},
            {'product_id': 'p2', 'unit_price': '3.00'},
        ])

        assert cart[0] == CartLine('p1', Decimal('12.5'), 2, 'c1')
        assert cart[1].quantity == 1
        assert cart[1].category_id is None
        assert cart_subtotal(cart) == Decimal('28.00')

    def test_missing_cart_is_empty(self):
        assert parse_cart(None) == []

    @pytest.mark.parametrize('items', [
        'not-a-list',
        [{'price': 1}],
        [{'productId': 'p1', 'price': -1}],
        [{'productId': 'p1', 'price': 1, 'quantity': 0}],
        [{'productId': 'p1', 'price': 'abc'}],
        ['p1'],
    ])
    def test_malformed_cart(self, items):
        with pytest.raises(InvalidInputError):
            parse_cart(items)


class TestScope:

    def test_unrestricted_scope_covers_everything(self, mixed_cart):
        assert scope_subtotal(mixed_cart, 'all', []) == Decimal('50.00')
        assert scope_subtotal(mixed_cart, 'user_group', []) == Decimal('50.00')

    def test_category_scope(self, mixed_cart):
        assert scope_subtotal(mixed_cart, 'category', ['cat-a']) == Decimal('40.00')

    def test_product_scope(self, mixed_cart):
        assert scope_subtotal(mixed_cart, 'product', ['prod-b']) == Decimal('10.00')

    def test_no_match_is_zero(self, mixed_cart):
        assert scope_subtotal(mixed_cart, 'product', ['prod-z']) == Decimal('0')

    def test_empty_ids_match_nothing(self, mixed_cart):
        assert scope_subtotal(mixed_cart, 'category', []) == Decimal('0')

    def test_line_without_category(self):
        line = CartLine('p1', Decimal('5'))
        assert line_matches(line, 'category', ['cat-a']) is False
        assert line_matches(line, 'all', None) is True
