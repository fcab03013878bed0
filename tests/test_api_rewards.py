"""
Tests for the Rewards API endpoints.

Tests cover:
- Tier listing and resolution (/api/rewards/tiers)
- Account summary and history
- Award, adjust and redeem
- Error envelope for bad input and unknown accounts
"""
import pytest

from rewards.extensions import db
from rewards.models import Account, RewardsProgramConfig


def award(client, account_id, order_id='order-1', total=150):
    return client.post('/api/rewards/award', json={
        'account_id': account_id,
        'order_id': order_id,
        'order_number': 'ORD-1001',
        'order_total': total,
    })


class TestTiersApi:

    def test_list_tiers(self, client):
        response = client.get('/api/rewards/tiers')
        assert response.status_code == 200
        data = response.get_json()
        assert data['count'] == 3
        assert [t['name'] for t in data['tiers']] == ['Bronze', 'Silver', 'Gold']

    def test_resolve(self, client):
        response = client.get('/api/rewards/tiers/resolve?points=5050')
        data = response.get_json()
        assert data['current']['name'] == 'Silver'
        assert data['next']['name'] == 'Gold'
        assert data['points_to_next_tier'] == 9950
        assert data['is_highest'] is False

    def test_resolve_missing_points(self, client):
        response = client.get('/api/rewards/tiers/resolve')
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_FIELD'

    def test_resolve_negative_points(self, client):
        response = client.get('/api/rewards/tiers/resolve?points=-5')
        assert response.status_code == 400


class TestAwardApi:

    def test_award(self, client, sample_account):
        response = award(client, sample_account.id)

        assert response.status_code == 200
        data = response.get_json()
        assert data['success'] is True
        assert data['points_earned'] == 150
        assert data['tier_upgrade'] is True
        assert data['new_tier']['name'] == 'Silver'

    def test_award_is_idempotent(self, client, sample_account):
        award(client, sample_account.id)
        response = award(client, sample_account.id)

        data = response.get_json()
        assert data['success'] is False
        assert data['reason'] == 'already_awarded'
        assert db.session.get(Account, sample_account.id).reward_points == 5050

    def test_missing_fields(self, client):
        response = client.post('/api/rewards/award', json={'account_id': 'x'})
        assert response.status_code == 400
        body = response.get_json()
        assert body['error']['code'] == 'MISSING_FIELD'
        assert 'order_id' in body['error']['message']

    def test_unknown_account(self, client):
        response = award(client, 'missing')
        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'NOT_FOUND'

    def test_negative_total(self, client, sample_account):
        response = award(client, sample_account.id, total=-10)
        assert response.status_code == 400

    def test_program_disabled(self, client, sample_account):
        RewardsProgramConfig.query.first().program_enabled = False
        db.session.commit()

        data = award(client, sample_account.id).get_json()

        assert data['success'] is False
        assert data['reason'] == 'program_disabled'

    def test_program_not_configured(self, client, sample_account):
        RewardsProgramConfig.query.delete()
        db.session.commit()

        response = award(client, sample_account.id)

        assert response.status_code == 500
        assert response.get_json()['error']['code'] == 'CONFIGURATION_ERROR'


class TestAdjustApi:

    def test_adjust(self, client, sample_account):
        award(client, sample_account.id)

        response = client.post('/api/rewards/adjust', json={
            'account_id': sample_account.id,
            'order_id': 'order-1',
            'order_number': 'ORD-1001',
            'old_total': 150,
            'new_total': 100,
        })

        data = response.get_json()
        assert data['points_adjusted'] == -50
        assert data['new_balance'] == 5000

    def test_adjust_without_award(self, client, sample_account):
        response = client.post('/api/rewards/adjust', json={
            'account_id': sample_account.id,
            'order_id': 'order-9',
            'order_number': 'ORD-9',
            'old_total': 150,
            'new_total': 100,
        })

        data = response.get_json()
        assert data['success'] is False
        assert data['reason'] == 'no_prior_accrual'


class TestRedeemApi:

    def test_redeem(self, client, sample_account):
        response = client.post('/api/rewards/redeem', json={
            'account_id': sample_account.id,
            'points': 400,
        })

        data = response.get_json()
        assert data['success'] is True
        assert data['credit_value'] == 4.0
        assert data['new_balance'] == 4500

    def test_insufficient_points(self, client, sample_account):
        response = client.post('/api/rewards/redeem', json={
            'account_id': sample_account.id,
            'points': 10000,
        })

        assert response.status_code == 422
        assert response.get_json()['error']['code'] == 'INSUFFICIENT_BALANCE'


class TestAccountApi:

    def test_summary(self, client, sample_account):
        data = client.get(f'/api/rewards/accounts/{sample_account.id}').get_json()
        assert data['reward_points'] == 4900
        assert data['tier']['name'] == 'Bronze'

    def test_history(self, client, sample_account):
        award(client, sample_account.id)

        data = client.get(f'/api/rewards/accounts/{sample_account.id}/history').get_json()

        assert data['count'] == 1
        assert data['transactions'][0]['kind'] == 'earn'

    def test_order_history(self, client, sample_account):
        award(client, sample_account.id)

        data = client.get('/api/rewards/orders/order-1/history').get_json()

        assert data['eligible_for_adjustment'] is True
        assert len(data['transactions']) == 1

    def test_unknown_account(self, client):
        response = client.get('/api/rewards/accounts/missing')
        assert response.status_code == 404

    def test_preview(self, client, sample_account):
        response = client.post('/api/rewards/preview', json={
            'account_id': sample_account.id,
            'order_total': 99.99,
        })
        assert response.get_json()['points'] == 99


class TestHealth:

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'healthy'
