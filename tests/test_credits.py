from datetime import datetime, timedelta

import pytest
import stripe

from harvests import db
from harvests.models import CreditLedgerEntry, Subscription, AdminAuditLog
from harvests.services.credits import add_ledger_entry, expire_credits, get_credit_balance
from harvests.services.subscriptions import record_subscription_spend
from conftest import make_profile, auth_headers, FakeStripeObject


def test_ledger_balance_follows_latest_entry(app):
    consumer = make_profile()
    add_ledger_entry(consumer.id, 'bonus', 10.0)
    add_ledger_entry(consumer.id, 'redeemed', -3.5)
    db.session.commit()

    assert get_credit_balance(consumer.id) == 6.5


def test_balance_never_goes_negative(app):
    consumer = make_profile()
    add_ledger_entry(consumer.id, 'bonus', 2.0)
    entry = add_ledger_entry(consumer.id, 'redeemed', -5.0)
    assert entry.balance_after == 0.0


def test_expired_grants_are_capped_at_balance(app):
    consumer = make_profile()
    now = datetime.utcnow()
    add_ledger_entry(consumer.id, 'earned', 10.0, expires_at=now - timedelta(days=1))
    add_ledger_entry(consumer.id, 'redeemed', -7.0)
    db.session.commit()

    expired = expire_credits(consumer.id, now)
    db.session.commit()

    assert expired == 3.0
    assert get_credit_balance(consumer.id) == 0.0
    assert expire_credits(consumer.id, now) == 0.0


def test_subscription_spend_earns_credit_per_threshold(app):
    consumer = make_profile()
    db.session.add(Subscription(consumer_id=consumer.id, status='active', monthly_spend=0.0, credits_earned=0.0))
    db.session.commit()
    now = datetime(2026, 5, 10, 12, 0)

    assert record_subscription_spend(consumer.id, 60.0, now=now) == 0.0
    assert record_subscription_spend(consumer.id, 60.0, now=now) == 10.0
    db.session.commit()

    subscription = Subscription.query.filter_by(consumer_id=consumer.id).one()
    assert subscription.monthly_spend == 120.0
    assert subscription.credits_earned == 10.0
    earned = CreditLedgerEntry.query.filter_by(transaction_type='earned').one()
    assert earned.expires_at == now + timedelta(days=30)


def test_subscription_spend_resets_each_month(app):
    consumer = make_profile()
    db.session.add(Subscription(consumer_id=consumer.id, status='active', monthly_spend=95.0,
                                monthly_spend_period='2026-04', credits_earned=0.0))
    db.session.commit()

    earned = record_subscription_spend(consumer.id, 10.0, now=datetime(2026, 5, 1, 8, 0))

    assert earned == 0.0
    assert Subscription.query.filter_by(consumer_id=consumer.id).one().monthly_spend == 10.0


def test_non_subscribers_earn_nothing(app):
    consumer = make_profile()
    assert record_subscription_spend(consumer.id, 500.0) == 0.0


def test_admin_award_credits(client, app):
    admin = make_profile(roles=('admin',))
    consumer = make_profile()

    response = client.post('/api/admin/credits/award', headers=auth_headers(admin), json={
        'consumer_id': consumer.id, 'amount': 15, 'description': 'Sorry about the late box',
        'transaction_type': 'bonus', 'expires_in_days': 60,
    })

    assert response.status_code == 200
    assert response.get_json()['new_balance'] == 15.0
    assert AdminAuditLog.query.filter_by(action_type='award_credits').count() == 1

    summary = client.get('/api/credits', headers=auth_headers(consumer)).get_json()
    assert summary['balance'] == 15.0
    assert summary['entries'][0]['transaction_type'] == 'bonus'


@pytest.mark.parametrize('payload', [
    {'amount': 0, 'description': 'zero'},
    {'amount': 1001, 'description': 'too much'},
    {'amount': 5, 'description': ''},
    {'amount': 5, 'description': 'bad type', 'transaction_type': 'gift'},
    {'amount': 5, 'description': 'bad expiry', 'expires_in_days': 366},
    {'amount': float('nan'), 'description': 'not a number'},
    {'amount': float('inf'), 'description': 'unbounded'},
])
def test_award_credits_validation(client, app, payload):
    admin = make_profile(roles=('admin',))
    consumer = make_profile()
    payload = dict(payload, consumer_id=consumer.id)

    response = client.post('/api/admin/credits/award', headers=auth_headers(admin), json=payload)
    assert response.status_code == 400


def test_subscription_status_syncs_from_stripe(client, app, monkeypatch):
    consumer = make_profile()
    period_end = int(datetime(2026, 6, 1).timestamp())
    monkeypatch.setattr(stripe.Customer, 'list',
                        lambda **kw: FakeStripeObject(data=[FakeStripeObject(id='cus_1')]))
    monkeypatch.setattr(stripe.Subscription, 'list', lambda **kw: FakeStripeObject(data=[
        FakeStripeObject(id='sub_old', status='canceled'),
        FakeStripeObject(id='sub_1', status='trialing', current_period_start=None,
                         current_period_end=period_end, trial_end=period_end),
    ]))

    body = client.get('/api/subscription/status', headers=auth_headers(consumer)).get_json()

    assert body['subscribed'] is True
    assert body['is_trialing'] is True
    local = Subscription.query.filter_by(consumer_id=consumer.id).one()
    assert local.stripe_subscription_id == 'sub_1'
    assert local.stripe_customer_id == 'cus_1'


def test_subscription_status_without_customer(client, app, monkeypatch):
    consumer = make_profile()
    monkeypatch.setattr(stripe.Customer, 'list', lambda **kw: FakeStripeObject(data=[]))

    body = client.get('/api/subscription/status', headers=auth_headers(consumer)).get_json()

    assert body['subscribed'] is False
    assert body['progress_to_credit'] == 0


def test_subscription_marked_canceled_when_stripe_has_none(client, app, monkeypatch):
    consumer = make_profile()
    db.session.add(Subscription(consumer_id=consumer.id, status='active', monthly_spend=0.0, credits_earned=0.0))
    db.session.commit()
    monkeypatch.setattr(stripe.Customer, 'list',
                        lambda **kw: FakeStripeObject(data=[FakeStripeObject(id='cus_1')]))
    monkeypatch.setattr(stripe.Subscription, 'list', lambda **kw: FakeStripeObject(data=[]))

    body = client.get('/api/subscription/status', headers=auth_headers(consumer)).get_json()

    assert body['subscribed'] is False
    assert Subscription.query.filter_by(consumer_id=consumer.id).one().status == 'canceled'
