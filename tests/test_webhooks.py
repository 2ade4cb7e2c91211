from datetime import datetime

import pytest
import stripe

from harvests import db
from harvests.models import (
    Order, PaymentIntentRecord, Payout, Dispute, StripeWebhookEvent, Subscription
)
from harvests.services import stripe_webhooks
from conftest import make_profile, make_farm, make_product, make_order


@pytest.fixture
def paid_order(app):
    consumer = make_profile()
    farmer = make_profile(roles=('farmer',))
    product = make_product(make_farm(farmer), price=10.0)
    order = make_order(consumer, product, quantity=3)
    db.session.add(PaymentIntentRecord(
        order_id=order.id, consumer_id=consumer.id, stripe_payment_intent_id='pi_1',
        amount=order.total_amount, status='requires_confirmation',
    ))
    db.session.add(Payout(order_id=order.id, recipient_id=farmer.id, recipient_type='farmer',
                          amount=25.5, status='pending'))
    db.session.commit()
    return order


def _deliver(client, monkeypatch, event):
    monkeypatch.setattr(stripe.Webhook, 'construct_event', lambda payload, sig, secret: event)
    return client.post('/api/webhooks/stripe', data=b'{}', headers={'Stripe-Signature': 't=1,v1=abc'})


def _event(event_id, event_type, obj):
    return {'id': event_id, 'type': event_type, 'data': {'object': obj}}


def test_missing_signature_is_rejected(client, app):
    response = client.post('/api/webhooks/stripe', data=b'{}')
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Missing signature'


def test_bad_signature_is_rejected(client, app, monkeypatch):
    def reject(payload, sig, secret):
        raise stripe.SignatureVerificationError('bad signature', sig)

    monkeypatch.setattr(stripe.Webhook, 'construct_event', reject)
    response = client.post('/api/webhooks/stripe', data=b'{}', headers={'Stripe-Signature': 'nope'})

    assert response.status_code == 400
    assert StripeWebhookEvent.query.count() == 0


def test_payment_succeeded_marks_order_paid(client, paid_order, monkeypatch):
    response = _deliver(client, monkeypatch, _event('evt_1', 'payment_intent.succeeded', {'id': 'pi_1'}))

    assert response.status_code == 200
    order = db.session.get(Order, paid_order.id)
    assert order.payment_status == 'paid'
    assert order.paid_at is not None
    assert order.credits_awarded is True
    assert PaymentIntentRecord.query.filter_by(stripe_payment_intent_id='pi_1').one().status == 'succeeded'
    assert StripeWebhookEvent.query.filter_by(stripe_event_id='evt_1').count() == 1


def test_duplicate_event_is_skipped(client, paid_order, monkeypatch):
    event = _event('evt_1', 'payment_intent.succeeded', {'id': 'pi_1'})
    _deliver(client, monkeypatch, event)

    response = _deliver(client, monkeypatch, event)

    assert response.status_code == 200
    assert response.get_json() == {'received': True, 'skipped': True}
    assert StripeWebhookEvent.query.count() == 1


def test_handler_failure_leaves_event_unrecorded(client, paid_order, monkeypatch):
    def boom(obj):
        raise RuntimeError('database went away')

    monkeypatch.setitem(stripe_webhooks.EVENT_HANDLERS, 'payment_intent.succeeded', boom)
    response = _deliver(client, monkeypatch, _event('evt_2', 'payment_intent.succeeded', {'id': 'pi_1'}))

    assert response.status_code == 500
    assert StripeWebhookEvent.query.count() == 0


def test_payment_failed_records_message(client, paid_order, monkeypatch):
    intent = {'id': 'pi_1', 'last_payment_error': {'message': 'Your card was declined.'}}
    _deliver(client, monkeypatch, _event('evt_3', 'payment_intent.payment_failed', intent))

    order = db.session.get(Order, paid_order.id)
    assert order.payment_status == 'failed'
    assert order.payment_failure_message == 'Your card was declined.'


def test_intent_metadata_is_used_without_a_record(client, app, monkeypatch):
    consumer = make_profile()
    product = make_product(make_farm(make_profile(roles=('farmer',))))
    order = make_order(consumer, product)

    intent = {'id': 'pi_unknown', 'metadata': {'order_id': order.id}}
    _deliver(client, monkeypatch, _event('evt_4', 'payment_intent.succeeded', intent))

    assert db.session.get(Order, order.id).payment_status == 'paid'


def test_unhandled_event_is_acknowledged(client, app, monkeypatch):
    response = _deliver(client, monkeypatch, _event('evt_5', 'customer.created', {'id': 'cus_1'}))

    assert response.status_code == 200
    assert StripeWebhookEvent.query.filter_by(event_type='customer.created').count() == 1


def test_dispute_holds_payouts(client, paid_order, monkeypatch):
    dispute = {'id': 'dp_1', 'payment_intent': 'pi_1', 'amount': 3750, 'reason': 'fraudulent'}
    response = _deliver(client, monkeypatch, _event('evt_6', 'charge.dispute.created', dispute))

    assert response.status_code == 200
    db.session.expire_all()
    order = db.session.get(Order, paid_order.id)
    assert order.flagged_for_review is True
    assert {p.status for p in Payout.query.filter_by(order_id=order.id)} == {'on_hold'}
    local = Dispute.query.filter_by(stripe_dispute_id='dp_1').one()
    assert local.order_id == order.id
    assert 'fraudulent' in local.description


def test_subscription_deleted_cancels_locally(client, app, monkeypatch):
    consumer = make_profile()
    db.session.add(Subscription(consumer_id=consumer.id, stripe_subscription_id='sub_1', status='active',
                                monthly_spend=0.0, credits_earned=0.0))
    db.session.commit()

    _deliver(client, monkeypatch, _event('evt_7', 'customer.subscription.deleted', {'id': 'sub_1'}))

    assert Subscription.query.filter_by(consumer_id=consumer.id).one().status == 'canceled'


def test_payout_failed_marks_payout(client, paid_order, monkeypatch):
    payout = Payout.query.filter_by(order_id=paid_order.id).one()
    payout.status = 'paid'
    payout.stripe_transfer_id = 'tr_1'
    db.session.commit()

    failed = {'id': 'tr_1', 'failure_message': 'Account closed'}
    _deliver(client, monkeypatch, _event('evt_8', 'payout.failed', failed))

    db.session.expire_all()
    payout = Payout.query.filter_by(order_id=paid_order.id).one()
    assert payout.status == 'failed'
    assert payout.error_message == 'Account closed'


def test_subscription_updated_syncs_status_and_period(client, app, monkeypatch):
    consumer = make_profile()
    db.session.add(Subscription(consumer_id=consumer.id, stripe_subscription_id='sub_2', status='trialing',
                                monthly_spend=0.0, credits_earned=0.0))
    db.session.commit()
    start, end, trial_end = 1780272000, 1782864000, 1780876800

    _deliver(client, monkeypatch, _event('evt_9', 'customer.subscription.updated', {
        'id': 'sub_2', 'status': 'past_due',
        'current_period_start': start, 'current_period_end': end, 'trial_end': trial_end,
    }))

    db.session.expire_all()
    subscription = Subscription.query.filter_by(consumer_id=consumer.id).one()
    assert subscription.status == 'past_due'
    assert subscription.current_period_start == datetime.utcfromtimestamp(start)
    assert subscription.current_period_end == datetime.utcfromtimestamp(end)
    assert subscription.trial_end == datetime.utcfromtimestamp(trial_end)


def test_confirmation_email_sent_after_commit(client, paid_order, monkeypatch):
    sent = []
    monkeypatch.setattr(stripe_webhooks, 'notify_safely', lambda event_type, **kw: sent.append(event_type))

    response = _deliver(client, monkeypatch, _event('evt_10', 'payment_intent.succeeded', {'id': 'pi_1'}))

    assert response.status_code == 200
    assert sent == ['order_confirmation']


def test_no_email_when_event_rolls_back(client, paid_order, monkeypatch):
    sent = []
    monkeypatch.setattr(stripe_webhooks, 'notify_safely', lambda event_type, **kw: sent.append(event_type))

    def succeed_then_fail(obj):
        stripe_webhooks._payment_intent_succeeded(obj)
        raise RuntimeError('database went away')
    monkeypatch.setitem(stripe_webhooks.EVENT_HANDLERS, 'payment_intent.succeeded', succeed_then_fail)

    response = _deliver(client, monkeypatch, _event('evt_11', 'payment_intent.succeeded', {'id': 'pi_1'}))

    assert response.status_code == 500
    assert sent == []
    db.session.expire_all()
    assert db.session.get(Order, paid_order.id).payment_status == 'pending'
