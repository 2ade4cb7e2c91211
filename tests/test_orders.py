from datetime import date, timedelta

import stripe

from harvests import db
from harvests.models import (
    Order, Payout, PaymentIntentRecord, Product, CreditLedgerEntry, DeliveryBatch, Dispute
)
from harvests.services.credits import get_credit_balance
from conftest import make_profile, make_farm, make_product, make_order, auth_headers, FakeStripeObject


def _order(**fields):
    consumer = make_profile()
    product = make_product(make_farm(make_profile(roles=('farmer',))), quantity=10)
    order = make_order(consumer, product, quantity=2, **fields)
    return consumer, product, order


def test_order_history_is_scoped_to_consumer(client, app):
    consumer, _, order = _order()
    make_order(make_profile(), make_product(make_farm(make_profile(roles=('farmer',)), farm_name='B')))

    body = client.get('/api/orders', headers=auth_headers(consumer)).get_json()

    assert [o['id'] for o in body['data']['orders']] == [order.id]
    assert body['data']['orders'][0]['items'][0]['quantity'] == 2


def test_order_detail_hidden_from_other_consumers(client, app):
    _, _, order = _order()
    stranger = make_profile()
    assert client.get(f'/api/orders/{order.id}', headers=auth_headers(stranger)).status_code == 403


def test_order_detail_includes_tracking_stage(client, app):
    consumer, _, order = _order()
    body = client.get(f'/api/orders/{order.id}', headers=auth_headers(consumer)).get_json()
    assert body['order']['tracking_stage'] == 'ordered'


def test_cancel_restores_inventory_and_refunds_credits(client, app):
    consumer, product, order = _order(credits_used=4.0)
    db.session.add(Payout(order_id=order.id, recipient_type='platform_fee', amount=2.0))
    db.session.commit()
    order_id = order.id

    response = client.post(f'/api/orders/{order_id}/cancel', headers=auth_headers(consumer))

    assert response.status_code == 200
    assert db.session.get(Order, order_id) is None
    assert Payout.query.filter_by(order_id=order_id).count() == 0
    assert db.session.get(Product, product.id).available_quantity == 12
    refund = CreditLedgerEntry.query.filter_by(transaction_type='refund').one()
    assert refund.amount == 4.0
    assert get_credit_balance(consumer.id) == 4.0


def test_cancel_voids_unconfirmed_payment(client, app, monkeypatch):
    consumer, _, order = _order()
    db.session.add(PaymentIntentRecord(order_id=order.id, consumer_id=consumer.id,
                                       stripe_payment_intent_id='pi_void', amount=27.5,
                                       status='requires_payment_method'))
    db.session.commit()
    cancelled = []
    monkeypatch.setattr(stripe.PaymentIntent, 'cancel',
                        lambda intent_id, **kw: cancelled.append(intent_id) or FakeStripeObject(id=intent_id))

    response = client.post(f'/api/orders/{order.id}/cancel', headers=auth_headers(consumer))

    assert response.status_code == 200
    assert cancelled == ['pi_void']
    record = PaymentIntentRecord.query.filter_by(stripe_payment_intent_id='pi_void').one()
    assert record.order_id is None
    assert record.status == 'canceled'


def test_cancel_refunds_captured_payment(client, app, monkeypatch):
    consumer, _, order = _order(payment_status='paid')
    db.session.add(PaymentIntentRecord(order_id=order.id, consumer_id=consumer.id,
                                       stripe_payment_intent_id='pi_paid', amount=27.5, status='succeeded'))
    db.session.commit()
    refunds = []
    monkeypatch.setattr(stripe.Refund, 'create', lambda **kw: refunds.append(kw) or FakeStripeObject(id='re_1'))

    response = client.post(f'/api/orders/{order.id}/cancel', headers=auth_headers(consumer))

    assert response.status_code == 200
    assert refunds == [{'payment_intent': 'pi_paid'}]


def test_cancel_inside_window_is_too_late(client, app):
    consumer, _, order = _order(delivery_date=date.today() + timedelta(days=1))

    response = client.post(f'/api/orders/{order.id}/cancel', headers=auth_headers(consumer))

    assert response.status_code == 400
    assert response.get_json()['error'] == 'TOO_LATE_TO_CANCEL'


def test_cancel_requires_pending_status(client, app):
    consumer, _, order = _order(status='confirmed')

    response = client.post(f'/api/orders/{order.id}/cancel', headers=auth_headers(consumer))

    assert response.status_code == 400
    assert response.get_json()['error'] == 'INVALID_STATUS'


def test_cancel_unknown_order(client, app):
    consumer = make_profile()
    response = client.post('/api/orders/unknown/cancel', headers=auth_headers(consumer))
    assert response.status_code == 404
    assert response.get_json()['error'] == 'ORDER_NOT_FOUND'


def _delivered_order_with_driver():
    consumer, _, order = _order(status='delivered')
    driver = make_profile(roles=('driver',))
    batch = DeliveryBatch(delivery_date=order.delivery_date, batch_number=1, status='completed',
                          zip_codes=['62701'], driver_id=driver.id)
    db.session.add(batch)
    db.session.flush()
    order.delivery_batch_id = batch.id
    db.session.commit()
    return consumer, order, driver


def test_rate_delivery_once(client, app):
    consumer, order, driver = _delivered_order_with_driver()
    headers = auth_headers(consumer)

    first = client.post(f'/api/orders/{order.id}/rating', headers=headers, json={'rating': 5, 'feedback': 'Great'})
    second = client.post(f'/api/orders/{order.id}/rating', headers=headers, json={'rating': 4})

    assert first.status_code == 200
    assert second.status_code == 409

    summary = client.get(f'/api/drivers/{driver.id}/rating').get_json()
    assert summary['average_rating'] == 5.0
    assert summary['review_count'] == 1
    assert summary['display']['show'] is False


def test_rating_must_be_one_to_five(client, app):
    consumer, order, _ = _delivered_order_with_driver()
    response = client.post(f'/api/orders/{order.id}/rating', headers=auth_headers(consumer), json={'rating': 6})
    assert response.status_code == 400


def test_dispute_lifecycle(client, app, monkeypatch):
    consumer, _, order = _order(payment_status='paid')
    db.session.add(PaymentIntentRecord(order_id=order.id, consumer_id=consumer.id,
                                       stripe_payment_intent_id='pi_disputed', amount=27.5, status='succeeded'))
    db.session.commit()
    admin = make_profile(roles=('admin',))

    created = client.post(f'/api/orders/{order.id}/disputes', headers=auth_headers(consumer), json={
        'dispute_type': 'missing_items', 'description': 'The eggs were not in the box',
    })
    duplicate = client.post(f'/api/orders/{order.id}/disputes', headers=auth_headers(consumer), json={
        'dispute_type': 'other', 'description': 'Filing this a second time',
    })
    assert created.status_code == 200
    assert duplicate.status_code == 409

    refunds = []
    monkeypatch.setattr(stripe.Refund, 'create', lambda **kw: refunds.append(kw) or FakeStripeObject(id='re_9'))
    dispute_id = created.get_json()['dispute']['id']

    resolved = client.post(f'/api/admin/disputes/{dispute_id}/resolve', headers=auth_headers(admin), json={
        'status': 'resolved', 'resolution': 'Refunded the eggs', 'refund_amount': 6.0,
    })

    assert resolved.status_code == 200
    assert resolved.get_json()['refund_id'] == 're_9'
    assert refunds[0]['amount'] == 600
    assert db.session.get(Dispute, dispute_id).status == 'resolved'

    listed = client.get('/api/admin/disputes?status=resolved', headers=auth_headers(admin)).get_json()
    assert [d['id'] for d in listed['disputes']] == [dispute_id]


def test_cancel_refused_while_dispute_on_file(client, app):
    consumer, product, order = _order()
    db.session.add(Dispute(order_id=order.id, consumer_id=consumer.id, dispute_type='product_quality',
                           description='The lettuce arrived wilted'))
    db.session.commit()
    order_id = order.id

    response = client.post(f'/api/orders/{order_id}/cancel', headers=auth_headers(consumer))

    assert response.status_code == 409
    assert db.session.get(Order, order_id) is not None
    assert Dispute.query.filter_by(order_id=order_id).count() == 1
    assert db.session.get(Product, product.id).available_quantity == 10


def test_resolving_dispute_without_order_is_a_conflict(client, app):
    consumer = make_profile()
    admin = make_profile(roles=('admin',))
    dispute = Dispute(order_id='deleted-order', consumer_id=consumer.id, dispute_type='other',
                      description='Order vanished after filing')
    db.session.add(dispute)
    db.session.commit()

    response = client.post(f'/api/admin/disputes/{dispute.id}/resolve', headers=auth_headers(admin), json={
        'status': 'resolved', 'resolution': 'Refund', 'refund_amount': 5.0,
    })

    assert response.status_code == 409
    assert db.session.get(Dispute, dispute.id).status == 'open'
