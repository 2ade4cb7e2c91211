import pytest

from harvests import db
from harvests.models import DeliveryBatch, BatchStop, Order, Payout
from harvests.utils.market import tomorrow
from conftest import make_profile, make_farm, make_product, make_order, auth_headers


@pytest.fixture
def open_batch(app):
    product = make_product(make_farm(make_profile(roles=('farmer',))))
    batch = DeliveryBatch(delivery_date=tomorrow(), batch_number=1, zip_codes=['62701'], status='pending')
    db.session.add(batch)
    db.session.flush()

    for sequence_number in (1, 2):
        order = make_order(make_profile(), product, delivery_date=batch.delivery_date,
                           status='confirmed', tip_amount=2.0, delivery_batch_id=batch.id,
                           box_code=f"B1-{sequence_number}")
        db.session.add(BatchStop(delivery_batch_id=batch.id, order_id=order.id,
                                 address='1 Main St, Springfield, IL 62701',
                                 sequence_number=sequence_number, status='pending'))
    db.session.commit()
    return batch


def _claim(client, batch, driver):
    return client.post(f"/api/driver/routes/{batch.id}/claim", headers=auth_headers(driver))


def test_available_routes(client, open_batch):
    driver = make_profile(roles=('driver',))

    body = client.get('/api/driver/routes/available', headers=auth_headers(driver)).get_json()

    route = body['routes'][0]
    assert route['id'] == open_batch.id
    assert route['stop_count'] == 2
    assert route['estimated_payout'] == 19.0


def test_claim_creates_driver_payouts(client, open_batch):
    driver = make_profile(roles=('driver',))

    response = _claim(client, open_batch, driver)

    assert response.status_code == 200
    assert response.get_json()['batch']['status'] == 'assigned'
    payouts = Payout.query.filter_by(recipient_id=driver.id, recipient_type='driver').all()
    assert sorted(p.amount for p in payouts) == [9.5, 9.5]

    other = make_profile(roles=('driver',))
    body = client.get('/api/driver/routes/available', headers=auth_headers(other)).get_json()
    assert body['routes'] == []


def test_second_claim_conflicts(client, open_batch):
    first = make_profile(roles=('driver',))
    second = make_profile(roles=('driver',))

    assert _claim(client, open_batch, first).status_code == 200
    response = _claim(client, open_batch, second)

    assert response.status_code == 409
    db.session.expire_all()
    assert db.session.get(DeliveryBatch, open_batch.id).driver_id == first.id


def test_claim_requires_driver_role(client, open_batch):
    consumer = make_profile()
    assert _claim(client, open_batch, consumer).status_code == 403


def test_claim_unknown_batch(client, app):
    driver = make_profile(roles=('driver',))
    response = client.post('/api/driver/routes/00000000-0000-0000-0000-000000000000/claim',
                           headers=auth_headers(driver))
    assert response.status_code == 404


def test_stops_visible_only_to_assigned_driver(client, open_batch):
    driver = make_profile(roles=('driver',))
    stranger = make_profile(roles=('driver',))
    _claim(client, open_batch, driver)

    body = client.get(f"/api/driver/routes/{open_batch.id}/stops", headers=auth_headers(driver)).get_json()
    assert [s['box_code'] for s in body['stops']] == ['B1-1', 'B1-2']

    response = client.get(f"/api/driver/routes/{open_batch.id}/stops", headers=auth_headers(stranger))
    assert response.status_code == 403


def test_stop_lifecycle_completes_batch(client, open_batch):
    driver = make_profile(roles=('driver',))
    _claim(client, open_batch, driver)
    first, second = open_batch.stops

    def move(stop, status):
        return client.post(f"/api/driver/stops/{stop.id}/status", headers=auth_headers(driver),
                           json={'status': status})

    response = move(first, 'in_progress')
    assert response.get_json()['batch_status'] == 'in_progress'
    db.session.expire_all()
    assert {o.status for o in Order.query.all()} == {'out_for_delivery'}

    assert move(first, 'lost').status_code == 400
    assert move(second, 'delivered').status_code == 409

    assert move(first, 'delivered').get_json()['batch_status'] == 'in_progress'
    response = move(second, 'failed')
    assert response.get_json()['batch_status'] == 'completed'

    db.session.expire_all()
    assert db.session.get(Order, first.order_id).status == 'delivered'
    assert db.session.get(BatchStop, first.id).delivered_at is not None


def test_stop_update_rejects_other_drivers(client, open_batch):
    driver = make_profile(roles=('driver',))
    stranger = make_profile(roles=('driver',))
    _claim(client, open_batch, driver)

    response = client.post(f"/api/driver/stops/{open_batch.stops[0].id}/status",
                           headers=auth_headers(stranger), json={'status': 'in_progress'})
    assert response.status_code == 403
