import json

import pytest
import requests

from harvests import db
from harvests.models import Order, DeliveryBatch, BatchMetadata, BatchStop
from harvests.services import batch_optimization
from harvests.services.batch_generation import generate_batches
from harvests.services.batch_optimization import (
    optimize_batches, extract_json, validate_plan, fallback_geographic_batching
)
from harvests.utils.market import tomorrow
from conftest import make_profile, make_farm, make_product, make_order, CRON_SECRET

CRON_HEADERS = {'Authorization': f"Bearer {CRON_SECRET}"}


@pytest.fixture
def tomorrows_orders(app):
    lead = make_profile(roles=('lead_farmer',), collection_point_address='100 Hub Rd, Springfield, IL')
    farmer = make_profile(roles=('farmer',), collection_point_lead_farmer_id=lead.id)
    product = make_product(make_farm(farmer))
    delivery_date = tomorrow()

    orders = [
        make_order(make_profile(zip_code='10001'), product, delivery_date=delivery_date),
        make_order(make_profile(zip_code='10001'), product, delivery_date=delivery_date),
        make_order(make_profile(zip_code='10002'), product, delivery_date=delivery_date),
    ]
    return {'lead': lead, 'orders': orders, 'delivery_date': delivery_date}


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload

    def json(self):
        return self._payload


def _ai_reply(plan):
    content = f"Here is the plan:\n```json\n{json.dumps(plan)}\n```"
    return FakeResponse(payload={'choices': [{'message': {'content': content}}]})


def test_fallback_batches_per_zip(tomorrows_orders):
    result = optimize_batches(delivery_date=tomorrows_orders['delivery_date'])

    assert result['optimization_method'] == 'geographic_fallback'
    assert result['fallback_reason'] == 'ai_not_configured'
    assert result['batches_created'] == 2
    assert result['total_orders'] == 3

    first, second, third = [db.session.get(Order, o.id) for o in tomorrows_orders['orders']]
    assert (first.box_code, second.box_code, third.box_code) == ('B1-1', 'B1-2', 'B2-1')
    assert {first.status, second.status, third.status} == {'confirmed'}

    batch = db.session.get(DeliveryBatch, first.delivery_batch_id)
    assert batch.lead_farmer_id == tomorrows_orders['lead'].id
    assert batch.zip_codes == ['10001']
    assert [stop.sequence_number for stop in batch.stops] == [1, 2]
    assert batch.stops[0].latitude == 40.7506
    assert batch.batch_meta.is_subsidized is True
    assert batch.batch_meta.collection_point_address == '100 Hub Rd, Springfield, IL'


def test_no_orders_creates_nothing(app):
    result = optimize_batches()
    assert result['batches_created'] == 0
    assert DeliveryBatch.query.count() == 0


def test_ai_plan_is_used_when_valid(app, tomorrows_orders, monkeypatch):
    app.config['AI_GATEWAY_API_KEY'] = 'gateway-key'
    order_ids = [o.id for o in tomorrows_orders['orders']]
    sent = {}

    def fake_post(url, headers=None, json=None, timeout=None):
        sent['headers'] = headers
        sent['json'] = json
        return _ai_reply({'batches': [{
            'batch_id': 1,
            'order_ids': order_ids,
            'zip_codes': ['10001', '10002'],
            'estimated_center': {'lat': 40.73, 'lng': -73.99},
            'rationale': 'Adjacent ZIPs merged',
            'estimated_route_hours': 2.5,
        }]})

    monkeypatch.setattr(batch_optimization.requests, 'post', fake_post)
    result = optimize_batches(delivery_date=tomorrows_orders['delivery_date'])

    assert result['optimization_method'] == 'ai'
    assert 'fallback_reason' not in result
    assert result['batches_created'] == 1
    assert sent['headers']['Authorization'] == 'Bearer gateway-key'
    assert order_ids[0] in sent['json']['messages'][1]['content']

    meta = BatchMetadata.query.one()
    assert meta.merged_zips == ['10001', '10002']
    assert meta.estimated_route_hours == 2.5
    assert meta.ai_optimization_data['rationale'] == 'Adjacent ZIPs merged'
    assert DeliveryBatch.query.one().estimated_duration_minutes == 150


def test_invalid_ai_plan_falls_back(app, tomorrows_orders, monkeypatch):
    app.config['AI_GATEWAY_API_KEY'] = 'gateway-key'
    partial = {'batches': [{'order_ids': [tomorrows_orders['orders'][0].id]}]}
    monkeypatch.setattr(batch_optimization.requests, 'post', lambda *a, **kw: _ai_reply(partial))

    result = optimize_batches(delivery_date=tomorrows_orders['delivery_date'])

    assert result['optimization_method'] == 'geographic_fallback'
    assert result['fallback_reason'] == 'ai_unavailable'
    assert result['batches_created'] == 2


def test_gateway_timeout_falls_back(app, tomorrows_orders, monkeypatch):
    app.config['AI_GATEWAY_API_KEY'] = 'gateway-key'

    def timeout(*args, **kwargs):
        raise requests.exceptions.Timeout('read timed out')

    monkeypatch.setattr(batch_optimization.requests, 'post', timeout)
    result = optimize_batches(delivery_date=tomorrows_orders['delivery_date'])

    assert result['optimization_method'] == 'geographic_fallback'


def test_force_ai_fails_without_writing(client, app, tomorrows_orders, monkeypatch):
    app.config['AI_GATEWAY_API_KEY'] = 'gateway-key'
    monkeypatch.setattr(batch_optimization.requests, 'post', lambda *a, **kw: FakeResponse(429))

    response = client.post('/api/admin/batches/optimize', headers=CRON_HEADERS, json={
        'delivery_date': tomorrows_orders['delivery_date'].isoformat(),
        'force_ai': True,
    })

    assert response.status_code == 502
    assert response.get_json()['details']['collection_point_ids'] == [tomorrows_orders['lead'].id]
    assert DeliveryBatch.query.count() == 0
    assert Order.query.filter(Order.delivery_batch_id.isnot(None)).count() == 0


def test_optimize_endpoint_validation(client, app):
    response = client.post('/api/admin/batches/optimize', headers=CRON_HEADERS, json={'force_ai': 'yes'})
    assert response.status_code == 400

    response = client.post('/api/admin/batches/optimize', headers=CRON_HEADERS,
                           json={'delivery_date': '06/01/2026'})
    assert response.status_code == 400


def test_batch_numbers_continue_for_the_day(tomorrows_orders):
    optimize_batches(delivery_date=tomorrows_orders['delivery_date'])
    consumer = make_profile(zip_code='10003')
    product = tomorrows_orders['orders'][0].items[0].product
    late = make_order(consumer, product, delivery_date=tomorrows_orders['delivery_date'])

    result = optimize_batches(delivery_date=tomorrows_orders['delivery_date'])

    assert result['batches'][0]['batch_number'] == 3
    assert db.session.get(Order, late.id).box_code == 'B3-1'


def test_extract_json_variants():
    assert extract_json('```json\n{"a": 1}\n```') == {'a': 1}
    assert extract_json('Sure!\n```\n{"a": 2}\n```\nDone') == {'a': 2}
    assert extract_json('{"a": 3}') == {'a': 3}
    with pytest.raises(ValueError):
        extract_json('no json here')


def test_validate_plan_rejects_bad_coverage():
    orders = [{'id': 'o1', 'zip_code': '10001'}, {'id': 'o2', 'zip_code': '10002'}]

    assert validate_plan({'batches': [{'order_ids': ['o1', 'o1', 'o2']}]}, orders, 30) is None
    assert validate_plan({'batches': [{'order_ids': ['o1', 'o3']}]}, orders, 30) is None
    assert validate_plan({'batches': [{'order_ids': ['o1']}]}, orders, 30) is None
    assert validate_plan({'batches': []}, orders, 30) is None
    assert validate_plan(['o1', 'o2'], orders, 30) is None
    assert validate_plan({'batches': [{'order_ids': [['o1'], 'o2']}]}, orders, 30) is None

    batches = validate_plan({'batches': [{'order_ids': ['o2', 'o1']}]}, orders, 2)
    assert batches[0]['zip_codes'] == ['10001', '10002']
    assert batches[0]['is_subsidized'] is False
    assert batches[0]['estimated_center'] == {'lat': 40.7332, 'lng': -73.9918}


def test_fallback_splits_oversized_zip():
    group = [{'id': f"o{i}", 'zip_code': '60601'} for i in range(50)]

    batches = fallback_geographic_batching({'60601': group}, target_size=37, min_size=30, max_size=45)

    assert [len(b['order_ids']) for b in batches] == [37, 13]
    assert [b['is_subsidized'] for b in batches] == [False, True]
    assert batches[1]['rationale'] == 'ZIP split batch 2/2'


def test_generate_batches_one_per_zip(tomorrows_orders):
    result = generate_batches()

    assert result['batches_created'] == 2
    assert result['total_orders_processed'] == 3
    zips = sorted(b['zip_code'] for b in result['batches'])
    assert zips == ['10001', '10002']
    assert BatchStop.query.count() == 3
    assert {o.status for o in Order.query.all()} == {'confirmed'}


def test_generate_batches_endpoint_requires_cron_or_admin(client, tomorrows_orders):
    assert client.post('/api/jobs/generate-batches').status_code == 401

    response = client.post('/api/jobs/generate-batches', headers=CRON_HEADERS)
    assert response.status_code == 200
    assert response.get_json()['batches_created'] == 2
