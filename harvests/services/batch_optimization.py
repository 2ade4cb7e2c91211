# harvests/services/batch_optimization.py
"""
Delivery Batch Optimization Service

Groups a delivery date's pending orders into delivery batches.

Orders are first grouped by collection point (the lead farmer whose hub
the first item's farm ships through). Each collection point is then
planned independently:

    1. AI path: the chat-completions gateway proposes a plan, which is
       validated against the actual orders before it is trusted.
    2. Geographic fallback: one batch per ZIP, split into target-sized
       chunks when a ZIP exceeds the maximum batch size.

Plans for every collection point are computed before anything is written,
so a failed run leaves no partial batches behind.
"""

import json
import math
import re
from collections import OrderedDict
import requests
from flask import current_app
from sqlalchemy import func
from harvests import db
from harvests.errors import ExternalServiceError
from harvests.models import (
    Order, Profile, MarketConfig, DeliveryBatch, BatchMetadata, BatchStop
)
from harvests.services.notifications import notify_safely
from harvests.utils.formatting import format_profile_address
from harvests.utils.geo import zip_coordinates
from harvests.utils.market import tomorrow

SYSTEM_PROMPT = 'You are a logistics optimization AI. Always respond with valid JSON only.'

_FENCED_JSON_RE = re.compile(r'```json\s*\n([\s\S]*?)\n\s*```')
_FENCED_RE = re.compile(r'```\s*\n([\s\S]*?)\n\s*```')


# --- Loading ---

def _collection_point_for(order):
    """Lead farmer of the first item's farm, or the farmer themselves."""
    if not order.items:
        return None
    product = order.items[0].product
    farm = product.farm if product else None
    if not farm:
        return None
    farmer = farm.farmer
    if farmer and farmer.collection_point_lead_farmer_id:
        return farmer.collection_point_lead_farmer_id
    return farm.farmer_id


def fetch_orders_for_date(delivery_date):
    """Pending, unbatched orders for the date with their delivery location."""
    orders = (
        Order.query
        .filter(
            Order.delivery_date == delivery_date,
            Order.status == 'pending',
            Order.delivery_batch_id.is_(None),
        )
        .order_by(Order.created_at.asc())
        .all()
    )

    located = []
    for order in orders:
        consumer = order.consumer
        located.append({
            'order': order,
            'id': order.id,
            'consumer_id': order.consumer_id,
            'street_address': (consumer.street_address if consumer else None) or '',
            'city': (consumer.city if consumer else None) or '',
            'state': (consumer.state if consumer else None) or '',
            'zip_code': (consumer.zip_code if consumer else None) or '',
            'address': format_profile_address(consumer),
            'collection_point_id': _collection_point_for(order),
        })
    return located


def group_by(orders, key):
    groups = OrderedDict()
    for order in orders:
        groups.setdefault(order[key] or 'unknown', []).append(order)
    return groups


def batch_constraints(zip_codes):
    """Sizing rules from the first active market serving one of the ZIPs."""
    config = current_app.config
    market = (
        MarketConfig.query
        .filter(MarketConfig.active.is_(True), MarketConfig.zip_code.in_(list(zip_codes)))
        .order_by(MarketConfig.created_at.asc())
        .first()
    )
    return {
        'target_size': (market.target_batch_size if market else None) or config['DEFAULT_TARGET_BATCH_SIZE'],
        'min_size': (market.min_batch_size if market else None) or config['DEFAULT_MIN_BATCH_SIZE'],
        'max_size': (market.max_batch_size if market else None) or config['DEFAULT_MAX_BATCH_SIZE'],
        'max_route_hours': (market.max_route_hours if market else None) or config['DEFAULT_MAX_ROUTE_HOURS'],
    }


# --- AI path ---

def build_prompt(orders, orders_by_zip, collection_point_address, delivery_date, constraints):
    limit = current_app.config['AI_PROMPT_ORDER_LIMIT']
    zip_lines = '\n'.join(f"- ZIP {zip_code}: {len(group)} orders" for zip_code, group in orders_by_zip.items())
    order_lines = '\n'.join(
        f"Order {o['id']}: {o['street_address']}, {o['city']} {o['zip_code']}" for o in orders[:limit]
    )
    return f"""You are a logistics optimization AI. Given the following delivery data:

COLLECTION POINT: {collection_point_address}
DELIVERY DATE: {delivery_date.isoformat()}

ZIP CODE DATA:
{zip_lines}

ORDER LOCATIONS:
{order_lines}

CONSTRAINTS:
1. Target batch size: {constraints['target_size']} orders (can range {constraints['min_size']}-{constraints['max_size']})
2. Max round trip time from collection point: {constraints['max_route_hours']} hours
3. Prioritize geographic proximity over strict ZIP boundaries
4. Minimize number of batches
5. Flag any batches <{constraints['min_size']} orders as "subsidized"

OUTPUT FORMAT (JSON):
{{
  "batches": [
    {{
      "batch_id": 1,
      "order_ids": ["order-uuid-1", "order-uuid-2"],
      "zip_codes": ["10001"],
      "estimated_center": {{"lat": 40.75, "lng": -73.99}},
      "rationale": "Single ZIP with optimal size",
      "is_subsidized": false
    }}
  ],
  "total_orders": {len(orders)},
  "total_batches": 2,
  "subsidized_count": 0
}}

Optimize the batching strategy and return ONLY valid JSON."""


def extract_json(content):
    """Pulls the JSON document out of a model reply (fenced or bare)."""
    match = _FENCED_JSON_RE.search(content) or _FENCED_RE.search(content)
    return json.loads(match.group(1) if match else content)


def request_ai_plan(prompt):
    """
    Calls the AI gateway. Returns the parsed plan dict, or None on any
    failure (missing key, HTTP error, unparseable reply).
    """
    config = current_app.config
    api_key = config.get('AI_GATEWAY_API_KEY')
    if not api_key:
        current_app.logger.info("No AI gateway key configured - skipping AI optimization")
        return None

    try:
        response = requests.post(
            config['AI_GATEWAY_URL'],
            headers={
                'Authorization': f"Bearer {api_key}",
                'Content-Type': 'application/json',
            },
            json={
                'model': config['AI_MODEL'],
                'messages': [
                    {'role': 'system', 'content': SYSTEM_PROMPT},
                    {'role': 'user', 'content': prompt},
                ],
            },
            timeout=config['AI_TIMEOUT_SECONDS'],
        )
    except requests.exceptions.RequestException as e:
        current_app.logger.warning(f"AI optimization request failed: {str(e)}")
        return None

    if not response.ok:
        if response.status_code == 429:
            current_app.logger.warning("AI rate limit exceeded (429)")
        elif response.status_code == 402:
            current_app.logger.warning("AI credits exhausted (402)")
        else:
            current_app.logger.error(f"AI optimization failed with status {response.status_code}")
        return None

    try:
        content = response.json()['choices'][0]['message']['content']
        plan = extract_json(content)
    except (ValueError, KeyError, IndexError, TypeError) as e:
        current_app.logger.warning(f"AI optimization reply could not be parsed: {str(e)}")
        return None

    return plan


def validate_plan(plan, orders, min_size):
    """
    Checks an AI plan against the real orders.

    Every order must appear in exactly one non-empty batch and no unknown ids
    may appear. Returns the normalized batch list, or None if invalid.
    """
    if not isinstance(plan, dict) or not isinstance(plan.get('batches'), list) or not plan['batches']:
        return None

    by_id = {o['id']: o for o in orders}
    seen = set()
    batches = []

    for raw in plan['batches']:
        if not isinstance(raw, dict):
            return None
        order_ids = raw.get('order_ids')
        if not isinstance(order_ids, list) or not order_ids:
            return None
        for order_id in order_ids:
            if not isinstance(order_id, str) or order_id not in by_id or order_id in seen:
                return None
            seen.add(order_id)

        zip_codes = sorted({by_id[order_id]['zip_code'] or 'unknown' for order_id in order_ids})
        center = raw.get('estimated_center')
        if not isinstance(center, dict):
            center = _estimated_center(zip_codes)

        batches.append({
            'order_ids': list(order_ids),
            'zip_codes': zip_codes,
            'estimated_center': center,
            'rationale': str(raw.get('rationale') or 'AI optimized batch'),
            'is_subsidized': len(order_ids) < min_size,
            'estimated_route_hours': raw.get('estimated_route_hours'),
        })

    if seen != set(by_id):
        return None
    return batches


# --- Fallback ---

def _estimated_center(zip_codes):
    points = [zip_coordinates(z) for z in zip_codes]
    points = [p for p in points if p]
    if not points:
        return {'lat': 0, 'lng': 0}
    return {
        'lat': round(sum(p[0] for p in points) / len(points), 4),
        'lng': round(sum(p[1] for p in points) / len(points), 4),
    }


def fallback_geographic_batching(orders_by_zip, target_size, min_size, max_size):
    """One batch per ZIP; ZIPs above max_size are split into target-sized chunks."""
    batches = []
    for zip_code, group in orders_by_zip.items():
        center = _estimated_center([zip_code])
        if len(group) <= max_size:
            batches.append({
                'order_ids': [o['id'] for o in group],
                'zip_codes': [zip_code],
                'estimated_center': center,
                'rationale': f"Single ZIP batch with {len(group)} orders",
                'is_subsidized': len(group) < min_size,
                'estimated_route_hours': None,
            })
            continue

        chunk_count = math.ceil(len(group) / target_size)
        for i in range(chunk_count):
            chunk = group[i * target_size:(i + 1) * target_size]
            batches.append({
                'order_ids': [o['id'] for o in chunk],
                'zip_codes': [zip_code],
                'estimated_center': center,
                'rationale': f"ZIP split batch {i + 1}/{chunk_count}",
                'is_subsidized': len(chunk) < min_size,
                'estimated_route_hours': None,
            })
    return batches


# --- Planning & saving ---

def plan_collection_point(collection_point_id, orders, delivery_date):
    lead_farmer = db.session.get(Profile, collection_point_id)
    address = (lead_farmer.collection_point_address if lead_farmer else None) or 'Unknown'

    orders_by_zip = group_by(orders, 'zip_code')
    constraints = batch_constraints(orders_by_zip.keys())

    method = 'geographic_fallback'
    batches = None
    plan = request_ai_plan(build_prompt(orders, orders_by_zip, address, delivery_date, constraints))
    if plan is not None:
        batches = validate_plan(plan, orders, constraints['min_size'])
        if batches is None:
            current_app.logger.warning(f"AI plan for collection point {collection_point_id} was invalid, falling back")
        else:
            method = 'ai'
            current_app.logger.info(f"AI optimization successful: {len(batches)} batches")

    if batches is None:
        current_app.logger.info(f"Using fallback geographic batching for {collection_point_id}")
        batches = fallback_geographic_batching(
            orders_by_zip, constraints['target_size'], constraints['min_size'], constraints['max_size']
        )

    return {
        'collection_point_id': collection_point_id,
        'collection_point_address': address,
        'method': method,
        'batches': batches,
    }


def next_batch_number(delivery_date):
    current = (
        db.session.query(func.max(DeliveryBatch.batch_number))
        .filter(DeliveryBatch.delivery_date == delivery_date)
        .scalar()
    )
    return (current or 0) + 1


def save_plan(cp_plan, orders_by_id, delivery_date, batch_number):
    """Writes batches, metadata, stops and box codes. Does not commit."""
    saved = []
    for planned in cp_plan['batches']:
        route_hours = planned.get('estimated_route_hours')
        if not isinstance(route_hours, (int, float)) or isinstance(route_hours, bool):
            route_hours = None

        batch = DeliveryBatch(
            lead_farmer_id=cp_plan['collection_point_id'],
            delivery_date=delivery_date,
            batch_number=batch_number,
            status='pending',
            zip_codes=planned['zip_codes'],
            estimated_duration_minutes=int(route_hours * 60) if route_hours else None,
        )
        db.session.add(batch)
        db.session.flush()
        batch_number += 1

        db.session.add(BatchMetadata(
            delivery_batch_id=batch.id,
            collection_point_id=cp_plan['collection_point_id'],
            collection_point_address=cp_plan['collection_point_address'],
            original_zip_codes=planned['zip_codes'],
            merged_zips=planned['zip_codes'] if len(planned['zip_codes']) > 1 else None,
            order_count=len(planned['order_ids']),
            is_subsidized=planned['is_subsidized'],
            ai_optimization_data={
                'rationale': planned['rationale'],
                'estimated_center': planned['estimated_center'],
            },
            estimated_route_hours=route_hours,
        ))

        for i, order_id in enumerate(planned['order_ids']):
            located = orders_by_id[order_id]
            order = located['order']
            order.delivery_batch_id = batch.id
            order.box_code = f"B{batch.batch_number}-{i + 1}"
            order.status = 'confirmed'

            coords = zip_coordinates(located['zip_code'])
            db.session.add(BatchStop(
                delivery_batch_id=batch.id,
                order_id=order.id,
                address=located['address'] or 'Address not provided',
                sequence_number=i + 1,
                status='pending',
                latitude=coords[0] if coords else None,
                longitude=coords[1] if coords else None,
            ))

        saved.append({
            'id': batch.id,
            'batch_number': batch.batch_number,
            'collection_point_id': cp_plan['collection_point_id'],
            'collection_point_address': cp_plan['collection_point_address'],
            'zip_codes': planned['zip_codes'],
            'order_count': len(planned['order_ids']),
            'is_subsidized': planned['is_subsidized'],
            'rationale': planned['rationale'],
        })
        current_app.logger.info(f"Created batch {batch.batch_number} with {len(planned['order_ids'])} orders")

    return saved, batch_number


def _notify_batches(saved, orders_by_id, delivery_date):
    for batch in saved:
        notify_safely('batch_assigned_farmer', recipient_id=batch['collection_point_id'], data={
            'batch_number': batch['batch_number'],
            'delivery_date': delivery_date.isoformat(),
            'order_count': batch['order_count'],
        })

    for located in orders_by_id.values():
        order = located['order']
        if order.delivery_batch_id:
            notify_safely('order_locked', recipient_id=order.consumer_id, data={
                'order_id': order.id,
                'delivery_date': delivery_date.isoformat(),
                'box_code': order.box_code,
            })


def optimize_batches(delivery_date=None, force_ai=False, now=None):
    """
    Builds delivery batches for a date (default: tomorrow).

    Args:
        delivery_date (date): Target delivery date
        force_ai (bool): Fail instead of falling back when any collection
            point cannot be planned by the AI gateway

    Raises:
        ExternalServiceError: force_ai was set and the AI plan was unavailable

    Returns:
        dict: Summary with optimization_method and the created batches
    """
    delivery_date = delivery_date or tomorrow(now)
    current_app.logger.info(f"Starting batch optimization for {delivery_date.isoformat()}")

    orders = fetch_orders_for_date(delivery_date)
    if not orders:
        return {
            "success": True,
            "delivery_date": delivery_date.isoformat(),
            "batches_created": 0,
            "total_orders": 0,
            "optimization_method": 'geographic_fallback',
            "batches": [],
        }

    by_collection_point = group_by(orders, 'collection_point_id')
    current_app.logger.info(f"Found {len(by_collection_point)} collection points")

    plans = []
    for collection_point_id, cp_orders in by_collection_point.items():
        if collection_point_id == 'unknown':
            current_app.logger.warning(f"Skipping {len(cp_orders)} orders with unknown collection point")
            continue
        plans.append(plan_collection_point(collection_point_id, cp_orders, delivery_date))

    fallback_points = [p['collection_point_id'] for p in plans if p['method'] != 'ai']
    if force_ai and fallback_points:
        raise ExternalServiceError(
            "AI optimization unavailable for one or more collection points",
            details={"collection_point_ids": fallback_points}
        )

    orders_by_id = {o['id']: o for o in orders}
    all_batches = []
    try:
        batch_number = next_batch_number(delivery_date)
        for cp_plan in plans:
            saved, batch_number = save_plan(cp_plan, orders_by_id, delivery_date, batch_number)
            all_batches.extend(saved)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    _notify_batches(all_batches, orders_by_id, delivery_date)

    method = 'ai' if plans and not fallback_points else 'geographic_fallback'
    result = {
        "success": True,
        "delivery_date": delivery_date.isoformat(),
        "batches_created": len(all_batches),
        "total_orders": len(orders),
        "optimization_method": method,
        "batches": all_batches,
    }
    if method != 'ai':
        if not current_app.config.get('AI_GATEWAY_API_KEY'):
            result["fallback_reason"] = 'ai_not_configured'
        elif not plans:
            result["fallback_reason"] = 'no_collection_points'
        else:
            result["fallback_reason"] = 'ai_unavailable'

    current_app.logger.info(
        f"Batch optimization complete: {len(all_batches)} batches, {len(orders)} orders, method {method}"
    )
    return result
