# harvests/services/routes.py
"""
Driver routes: browsing and claiming delivery batches, and working
through their stops.

Stop lifecycle: pending -> in_progress -> delivered | failed. The first
stop started puts the batch in progress and its orders out for delivery;
the batch completes once no stop is pending or in progress.
"""

from datetime import datetime
from flask import current_app
from sqlalchemy import func
from harvests import db
from harvests.errors import NotFoundError, ConflictError, AuthorizationError, ValidationError
from harvests.models import DeliveryBatch, BatchStop, Order, Payout
from harvests.services.notifications import notify_safely
from harvests.utils.pricing import calculate_driver_payout, estimate_driver_expenses, round_money

STOP_TRANSITIONS = {
    'pending': ('in_progress', 'failed'),
    'in_progress': ('delivered', 'failed'),
    'delivered': (),
    'failed': (),
}


def _batch_payout(batch):
    return round_money(sum(o.delivery_fee + o.tip_amount for o in batch.orders))


def get_available_routes(now=None):
    today = (now or datetime.utcnow()).date()
    batches = (
        DeliveryBatch.query
        .filter(
            DeliveryBatch.status == 'pending',
            DeliveryBatch.driver_id.is_(None),
            DeliveryBatch.delivery_date >= today,
        )
        .order_by(DeliveryBatch.delivery_date.asc(), DeliveryBatch.batch_number.asc())
        .all()
    )

    stop_counts = dict(
        db.session.query(BatchStop.delivery_batch_id, func.count(BatchStop.id))
        .filter(BatchStop.delivery_batch_id.in_([b.id for b in batches]))
        .group_by(BatchStop.delivery_batch_id)
        .all()
    ) if batches else {}

    routes = []
    for batch in batches:
        stop_count = stop_counts.get(batch.id, 0)
        data = batch.to_dict()
        data['stop_count'] = stop_count
        data['estimated_payout'] = _batch_payout(batch) or calculate_driver_payout(stop_count)
        data['estimated_expenses'] = estimate_driver_expenses(stop_count)
        if batch.batch_meta:
            data['collection_point_address'] = batch.batch_meta.collection_point_address
            data['is_subsidized'] = batch.batch_meta.is_subsidized
        routes.append(data)

    return {"success": True, "routes": routes}


def claim_route(batch_id, driver_id):
    """
    Assigns a pending batch to the driver.

    The assignment is a conditional UPDATE on driver_id IS NULL, so two
    drivers claiming at once cannot both win.
    """
    batch = db.session.get(DeliveryBatch, batch_id)
    if not batch:
        raise NotFoundError("Batch not found")
    if batch.status != 'pending' or batch.driver_id is not None:
        raise ConflictError("Batch not available")

    claimed = (
        DeliveryBatch.query
        .filter(
            DeliveryBatch.id == batch_id,
            DeliveryBatch.driver_id.is_(None),
            DeliveryBatch.status == 'pending',
        )
        .update({DeliveryBatch.driver_id: driver_id, DeliveryBatch.status: 'assigned'},
                synchronize_session=False)
    )
    if claimed != 1:
        db.session.rollback()
        raise ConflictError("Batch not available")

    try:
        for order in batch.orders:
            db.session.add(Payout(
                order_id=order.id,
                recipient_id=driver_id,
                recipient_type='driver',
                amount=round_money(order.delivery_fee + order.tip_amount),
                description=f"Delivery fee and tip for batch #{batch.batch_number}",
            ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.refresh(batch)
    current_app.logger.info(f"Driver {driver_id} claimed batch {batch.id}")

    notify_safely('batch_assigned_driver', recipient_id=driver_id, data={
        'batch_number': batch.batch_number,
        'delivery_date': batch.delivery_date.isoformat(),
        'stop_count': len(batch.stops),
        'estimated_payout': _batch_payout(batch),
    })

    return {"success": True, "batch": batch.to_dict()}


def get_route_stops(batch_id, user):
    batch = db.session.get(DeliveryBatch, batch_id)
    if not batch:
        raise NotFoundError("Batch not found")
    if batch.driver_id != user.id and not user.is_admin:
        raise AuthorizationError("This route is not assigned to you")

    return {
        "success": True,
        "batch": batch.to_dict(),
        "stops": [stop.to_dict() for stop in batch.stops],
    }


def update_stop_status(stop_id, driver_id, new_status):
    if new_status not in BatchStop.STATUSES:
        raise ValidationError(f"'status' must be one of {', '.join(BatchStop.STATUSES)}")

    stop = db.session.get(BatchStop, stop_id)
    if not stop:
        raise NotFoundError("Stop not found")

    batch = stop.batch
    if batch.driver_id != driver_id:
        raise AuthorizationError("This stop is not on your route")

    if new_status not in STOP_TRANSITIONS[stop.status]:
        raise ConflictError(f"Cannot move stop from {stop.status} to {new_status}")

    now = datetime.utcnow()
    stop.status = new_status

    if new_status == 'in_progress' and batch.status == 'assigned':
        batch.status = 'in_progress'
        Order.query.filter(
            Order.delivery_batch_id == batch.id,
            Order.status.in_(('confirmed', 'preparing', 'ready_for_pickup', 'in_transit')),
        ).update({Order.status: 'out_for_delivery'}, synchronize_session=False)

    if new_status == 'delivered':
        stop.delivered_at = now
        order = stop.order
        if order:
            order.status = 'delivered'

    db.session.flush()
    open_stops = [s for s in batch.stops if s.status in ('pending', 'in_progress')]
    if not open_stops:
        batch.status = 'completed'
        current_app.logger.info(f"Batch {batch.id} completed")

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return {"success": True, "stop": stop.to_dict(), "batch_status": batch.status}
