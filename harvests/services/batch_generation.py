# harvests/services/batch_generation.py
# Daily job: one delivery batch per consumer ZIP for tomorrow's pending orders.

from flask import current_app
from harvests import db
from harvests.models import Order, MarketConfig, DeliveryBatch, BatchStop
from harvests.services.batch_optimization import next_batch_number
from harvests.services.notifications import notify_safely
from harvests.utils.formatting import format_profile_address
from harvests.utils.market import tomorrow


def generate_batches(now=None):
    """
    Creates one batch per ZIP for tomorrow's pending, unbatched orders.

    Each ZIP commits on its own; a failure for one ZIP is recorded in
    `errors` and the run continues with the next.
    """
    delivery_date = tomorrow(now)
    current_app.logger.info(f"Starting batch generation for {delivery_date.isoformat()}")

    pending = (
        Order.query
        .filter(
            Order.delivery_date == delivery_date,
            Order.status == 'pending',
            Order.delivery_batch_id.is_(None),
        )
        .order_by(Order.created_at.asc())
        .all()
    )

    if not pending:
        current_app.logger.info("No pending orders found for tomorrow")
        return {"success": True, "message": 'No pending orders to process', "batches_created": 0}

    orders_by_zip = {}
    for order in pending:
        zip_code = (order.consumer.zip_code if order.consumer else None) or 'unknown'
        orders_by_zip.setdefault(zip_code, []).append(order)

    current_app.logger.info(f"Found {len(pending)} pending orders in {len(orders_by_zip)} ZIP zones")

    batches_created = []
    errors = []

    for zip_code, orders in orders_by_zip.items():
        try:
            market = MarketConfig.query.filter_by(zip_code=zip_code, active=True).first()

            batch = DeliveryBatch(
                delivery_date=delivery_date,
                batch_number=next_batch_number(delivery_date),
                zip_codes=[zip_code],
                status='pending',
                lead_farmer_id=market.collection_point_id if market else None,
            )
            db.session.add(batch)
            db.session.flush()

            for sequence_number, order in enumerate(orders, start=1):
                db.session.add(BatchStop(
                    delivery_batch_id=batch.id,
                    order_id=order.id,
                    address=format_profile_address(order.consumer) or 'Address not provided',
                    sequence_number=sequence_number,
                    status='pending',
                ))
                order.status = 'confirmed'
                order.delivery_batch_id = batch.id

            db.session.commit()

        except Exception as e:
            db.session.rollback()
            current_app.logger.error(f"Error processing ZIP {zip_code}: {str(e)}", exc_info=True)
            errors.append({"zip_code": zip_code, "error": str(e)})
            continue

        batches_created.append({
            "batch_id": batch.id,
            "batch_number": batch.batch_number,
            "zip_code": zip_code,
            "order_count": len(orders),
        })

        for order in orders:
            notify_safely('order_locked', recipient_id=order.consumer_id, data={
                'order_id': order.id,
                'batch_id': batch.id,
                'delivery_date': delivery_date.isoformat(),
            })

        current_app.logger.info(f"Batch {batch.batch_number} created for ZIP {zip_code} with {len(orders)} stops")

    result = {
        "success": True,
        "delivery_date": delivery_date.isoformat(),
        "batches_created": len(batches_created),
        "total_orders_processed": len(pending),
        "batches": batches_created,
    }
    if errors:
        result["errors"] = errors
    return result
