# harvests/services/orders.py
# Consumer orders: history, detail, cancellation and driver ratings.

import stripe
from flask import current_app
from sqlalchemy import func
from harvests import db
from harvests.errors import (
    CancellationError, NotFoundError, AuthorizationError, ValidationError, ConflictError,
    ExternalServiceError
)
from harvests.models import Order, Payout, PaymentIntentRecord, DeliveryRating, Profile, Dispute
from harvests.services.credits import add_ledger_entry
from harvests.utils.formatting import format_rating_display, map_order_status, format_estimated_time
from harvests.utils.market import can_cancel_order


def get_orders(consumer_id, page=1, per_page=20, status=None):
    try:
        query = Order.query.filter_by(consumer_id=consumer_id)
        if status:
            query = query.filter(Order.status == status)

        orders = query.order_by(Order.created_at.desc()).paginate(
            page=page, per_page=per_page, error_out=False
        )
        return {
            "success": True,
            "data": {
                "orders": [o.to_dict(include_items=True) for o in orders.items],
                "total": orders.total,
                "pages": orders.pages,
                "current_page": orders.page,
            }
        }
    except Exception as e:
        current_app.logger.error(f"Error fetching orders for {consumer_id}: {str(e)}", exc_info=True)
        return ({"success": False, "error": f"Database error: {str(e)}"}, 500)


def get_order(order_id, user):
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")
    if order.consumer_id != user.id and not user.is_admin:
        raise AuthorizationError("You do not have access to this order")

    data = order.to_dict(include_items=True)
    data['tracking_stage'] = map_order_status(order.status)

    batch = order.batch
    if batch:
        data['batch'] = batch.to_dict()
        data['batch']['estimated_time'] = format_estimated_time(batch.estimated_duration_minutes)
        if batch.driver_id:
            driver = db.session.get(Profile, batch.driver_id)
            data['driver'] = {
                'id': driver.id,
                'full_name': driver.full_name,
                'phone': driver.phone,
            } if driver else None

    return {"success": True, "order": data}


def _reverse_payment(order):
    """Cancels an unconfirmed PaymentIntent or refunds a captured one."""
    record = (
        PaymentIntentRecord.query
        .filter_by(order_id=order.id)
        .order_by(PaymentIntentRecord.created_at.desc())
        .first()
    )
    if not record:
        return None

    stripe.api_key = current_app.config['STRIPE_SECRET_KEY']
    if record.status == 'succeeded' or order.payment_status == 'paid':
        stripe.Refund.create(payment_intent=record.stripe_payment_intent_id)
        record.status = 'refunded'
        return 'refunded'

    stripe.PaymentIntent.cancel(record.stripe_payment_intent_id)
    record.status = 'canceled'
    return 'canceled'


def cancel_order(order_id, consumer_id, now=None):
    """
    Cancels a pending order more than CANCELLATION_WINDOW_HOURS before
    delivery.

    Inventory is restored, redeemed credits are refunded to the ledger, the
    payment is cancelled or refunded, and the order with its items and
    pending payouts is deleted.
    """
    order = Order.query.filter_by(id=order_id, consumer_id=consumer_id).first()
    if not order:
        raise CancellationError(CancellationError.ORDER_NOT_FOUND, "Order not found")

    if order.status != 'pending':
        raise CancellationError(
            CancellationError.INVALID_STATUS,
            f"Only pending orders can be cancelled (status: {order.status})"
        )

    # Disputed orders stay on record until an admin closes the dispute
    if Dispute.query.filter_by(order_id=order.id).first():
        raise ConflictError("Orders with a dispute on file cannot be cancelled")

    window = current_app.config['CANCELLATION_WINDOW_HOURS']
    if not can_cancel_order(order.status, order.delivery_date, now, window_hours=window):
        raise CancellationError(
            CancellationError.TOO_LATE_TO_CANCEL,
            f"Orders must be cancelled at least {window} hours before delivery"
        )

    try:
        for item in order.items:
            if item.product:
                item.product.available_quantity += item.quantity

        if order.credits_used > 0:
            add_ledger_entry(
                consumer_id, 'refund', order.credits_used,
                description=f"Refund for cancelled order {order.id}",
                order_id=order.id,
            )

        try:
            outcome = _reverse_payment(order)
        except stripe.StripeError as e:
            current_app.logger.error(f"Stripe reversal failed for order {order.id}: {str(e)}")
            raise ExternalServiceError("Could not reverse the payment for this order")
        if outcome:
            current_app.logger.info(f"Payment for order {order.id} {outcome}")

        Payout.query.filter_by(order_id=order.id, status='pending').delete(synchronize_session=False)
        PaymentIntentRecord.query.filter_by(order_id=order.id).update(
            {PaymentIntentRecord.order_id: None}, synchronize_session=False
        )
        db.session.delete(order)
        db.session.commit()

    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(f"Order {order_id} cancelled by consumer {consumer_id}")
    return {"success": True, "message": "Order cancelled and deleted successfully"}


# --- Ratings ---

def rate_delivery(order_id, consumer_id, data):
    rating = data.get('rating')
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("'rating' must be an integer between 1 and 5")

    feedback = data.get('feedback')
    if feedback is not None:
        if not isinstance(feedback, str) or len(feedback) > 1000:
            raise ValidationError("'feedback' must be a string of at most 1000 characters")
        feedback = feedback.strip() or None

    order = Order.query.filter_by(id=order_id, consumer_id=consumer_id).first()
    if not order:
        raise NotFoundError("Order not found")
    if order.status != 'delivered':
        raise ValidationError("Only delivered orders can be rated")
    if not order.batch or not order.batch.driver_id:
        raise ValidationError("This order has no assigned driver")
    if DeliveryRating.query.filter_by(order_id=order.id).first():
        raise ConflictError("This order has already been rated")

    entry = DeliveryRating(order_id=order.id, driver_id=order.batch.driver_id,
                           rating=rating, feedback=feedback)
    db.session.add(entry)
    db.session.commit()

    return {"success": True, "rating": entry.to_dict()}


def get_driver_rating(driver_id):
    average, count = (
        db.session.query(func.avg(DeliveryRating.rating), func.count(DeliveryRating.id))
        .filter(DeliveryRating.driver_id == driver_id)
        .one()
    )
    average = round(float(average), 1) if average is not None else 0
    return {
        "success": True,
        "driver_id": driver_id,
        "average_rating": average,
        "review_count": count,
        "display": format_rating_display(average, count),
    }