# harvests/services/disputes.py
# Consumer-filed order disputes and their admin resolution.

from datetime import datetime
import stripe
from flask import current_app
from harvests import db
from harvests.errors import ValidationError, NotFoundError, ConflictError, ExternalServiceError
from harvests.models import Dispute, Order, PaymentIntentRecord
from harvests.services.audit import log_admin_action
from harvests.services.notifications import notify_admins
from harvests.utils.general import validate_string, validate_number
from harvests.utils.pricing import to_cents, round_money

RESOLUTION_STATUSES = ('resolved', 'rejected')


def create_dispute(order_id, consumer_id, data):
    dispute_type = data.get('dispute_type')
    if dispute_type not in Dispute.TYPES:
        raise ValidationError(f"'dispute_type' must be one of {', '.join(Dispute.TYPES)}")
    description = validate_string(data.get('description'), 'description', min_length=10, max_length=2000)

    order = Order.query.filter_by(id=order_id, consumer_id=consumer_id).first()
    if not order:
        raise NotFoundError("Order not found")

    existing = Dispute.query.filter(
        Dispute.order_id == order.id,
        Dispute.status.in_(('open', 'investigating'))
    ).first()
    if existing:
        raise ConflictError("An open dispute already exists for this order")

    dispute = Dispute(order_id=order.id, consumer_id=consumer_id,
                      dispute_type=dispute_type, description=description)
    db.session.add(dispute)
    db.session.commit()

    current_app.logger.info(f"Dispute {dispute.id} ({dispute_type}) filed on order {order.id}")
    notify_admins('dispute_created', {
        'order_id': order.id,
        'amount': order.total_amount,
        'reason': dispute_type,
    })
    return {"success": True, "dispute": dispute.to_dict()}


def get_disputes(status=None):
    try:
        query = Dispute.query
        if status:
            query = query.filter(Dispute.status == status)
        disputes = query.order_by(Dispute.created_at.desc()).all()
        return {"success": True, "disputes": [d.to_dict() for d in disputes]}
    except Exception as e:
        current_app.logger.error(f"Error fetching disputes: {str(e)}", exc_info=True)
        return ({"success": False, "error": f"Database error: {str(e)}"}, 500)


def resolve_dispute(admin_id, dispute_id, data):
    """
    Closes a dispute as resolved or rejected. A refund_amount on a resolved
    dispute is refunded through Stripe against the order's payment.
    """
    status = data.get('status')
    if status not in RESOLUTION_STATUSES:
        raise ValidationError(f"'status' must be one of {', '.join(RESOLUTION_STATUSES)}")
    resolution = validate_string(data.get('resolution'), 'resolution', max_length=2000)

    refund_amount = data.get('refund_amount')
    if refund_amount is not None:
        refund_amount = round_money(validate_number(refund_amount, 'refund_amount', minimum=0, exclusive_minimum=True))

    dispute = db.session.get(Dispute, dispute_id)
    if not dispute:
        raise NotFoundError("Dispute not found")
    if dispute.status in RESOLUTION_STATUSES:
        raise ConflictError(f"Dispute is already {dispute.status}")

    order = db.session.get(Order, dispute.order_id)
    if order is None:
        raise ConflictError("The disputed order no longer exists")
    refund_id = None

    if refund_amount and status == 'resolved':
        if refund_amount > order.amount_charged:
            raise ValidationError("'refund_amount' cannot exceed the amount charged")

        record = PaymentIntentRecord.query.filter_by(order_id=order.id, status='succeeded').first()
        if not record:
            raise ValidationError("No captured payment found for this order")

        stripe.api_key = current_app.config['STRIPE_SECRET_KEY']
        try:
            refund = stripe.Refund.create(
                payment_intent=record.stripe_payment_intent_id,
                amount=to_cents(refund_amount),
                metadata={'dispute_id': dispute.id, 'order_id': order.id},
            )
            refund_id = refund.id
        except stripe.StripeError as e:
            current_app.logger.error(f"Refund for dispute {dispute.id} failed: {str(e)}")
            raise ExternalServiceError(f"Refund failed: {getattr(e, 'user_message', None) or str(e)}")

    dispute.status = status
    dispute.resolution = resolution
    dispute.refund_amount = refund_amount if status == 'resolved' else None
    dispute.resolved_by = admin_id
    dispute.resolved_at = datetime.utcnow()

    try:
        log_admin_action(admin_id, 'resolve_dispute', 'dispute', dispute.id, details={
            'status': status,
            'refund_amount': dispute.refund_amount,
            'stripe_refund_id': refund_id,
        }, commit=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return {"success": True, "dispute": dispute.to_dict(), "refund_id": refund_id}
