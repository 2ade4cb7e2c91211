# harvests/services/stripe_webhooks.py
"""
Stripe webhook processing.

Events are verified against STRIPE_WEBHOOK_SECRET, recorded in
stripe_webhook_events (unique on the Stripe event id) and dispatched to a
handler. The event row and the handler's changes commit together, so a
handler failure leaves the event unrecorded and Stripe's retry reprocesses
it; a duplicate delivery hits the unique constraint and is skipped.
Handlers return the notifications they want sent, and those go out only
once the commit has succeeded.
"""

from datetime import datetime
from functools import partial
import stripe
from flask import current_app
from sqlalchemy.exc import IntegrityError
from harvests import db
from harvests.models import (
    StripeWebhookEvent, PaymentIntentRecord, Order, Subscription, Dispute, Payout
)
from harvests.services.notifications import notify_safely, notify_admins
from harvests.services.subscriptions import record_subscription_spend


def _from_timestamp(value):
    return datetime.utcfromtimestamp(value) if value else None


def _order_for_intent(intent_id, metadata=None):
    record = PaymentIntentRecord.query.filter_by(stripe_payment_intent_id=intent_id).first()
    order_id = record.order_id if record else None
    if not order_id and metadata:
        order_id = metadata.get('order_id')
    order = db.session.get(Order, order_id) if order_id else None
    return record, order


# --- Handlers ---

def _payment_intent_succeeded(intent):
    record, order = _order_for_intent(intent['id'], intent.get('metadata'))
    if record:
        record.status = 'succeeded'
    if not order:
        current_app.logger.warning(f"No order found for payment intent {intent['id']}")
        return

    order.payment_status = 'paid'
    order.paid_at = order.paid_at or datetime.utcnow()

    if not order.credits_awarded:
        record_subscription_spend(order.consumer_id, order.subtotal, order_id=order.id)
        order.credits_awarded = True

    db.session.flush()
    return [partial(notify_safely, 'order_confirmation', recipient_id=order.consumer_id, data={
        'order_id': order.id,
        'delivery_date': order.delivery_date.isoformat(),
        'total_amount': order.total_amount,
        'amount_charged': order.amount_charged,
        'credits_redeemed': order.credits_used,
    })]


def _payment_intent_failed(intent):
    record, order = _order_for_intent(intent['id'], intent.get('metadata'))
    if record:
        record.status = 'failed'
    if not order:
        current_app.logger.warning(f"No order found for failed payment intent {intent['id']}")
        return

    last_error = intent.get('last_payment_error') or {}
    message = last_error.get('message') or 'Payment failed'

    order.payment_status = 'failed'
    order.payment_failure_message = message[:500]

    return [partial(notify_safely, 'payment_failed', recipient_id=order.consumer_id, data={
        'order_id': order.id,
        'reason': message,
    })]


def _sync_subscription(stripe_sub, deleted=False):
    subscription = Subscription.query.filter_by(stripe_subscription_id=stripe_sub['id']).first()
    if not subscription:
        current_app.logger.warning(f"No local subscription for {stripe_sub['id']}")
        return

    if deleted:
        subscription.status = 'canceled'
        return

    subscription.status = stripe_sub.get('status') or subscription.status
    subscription.current_period_start = _from_timestamp(stripe_sub.get('current_period_start'))
    subscription.current_period_end = _from_timestamp(stripe_sub.get('current_period_end'))
    subscription.trial_end = _from_timestamp(stripe_sub.get('trial_end'))


def _subscription_updated(stripe_sub):
    _sync_subscription(stripe_sub)


def _subscription_deleted(stripe_sub):
    _sync_subscription(stripe_sub, deleted=True)


def _dispute_created(stripe_dispute):
    """
    Opens a local dispute for a chargeback, flags the order and holds its
    pending payouts until an admin reviews it.
    """
    _, order = _order_for_intent(stripe_dispute.get('payment_intent'))
    amount = (stripe_dispute.get('amount') or 0) / 100
    reason = stripe_dispute.get('reason') or 'unknown'

    if order:
        db.session.add(Dispute(
            order_id=order.id,
            consumer_id=order.consumer_id,
            dispute_type='other',
            description=f"Stripe chargeback opened: {reason}",
            stripe_dispute_id=stripe_dispute['id'],
        ))
        order.flagged_for_review = True
        held = Payout.query.filter_by(order_id=order.id, status='pending').update(
            {Payout.status: 'on_hold'}, synchronize_session=False
        )
        current_app.logger.warning(f"Order {order.id} disputed ({reason}); {held} payouts on hold")
    else:
        current_app.logger.warning(f"Dispute {stripe_dispute['id']} has no matching order")

    return [partial(notify_admins, 'dispute_created', {
        'order_id': order.id if order else None,
        'stripe_dispute_id': stripe_dispute['id'],
        'amount': amount,
        'reason': reason,
    })]


def _payout_failed(stripe_payout):
    message = stripe_payout.get('failure_message') or stripe_payout.get('failure_code') or 'Payout failed'
    updated = Payout.query.filter(
        (Payout.stripe_payout_id == stripe_payout['id']) |
        (Payout.stripe_transfer_id == stripe_payout['id'])
    ).update(
        {Payout.status: 'failed', Payout.error_message: message[:500]},
        synchronize_session=False
    )
    current_app.logger.warning(f"Stripe payout {stripe_payout['id']} failed: {message} ({updated} rows)")


EVENT_HANDLERS = {
    'payment_intent.succeeded': _payment_intent_succeeded,
    'payment_intent.payment_failed': _payment_intent_failed,
    'customer.subscription.updated': _subscription_updated,
    'customer.subscription.deleted': _subscription_deleted,
    'charge.dispute.created': _dispute_created,
    'payout.failed': _payout_failed,
}


def handle_stripe_webhook(payload, signature):
    """
    Verifies and processes one webhook delivery.

    Returns:
        tuple: (body dict, HTTP status)
    """
    if not current_app.config.get('STRIPE_SECRET_KEY'):
        current_app.logger.error("STRIPE_SECRET_KEY not configured")
        return {"error": "Stripe secret key not configured"}, 500

    webhook_secret = current_app.config.get('STRIPE_WEBHOOK_SECRET')
    if not webhook_secret:
        current_app.logger.error("STRIPE_WEBHOOK_SECRET not configured")
        return {"error": "Webhook secret not configured"}, 500

    if not signature:
        current_app.logger.error("Missing Stripe-Signature header")
        return {"error": "Missing signature"}, 400

    stripe.api_key = current_app.config['STRIPE_SECRET_KEY']
    try:
        event = stripe.Webhook.construct_event(payload, signature, webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        current_app.logger.error(f"Webhook signature verification failed: {str(e)}")
        return {"error": f"Webhook Error: {str(e)}"}, 400

    event_id = event['id']
    event_type = event['type']
    current_app.logger.info(f"Stripe event verified: {event_type} ({event_id})")

    if StripeWebhookEvent.query.filter_by(stripe_event_id=event_id).first():
        current_app.logger.info(f"Event {event_id} already processed, skipping")
        return {"received": True, "skipped": True}, 200

    try:
        db.session.add(StripeWebhookEvent(stripe_event_id=event_id, event_type=event_type))
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info(f"Event {event_id} being processed concurrently, skipping")
        return {"received": True, "skipped": True}, 200

    try:
        pending = []
        handler = EVENT_HANDLERS.get(event_type)
        if handler:
            pending = handler(event['data']['object']) or []
        else:
            current_app.logger.info(f"Unhandled event type: {event_type}")
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error processing Stripe event {event_id}: {str(e)}", exc_info=True)
        return {"error": str(e)}, 500

    for send in pending:
        send()

    return {"received": True, "event": event_type}, 200
