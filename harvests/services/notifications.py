# harvests/services/notifications.py
# Event notifications (plain-text email) and the cutoff reminder job.

from flask import current_app
from harvests import db
from harvests.errors import ValidationError
from harvests.models import Profile, Order, ShoppingCart, CartItem, MarketConfig
from harvests.services.email_service import send_email
from harvests.utils.formatting import format_money
from harvests.utils.market import tomorrow

BRAND = 'Blue Harvests'


def _order_confirmation(data):
    subject = f"Order Confirmed - {BRAND}"
    body = (
        f"Thanks for your order!\n\n"
        f"Order: {data.get('order_id')}\n"
        f"Delivery date: {data.get('delivery_date')}\n"
        f"Total charged: {format_money(data.get('amount_charged', data.get('total_amount', 0)))}\n"
    )
    if data.get('credits_redeemed'):
        body += f"Credits applied: {format_money(data['credits_redeemed'])}\n"
    return subject, body


def _order_locked(data):
    subject = f"Your Order is Being Prepared - {BRAND}"
    body = (
        f"Your order {data.get('order_id')} is locked in for delivery on "
        f"{data.get('delivery_date')}. Farmers are harvesting it now."
    )
    if data.get('box_code'):
        body += f"\n\nLook for box {data['box_code']}."
    return subject, body


def _batch_assigned_driver(data):
    subject = f"New Delivery Batch Assigned - {BRAND}"
    body = (
        f"You claimed batch #{data.get('batch_number')} for {data.get('delivery_date')}.\n"
        f"Stops: {data.get('stop_count', 0)}\n"
        f"Estimated payout: {format_money(data.get('estimated_payout', 0))}"
    )
    return subject, body


def _batch_assigned_farmer(data):
    subject = f"Delivery Batch Created - {BRAND}"
    body = (
        f"Batch #{data.get('batch_number')} for {data.get('delivery_date')} was created "
        f"at your collection point with {data.get('order_count', 0)} orders."
    )
    return subject, body


def _cutoff_reminder(data):
    subject = f"Reminder: Order Cutoff at {data.get('cutoff_time', 'Midnight')} - {BRAND}"
    body = (
        f"Orders for delivery on {data.get('delivery_date')} close at "
        f"{data.get('cutoff_time', 'midnight')}. Review your cart before the cutoff."
    )
    return subject, body


def _credits_awarded(data):
    subject = f"You Earned {format_money(data.get('amount', 0))} in Credits - {BRAND}"
    body = (
        f"{format_money(data.get('amount', 0))} in credits were added to your account.\n"
        f"Reason: {data.get('description', 'Credits awarded')}\n"
        f"New balance: {format_money(data.get('new_balance', 0))}"
    )
    if data.get('expires_at'):
        body += f"\nExpires: {data['expires_at']}"
    return subject, body


def _payment_failed(data):
    subject = f"Payment Failed - {BRAND}"
    body = (
        f"We could not process the payment for order {data.get('order_id')}.\n"
        f"Reason: {data.get('reason') or 'Payment declined'}\n\n"
        f"Please update your payment method and try again."
    )
    return subject, body


def _dispute_created(data):
    subject = f"[Admin] Payment Dispute Opened - {BRAND}"
    body = (
        f"A dispute was opened for order {data.get('order_id') or 'unknown'}.\n"
        f"Stripe dispute: {data.get('stripe_dispute_id')}\n"
        f"Amount: {format_money(data.get('amount', 0))}\n"
        f"Reason: {data.get('reason')}\n\n"
        f"The order has been flagged and its pending payouts put on hold."
    )
    return subject, body


def _admin_invitation(data):
    subject = f"You're Invited to Administer {BRAND}"
    body = (
        f"{data.get('invited_by_name', 'An administrator')} invited you to join {BRAND} as an admin.\n\n"
        f"Accept the invitation: {data.get('invitation_link')}\n\n"
        f"This link expires on {data.get('expires_at')}."
    )
    return subject, body


EVENT_BUILDERS = {
    'order_confirmation': _order_confirmation,
    'order_locked': _order_locked,
    'batch_assigned_driver': _batch_assigned_driver,
    'batch_assigned_farmer': _batch_assigned_farmer,
    'cutoff_reminder': _cutoff_reminder,
    'credits_awarded': _credits_awarded,
    'payment_failed': _payment_failed,
    'dispute_created': _dispute_created,
    'admin_invitation': _admin_invitation,
}


def send_notification(event_type, recipient_id=None, recipient_email=None, data=None):
    """
    Sends one notification email.

    The recipient email is looked up from the profile when not given.

    Raises:
        ValidationError: Unknown event type or no email for the recipient
    """
    builder = EVENT_BUILDERS.get(event_type)
    if builder is None:
        raise ValidationError(f"Unknown event type: {event_type}")

    email = recipient_email
    if not email and recipient_id:
        profile = db.session.get(Profile, recipient_id)
        email = profile.email if profile else None

    if not email:
        raise ValidationError("No email address found for recipient")

    subject, body = builder(data or {})
    current_app.logger.info(f"Sending notification {event_type} to {recipient_id or email}")

    sent = send_email(email, subject, body)
    if not sent:
        return {"success": True, "skipped": True, "event_type": event_type}
    return {"success": True, "event_type": event_type, "recipient": email}


def notify_safely(event_type, recipient_id=None, recipient_email=None, data=None):
    """Non-blocking wrapper: notification failures are logged, never raised."""
    try:
        return send_notification(event_type, recipient_id, recipient_email, data)
    except Exception as e:
        current_app.logger.error(f"Notification {event_type} failed (non-blocking): {str(e)}")
        return None


def notify_admins(event_type, data):
    admin_email = current_app.config.get('MAIL_DEFAULT_RECIPIENT')
    if not admin_email:
        current_app.logger.warning(f"MAIL_DEFAULT_RECIPIENT not set. Skipping admin alert {event_type}.")
        return None
    return notify_safely(event_type, recipient_email=admin_email, data=data)


def send_cutoff_reminders(now=None):
    """
    Reminds consumers with a pending order for tomorrow, or anything in
    their cart, that tomorrow's cutoff is approaching.
    """
    delivery_date = tomorrow(now)

    consumer_ids = set()
    pending = (
        db.session.query(Order.consumer_id)
        .filter(Order.delivery_date == delivery_date, Order.status == 'pending')
        .distinct()
        .all()
    )
    consumer_ids.update(row[0] for row in pending)

    with_items = (
        db.session.query(ShoppingCart.consumer_id)
        .join(CartItem, CartItem.cart_id == ShoppingCart.id)
        .distinct()
        .all()
    )
    consumer_ids.update(row[0] for row in with_items)

    current_app.logger.info(f"Cutoff reminders: found {len(consumer_ids)} consumers to notify")

    results = {"success": True, "delivery_date": delivery_date.isoformat(), "reminders_sent": 0, "errors": []}

    for consumer_id in sorted(consumer_ids):
        profile = db.session.get(Profile, consumer_id)
        if not profile or not profile.email:
            continue

        cutoff_time = current_app.config['DEFAULT_CUTOFF_TIME']
        if profile.zip_code:
            market = MarketConfig.query.filter_by(zip_code=profile.zip_code, active=True).first()
            if market:
                cutoff_time = market.cutoff_time

        try:
            send_notification(
                'cutoff_reminder',
                recipient_id=consumer_id,
                recipient_email=profile.email,
                data={'delivery_date': delivery_date.isoformat(), 'cutoff_time': cutoff_time}
            )
            results["reminders_sent"] += 1
        except Exception as e:
            current_app.logger.error(f"Failed to send reminder to consumer {consumer_id}: {str(e)}")
            results["errors"].append({"consumer_id": consumer_id, "error": str(e)})

    return results
