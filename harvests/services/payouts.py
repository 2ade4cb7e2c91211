# harvests/services/payouts.py
"""
Payout processing.

Pending payout rows are created at checkout (farmer, lead farmer, platform
fee) and at route claim (driver). Processing moves each row through
processing -> paid | failed. Platform fee rows are bookkeeping only and are
marked paid without a transfer.
"""

from datetime import datetime
import stripe
from flask import current_app
from harvests import db
from harvests.errors import ValidationError
from harvests.models import Payout, Profile
from harvests.services.audit import log_admin_action
from harvests.utils.general import is_valid_uuid
from harvests.utils.pricing import to_cents, round_money


def _validate_filters(data):
    order_ids = data.get('order_ids')
    if order_ids is not None:
        if not isinstance(order_ids, list) or not all(is_valid_uuid(o) for o in order_ids):
            raise ValidationError("'order_ids' must be a list of UUIDs")

    payout_type = data.get('payout_type')
    if payout_type is not None and payout_type not in Payout.TYPES:
        raise ValidationError(f"'payout_type' must be one of {', '.join(Payout.TYPES)}")

    return order_ids, payout_type


def _fail(payout, message, failures):
    payout.status = 'failed'
    payout.error_message = message[:500]
    failures.append({"payout_id": payout.id, "error": message})
    current_app.logger.warning(f"Payout {payout.id} failed: {message}")


def process_pending_payouts(admin_id, data):
    """
    Transfers every pending payout (optionally filtered) to its recipient's
    Stripe Connect account.

    Returns:
        dict: payouts_processed, total_amount (sum actually paid), failures
    """
    order_ids, payout_type = _validate_filters(data)

    query = Payout.query.filter(Payout.status == 'pending')
    if order_ids:
        query = query.filter(Payout.order_id.in_(order_ids))
    if payout_type:
        query = query.filter(Payout.recipient_type == payout_type)
    payouts = query.order_by(Payout.created_at.asc()).all()

    current_app.logger.info(f"Processing {len(payouts)} pending payouts")

    stripe.api_key = current_app.config['STRIPE_SECRET_KEY']
    failures = []
    total_paid = 0.0
    paid_count = 0

    for payout in payouts:
        if payout.recipient_type == 'platform_fee':
            payout.status = 'paid'
            payout.paid_at = datetime.utcnow()
            total_paid += payout.amount
            paid_count += 1
            db.session.commit()
            continue

        recipient = db.session.get(Profile, payout.recipient_id) if payout.recipient_id else None
        if not recipient or not recipient.stripe_connect_account_id:
            _fail(payout, "Recipient has no connected Stripe account", failures)
            db.session.commit()
            continue
        if not recipient.stripe_payouts_enabled:
            _fail(payout, "Recipient Stripe account cannot receive payouts yet", failures)
            db.session.commit()
            continue

        payout.status = 'processing'
        db.session.commit()

        try:
            transfer = stripe.Transfer.create(
                amount=to_cents(payout.amount),
                currency='usd',
                destination=recipient.stripe_connect_account_id,
                metadata={'payout_id': payout.id, 'order_id': payout.order_id or ''},
            )
        except stripe.StripeError as e:
            _fail(payout, str(e), failures)
            db.session.commit()
            continue

        payout.status = 'paid'
        payout.stripe_transfer_id = transfer.id
        payout.paid_at = datetime.utcnow()
        payout.error_message = None
        total_paid += payout.amount
        paid_count += 1
        db.session.commit()

    log_admin_action(admin_id, 'process_payouts', 'payouts', None, details={
        'processed': len(payouts),
        'paid': paid_count,
        'failed': len(failures),
        'total_amount': round_money(total_paid),
    })

    current_app.logger.info(f"Payouts complete: {paid_count} successful, {len(failures)} failed")

    result = {
        "success": True,
        "payouts_processed": len(payouts),
        "total_amount": round_money(total_paid),
    }
    if failures:
        result["failures"] = failures
    return result


def get_my_payouts(user_id):
    try:
        payouts = (
            Payout.query
            .filter_by(recipient_id=user_id)
            .order_by(Payout.created_at.desc())
            .all()
        )
        pending = sum(p.amount for p in payouts if p.status in ('pending', 'processing', 'on_hold'))
        paid = sum(p.amount for p in payouts if p.status == 'paid')
        return {
            "success": True,
            "payouts": [p.to_dict() for p in payouts],
            "totals": {"pending": round_money(pending), "paid": round_money(paid)},
        }
    except Exception as e:
        current_app.logger.error(f"Error fetching payouts for {user_id}: {str(e)}", exc_info=True)
        return ({"success": False, "error": f"Database error: {str(e)}"}, 500)
