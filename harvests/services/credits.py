# harvests/services/credits.py
"""
Consumer credit ledger.

The ledger is append-only: every grant, redemption, refund and expiry is a
row, and each row records the balance after it was applied. The newest
row's balance_after is the consumer's balance.
"""

from datetime import datetime, timedelta
from flask import current_app
from harvests import db
from harvests.errors import ValidationError, NotFoundError
from harvests.models import CreditLedgerEntry, Profile
from harvests.services.audit import log_admin_action
from harvests.services.notifications import notify_safely
from harvests.utils.general import is_valid_uuid, validate_number, validate_string
from harvests.utils.pricing import round_money

AWARD_TYPES = ('earned', 'bonus', 'refund')


def get_credit_balance(consumer_id):
    latest = (
        CreditLedgerEntry.query
        .filter_by(consumer_id=consumer_id)
        .order_by(CreditLedgerEntry.created_at.desc(), CreditLedgerEntry.id.desc())
        .first()
    )
    return latest.balance_after if latest else 0.0


def add_ledger_entry(consumer_id, transaction_type, amount, description=None,
                     order_id=None, expires_at=None):
    """
    Appends a ledger row. `amount` is signed: positive for grants,
    negative for redemptions and expiries. Does not commit.
    """
    balance = get_credit_balance(consumer_id)
    new_balance = round_money(max(balance + amount, 0))
    entry = CreditLedgerEntry(
        consumer_id=consumer_id,
        order_id=order_id,
        transaction_type=transaction_type,
        amount=round_money(amount),
        balance_after=new_balance,
        description=description,
        expires_at=expires_at,
        # Keeps ordering stable when several rows land in the same request
        created_at=datetime.utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def expire_credits(consumer_id, now=None):
    """
    Writes one 'expired' entry for grants past their expiry date.

    The expired amount is capped at the current balance, since part of an
    old grant may already have been spent. Does not commit.

    Returns:
        float: Amount expired
    """
    now = now or datetime.utcnow()
    stale = (
        CreditLedgerEntry.query
        .filter(
            CreditLedgerEntry.consumer_id == consumer_id,
            CreditLedgerEntry.transaction_type.in_(CreditLedgerEntry.GRANT_TYPES),
            CreditLedgerEntry.expires_at.isnot(None),
            CreditLedgerEntry.expires_at < now,
            CreditLedgerEntry.expired.is_(False),
        )
        .all()
    )
    if not stale:
        return 0.0

    total = sum(entry.amount for entry in stale)
    for entry in stale:
        entry.expired = True

    amount = round_money(min(total, get_credit_balance(consumer_id)))
    if amount > 0:
        add_ledger_entry(
            consumer_id, 'expired', -amount,
            description=f"{len(stale)} credit grant(s) expired"
        )
        current_app.logger.info(f"Expired {amount} credits for consumer {consumer_id}")
    return amount


def award_credits(admin_id, data):
    """
    Admin credit award.

    Validation:
        consumer_id: UUID of an existing profile
        amount: > 0 and <= MAX_AWARD_AMOUNT
        description: 1-500 characters
        transaction_type: earned | bonus | refund (default earned)
        expires_in_days: 1-365 (default DEFAULT_AWARD_EXPIRY_DAYS)
    """
    consumer_id = data.get('consumer_id')
    if not is_valid_uuid(consumer_id):
        raise ValidationError("'consumer_id' must be a valid UUID")

    amount = validate_number(data.get('amount'), 'amount', minimum=0, exclusive_minimum=True,
                             maximum=current_app.config['MAX_AWARD_AMOUNT'])
    description = validate_string(data.get('description'), 'description', max_length=500)

    transaction_type = data.get('transaction_type') or 'earned'
    if transaction_type not in AWARD_TYPES:
        raise ValidationError(f"'transaction_type' must be one of {', '.join(AWARD_TYPES)}")

    expires_in_days = data.get('expires_in_days')
    if expires_in_days is None:
        expires_in_days = current_app.config['DEFAULT_AWARD_EXPIRY_DAYS']
    if isinstance(expires_in_days, bool) or not isinstance(expires_in_days, int):
        raise ValidationError("'expires_in_days' must be an integer")
    validate_number(expires_in_days, 'expires_in_days', minimum=1, maximum=365)

    consumer = db.session.get(Profile, consumer_id)
    if not consumer:
        raise NotFoundError("Consumer not found")

    expires_at = datetime.utcnow() + timedelta(days=expires_in_days)

    try:
        entry = add_ledger_entry(
            consumer_id, transaction_type, amount,
            description=description, expires_at=expires_at
        )
        log_admin_action(
            admin_id, 'award_credits', 'consumer', consumer_id,
            details={'amount': amount, 'transaction_type': transaction_type, 'description': description},
            commit=False
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(f"Awarded {amount} credits ({transaction_type}) to {consumer_id}")

    notify_safely('credits_awarded', recipient_id=consumer_id, data={
        'amount': amount,
        'description': description,
        'new_balance': entry.balance_after,
        'expires_at': expires_at.date().isoformat(),
    })

    return {"success": True, "credit": entry.to_dict(), "new_balance": entry.balance_after}


def get_credit_summary(consumer_id, limit=20):
    try:
        entries = (
            CreditLedgerEntry.query
            .filter_by(consumer_id=consumer_id)
            .order_by(CreditLedgerEntry.created_at.desc())
            .limit(limit)
            .all()
        )
        return {
            "success": True,
            "balance": entries[0].balance_after if entries else 0.0,
            "entries": [e.to_dict() for e in entries],
        }
    except Exception as e:
        current_app.logger.error(f"Error fetching credits for {consumer_id}: {str(e)}", exc_info=True)
        return ({"success": False, "error": f"Database error: {str(e)}"}, 500)
