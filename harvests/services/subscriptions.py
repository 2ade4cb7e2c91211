# harvests/services/subscriptions.py
"""
Subscription status and spend-based credits.

Subscribers earn a credit for every threshold of monthly spend. Monthly
spend is tracked per calendar month ('YYYY-MM') and resets when a new
month starts.
"""

from datetime import datetime, timedelta
import stripe
from flask import current_app
from harvests import db
from harvests.errors import ExternalServiceError
from harvests.models import Subscription
from harvests.services.credits import add_ledger_entry
from harvests.utils.pricing import credits_earned_for_spend, progress_to_credit, round_money


def _period(now):
    return now.strftime('%Y-%m')


def _from_timestamp(value):
    return datetime.utcfromtimestamp(value) if value else None


def record_subscription_spend(consumer_id, amount, order_id=None, now=None):
    """
    Adds `amount` to an active subscriber's monthly spend and awards an
    'earned' credit for each threshold crossed. Does not commit.

    Returns:
        float: Credits awarded (0.0 for non-subscribers)
    """
    subscription = Subscription.query.filter_by(consumer_id=consumer_id).first()
    if not subscription or not subscription.is_active:
        return 0.0

    now = now or datetime.utcnow()
    period = _period(now)
    previous = subscription.monthly_spend if subscription.monthly_spend_period == period else 0.0
    new_spend = round_money(previous + amount)

    config = current_app.config
    earned = credits_earned_for_spend(
        previous, new_spend,
        threshold=config['CREDIT_SPEND_THRESHOLD'],
        credit_amount=config['CREDIT_AWARD_AMOUNT'],
    )

    subscription.monthly_spend = new_spend
    subscription.monthly_spend_period = period

    if earned > 0:
        add_ledger_entry(
            consumer_id, 'earned', earned,
            description=f"Subscription reward for {period} spend",
            order_id=order_id,
            expires_at=now + timedelta(days=config['CREDIT_EXPIRY_DAYS']),
        )
        subscription.credits_earned = round_money(subscription.credits_earned + earned)
        current_app.logger.info(f"Awarded {earned} subscription credits to {consumer_id}")

    return earned


def check_subscription(consumer_id, email, now=None):
    """
    Syncs the consumer's Stripe subscription into the local table and
    reports spend progress.
    """
    now = now or datetime.utcnow()
    period = _period(now)
    local = Subscription.query.filter_by(consumer_id=consumer_id).first()
    threshold = current_app.config['CREDIT_SPEND_THRESHOLD']

    def current_spend(sub):
        if sub and sub.monthly_spend_period == period:
            return sub.monthly_spend
        return 0.0

    stripe.api_key = current_app.config['STRIPE_SECRET_KEY']
    try:
        customers = stripe.Customer.list(email=email, limit=1)
    except stripe.StripeError as e:
        current_app.logger.error(f"Stripe customer lookup failed for {consumer_id}: {str(e)}")
        raise ExternalServiceError("Could not reach payment provider")

    if not customers.data:
        return {
            "success": True,
            "subscribed": False,
            "monthly_spend": current_spend(local),
            "credits_available": 0,
            "progress_to_credit": 0,
        }

    customer_id = customers.data[0].id
    try:
        subscriptions = stripe.Subscription.list(customer=customer_id, status='all', limit=10)
    except stripe.StripeError as e:
        current_app.logger.error(f"Stripe subscription lookup failed for {consumer_id}: {str(e)}")
        raise ExternalServiceError("Could not reach payment provider")

    live = [s for s in subscriptions.data if s.status in ('active', 'trialing')]
    if not live:
        if local and local.is_active:
            local.status = 'canceled'
            db.session.commit()
        return {
            "success": True,
            "subscribed": False,
            "monthly_spend": current_spend(local),
            "credits_available": 0,
            "progress_to_credit": 0,
        }

    stripe_sub = live[0]
    if local is None:
        local = Subscription(consumer_id=consumer_id, monthly_spend=0.0, credits_earned=0.0)
        db.session.add(local)

    local.status = stripe_sub.status
    local.stripe_subscription_id = stripe_sub.id
    local.stripe_customer_id = customer_id
    local.current_period_start = _from_timestamp(stripe_sub.get('current_period_start'))
    local.current_period_end = _from_timestamp(stripe_sub.get('current_period_end'))
    local.trial_end = _from_timestamp(stripe_sub.get('trial_end'))

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    spend = current_spend(local)
    return {
        "success": True,
        "subscribed": True,
        "subscription_end": local.current_period_end,
        "is_trialing": local.status == 'trialing',
        "trial_end": local.trial_end,
        "monthly_spend": spend,
        "credits_available": local.credits_earned,
        "progress_to_credit": progress_to_credit(spend, threshold),
    }
