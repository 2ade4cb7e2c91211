# harvests/services/stripe_connect.py
# Stripe Connect onboarding status for payees (farmers, lead farmers, drivers).

import stripe
from flask import current_app
from harvests import db
from harvests.errors import ExternalServiceError, NotFoundError
from harvests.models import Profile


def check_connect_status(user_id):
    """Reads the Connect account from Stripe and syncs its flags onto the profile."""
    profile = db.session.get(Profile, user_id)
    if not profile:
        raise NotFoundError("Profile not found")

    if not profile.stripe_connect_account_id:
        current_app.logger.info(f"No Stripe account for user {user_id}")
        return {
            "success": True,
            "connected": False,
            "onboarding_complete": False,
            "charges_enabled": False,
            "payouts_enabled": False,
        }

    stripe.api_key = current_app.config['STRIPE_SECRET_KEY']
    try:
        account = stripe.Account.retrieve(profile.stripe_connect_account_id)
    except stripe.StripeError as e:
        current_app.logger.error(f"Stripe account lookup failed for {user_id}: {str(e)}")
        raise ExternalServiceError("Could not retrieve Stripe account")

    profile.stripe_onboarding_complete = bool(account.get('details_submitted'))
    profile.stripe_charges_enabled = bool(account.get('charges_enabled'))
    profile.stripe_payouts_enabled = bool(account.get('payouts_enabled'))

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        f"Stripe Connect status synced for {user_id}: onboarding={profile.stripe_onboarding_complete} "
        f"charges={profile.stripe_charges_enabled} payouts={profile.stripe_payouts_enabled}"
    )

    return {
        "success": True,
        "connected": True,
        "onboarding_complete": profile.stripe_onboarding_complete,
        "charges_enabled": profile.stripe_charges_enabled,
        "payouts_enabled": profile.stripe_payouts_enabled,
        "account_id": profile.stripe_connect_account_id,
    }
