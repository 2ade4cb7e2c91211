# harvests/api/payments.py
# Checkout, subscription, Stripe Connect, payouts and credit balance routes.

from flask import Blueprint, request, g
from harvests.jwt_auth import require_jwt, payee_required
from harvests.services.rate_limiter import rate_limit
from harvests.utils import _handle_service_result, require_json
from harvests.services.checkout import process_checkout
from harvests.services.subscriptions import check_subscription
from harvests.services.stripe_connect import check_connect_status
from harvests.services.payouts import get_my_payouts
from harvests.services.credits import get_credit_summary

bp = Blueprint('payments', __name__)


@bp.route('/checkout', methods=['POST'])
@require_jwt
@rate_limit('checkout')
def checkout_route():
    """
    Places an order from the consumer's cart and starts payment.

    Request body:
        cart_id (uuid), delivery_date (YYYY-MM-DD), use_credits (bool),
        payment_method_id (str, optional), tip_amount (0-500), is_demo_mode (bool)

    Response:
        200: {success, order_id, client_secret, amount_charged, credits_redeemed, payment_status}
        400: VALIDATION_ERROR or a checkout error code
        429: Rate limit exceeded
    """
    result = process_checkout(g.current_user.id, require_json(request))
    return _handle_service_result(result)


@bp.route('/subscription/status', methods=['GET'])
@require_jwt
def check_subscription_route():
    result = check_subscription(g.current_user.id, g.current_user.email)
    return _handle_service_result(result)


@bp.route('/stripe/connect/status', methods=['GET'])
@require_jwt
@payee_required
def check_connect_status_route():
    return _handle_service_result(check_connect_status(g.current_user.id))


@bp.route('/payouts', methods=['GET'])
@require_jwt
@payee_required
def get_my_payouts_route():
    return _handle_service_result(get_my_payouts(g.current_user.id))


@bp.route('/credits', methods=['GET'])
@require_jwt
def get_credits_route():
    limit = min(request.args.get('limit', 20, type=int), 100)
    return _handle_service_result(get_credit_summary(g.current_user.id, limit=limit))
