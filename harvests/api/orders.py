# harvests/api/orders.py
# Consumer order routes: history, detail, cancellation, ratings and disputes.

from flask import Blueprint, request, g
from harvests.jwt_auth import require_jwt
from harvests.utils import _handle_service_result, require_json
from harvests.services.orders import get_orders, get_order, cancel_order, rate_delivery, get_driver_rating
from harvests.services.disputes import create_dispute

bp = Blueprint('orders', __name__)


@bp.route('/orders', methods=['GET'])
@require_jwt
def get_orders_route():
    result = get_orders(
        g.current_user.id,
        page=request.args.get('page', 1, type=int),
        per_page=min(request.args.get('per_page', 20, type=int), 100),
        status=request.args.get('status'),
    )
    return _handle_service_result(result)


@bp.route('/orders/<order_id>', methods=['GET'])
@require_jwt
def get_order_route(order_id):
    """Order detail with its batch and driver. Owner or admin only."""
    return _handle_service_result(get_order(order_id, g.current_user))


@bp.route('/orders/<order_id>/cancel', methods=['POST'])
@require_jwt
def cancel_order_route(order_id):
    """
    Cancels a pending order.

    Error codes:
        ORDER_NOT_FOUND (404), INVALID_STATUS (400), TOO_LATE_TO_CANCEL (400)
    """
    return _handle_service_result(cancel_order(order_id, g.current_user.id))


@bp.route('/orders/<order_id>/rating', methods=['POST'])
@require_jwt
def rate_delivery_route(order_id):
    result = rate_delivery(order_id, g.current_user.id, require_json(request))
    return _handle_service_result(result)


@bp.route('/orders/<order_id>/disputes', methods=['POST'])
@require_jwt
def create_dispute_route(order_id):
    result = create_dispute(order_id, g.current_user.id, require_json(request))
    return _handle_service_result(result)


@bp.route('/drivers/<driver_id>/rating', methods=['GET'])
def get_driver_rating_route(driver_id):
    return _handle_service_result(get_driver_rating(driver_id))
