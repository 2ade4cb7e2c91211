# harvests/api/drivers.py
# Driver route claiming, stop updates and payee tax information.

from flask import Blueprint, request, g
from harvests.jwt_auth import require_jwt, driver_required, payee_required
from harvests.services.rate_limiter import rate_limit
from harvests.utils import _handle_service_result, require_json
from harvests.services.routes import get_available_routes, claim_route, get_route_stops, update_stop_status
from harvests.services.tax_info import store_tax_info

bp = Blueprint('drivers', __name__)


@bp.route('/driver/routes/available', methods=['GET'])
@require_jwt
@driver_required
def get_available_routes_route():
    return _handle_service_result(get_available_routes())


@bp.route('/driver/routes/<batch_id>/claim', methods=['POST'])
@require_jwt
@driver_required
@rate_limit('claim_route')
def claim_route_route(batch_id):
    """
    Claims a pending batch for the current driver.

    Response:
        200: {success, batch}
        404: Batch not found
        409: Batch already claimed or not pending
    """
    return _handle_service_result(claim_route(batch_id, g.current_user.id))


@bp.route('/driver/routes/<batch_id>/stops', methods=['GET'])
@require_jwt
def get_route_stops_route(batch_id):
    return _handle_service_result(get_route_stops(batch_id, g.current_user))


@bp.route('/driver/stops/<stop_id>/status', methods=['POST'])
@require_jwt
@driver_required
def update_stop_status_route(stop_id):
    data = require_json(request)
    result = update_stop_status(stop_id, g.current_user.id, data.get('status'))
    return _handle_service_result(result)


@bp.route('/tax-info', methods=['POST'])
@require_jwt
@payee_required
@rate_limit('store_tax_info')
def store_tax_info_route():
    """Stores W-9 details. The tax id is encrypted and never echoed back."""
    return _handle_service_result(store_tax_info(g.current_user.id, require_json(request)))
