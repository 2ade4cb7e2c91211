# harvests/api/admin.py
# Admin-only routes: users and roles, product approval, credits, payouts,
# disputes, audit log and admin invitations.

from flask import Blueprint, request, g
from harvests.jwt_auth import require_jwt, admin_required
from harvests.services.rate_limiter import rate_limit
from harvests.errors import ValidationError
from harvests.utils import _handle_service_result, require_json
from harvests.services.users import get_all_users, grant_role, revoke_role
from harvests.services.products import approve_product
from harvests.services.credits import award_credits
from harvests.services.payouts import process_pending_payouts
from harvests.services.disputes import get_disputes, resolve_dispute
from harvests.services.audit import get_audit_log
from harvests.services.invitations import create_invitation

bp = Blueprint('admin', __name__)


@bp.route('/admin/users', methods=['GET'])
@require_jwt
@admin_required
def get_all_users_route():
    return _handle_service_result(get_all_users())


@bp.route('/admin/users/<user_id>/roles', methods=['POST'])
@require_jwt
@admin_required
def grant_role_route(user_id):
    data = require_json(request)
    return _handle_service_result(grant_role(g.current_user.id, user_id, data.get('role')))


@bp.route('/admin/users/<user_id>/roles/<role>', methods=['DELETE'])
@require_jwt
@admin_required
def revoke_role_route(user_id, role):
    return _handle_service_result(revoke_role(g.current_user.id, user_id, role))


@bp.route('/admin/products/<product_id>/approve', methods=['POST'])
@require_jwt
@admin_required
def approve_product_route(product_id):
    return _handle_service_result(approve_product(g.current_user.id, product_id))


@bp.route('/admin/credits/award', methods=['POST'])
@require_jwt
@admin_required
@rate_limit('award_credits')
def award_credits_route():
    """
    Request body:
        consumer_id (uuid), amount (0 < x <= 1000), description (1-500 chars),
        transaction_type (earned|bonus|refund), expires_in_days (1-365)
    """
    return _handle_service_result(award_credits(g.current_user.id, require_json(request)))


@bp.route('/admin/payouts/process', methods=['POST'])
@require_jwt
@admin_required
@rate_limit('process_payouts')
def process_payouts_route():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return _handle_service_result(process_pending_payouts(g.current_user.id, data))


@bp.route('/admin/disputes', methods=['GET'])
@require_jwt
@admin_required
def get_disputes_route():
    return _handle_service_result(get_disputes(request.args.get('status')))


@bp.route('/admin/disputes/<dispute_id>/resolve', methods=['POST'])
@require_jwt
@admin_required
def resolve_dispute_route(dispute_id):
    result = resolve_dispute(g.current_user.id, dispute_id, require_json(request))
    return _handle_service_result(result)


@bp.route('/admin/audit-log', methods=['GET'])
@require_jwt
@admin_required
def get_audit_log_route():
    result = get_audit_log(
        page=request.args.get('page', 1, type=int),
        per_page=min(request.args.get('per_page', 50, type=int), 200),
        action_type=request.args.get('action_type'),
    )
    return _handle_service_result(result)


@bp.route('/admin/invitations', methods=['POST'])
@require_jwt
@admin_required
@rate_limit('invite_admin')
def create_invitation_route():
    data = require_json(request)
    result = create_invitation(g.current_user, data.get('email'), origin=request.headers.get('Origin'))
    return _handle_service_result(result)
