# harvests/api/invitations.py
# Public endpoint for accepting an admin invitation.

from flask import Blueprint, request
from harvests.utils import _handle_service_result, require_json
from harvests.services.invitations import accept_invitation

bp = Blueprint('invitations', __name__)


@bp.route('/invitations/accept', methods=['POST'])
def accept_invitation_route():
    """
    Request body:
        token (str), password (>= 6 chars), full_name (1-100 chars)

    Response:
        200: Account created
        400: Invitation used or expired, or invalid input
        404: Unknown token
    """
    return _handle_service_result(accept_invitation(require_json(request)))
