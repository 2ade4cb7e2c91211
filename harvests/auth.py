# auth.py

from flask import Blueprint, jsonify, g
from harvests import db
from harvests.jwt_auth import require_jwt
from harvests.models import Profile

# Define the Blueprint
bp = Blueprint('auth', __name__)


@bp.route('/me', methods=['GET'])
@require_jwt
def get_current_user():
    """
    Returns the current user's profile and roles.

    This endpoint is used by the frontend to verify authentication status
    and load the profile after Supabase login. The profile row is created
    on first call by JIT provisioning inside @require_jwt.

    Response:
        200: Profile with roles
        401: Invalid or missing token
    """
    user = g.current_user
    profile = db.session.get(Profile, user.id)

    return jsonify({
        "is_authenticated": True,
        "user_id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "roles": user.roles,
        "profile": profile.to_dict() if profile else None,
    }), 200


# NOTE FOR DEVELOPERS:
# Registration, login and logout are handled by Supabase on the frontend.
# The frontend sends the Supabase access token in the Authorization header
# and the backend verifies it with @require_jwt.
