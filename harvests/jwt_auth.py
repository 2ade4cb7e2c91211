"""
JWT Authentication Middleware for Supabase Integration

Verifies Supabase access tokens, provisions the caller's profile and
exposes role-based decorators. Roles live in the `user_roles` table.
"""

import hmac
import jwt
from functools import wraps
from dataclasses import dataclass, field
from flask import request, jsonify, g, current_app
from harvests.services.jit_provisioning import ensure_profile_synced, JITProvisioningError


class JWTAuthError(Exception):
    """Custom exception for JWT authentication errors"""
    def __init__(self, message, status_code=401):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


@dataclass
class UserContext:
    """
    Lightweight user context for the current request.

    Identity comes from the verified token's claims; roles come from the
    profile's `user_roles` rows loaded during provisioning.
    """
    id: str          # From JWT 'sub' claim (Supabase UUID)
    email: str       # From JWT 'email' claim
    full_name: str   # From JWT 'user_metadata.full_name' or the profile
    roles: list = field(default_factory=list)

    def has_role(self, *roles):
        return any(role in self.roles for role in roles)

    @property
    def is_admin(self):
        return 'admin' in self.roles


def extract_token_from_header():
    """
    Extracts the JWT token from the Authorization header.

    Expected format: "Authorization: Bearer <token>"

    Raises:
        JWTAuthError: If Authorization header is missing or malformed
    """
    auth_header = request.headers.get('Authorization')

    if not auth_header:
        raise JWTAuthError("Missing Authorization header", 401)

    parts = auth_header.split()

    if len(parts) != 2 or parts[0].lower() != 'bearer':
        raise JWTAuthError("Invalid Authorization header format. Expected 'Bearer <token>'", 401)

    return parts[1]


def verify_supabase_token(token):
    """
    Verifies a Supabase JWT token and extracts user claims.

    Raises:
        JWTAuthError: If token is invalid, expired, or verification fails
    """
    jwt_secret = current_app.config.get('SUPABASE_JWT_SECRET')

    if not jwt_secret:
        raise JWTAuthError("SUPABASE_JWT_SECRET not configured", 500)

    try:
        return jwt.decode(
            token,
            jwt_secret,
            algorithms=['HS256'],
            audience='authenticated',  # Supabase default audience
            options={'verify_exp': True, 'verify_aud': True}
        )

    except jwt.ExpiredSignatureError:
        raise JWTAuthError("Token has expired", 401)
    except jwt.InvalidAudienceError:
        raise JWTAuthError("Invalid token audience", 401)
    except jwt.InvalidTokenError as e:
        raise JWTAuthError(f"Invalid token: {str(e)}", 401)


def create_user_context_from_token(payload):
    """
    Builds the UserContext for a verified token payload.

    Flow:
    1. Extract claims from JWT payload
    2. Sync the profile row (INSERT/UPDATE as needed)
    3. Read roles from the synced profile

    Raises:
        JWTAuthError: If required claims are missing or JIT provisioning fails
    """
    user_id = payload.get('sub')
    email = payload.get('email')
    user_metadata = payload.get('user_metadata') or {}
    full_name = user_metadata.get('full_name')

    if not user_id:
        raise JWTAuthError("Token missing 'sub' claim", 401)

    if not email:
        raise JWTAuthError("Token missing 'email' claim", 401)

    try:
        profile = ensure_profile_synced(user_id=user_id, email=email, full_name=full_name)
    except JITProvisioningError as e:
        current_app.logger.error(
            f"Authentication failed for {email} ({user_id}): JIT provisioning error: {e.message}"
        )
        raise JWTAuthError("User provisioning failed. Please contact support.", 401)

    return UserContext(
        id=user_id,
        email=email,
        full_name=profile.full_name or email.split('@')[0],
        roles=profile.role_names()
    )


def _authenticate():
    token = extract_token_from_header()
    payload = verify_supabase_token(token)
    g.current_user = create_user_context_from_token(payload)
    g.is_authenticated = True
    return g.current_user


def require_jwt(f):
    """
    Decorator to protect routes with JWT authentication.

    Usage:
        @bp.route('/protected')
        @require_jwt
        def protected_route():
            user = g.current_user  # UserContext
            return jsonify({"message": f"Hello {user.full_name}"})

    Error Responses:
        401: Missing, invalid, or expired token
        500: Server error during authentication
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            _authenticate()
        except JWTAuthError as e:
            return jsonify({"message": e.message}), e.status_code

        return f(*args, **kwargs)

    return decorated_function


def roles_required(*roles):
    """
    Decorator factory requiring at least one of the given roles.

    Must be used AFTER @require_jwt.

    Usage:
        @bp.route('/driver-only')
        @require_jwt
        @roles_required('driver')
        def driver_route():
            ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, 'current_user', None)

            if not user:
                return jsonify({"message": "Authentication required."}), 401

            if not user.has_role(*roles):
                return jsonify({
                    "message": f"Permission denied: requires role {' or '.join(roles)}."
                }), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator


admin_required = roles_required('admin')
driver_required = roles_required('driver')
farmer_required = roles_required('farmer', 'lead_farmer')
payee_required = roles_required('farmer', 'lead_farmer', 'driver')


def cron_or_admin_required(f):
    """
    Protects scheduled-job endpoints.

    Accepts either `Authorization: Bearer <CRON_SECRET>` (the scheduler) or a
    valid admin JWT. Sets g.is_cron so handlers can tell the two apart.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.is_cron = False
        cron_secret = current_app.config.get('CRON_SECRET')

        try:
            token = extract_token_from_header()
        except JWTAuthError as e:
            return jsonify({"message": e.message}), e.status_code

        if cron_secret and hmac.compare_digest(token.encode('utf-8'), cron_secret.encode('utf-8')):
            g.is_cron = True
            g.current_user = None
            return f(*args, **kwargs)

        try:
            user = _authenticate()
        except JWTAuthError as e:
            return jsonify({"message": e.message}), e.status_code

        if not user.is_admin:
            return jsonify({"message": "Permission denied: Admin access required."}), 403

        return f(*args, **kwargs)

    return decorated_function


def get_current_user():
    return getattr(g, 'current_user', None)
