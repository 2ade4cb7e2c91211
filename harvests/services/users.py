# harvests/services/users.py
# User and role management for admins.

from flask import current_app
from sqlalchemy.exc import IntegrityError
from harvests import db
from harvests.models import Profile, UserRole
from harvests.services.audit import log_admin_action


def get_all_users():
    """Fetches all profiles with their roles for the admin user list."""
    try:
        users = Profile.query.order_by(Profile.created_at.desc()).all()
        user_list = [
            {
                "id": user.id,
                "email": user.email,
                "full_name": user.full_name,
                "zip_code": user.zip_code,
                "roles": user.role_names(),
                "created_at": user.created_at,
            }
            for user in users
        ]
        return {"success": True, "users": user_list}
    except Exception as e:
        current_app.logger.error(f"Error fetching users: {str(e)}", exc_info=True)
        return ({"success": False, "error": f"Database error fetching users: {str(e)}"}, 500)


def grant_role(admin_id, user_id, role):
    if role not in UserRole.ROLES:
        return ({"success": False, "error": f"Invalid role. Must be one of: {', '.join(UserRole.ROLES)}"}, 400)

    user = db.session.get(Profile, user_id)
    if not user:
        return ({"success": False, "error": "User not found."}, 404)

    if role in user.role_names():
        return ({"success": False, "error": f"User already has role {role}."}, 409)

    try:
        db.session.add(UserRole(user_id=user_id, role=role))
        log_admin_action(admin_id, 'grant_role', 'user', user_id, details={'role': role}, commit=False)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return ({"success": False, "error": f"User already has role {role}."}, 409)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Could not grant role {role} to {user_id}: {str(e)}", exc_info=True)
        return ({"success": False, "error": f"Could not grant role: {str(e)}"}, 500)

    db.session.refresh(user)
    return {"success": True, "message": f"Granted {role} to {user.email}.", "roles": user.role_names()}


def revoke_role(admin_id, user_id, role):
    user = db.session.get(Profile, user_id)
    if not user:
        return ({"success": False, "error": "User not found."}, 404)

    user_role = UserRole.query.filter_by(user_id=user_id, role=role).first()
    if not user_role:
        return ({"success": False, "error": f"User does not have role {role}."}, 404)

    # An admin cannot lock themselves out
    if role == 'admin' and user_id == admin_id:
        return ({"success": False, "error": "Admins cannot revoke their own admin role."}, 400)

    try:
        db.session.delete(user_role)
        log_admin_action(admin_id, 'revoke_role', 'user', user_id, details={'role': role}, commit=False)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Could not revoke role {role} from {user_id}: {str(e)}", exc_info=True)
        return ({"success": False, "error": f"Could not revoke role: {str(e)}"}, 500)

    db.session.refresh(user)
    return {"success": True, "message": f"Revoked {role} from {user.email}.", "roles": user.role_names()}
