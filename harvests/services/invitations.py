# harvests/services/invitations.py
"""
Admin invitations.

An admin invites an email address; the invitee follows the emailed link
and sets a password, which creates their Supabase auth user, profile and
admin role in one step.
"""

import secrets
from datetime import datetime, timedelta
from flask import current_app
from supabase import create_client
from harvests import db
from harvests.errors import ValidationError, NotFoundError, ConflictError, ExternalServiceError
from harvests.models import AdminInvitation, Profile, UserRole
from harvests.services.audit import log_admin_action
from harvests.services.notifications import notify_safely
from harvests.utils.general import is_valid_email, validate_string


def _supabase_admin():
    supabase_url = current_app.config.get('SUPABASE_URL')
    supabase_key = current_app.config.get('SUPABASE_SERVICE_ROLE_KEY')
    if not supabase_url or not supabase_key:
        raise ExternalServiceError("Supabase credentials not configured")
    return create_client(supabase_url, supabase_key).auth.admin


def create_invitation(admin, email, origin=None):
    """
    Creates an invitation and emails the accept link.

    The link base is APP_ORIGIN, falling back to the request's Origin header.
    """
    email = (email or '').strip().lower()
    if not is_valid_email(email):
        raise ValidationError("Invalid email address")

    if Profile.query.filter(db.func.lower(Profile.email) == email).first():
        raise ConflictError("User already exists. Please assign the role directly.")

    now = datetime.utcnow()
    open_invitation = AdminInvitation.query.filter(
        AdminInvitation.email == email,
        AdminInvitation.used_at.is_(None),
        AdminInvitation.expires_at > now,
    ).first()
    if open_invitation:
        raise ConflictError("An invitation for this email is already pending")

    invitation = AdminInvitation(
        email=email,
        invitation_token=secrets.token_hex(32),
        invited_by=admin.id,
        expires_at=now + timedelta(days=current_app.config['INVITATION_EXPIRY_DAYS']),
    )

    try:
        db.session.add(invitation)
        db.session.flush()
        log_admin_action(admin.id, 'admin_invited', 'admin_invitation', invitation.id,
                         details={'email': email, 'expires_at': invitation.expires_at.isoformat()},
                         commit=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    base_url = current_app.config.get('APP_ORIGIN') or origin or 'http://localhost:5173'
    link = f"{base_url.rstrip('/')}/admin/accept-invitation?token={invitation.invitation_token}"

    notify_safely('admin_invitation', recipient_email=email, data={
        'invited_by_name': admin.full_name or admin.email,
        'invitation_link': link,
        'expires_at': invitation.expires_at.date().isoformat(),
    })

    current_app.logger.info(f"Admin invitation created for {email} by {admin.id}")
    return {
        "success": True,
        "message": f"Invitation sent to {email}. They have {current_app.config['INVITATION_EXPIRY_DAYS']} days to accept.",
        "invitation": {
            "id": invitation.id,
            "email": invitation.email,
            "expires_at": invitation.expires_at,
        }
    }


def accept_invitation(data):
    token = data.get('token')
    if not isinstance(token, str) or not token:
        raise ValidationError("'token' is required")
    password = data.get('password')
    if not isinstance(password, str) or len(password) < 6:
        raise ValidationError("Password must be at least 6 characters")
    full_name = validate_string(data.get('full_name'), 'full_name', max_length=100)

    invitation = AdminInvitation.query.filter_by(invitation_token=token).first()
    if not invitation:
        raise NotFoundError("Invalid invitation")
    if invitation.used_at is not None:
        raise ValidationError("This invitation has already been used")
    if invitation.expires_at < datetime.utcnow():
        raise ValidationError("This invitation has expired")

    current_app.logger.info(f"Accepting invitation for {invitation.email} (token {token[:8]}...)")

    auth_admin = _supabase_admin()
    try:
        response = auth_admin.create_user({
            "email": invitation.email,
            "password": password,
            "email_confirm": True,
            "user_metadata": {"full_name": full_name},
        })
    except Exception as e:
        current_app.logger.error(f"Error creating Supabase user for {invitation.email}: {str(e)}")
        raise ExternalServiceError(f"Failed to create user account: {str(e)}")

    user_id = response.user.id

    try:
        profile = Profile(id=user_id, email=invitation.email, full_name=full_name)
        db.session.add(profile)
        db.session.add(UserRole(user_id=user_id, role='admin'))
        db.session.add(UserRole(user_id=user_id, role='consumer'))
        invitation.used_at = datetime.utcnow()
        if invitation.invited_by:
            log_admin_action(invitation.invited_by, 'admin_invitation_accepted', 'user', user_id,
                             details={'email': invitation.email, 'full_name': full_name}, commit=False)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error assigning admin role to {user_id}, removing auth user: {str(e)}")
        try:
            auth_admin.delete_user(user_id)
        except Exception as cleanup_error:
            current_app.logger.error(f"Failed to delete orphaned auth user {user_id}: {str(cleanup_error)}")
        raise

    current_app.logger.info(f"Invitation accepted: {invitation.email} is now an admin")
    return {
        "success": True,
        "message": "Account created successfully. You can now log in.",
        "email": invitation.email,
    }
