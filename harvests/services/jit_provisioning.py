# harvests/services/jit_provisioning.py
"""
Just-in-Time Profile Provisioning Service

This service ensures that authenticated users (verified via Supabase JWT)
always have a row in the `profiles` table.

Sync Strategy:
- Sync email and full name from the token on every request
- Use UUID from JWT 'sub' claim for lookups (primary key)
- First sign-in grants the 'consumer' role
- Fail authentication if provisioning fails (strict mode)
"""

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from harvests import db
from harvests.models import Profile, UserRole

DEFAULT_ROLE = 'consumer'


class JITProvisioningError(Exception):
    """Custom exception for JIT provisioning failures"""
    def __init__(self, message, original_error=None):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)


def ensure_profile_synced(user_id, email, full_name=None):
    """
    Ensures a profile exists for the user and its metadata matches the token.

    Args:
        user_id (str): Supabase UUID from JWT 'sub' claim
        email (str): Email from JWT 'email' claim
        full_name (str): From JWT 'user_metadata.full_name' (optional)

    Returns:
        Profile: The synchronized Profile ORM object

    Raises:
        JITProvisioningError: If database sync fails
    """
    try:
        profile = db.session.get(Profile, user_id)

        if profile is None:
            current_app.logger.info(f"JIT Provisioning: Creating profile for {email} (ID: {user_id})")

            try:
                profile = Profile(id=user_id, email=email, full_name=full_name)
                profile.roles.append(UserRole(role=DEFAULT_ROLE))
                db.session.add(profile)
                db.session.commit()
                return profile

            except IntegrityError as e:
                # Another request created the profile first
                db.session.rollback()
                current_app.logger.warning(
                    f"JIT Provisioning: Race condition detected for {email}. Retrying query."
                )
                profile = db.session.get(Profile, user_id)
                if profile is None:
                    raise JITProvisioningError(
                        f"Failed to create profile for {email} due to integrity constraint",
                        original_error=e
                    )

        changes = []
        if profile.email != email:
            changes.append(f"email: {profile.email} → {email}")
            profile.email = email
        if full_name and profile.full_name != full_name:
            changes.append(f"full_name: {profile.full_name} → {full_name}")
            profile.full_name = full_name

        if changes:
            current_app.logger.info(
                f"JIT Provisioning: Syncing profile {user_id}. Changes: {', '.join(changes)}"
            )
            try:
                db.session.commit()
            except IntegrityError as e:
                db.session.rollback()
                raise JITProvisioningError(
                    f"Failed to sync profile {user_id}: duplicate email",
                    original_error=e
                )

        return profile

    except OperationalError as e:
        db.session.rollback()
        current_app.logger.error(f"JIT Provisioning: Database connection error for {user_id}: {str(e)}")
        raise JITProvisioningError("Database connection failed during user provisioning", original_error=e)

    except JITProvisioningError:
        raise

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(
            f"JIT Provisioning: Unexpected error syncing profile {user_id}: {str(e)}",
            exc_info=True
        )
        raise JITProvisioningError(f"Unexpected error during user provisioning: {str(e)}", original_error=e)
