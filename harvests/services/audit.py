# harvests/services/audit.py
# Admin audit trail.

from flask import current_app
from harvests import db
from harvests.models import AdminAuditLog


def log_admin_action(admin_id, action_type, target_resource_type=None, target_resource_id=None,
                     details=None, commit=True):
    """
    Records an admin action. Adds to the current session; commits unless the
    caller is batching it with its own changes (commit=False).
    """
    entry = AdminAuditLog(
        admin_id=admin_id,
        action_type=action_type,
        target_resource_type=target_resource_type,
        target_resource_id=str(target_resource_id) if target_resource_id else None,
        details=details or {},
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    current_app.logger.info(f"Admin {admin_id} action {action_type} on {target_resource_type}:{target_resource_id}")
    return entry


def get_audit_log(page=1, per_page=50, action_type=None):
    try:
        query = AdminAuditLog.query
        if action_type:
            query = query.filter(AdminAuditLog.action_type == action_type)

        entries = query.order_by(AdminAuditLog.created_at.desc()).paginate(
            page=page, per_page=per_page, error_out=False
        )
        return {
            "success": True,
            "data": {
                "entries": [e.to_dict() for e in entries.items],
                "total": entries.total,
                "pages": entries.pages,
                "current_page": entries.page,
            }
        }
    except Exception as e:
        current_app.logger.error(f"Error fetching audit log: {str(e)}", exc_info=True)
        return ({"success": False, "error": f"Database error: {str(e)}"}, 500)
