# harvests/api/jobs.py
# Scheduled-job endpoints. Called by the scheduler with CRON_SECRET or by an admin.

from flask import Blueprint, request, g, current_app
from harvests.jwt_auth import cron_or_admin_required
from harvests.utils import _handle_service_result
from harvests.utils.general import parse_iso_date
from harvests.errors import ValidationError
from harvests.services.batch_generation import generate_batches
from harvests.services.batch_optimization import optimize_batches
from harvests.services.notifications import send_notification, send_cutoff_reminders

bp = Blueprint('jobs', __name__)


def _caller():
    return 'cron' if g.is_cron else g.current_user.id


@bp.route('/jobs/generate-batches', methods=['POST'])
@cron_or_admin_required
def generate_batches_route():
    current_app.logger.info(f"Batch generation triggered by {_caller()}")
    return _handle_service_result(generate_batches())


@bp.route('/jobs/send-cutoff-reminders', methods=['POST'])
@cron_or_admin_required
def send_cutoff_reminders_route():
    current_app.logger.info(f"Cutoff reminders triggered by {_caller()}")
    return _handle_service_result(send_cutoff_reminders())


@bp.route('/notifications/send', methods=['POST'])
@cron_or_admin_required
def send_notification_route():
    """
    Request body:
        event_type (str), recipient_id (uuid, optional),
        recipient_email (str, optional), data (object, optional)
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    payload = data.get('data') or {}
    if not isinstance(payload, dict):
        raise ValidationError("'data' must be an object")

    result = send_notification(
        data.get('event_type'),
        recipient_id=data.get('recipient_id'),
        recipient_email=data.get('recipient_email'),
        data=payload,
    )
    return _handle_service_result(result)


@bp.route('/admin/batches/optimize', methods=['POST'])
@cron_or_admin_required
def optimize_batches_route():
    """
    Request body (optional):
        delivery_date (YYYY-MM-DD, default tomorrow), force_ai (bool)

    Response:
        200: {success, optimization_method, fallback_reason?, batches_created, batches}
        502: force_ai was set and the AI plan was unavailable
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    delivery_date = None
    if data.get('delivery_date'):
        delivery_date = parse_iso_date(data['delivery_date'], 'delivery_date')

    force_ai = data.get('force_ai', False)
    if not isinstance(force_ai, bool):
        raise ValidationError("'force_ai' must be a boolean")

    current_app.logger.info(f"Batch optimization triggered by {_caller()}")
    return _handle_service_result(optimize_batches(delivery_date=delivery_date, force_ai=force_ai))
