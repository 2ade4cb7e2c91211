# harvests/middleware.py
"""
Cross-cutting request handling: request ids, request logging and the
JSON error handlers shared by every blueprint.
"""

import time
import uuid
import logging
import traceback
from flask import g, request, jsonify, current_app, has_request_context
from werkzeug.exceptions import HTTPException
from harvests import db
from harvests.errors import AppError, RateLimitError


class RequestIdFilter(logging.Filter):
    """Adds `request_id` to every log record ('-' outside a request)."""

    def filter(self, record):
        if has_request_context():
            record.request_id = g.get('request_id', '-')
        else:
            record.request_id = '-'
        return True


def register_request_hooks(app):

    @app.before_request
    def start_request():
        g.request_id = request.headers.get('X-Request-ID') or uuid.uuid4().hex
        g.request_started_at = time.perf_counter()
        current_app.logger.info(f"Request started: {request.method} {request.path}")

    @app.after_request
    def finish_request(response):
        started = g.get('request_started_at')
        duration_ms = int((time.perf_counter() - started) * 1000) if started else 0
        current_app.logger.info(f"Request completed: {response.status_code} ({duration_ms}ms)")
        response.headers['X-Request-ID'] = g.get('request_id', '')
        return response


def register_error_handlers(app):

    @app.errorhandler(AppError)
    def handle_app_error(error):
        if error.status_code >= 500:
            current_app.logger.error(f"{error.code}: {error.message}")
        else:
            current_app.logger.warning(f"{error.code}: {error.message}")
        response = jsonify(error.to_dict())
        response.status_code = error.status_code
        if isinstance(error, RateLimitError) and error.retry_after:
            response.headers['Retry-After'] = str(error.retry_after)
        return response

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({
            "success": False,
            "error": error.name.upper().replace(' ', '_'),
            "message": error.description,
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        current_app.logger.error(f"Unhandled error: {str(error)}", exc_info=True)
        body = {"success": False, "error": "INTERNAL_ERROR", "message": str(error)}
        if current_app.config.get('ENVIRONMENT') == 'development':
            body["stack"] = traceback.format_exc()
        return jsonify(body), 500
