# harvests/api/health.py
# Liveness and database connectivity probe.

from datetime import datetime
from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
from harvests import db

bp = Blueprint('health', __name__)


@bp.route('/health', methods=['GET'])
def health_check():
    """
    Returns service health. Responds 503 when the database is unreachable
    so load balancers and the post-deploy check can act on it.
    """
    try:
        db.session.execute(text('SELECT 1'))
        database = {"status": "connected"}
        status_code = 200
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Health check database error: {str(e)}")
        database = {"status": "disconnected", "error": str(e)}
        status_code = 503

    return jsonify({
        "status": "healthy" if status_code == 200 else "unhealthy",
        "database": database,
        "timestamp": datetime.utcnow().isoformat(),
    }), status_code
