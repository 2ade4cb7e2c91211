# harvests/services/rate_limiter.py
"""
Sliding-window rate limiter backed by the `rate_limits` table.

Each allowed request inserts one row keyed `<prefix>:<user_id>`; a request is
denied when the window already holds `max_requests` rows for that key.
The limiter fails open: if the database check itself errors, the request
is allowed and the error is logged.
"""

import math
from datetime import datetime, timedelta
from functools import wraps
from flask import current_app, g
from harvests import db
from harvests.errors import RateLimitError
from harvests.models import RateLimit


def check_rate_limit(user_id, max_requests, window_seconds, key_prefix):
    """
    Returns:
        dict: {"allowed": bool, "remaining": int, "retry_after": seconds or None}
    """
    key = f"{key_prefix}:{user_id}"
    now = datetime.utcnow()
    window_start = now - timedelta(seconds=window_seconds)

    try:
        recent = (
            RateLimit.query
            .filter(RateLimit.key == key, RateLimit.created_at > window_start)
            .order_by(RateLimit.created_at.asc())
            .all()
        )

        if len(recent) >= max_requests:
            oldest = recent[0].created_at
            reset_at = oldest + timedelta(seconds=window_seconds)
            retry_after = max(1, math.ceil((reset_at - now).total_seconds()))
            return {"allowed": False, "remaining": 0, "retry_after": retry_after}

        db.session.add(RateLimit(key=key, created_at=now))
        # Cleanup of rows that fell out of the window
        RateLimit.query.filter(
            RateLimit.key == key, RateLimit.created_at <= window_start
        ).delete(synchronize_session=False)
        db.session.commit()

        return {"allowed": True, "remaining": max_requests - len(recent) - 1, "retry_after": None}

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Rate limit check failed for {key}, allowing request: {str(e)}")
        return {"allowed": True, "remaining": max_requests, "retry_after": None}


def rate_limit(name):
    """
    Decorator applying the RATE_LIMITS[name] policy to the current user.

    Must be used AFTER @require_jwt so g.current_user is set.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            policy = current_app.config['RATE_LIMITS'][name]
            user = getattr(g, 'current_user', None)
            identity = user.id if user else 'anonymous'

            result = check_rate_limit(
                identity,
                max_requests=policy['max_requests'],
                window_seconds=policy['window_seconds'],
                key_prefix=name,
            )
            if not result["allowed"]:
                current_app.logger.warning(f"Rate limit exceeded for {name}:{identity}")
                raise RateLimitError(
                    "Too many requests. Please try again later.",
                    retry_after=result["retry_after"]
                )
            return f(*args, **kwargs)
        return decorated_function
    return decorator
