# harvests/utils/general.py
"""
General-purpose utility functions.

Service result handling shared by every blueprint, plus the small request
parsing helpers routes use before calling into a service.
"""

import math
import re
import uuid
from datetime import datetime
from flask import jsonify
from harvests.errors import ValidationError

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def _handle_service_result(result, default_error_status=500):
    """
    Parses the result from a service function.
    If it's a tuple (error_dict, status_code), it uses the custom status code.
    Otherwise, it assumes success (status 200) or uses the default error status.

    Adds 'error_code' field to error responses for structured frontend handling.
    """
    if isinstance(result, tuple) and len(result) == 2:
        body, status_code = result
        if not body.get("success", True):
            body["error_code"] = body.get("error_code", status_code)
        return jsonify(convert_to_json_safe(body)), status_code

    if result.get("success"):
        return jsonify(convert_to_json_safe(result)), 200
    else:
        result["error_code"] = result.get("error_code", default_error_status)
        return jsonify(convert_to_json_safe(result)), default_error_status


def convert_to_json_safe(obj):
    """
    Recursively converts values to JSON-safe types.
    NaN/inf floats become None; dates become ISO strings.
    """
    if isinstance(obj, dict):
        return {k: convert_to_json_safe(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [convert_to_json_safe(i) for i in obj]
    elif isinstance(obj, float):
        if obj != obj:  # NaN check
            return None
        if obj == float('inf') or obj == float('-inf'):
            return None
        return obj
    elif hasattr(obj, 'isoformat'):
        return obj.isoformat()
    return obj


# --- Request parsing helpers ---

def require_json(request):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def is_valid_uuid(value):
    try:
        uuid.UUID(str(value))
        return True
    except (ValueError, TypeError, AttributeError):
        return False


def is_valid_email(value):
    return isinstance(value, str) and len(value) <= 255 and bool(EMAIL_RE.match(value))


def parse_iso_date(value, field='date'):
    """Parses 'YYYY-MM-DD' into a date or raises ValidationError."""
    if not isinstance(value, str):
        raise ValidationError(f"'{field}' must be a YYYY-MM-DD string")
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f"'{field}' must be a YYYY-MM-DD string")


def validate_string(value, field, min_length=1, max_length=None):
    if not isinstance(value, str):
        raise ValidationError(f"'{field}' is required")
    value = value.strip()
    if len(value) < min_length:
        raise ValidationError(f"'{field}' must be at least {min_length} characters")
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"'{field}' must be at most {max_length} characters")
    return value


def validate_number(value, field, minimum=None, maximum=None, exclusive_minimum=False):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"'{field}' must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f"'{field}' must be a finite number")
    if minimum is not None:
        if exclusive_minimum and value <= minimum:
            raise ValidationError(f"'{field}' must be greater than {minimum}")
        if not exclusive_minimum and value < minimum:
            raise ValidationError(f"'{field}' must be at least {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"'{field}' must be at most {maximum}")
    return value
