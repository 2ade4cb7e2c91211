# harvests/errors.py
"""
Application error hierarchy.

Every error carries a machine-readable `code` (used by the frontend to pick a
message) and the HTTP status it maps to. The handlers registered in
harvests/middleware.py turn these into JSON responses.
"""


class AppError(Exception):
    """Base class for errors that map cleanly onto an HTTP response"""
    status_code = 500
    code = 'INTERNAL_ERROR'

    def __init__(self, message, code=None, status_code=None, details=None):
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        body = {"success": False, "error": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    status_code = 400
    code = 'VALIDATION_ERROR'


class AuthenticationError(AppError):
    status_code = 401
    code = 'UNAUTHORIZED'


class AuthorizationError(AppError):
    status_code = 403
    code = 'FORBIDDEN'


class NotFoundError(AppError):
    status_code = 404
    code = 'NOT_FOUND'


class ConflictError(AppError):
    status_code = 409
    code = 'CONFLICT'


class PaymentError(AppError):
    status_code = 402
    code = 'PAYMENT_ERROR'


class RateLimitError(AppError):
    status_code = 429
    code = 'TOO_MANY_REQUESTS'

    def __init__(self, message, retry_after=None):
        super().__init__(message)
        self.retry_after = retry_after

    def to_dict(self):
        body = super().to_dict()
        body["retryAfter"] = self.retry_after
        return body


class ExternalServiceError(AppError):
    status_code = 502
    code = 'EXTERNAL_SERVICE_ERROR'


# --- Domain errors ---

class CheckoutError(AppError):
    """Raised by the checkout service; always a 400 with a specific code."""
    status_code = 400

    EMPTY_CART = 'EMPTY_CART'
    INSUFFICIENT_INVENTORY = 'INSUFFICIENT_INVENTORY'
    BELOW_MINIMUM_ORDER = 'BELOW_MINIMUM_ORDER'
    CUTOFF_PASSED = 'CUTOFF_PASSED'
    INVALID_DELIVERY_DATE = 'INVALID_DELIVERY_DATE'
    MISSING_PROFILE_INFO = 'MISSING_PROFILE_INFO'
    NO_MARKET_CONFIG = 'NO_MARKET_CONFIG'
    PAYMENT_FAILED = 'PAYMENT_FAILED'

    def __init__(self, code, message, details=None):
        super().__init__(message, code=code, details=details)


class CancellationError(AppError):
    ORDER_NOT_FOUND = 'ORDER_NOT_FOUND'
    INVALID_STATUS = 'INVALID_STATUS'
    TOO_LATE_TO_CANCEL = 'TOO_LATE_TO_CANCEL'

    _STATUS_BY_CODE = {
        ORDER_NOT_FOUND: 404,
        INVALID_STATUS: 400,
        TOO_LATE_TO_CANCEL: 400,
    }

    def __init__(self, code, message):
        super().__init__(message, code=code, status_code=self._STATUS_BY_CODE.get(code, 400))
