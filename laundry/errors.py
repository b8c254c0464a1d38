"""
Exception taxonomy for the laundry backend.

Service functions raise these; the handlers registered by ``register_error_handlers``
turn them into ``{"success": False, "error": ...}`` JSON responses.
"""

import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class LaundryError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message=None, payload=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.payload = payload or {}

    def to_dict(self):
        data = {"success": False, "error": self.message}
        data.update(self.payload)
        return data


class ValidationError(LaundryError):
    status_code = 400
    message = "Invalid request"


class AuthenticationError(LaundryError):
    status_code = 401
    message = "Unauthorized"


class AuthorizationError(LaundryError):
    status_code = 403
    message = "Forbidden"


class NotFoundError(LaundryError):
    status_code = 404
    message = "Not found"


class InvalidStateTransition(LaundryError):
    """The requested change is not allowed from the order's current state."""
    status_code = 400
    message = "Invalid status transition"

    def __init__(self, message=None, valid_transitions=None, payload=None):
        payload = dict(payload or {})
        if valid_transitions is not None:
            payload["validTransitions"] = list(valid_transitions)
        super().__init__(message, payload)
        self.valid_transitions = list(valid_transitions or [])


class StaleOrderStatus(InvalidStateTransition):
    """Another writer changed the order between our read and our write."""
    status_code = 409
    message = "Order status changed concurrently; reload and retry"


class ExceedsRefundable(LaundryError):
    status_code = 400
    message = "Refund amount exceeds the refundable balance"

    def __init__(self, remaining_cents, message=None):
        super().__init__(message, {"remainingCents": remaining_cents})
        self.remaining_cents = remaining_cents


class PaymentProcessorError(LaundryError):
    status_code = 500
    message = "Payment processor error"

    def __init__(self, message=None, detail=None, code=None):
        payload = {}
        if detail:
            payload["details"] = detail
        if code:
            payload["code"] = code
        super().__init__(message, payload)
        self.detail = detail
        self.code = code


class PersistenceError(LaundryError):
    status_code = 500
    message = "Failed to save changes"


def register_error_handlers(app):
    @app.errorhandler(LaundryError)
    def handle_laundry_error(e):
        if e.status_code >= 500:
            logger.error("%s: %s %s", type(e).__name__, e.message, e.payload)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(429)
    def ratelimit_handler(e):
        # Retry-After header is set by Flask-Limiter; read it back.
        retry_after = dict(e.get_headers()).get("Retry-After") if hasattr(e, "get_headers") else None
        retry_after_seconds = int(retry_after) if retry_after else 60
        return jsonify({
            "success": False,
            "error": "Too many requests. Please try again later.",
            "retryAfter": retry_after_seconds,
        }), 429

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"success": False, "error": e.description or e.name}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        logger.exception("Unhandled error")
        return jsonify({"success": False, "error": "Internal server error"}), 500
