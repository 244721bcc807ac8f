"""
Application error taxonomy.

Every AppError is rendered by the handlers in app/main.py as
{"success": false, "error": {"code": ..., "message": ...}}.
"""
from typing import Optional


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequestError(AppError):
    status_code = 400
    code = "BAD_REQUEST"
    default_message = "Bad request"


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class PremiumRequiredError(AppError):
    status_code = 403
    code = "PREMIUM_REQUIRED"
    default_message = "Daily limit reached. Upgrade to Starlight Pro for unlimited affirmations."


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Conflict"


class TransientError(AppError):
    """Store unavailable or timed out. Safe to retry."""

    status_code = 503
    code = "SERVICE_UNAVAILABLE"
    default_message = "Service temporarily unavailable. Please try again."


class ConfigurationError(RuntimeError):
    """Raised at startup when the process must not accept traffic."""
