"""Domain error taxonomy.

Every error raised by the request pipeline derives from ``DocwiseError``.
The API layer renders them as ``{"success": false, "error": ...}`` JSON
with the HTTP status carried by the class (see ``app.main``).
"""

from typing import Any


class DocwiseError(Exception):
    """Base class for errors that map to a typed JSON response."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, **extra: Any):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "error": self.message, "code": self.code}
        payload.update(self.extra)
        return payload


class Unauthorized(DocwiseError):
    status_code = 401
    code = "unauthorized"
    default_message = "Unauthorized"


class InvalidInput(DocwiseError):
    status_code = 400
    code = "invalid_input"
    default_message = "Invalid request"


class LimitReached(DocwiseError):
    status_code = 429
    code = "limit_reached"
    default_message = "AI generation limit reached. Please upgrade your plan to continue."

    def __init__(self, message: str | None = None, **extra: Any):
        extra.setdefault("limit_reached", True)
        super().__init__(message, **extra)


class GenerationFailed(DocwiseError):
    status_code = 500
    code = "generation_failed"
    default_message = "The document could not be generated. Please try rephrasing your request."


class NotFound(DocwiseError):
    status_code = 404
    code = "not_found"
    default_message = "Document not found or access denied"


class ExportAuthRequired(DocwiseError):
    status_code = 401
    code = "export_auth_required"
    default_message = "Google account not connected. Please connect your Google account first."

    def __init__(self, message: str | None = None, **extra: Any):
        extra.setdefault("requires_auth", True)
        super().__init__(message, **extra)


class NotConnected(ExportAuthRequired):
    code = "not_connected"


class TokenExpired(ExportAuthRequired):
    code = "token_expired"
    default_message = "Google token expired. Please reconnect your Google account."


class ExportFailed(DocwiseError):
    status_code = 502
    code = "export_failed"
    default_message = "Export to Google failed. Please try again."


class ConfigurationError(DocwiseError):
    status_code = 500
    code = "configuration_error"
    default_message = "Service is not configured"


class WebhookVerificationError(DocwiseError):
    status_code = 400
    code = "invalid_webhook"
    default_message = "Invalid webhook payload or signature"


class StorageError(DocwiseError):
    status_code = 500
    code = "storage_error"
    default_message = "Database operation failed"
