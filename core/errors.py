"""Domain exceptions raised by service modules.

The API layer maps each class to an HTTP status through ``status_code``;
``code`` is a stable machine-readable identifier returned to clients.
"""

from typing import Any, Dict, Optional


class VisicheckError(Exception):
    """Base exception for Visicheck errors."""

    status_code = 500
    code: Optional[str] = None

    def __init__(self, message: str, code: Optional[str] = None, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.payload = payload or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.code:
            body["code"] = self.code
        body.update(self.payload)
        return body


class ValidationError(VisicheckError):
    """Invalid input."""

    status_code = 400


class AuthenticationError(VisicheckError):
    """Missing or invalid session."""

    status_code = 401


class AccessDeniedError(VisicheckError):
    """Trial expired and no active subscription."""

    status_code = 403
    code = "TRIAL_EXPIRED"


class PermissionDeniedError(VisicheckError):
    """Authenticated but the role does not allow the operation."""

    status_code = 403


class NotFoundError(VisicheckError):
    status_code = 404


class ConflictError(VisicheckError):
    status_code = 409


class GoneError(VisicheckError):
    """Expired or already used token."""

    status_code = 410


class QuotaExceededError(VisicheckError):
    """Prompt limit for the current billing period is exhausted."""

    status_code = 429
    code = "PROMPT_LIMIT_EXCEEDED"


class ProviderError(VisicheckError):
    """An LLM provider returned an error or an unusable response."""

    status_code = 502


class BillingError(VisicheckError):
    status_code = 502
