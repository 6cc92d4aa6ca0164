"""
Application error taxonomy.

Every error carries the HTTP status it maps to; the handler registered in
``create_app`` renders them as ``{"message": ..., "errors": [...]}``.
"""
from __future__ import annotations

from typing import Any


class SiteHostError(Exception):
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str | None = None, *, errors: list[Any] | None = None):
        self.message = message or self.default_message
        self.errors = errors or []
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"message": self.message, "code": self.__class__.__name__}
        if self.errors:
            body["errors"] = self.errors
        return body


class InvalidInput(SiteHostError):
    status_code = 400
    default_message = "Validation error"


class Conflict(SiteHostError):
    status_code = 400
    default_message = "Resource already exists"


class QuotaExceeded(SiteHostError):
    status_code = 400
    default_message = "You can only create one website. Please delete your existing website first."


class Unauthorized(SiteHostError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(SiteHostError):
    status_code = 403
    default_message = "Access denied"


class NotFound(SiteHostError):
    status_code = 404
    default_message = "Not found"


class RateLimited(SiteHostError):
    status_code = 429
    default_message = "Too many attempts. Please wait and try again."


class Internal(SiteHostError):
    status_code = 500
    default_message = "Internal error"
