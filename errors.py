"""Error types raised by the Creative Hub domain store and its adapters.

Every error is scoped to the single user action that raised it: the store
commits nothing when one of these propagates. ``main.py`` installs a handler
that turns any ``CreativeHubError`` into a JSON response via ``to_response()``.
"""
from __future__ import annotations

from typing import Optional


class CreativeHubError(Exception):
    """Base exception for all Creative Hub failures."""

    code = "CREATIVE_HUB_ERROR"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class ValidationError(CreativeHubError):
    """Input failed one or more field constraints."""

    code = "VALIDATION_ERROR"
    http_status = 422

    def __init__(self, errors: dict[str, str], message: Optional[str] = None):
        self.errors = dict(errors)
        if message is None:
            message = "; ".join(f"{field}: {msg}" for field, msg in self.errors.items())
        super().__init__(message)

    def to_response(self) -> dict:
        body = super().to_response()
        body["error"]["fields"] = self.errors
        return body


class NotAuthenticatedError(CreativeHubError):
    code = "NOT_AUTHENTICATED"
    http_status = 401

    def __init__(self, message: str = "You need to be logged in to do that."):
        super().__init__(message)


class ForbiddenError(CreativeHubError):
    code = "FORBIDDEN"
    http_status = 403

    def __init__(self, message: str = "You are not allowed to do that."):
        super().__init__(message)


class NotFoundError(CreativeHubError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, resource_type: str, resource_id: object):
        super().__init__(f"{resource_type} '{resource_id}' not found")
        self.resource_type = resource_type
        self.resource_id = resource_id


class NotReadyError(CreativeHubError):
    """Mutation attempted while the initial session resolution is in flight."""

    code = "NOT_READY"
    http_status = 503

    def __init__(self, message: str = "Session is still loading, try again shortly."):
        super().__init__(message)


class UpstreamError(CreativeHubError):
    """The identity delegate or the suggestion service failed."""

    code = "UPSTREAM_ERROR"
    http_status = 502


class AuthError(UpstreamError):
    """Identity delegate rejected an operation.

    ``message`` is the provider's own text and is shown to the user verbatim.
    """

    code = "AUTH_ERROR"
    http_status = 400

    def __init__(self, message: str, provider_code: str = "auth/unknown"):
        super().__init__(message)
        self.provider_code = provider_code

    def to_response(self) -> dict:
        body = super().to_response()
        body["error"]["provider_code"] = self.provider_code
        return body
