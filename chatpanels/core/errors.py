"""Shared error types.

Every error carries a stable ``code``, a human-readable ``message`` and the HTTP
status the relay answers with. Nothing in this hierarchy is retried.
"""
from __future__ import annotations


class APIError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, status_code: int | None = None, detail: dict | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail

    def to_payload(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.detail:
            payload["detail"] = self.detail
        return payload


class ConfigurationError(APIError):
    """Missing or invalid credential or provider id, detected before any network call."""

    code = "CONFIGURATION_ERROR"
    status_code = 400


class BadRequest(ConfigurationError):
    code = "BAD_REQUEST"
    status_code = 400


class Unauthorized(ConfigurationError):
    code = "UNAUTHORIZED"
    status_code = 401


class NotFound(ConfigurationError):
    code = "NOT_FOUND"
    status_code = 404


class UnsupportedProvider(NotFound):
    code = "UNSUPPORTED_PROVIDER"


class UpstreamError(APIError):
    """Vendor answered with a failure status or a payload we cannot use."""

    code = "UPSTREAM_ERROR"
    status_code = 502


class ProviderError(UpstreamError):
    """Non-success HTTP status from a vendor; ``status_code`` is the vendor's."""

    code = "PROVIDER_ERROR"

    def __init__(self, message: str, *, status_code: int, detail: dict | None = None):
        super().__init__(message, status_code=status_code, detail=detail)


class TransportError(APIError):
    """Network failure or premature end of a vendor stream."""

    code = "PROVIDER_UNREACHABLE"
    status_code = 503
