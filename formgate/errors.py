"""Error taxonomy for the form endpoints.

Each error knows the HTTP status it maps to and the message that is safe to
show a client. `detail` is for server-side logs only.
"""

from __future__ import annotations


class FormGateError(Exception):
    status_code: int = 500
    public_message: str = "Internal server error"
    log_event: str = "request.error"

    def __init__(self, detail: str | None = None, *, public_message: str | None = None) -> None:
        self.detail = detail or public_message or self.public_message
        if public_message is not None:
            self.public_message = public_message
        super().__init__(self.detail)

    @property
    def headers(self) -> dict[str, str]:
        return {}

    def body(self) -> dict[str, object]:
        return {"ok": False, "error": self.public_message}


class ClientInputError(FormGateError):
    """Malformed or missing field. The message names the field and is shown as-is."""

    status_code = 400
    log_event = "request.invalid"

    def __init__(self, message: str) -> None:
        super().__init__(message, public_message=message)


class RateLimitExceeded(FormGateError):
    status_code = 429
    public_message = "Too many requests. Please try again later."
    log_event = "ratelimit.blocked"

    def __init__(self, *, retry_after_s: int, policy: str, rate_headers: dict[str, str] | None = None) -> None:
        super().__init__(f"rate limit '{policy}' exhausted")
        self.retry_after_s = int(retry_after_s)
        self.policy = policy
        self.rate_headers = dict(rate_headers or {})

    @property
    def headers(self) -> dict[str, str]:
        return {**self.rate_headers, "Retry-After": str(self.retry_after_s)}

    def body(self) -> dict[str, object]:
        return {"ok": False, "error": self.public_message, "retryAfter": self.retry_after_s}


class ConfigurationError(FormGateError):
    """Missing or invalid deployment configuration (admin address, provider keys)."""

    status_code = 500
    public_message = "Service is temporarily unavailable. Please try again later."
    log_event = "config.error"


class DownstreamTimeout(FormGateError):
    status_code = 504
    public_message = "The request timed out. Please try again."
    log_event = "downstream.timeout"


class DownstreamProviderError(FormGateError):
    """A mail or chat provider failed. The provider's own message is never echoed."""

    status_code = 502
    public_message = "Upstream service error. Please try again later."
    log_event = "downstream.error"

    def __init__(self, detail: str | None = None, *, status_code: int | None = None, public_message: str | None = None) -> None:
        super().__init__(detail, public_message=public_message)
        if status_code is not None:
            self.status_code = int(status_code)
