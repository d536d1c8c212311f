"""Classified errors raised by the Hetzner Cloud client."""

from __future__ import annotations

from hcloud import APIException


class HCloudError(Exception):
    """Base class for failed Hetzner API calls."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class NotFoundError(HCloudError):
    """The addressed resource does not exist."""


class RateLimitError(HCloudError):
    """The API rejected the call because the rate limit was exceeded."""


class ConflictError(HCloudError):
    """The call conflicts with the current state of the resource."""


class UnauthorizedError(HCloudError):
    """The API token was rejected."""


class TransientError(HCloudError):
    """Timeouts, 5xx responses and transport failures."""


_CODE_MAP: dict[str, type[HCloudError]] = {
    "not_found": NotFoundError,
    "rate_limit_exceeded": RateLimitError,
    "conflict": ConflictError,
    "uniqueness_error": ConflictError,
    "resource_in_use": ConflictError,
    "unauthorized": UnauthorizedError,
    "forbidden": UnauthorizedError,
    "token_readonly": UnauthorizedError,
    "locked": TransientError,
    "timeout": TransientError,
    "server_error": TransientError,
    "service_error": TransientError,
    "resource_unavailable": TransientError,
    "maintenance": TransientError,
}


def translate_api_exception(error: APIException) -> HCloudError:
    """Map an ``hcloud.APIException`` onto the classified error hierarchy."""
    error_cls = _CODE_MAP.get(str(error.code), HCloudError)
    return error_cls(f"{error.code}: {error.message}", code=str(error.code))


def translate_transport_error(error: OSError) -> TransientError:
    """Wrap connection failures and timeouts from the HTTP layer."""
    return TransientError(f"request failed: {error}", code="transport")
