"""Canonical control-plane status semantics for adapter-layer error routing."""

from __future__ import annotations

from enum import Enum
from typing import Final


class ControlPlaneStatusReason(str, Enum):
    """Known `Status.reason` values returned by Kubernetes-style API servers."""

    ALREADY_EXISTS = "AlreadyExists"
    CONFLICT = "Conflict"
    INVALID = "Invalid"
    BAD_REQUEST = "BadRequest"
    FORBIDDEN = "Forbidden"
    UNAUTHORIZED = "Unauthorized"
    NOT_FOUND = "NotFound"
    METHOD_NOT_ALLOWED = "MethodNotAllowed"
    GONE = "Gone"
    TOO_MANY_REQUESTS = "TooManyRequests"
    SERVER_TIMEOUT = "ServerTimeout"
    TIMEOUT = "Timeout"
    INTERNAL_ERROR = "InternalError"
    SERVICE_UNAVAILABLE = "ServiceUnavailable"


CONTROL_PLANE_TRANSIENT_REASONS: Final[frozenset[str]] = frozenset(
    {
        ControlPlaneStatusReason.CONFLICT.value,
        ControlPlaneStatusReason.TOO_MANY_REQUESTS.value,
        ControlPlaneStatusReason.SERVER_TIMEOUT.value,
        ControlPlaneStatusReason.TIMEOUT.value,
        ControlPlaneStatusReason.INTERNAL_ERROR.value,
        ControlPlaneStatusReason.SERVICE_UNAVAILABLE.value,
    }
)

CONTROL_PLANE_PERMISSION_REASONS: Final[frozenset[str]] = frozenset(
    {
        ControlPlaneStatusReason.FORBIDDEN.value,
        ControlPlaneStatusReason.UNAUTHORIZED.value,
    }
)

CONTROL_PLANE_VALIDATION_REASONS: Final[frozenset[str]] = frozenset(
    {
        ControlPlaneStatusReason.INVALID.value,
        ControlPlaneStatusReason.BAD_REQUEST.value,
        ControlPlaneStatusReason.METHOD_NOT_ALLOWED.value,
        ControlPlaneStatusReason.NOT_FOUND.value,
        ControlPlaneStatusReason.GONE.value,
    }
)

CONTROL_PLANE_TRANSIENT_STATUS_CODES: Final[frozenset[int]] = frozenset({408, 409, 429, 500, 502, 503, 504})

CONTROL_PLANE_TERMINAL_STATUS_CODES: Final[frozenset[int]] = frozenset({400, 401, 403, 404, 405, 410, 422})

CONTROL_PLANE_QUOTA_MESSAGE_MARKER: Final[str] = "exceeded quota"


def control_plane_classify_failure(status_code: int, reason: str | None, message: str) -> str:
    """Classify one failed control-plane response.

    The upstream `Status.reason` wins over the HTTP status code when present,
    because API servers report conflicts and throttling with stable reasons.

    Args:
        status_code: HTTP status code of the response.
        reason: Optional `Status.reason` value from the response body.
        message: Upstream message used to detect quota rejections.

    Returns:
        str: One of `transient`, `quota`, `permission`, `validation`.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    normalized_reason = (reason or "").strip()
    if CONTROL_PLANE_QUOTA_MESSAGE_MARKER in message.lower():
        return "quota"
    if normalized_reason in CONTROL_PLANE_TRANSIENT_REASONS:
        return "transient"
    if normalized_reason in CONTROL_PLANE_PERMISSION_REASONS:
        return "permission"
    if normalized_reason in CONTROL_PLANE_VALIDATION_REASONS:
        return "validation"
    if status_code in CONTROL_PLANE_TRANSIENT_STATUS_CODES or status_code >= 500:
        return "transient"
    if status_code in (401, 403):
        return "permission"
    return "validation"


def control_plane_parse_retry_after(header_value: str | None) -> float | None:
    """Parse a `Retry-After` header expressed in seconds.

    Args:
        header_value: Raw header value.

    Returns:
        float | None: Non-negative delay seconds, or None when absent or not numeric.
    """

    if header_value is None:
        return None
    try:
        parsed_value = float(header_value.strip())
    except ValueError:
        return None
    return max(0.0, parsed_value)
