"""Project-native typed exceptions for control-plane adapter failures.

Every adapter failure is either transient (retry per backoff policy) or
terminal (fail the resource immediately). The convergence engine branches on
these two base classes only.
"""

from __future__ import annotations


class ControlPlaneError(Exception):
    """Base exception for adapter-level control-plane failures.

    Attributes:
        reason: Optional upstream status reason (for example `Conflict`).
        status_code: Optional upstream HTTP status code.
    """

    def __init__(self, message: str, reason: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.reason = reason
        self.status_code = status_code


class ControlPlaneTransientError(ControlPlaneError):
    """Retryable failure such as throttling, conflicts or upstream unavailability."""

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        status_code: int | None = None,
        retry_after_seconds: float | None = None,
    ):
        super().__init__(message=message, reason=reason, status_code=status_code)
        self.retry_after_seconds = retry_after_seconds


class ControlPlaneConnectionError(ControlPlaneTransientError, ConnectionError):
    """Transport-level connectivity failure during control-plane communication."""


class ControlPlaneTimeoutError(ControlPlaneTransientError, TimeoutError):
    """Transport timeout or readiness wait that exceeded its deadline."""


class ControlPlaneTerminalError(ControlPlaneError):
    """Non-retryable failure such as validation rejection or missing permission."""


class ControlPlaneValidationError(ControlPlaneTerminalError, ValueError):
    """Control plane rejected the submitted manifest."""


class ControlPlanePermissionError(ControlPlaneTerminalError, PermissionError):
    """Credentials are missing, invalid or lack the required permission."""


class ControlPlaneQuotaExceededError(ControlPlaneTerminalError):
    """Namespace resource quota would be exceeded by the request."""
