"""Typed interfaces for adapter-layer responsibilities."""

from dataclasses import dataclass
from typing import Protocol

from bootstrapper.domain import HealthSignal, HealthStatus, ResourceSpec


@dataclass(frozen=True)
class ApplyReceipt:
    """Acceptance record for one apply request.

    Attributes:
        resource_id: Identifier of the applied resource.
        resource_version: Opaque version returned by the control plane, when known.
    """

    resource_id: str
    resource_version: str | None = None


class ControlPlanePort(Protocol):
    """Port definition for driving a remote orchestration control plane.

    Implementations must be safe for concurrent use by several in-flight
    resource operations.
    """

    def adapter_source_name(self) -> str:
        """Return adapter source identifier for diagnostics.

        Returns:
            str: Human-readable control-plane identifier.
        """

    def adapter_apply(self, spec: ResourceSpec) -> ApplyReceipt:
        """Create or update one resource declaratively.

        Args:
            spec: Resource specification to apply.

        Returns:
            ApplyReceipt: Acceptance record.

        Raises:
            ControlPlaneTransientError: Raised for retryable failures.
            ControlPlaneTerminalError: Raised for non-retryable failures.
        """

    def adapter_get_status(self, resource_id: str) -> HealthSignal:
        """Observe readiness of one resource.

        Args:
            resource_id: Resource identifier.

        Returns:
            HealthSignal: Point-in-time readiness observation.

        Raises:
            ControlPlaneTransientError: Raised for retryable failures.
            ControlPlaneTerminalError: Raised for non-retryable failures.
        """

    def adapter_delete(self, resource_id: str) -> None:
        """Delete one resource; deleting an absent resource is accepted.

        Args:
            resource_id: Resource identifier.

        Raises:
            ControlPlaneTransientError: Raised for retryable failures.
            ControlPlaneTerminalError: Raised for non-retryable failures.
        """

    def adapter_check_health(self) -> HealthStatus:
        """Check control-plane reachability.

        Returns:
            HealthStatus: Health payload.

        Raises:
            ConnectionError: Raised when the control plane cannot be reached.
        """
