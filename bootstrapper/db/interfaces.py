"""Typed interfaces for database-layer services.

All SQL and ORM access must remain in the db package and its submodules.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from bootstrapper.domain import HealthStatus, PhaseTransition


class DatabaseHealthPort(Protocol):
    """Port definition for database connectivity verification."""

    def db_connection_label(self) -> str:
        """Return a stable label for the active database connection target.

        Returns:
            str: Database target label for diagnostics.

        Raises:
            RuntimeError: Raised when connection metadata is unavailable.
        """

    def db_check_health(self) -> HealthStatus:
        """Check database connectivity and return deterministic health payload.

        Returns:
            HealthStatus: Database health status payload.

        Raises:
            ConnectionError: Raised when database cannot be reached.
        """


class BootstrapRunAlreadyActiveError(RuntimeError):
    """Raised when a run is rejected because another run of the same instance is active."""


@dataclass(frozen=True)
class BootstrapRunState:
    """Runtime lifecycle and outcome state for one bootstrap run.

    Attributes:
        status: Run status (`running`, `succeeded`, `failed`, `rolled_back`, `cancelled`).
        started_at_utc: Run start timestamp in UTC.
        ended_at_utc: Optional run end timestamp in UTC.
        duration_ms: Optional run duration in milliseconds.
        error_code: Optional deterministic error code.
        error_message: Optional human-readable error message.
        diagnostics: Optional structured diagnostics payload (`timeline`, `report`).
    """

    status: str
    started_at_utc: datetime
    ended_at_utc: datetime | None
    duration_ms: int | None
    error_code: str | None
    error_message: str | None
    diagnostics: dict[str, Any] | None


@dataclass(frozen=True)
class BootstrapRunRecord:
    """Persistence model for one bootstrap run row.

    Attributes:
        run_id: Unique run identifier.
        instance_name: Application instance the run deploys.
        namespace: Target namespace.
        run_type: Latest trigger type (`bootstrap` or `resume`).
        desired_state: Desired-state document the run was started with.
        state: Runtime lifecycle and outcome state values.
        created_at_utc: Persistence row creation timestamp in UTC.
    """

    run_id: str
    instance_name: str
    namespace: str
    run_type: str
    desired_state: dict[str, Any]
    state: BootstrapRunState
    created_at_utc: datetime


@dataclass(frozen=True)
class BootstrapResourceRecord:
    """Persisted phase of one resource inside a run.

    Attributes:
        run_id: Owning run identifier.
        resource_id: Resource identifier.
        plan_position: Zero-based position in plan order.
        phase: Latest recorded phase value.
        attempts: Attempts consumed.
        last_error_code: Optional error code.
        last_error: Optional error message.
        updated_at_utc: Timestamp of the latest recorded transition.
    """

    run_id: str
    resource_id: str
    plan_position: int
    phase: str
    attempts: int
    last_error_code: str | None
    last_error: str | None
    updated_at_utc: datetime


@dataclass(frozen=True)
class BootstrapTransitionRecord:
    """Persisted entry of the append-only transition history.

    Attributes:
        transition_id: Monotonic row identifier.
        run_id: Owning run identifier.
        resource_id: Resource identifier.
        from_phase: Phase before the change.
        to_phase: Phase after the change.
        attempt: Attempt counter at transition time.
        error_code: Optional error code.
        error_message: Optional error message.
        at_utc: Transition timestamp.
    """

    transition_id: int
    run_id: str
    resource_id: str
    from_phase: str
    to_phase: str
    attempt: int
    error_code: str | None
    error_message: str | None
    at_utc: datetime


class BootstrapRunRepositoryPort(Protocol):
    """Port definition for bootstrap run lifecycle persistence."""

    def db_bootstrap_run_create_started(
        self,
        instance_name: str,
        namespace: str,
        desired_state: dict[str, Any],
        resource_ids: list[str],
    ) -> BootstrapRunRecord:
        """Create a running run with one Pending resource row per plan entry.

        Args:
            instance_name: Application instance name.
            namespace: Target namespace.
            desired_state: Desired-state document as JSON-compatible data.
            resource_ids: Plan resource identifiers in plan order.

        Returns:
            BootstrapRunRecord: Newly created run.

        Raises:
            BootstrapRunAlreadyActiveError: Raised when the instance already has a running run.
            RuntimeError: Raised when persistence fails.
        """

    def db_bootstrap_run_mark_resumed(self, run_id: str) -> BootstrapRunRecord:
        """Move a cancelled or interrupted run back to running.

        Args:
            run_id: Run identifier.

        Returns:
            BootstrapRunRecord: Updated run.

        Raises:
            LookupError: Raised when run is not found.
            ValueError: Raised when run status cannot be resumed.
            BootstrapRunAlreadyActiveError: Raised when another run of the instance is running.
            RuntimeError: Raised when persistence fails.
        """

    def db_bootstrap_run_record_transition(
        self,
        run_id: str,
        transition: PhaseTransition,
        attempts: int,
        last_error_code: str | None,
        last_error: str | None,
    ) -> None:
        """Persist one phase transition and the resulting resource status.

        Args:
            run_id: Run identifier.
            transition: Recorded transition.
            attempts: Attempt counter after the transition.
            last_error_code: Latest error code after the transition.
            last_error: Latest error message after the transition.

        Raises:
            LookupError: Raised when resource row is not found.
            RuntimeError: Raised when persistence fails.
        """

    def db_bootstrap_resource_record_progress(
        self,
        run_id: str,
        resource_id: str,
        attempts: int,
        last_error_code: str | None,
        last_error: str | None,
    ) -> None:
        """Persist attempt count and last error of a resource whose phase did not change.

        Raises:
            LookupError: Raised when resource row is not found.
            RuntimeError: Raised when persistence fails.
        """

    def db_bootstrap_run_finalize(
        self,
        run_id: str,
        status: str,
        error_code: str | None,
        error_message: str | None,
        diagnostics: dict[str, Any] | None,
    ) -> BootstrapRunRecord:
        """Finalize one run with end timestamp and duration.

        Raises:
            LookupError: Raised when run is not found.
            ValueError: Raised when final status is invalid.
            RuntimeError: Raised when persistence fails.
        """

    def db_bootstrap_run_get_by_id(self, run_id: str) -> BootstrapRunRecord | None:
        """Fetch one run by id.

        Raises:
            RuntimeError: Raised when database read fails.
        """

    def db_bootstrap_run_list(self, limit: int, offset: int) -> list[BootstrapRunRecord]:
        """List runs newest first.

        Raises:
            ValueError: Raised when limit or offset are invalid.
            RuntimeError: Raised when database read fails.
        """

    def db_bootstrap_resource_list(self, run_id: str) -> list[BootstrapResourceRecord]:
        """List resource rows of one run in plan order.

        Raises:
            RuntimeError: Raised when database read fails.
        """

    def db_bootstrap_transition_list(self, run_id: str) -> list[BootstrapTransitionRecord]:
        """List the transition history of one run in recording order.

        Raises:
            RuntimeError: Raised when database read fails.
        """
