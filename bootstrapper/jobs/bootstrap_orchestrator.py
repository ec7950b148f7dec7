"""Job-layer bootstrap orchestrator with run persistence and stage timeline."""

from __future__ import annotations

import logging
import threading
import traceback
from dataclasses import dataclass, field, replace
from typing import Callable

from bootstrapper.adapters import ControlPlanePort
from bootstrapper.config import config_dump_desired_state, config_parse_desired_state
from bootstrapper.db import BootstrapRunAlreadyActiveError, BootstrapRunRepositoryPort
from bootstrapper.domain import (
    DesiredState,
    PhaseTransition,
    ResourcePhase,
    ResourcePlan,
    RunOutcome,
    RunTimeline,
)
from bootstrapper.planning import ResourcePlanBuilder

from .cancellation import RunCancellation
from .convergence_engine import ConvergenceConfig, ConvergenceEngine
from .diagnostics import ROLLBACK_FAILED_CODE, RunReport
from .interfaces import JobExecutionResult, JobOrchestratorPort
from .retry_policy import RetryPolicy
from .run_state import ResourceStatus, RunState, RunStateListener, RunStateStatusListener

logger = logging.getLogger(__name__)

BOOTSTRAP_UNEXPECTED_ERROR_CODE = "BOOTSTRAP_UNEXPECTED_ERROR"

_RUN_STATUS_BY_OUTCOME = {
    RunOutcome.SUCCEEDED: "succeeded",
    RunOutcome.FAILED: "failed",
    RunOutcome.ROLLED_BACK: "rolled_back",
    RunOutcome.CANCELLED: "cancelled",
}


@dataclass(frozen=True)
class BootstrapOrchestratorConfig:
    """Configuration values for bootstrap orchestration.

    Attributes:
        retry_policy: Retry budget and backoff policy for apply and delete.
        convergence: Scheduling, readiness and default rollback settings.
    """

    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    convergence: ConvergenceConfig = field(default_factory=ConvergenceConfig)


@dataclass(frozen=True)
class PreparedBootstrapRun:
    """Run that has a plan, a persisted record and a live run state, but has not converged yet.

    Attributes:
        job_name: Job identifier.
        run_id: Persisted run identifier.
        plan: Validated resource plan.
        run_state: Live run state, already wired to persistence.
        cancellation: Token registered for this run.
        rollback_enabled: Whether a failed convergence is rolled back.
    """

    job_name: str
    run_id: str
    plan: ResourcePlan
    run_state: RunState
    cancellation: RunCancellation
    rollback_enabled: bool


class BootstrapJobOrchestrator(JobOrchestratorPort):
    """Plan, persist, converge and finalize bootstrap runs."""

    _BOOTSTRAP_JOB_NAME = "bootstrap_run"
    _RESUME_JOB_NAME = "resume_run"

    def __init__(
        self,
        run_repository: BootstrapRunRepositoryPort,
        control_plane: ControlPlanePort,
        config: BootstrapOrchestratorConfig | None = None,
        plan_builder: ResourcePlanBuilder | None = None,
        sleeper: Callable[[float], None] | None = None,
        clock: Callable[[], float] | None = None,
        listener_factories: tuple[Callable[[str], RunStateListener], ...] = (),
    ):
        """Initialize bootstrap orchestrator dependencies.

        Args:
            run_repository: DB-layer run persistence service.
            control_plane: Control-plane adapter.
            config: Retry and convergence configuration.
            plan_builder: Optional plan builder override.
            sleeper: Optional engine sleep override.
            clock: Optional engine clock override.
            listener_factories: Callables building one listener per run from its run id.

        Raises:
            ValueError: Raised when dependencies are invalid.
        """

        if run_repository is None:
            raise ValueError("run_repository must not be None")
        if control_plane is None:
            raise ValueError("control_plane must not be None")

        self._run_repository = run_repository
        self._control_plane = control_plane
        self._config = config or BootstrapOrchestratorConfig()
        self._plan_builder = plan_builder or ResourcePlanBuilder()
        self._sleeper = sleeper
        self._clock = clock
        self._listener_factories = tuple(listener_factories)
        self._active_runs: dict[str, RunCancellation] = {}
        self._active_runs_lock = threading.Lock()

    def job_prepare(
        self,
        desired_state: DesiredState,
        rollback_enabled: bool | None = None,
        listeners: tuple[RunStateListener, ...] = (),
    ) -> PreparedBootstrapRun:
        """Build the plan and create the run record without converging.

        The plan is built first, so an invalid desired state leaves no trace in
        the run store.

        Args:
            desired_state: Target deployment.
            rollback_enabled: Optional per-run rollback override.
            listeners: Extra run state listeners (progress streams, UIs).

        Returns:
            PreparedBootstrapRun: Prepared run ready for `job_run`.

        Raises:
            InvalidPlanError: Raised when the desired state cannot be planned.
            BootstrapRunAlreadyActiveError: Raised when the instance already has a running run.
            RuntimeError: Raised when persistence fails.
        """

        plan = self._plan_builder.plan_build(desired_state)
        run_record = self._run_repository.db_bootstrap_run_create_started(
            instance_name=desired_state.instance_name,
            namespace=desired_state.namespace,
            desired_state=config_dump_desired_state(desired_state),
            resource_ids=list(plan.plan_resource_ids()),
        )
        logger.info(
            "Created run %s for instance %s with %d resources",
            run_record.run_id,
            desired_state.instance_name,
            len(plan.specs),
        )
        run_state = RunState(run_id=run_record.run_id, resource_ids=plan.plan_resource_ids())
        return self._job_register_prepared(
            job_name=self._BOOTSTRAP_JOB_NAME,
            plan=plan,
            run_state=run_state,
            rollback_enabled=rollback_enabled,
            listeners=listeners,
        )

    def job_prepare_resume(
        self,
        run_id: str,
        rollback_enabled: bool | None = None,
        listeners: tuple[RunStateListener, ...] = (),
    ) -> PreparedBootstrapRun:
        """Restore a cancelled or interrupted run from the run store.

        Args:
            run_id: Run identifier.
            rollback_enabled: Optional per-run rollback override.
            listeners: Extra run state listeners.

        Returns:
            PreparedBootstrapRun: Prepared run ready for `job_run`.

        Raises:
            LookupError: Raised when the run does not exist.
            ValueError: Raised when the run cannot be resumed or its plan changed.
            BootstrapRunAlreadyActiveError: Raised when the run or its instance is already running.
            RuntimeError: Raised when persistence fails.
        """

        with self._active_runs_lock:
            if run_id in self._active_runs:
                raise BootstrapRunAlreadyActiveError(f"run {run_id} is already executing")

        run_record = self._run_repository.db_bootstrap_run_get_by_id(run_id)
        if run_record is None:
            raise LookupError(f"bootstrap run not found: {run_id}")

        desired_state = config_parse_desired_state(run_record.desired_state)
        plan = self._plan_builder.plan_build(desired_state)
        resource_rows = self._run_repository.db_bootstrap_resource_list(run_id)
        persisted_ids = [row.resource_id for row in resource_rows]
        if persisted_ids != list(plan.plan_resource_ids()):
            raise ValueError(f"run {run_id} plan no longer matches its persisted resources")

        initial_statuses = {
            row.resource_id: ResourceStatus(
                resource_id=row.resource_id,
                phase=ResourcePhase(row.phase),
                attempts=row.attempts,
                last_error_code=row.last_error_code,
                last_error=row.last_error,
            )
            for row in resource_rows
        }
        initial_history = [
            PhaseTransition(
                resource_id=row.resource_id,
                from_phase=ResourcePhase(row.from_phase),
                to_phase=ResourcePhase(row.to_phase),
                at_utc=row.at_utc,
                attempt=row.attempt,
                error_code=row.error_code,
                error_message=row.error_message,
            )
            for row in self._run_repository.db_bootstrap_transition_list(run_id)
        ]

        self._run_repository.db_bootstrap_run_mark_resumed(run_id)
        logger.info(
            "Resuming run %s: %d Ready, %d in flight",
            run_id,
            sum(1 for status in initial_statuses.values() if status.phase == ResourcePhase.READY),
            sum(
                1
                for status in initial_statuses.values()
                if status.phase in (ResourcePhase.APPLYING, ResourcePhase.WAITING_READY)
            ),
        )
        run_state = RunState(
            run_id=run_id,
            resource_ids=plan.plan_resource_ids(),
            initial_statuses=initial_statuses,
            initial_history=initial_history,
        )
        return self._job_register_prepared(
            job_name=self._RESUME_JOB_NAME,
            plan=plan,
            run_state=run_state,
            rollback_enabled=rollback_enabled,
            listeners=listeners,
        )

    def job_run(self, prepared: PreparedBootstrapRun) -> JobExecutionResult:
        """Converge a prepared run and finalize its record.

        Args:
            prepared: Run returned by `job_prepare` or `job_prepare_resume`.

        Returns:
            JobExecutionResult: Final execution status payload.
        """

        timeline = RunTimeline(run_id=prepared.run_id)
        timeline.timeline_record(stage="run", status="started", details={"job_name": prepared.job_name})
        timeline.timeline_record(stage="plan", status="completed", details={"resource_count": len(prepared.plan.specs)})
        timeline.timeline_record(stage="converge", status="started")
        engine = ConvergenceEngine(
            control_plane=self._control_plane,
            retry_policy=self._config.retry_policy,
            config=replace(self._config.convergence, rollback_enabled=prepared.rollback_enabled),
            sleeper=self._sleeper,
            clock=self._clock,
        )
        try:
            result = engine.engine_converge(prepared.plan, prepared.run_state, prepared.cancellation)
            report_payload = result.report.report_as_diagnostics()
            timeline.timeline_record(
                stage="converge",
                status="completed",
                details={
                    "outcome": result.outcome.value,
                    "ready_count": result.report.ready_count,
                    "total_count": result.report.total_count,
                },
            )
            run_status = _RUN_STATUS_BY_OUTCOME[result.outcome]
            timeline.timeline_record(stage="run", status=run_status)
            error_code, error_message = self._job_error_for_report(result.report)
            self._run_repository.db_bootstrap_run_finalize(
                run_id=prepared.run_id,
                status=run_status,
                error_code=error_code,
                error_message=error_message,
                diagnostics={"timeline": timeline.timeline_events(), "report": report_payload},
            )
            return JobExecutionResult(
                job_name=prepared.job_name,
                status=run_status,
                run_id=prepared.run_id,
                outcome=result.outcome,
                report=result.report,
            )
        except (TimeoutError, ConnectionError, ValueError, RuntimeError) as error:
            logger.exception("Run %s failed unexpectedly", prepared.run_id)
            timeline.timeline_record(
                stage="run",
                status="failed",
                details={
                    "error_type": type(error).__name__,
                    "error_message": str(error),
                    "traceback": traceback.format_exc(),
                },
            )
            self._run_repository.db_bootstrap_run_finalize(
                run_id=prepared.run_id,
                status="failed",
                error_code=BOOTSTRAP_UNEXPECTED_ERROR_CODE,
                error_message=str(error),
                diagnostics={"timeline": timeline.timeline_events(), "report": None},
            )
            return JobExecutionResult(job_name=prepared.job_name, status="failed", run_id=prepared.run_id)
        finally:
            with self._active_runs_lock:
                self._active_runs.pop(prepared.run_id, None)

    def job_execute(self, desired_state: DesiredState) -> JobExecutionResult:
        """Plan and converge one desired state to completion.

        Raises:
            InvalidPlanError: Raised before any run record is created.
            BootstrapRunAlreadyActiveError: Raised when the instance already has a running run.
        """

        return self.job_run(self.job_prepare(desired_state))

    def job_resume(self, run_id: str) -> JobExecutionResult:
        """Continue a cancelled or interrupted run from its persisted phases.

        Raises:
            LookupError: Raised when the run does not exist.
            ValueError: Raised when the run cannot be resumed.
        """

        return self.job_run(self.job_prepare_resume(run_id))

    def job_cancel(self, run_id: str, rollback: bool = False) -> bool:
        """Request cancellation of an active run.

        Args:
            run_id: Run identifier.
            rollback: Whether applied resources are torn down after workers stop.

        Returns:
            bool: True when an active run received the request.
        """

        with self._active_runs_lock:
            cancellation = self._active_runs.get(run_id)
        if cancellation is None:
            return False
        logger.warning("Cancelling run %s (rollback=%s)", run_id, rollback)
        cancellation.cancel(rollback=rollback)
        return True

    def job_active_run_ids(self) -> tuple[str, ...]:
        with self._active_runs_lock:
            return tuple(sorted(self._active_runs))

    def _job_register_prepared(
        self,
        job_name: str,
        plan: ResourcePlan,
        run_state: RunState,
        rollback_enabled: bool | None,
        listeners: tuple[RunStateListener, ...],
    ) -> PreparedBootstrapRun:
        run_state.run_state_add_listener(self._job_build_persistence_listener(run_state.run_id))
        run_state.run_state_add_status_listener(self._job_build_progress_persistence_listener(run_state.run_id))
        for listener_factory in self._listener_factories:
            run_state.run_state_add_listener(listener_factory(run_state.run_id))
        for listener in listeners:
            run_state.run_state_add_listener(listener)

        cancellation = RunCancellation()
        with self._active_runs_lock:
            self._active_runs[run_state.run_id] = cancellation
        return PreparedBootstrapRun(
            job_name=job_name,
            run_id=run_state.run_id,
            plan=plan,
            run_state=run_state,
            cancellation=cancellation,
            rollback_enabled=(
                self._config.convergence.rollback_enabled if rollback_enabled is None else rollback_enabled
            ),
        )

    def _job_build_persistence_listener(self, run_id: str) -> RunStateListener:
        """Return a listener writing every transition to the run store."""

        def _persist(transition: PhaseTransition, status: ResourceStatus) -> None:
            self._run_repository.db_bootstrap_run_record_transition(
                run_id=run_id,
                transition=transition,
                attempts=status.attempts,
                last_error_code=status.last_error_code,
                last_error=status.last_error,
            )

        return _persist

    def _job_build_progress_persistence_listener(self, run_id: str) -> RunStateStatusListener:
        """Return a listener writing attempt and error updates between transitions."""

        def _persist_progress(status: ResourceStatus) -> None:
            self._run_repository.db_bootstrap_resource_record_progress(
                run_id=run_id,
                resource_id=status.resource_id,
                attempts=status.attempts,
                last_error_code=status.last_error_code,
                last_error=status.last_error,
            )

        return _persist_progress

    def _job_error_for_report(self, report: RunReport) -> tuple[str | None, str | None]:
        """Pick the run-level error code and message for a finished report.

        Returns:
            tuple[str | None, str | None]: First failing resource's code and a summary message.
        """

        if report.outcome == RunOutcome.SUCCEEDED:
            return None, None
        unready = report.report_unready_resources()
        if report.outcome == RunOutcome.CANCELLED:
            return None, f"cancelled with {len(unready)} of {report.total_count} resources not Ready"

        rollback_failures = report.report_rollback_failures()
        if rollback_failures:
            return ROLLBACK_FAILED_CODE, f"rollback could not delete: {', '.join(rollback_failures)}"

        error_code: str | None = None
        for resource in unready:
            if resource.last_error_code and not resource.blocked_by:
                error_code = resource.last_error_code
                break
        message = f"{len(unready)} of {report.total_count} resources not Ready"
        return error_code, message
