"""Convergence engine driving a resource plan to Ready against a control plane.

The engine schedules the DAG frontier onto a bounded worker pool. Each worker
drives one resource through apply, readiness polling and retries; the
scheduling loop re-evaluates the frontier whenever a worker finishes. All
phase changes go through `RunState`.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Final

from bootstrapper.adapters import (
    ControlPlanePort,
    ControlPlaneTerminalError,
    ControlPlaneTransientError,
)
from bootstrapper.domain import IN_FLIGHT_PHASES, ResourcePhase, ResourcePlan, ResourceSpec, RunOutcome

from .cancellation import RunCancellation
from .diagnostics import ROLLBACK_FAILED_CODE, RunReport, job_build_run_report
from .retry_policy import RetryPolicy
from .run_state import RunState

logger = logging.getLogger(__name__)

APPLY_TERMINAL_CODE: Final[str] = "APPLY_TERMINAL"
RETRY_BUDGET_EXHAUSTED_CODE: Final[str] = "RETRY_BUDGET_EXHAUSTED"
READY_TIMEOUT_CODE: Final[str] = "READY_TIMEOUT"
HEALTH_TERMINAL_CODE: Final[str] = "HEALTH_TERMINAL"
TRANSIENT_ERROR_CODE: Final[str] = "TRANSIENT_ERROR"


@dataclass(frozen=True)
class ConvergenceConfig:
    """Scheduling, readiness and rollback settings for one engine.

    Attributes:
        max_in_flight: Maximum resources driven concurrently.
        ready_timeout_seconds: Readiness deadline per attempt.
        poll_interval_seconds: Delay between readiness polls.
        rollback_enabled: Whether a failed run tears down applied resources.
    """

    max_in_flight: int = 4
    ready_timeout_seconds: float = 600.0
    poll_interval_seconds: float = 5.0
    rollback_enabled: bool = False

    def __post_init__(self) -> None:
        if self.max_in_flight < 1:
            raise ValueError("max_in_flight must be >= 1")
        if self.ready_timeout_seconds <= 0:
            raise ValueError("ready_timeout_seconds must be > 0")
        if self.poll_interval_seconds < 0:
            raise ValueError("poll_interval_seconds must be >= 0")


@dataclass(frozen=True)
class ConvergenceResult:
    """Outcome of one engine execution.

    Attributes:
        outcome: Final run outcome.
        report: Per-resource report.
    """

    outcome: RunOutcome
    report: RunReport


class _WaitResult(str, Enum):
    READY = "ready"
    TERMINAL = "terminal"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class ConvergenceEngine:
    """Drive every resource of a plan from its current phase toward Ready."""

    def __init__(
        self,
        control_plane: ControlPlanePort,
        retry_policy: RetryPolicy,
        config: ConvergenceConfig | None = None,
        sleeper: Callable[[float], None] | None = None,
        clock: Callable[[], float] | None = None,
    ):
        """Initialize convergence engine.

        Args:
            control_plane: Control-plane adapter, shared by all workers.
            retry_policy: Retry budget and backoff policy for apply and delete.
            config: Scheduling and readiness settings.
            sleeper: Optional sleep override; cancellation is checked after each sleep.
            clock: Optional monotonic clock override used for readiness deadlines.

        Raises:
            ValueError: Raised when dependencies are invalid.
        """

        if control_plane is None:
            raise ValueError("control_plane must not be None")
        if retry_policy is None:
            raise ValueError("retry_policy must not be None")

        self._control_plane = control_plane
        self._retry_policy = retry_policy
        self._config = config or ConvergenceConfig()
        self._sleeper = sleeper
        self._clock = clock or time.monotonic

    def engine_converge(
        self,
        plan: ResourcePlan,
        run_state: RunState,
        cancellation: RunCancellation | None = None,
    ) -> ConvergenceResult:
        """Converge the plan and return the run outcome.

        Resources already Ready in `run_state` are treated as satisfied and
        never reapplied. Resources left Applying or WaitingReady by an earlier
        execution are re-polled before any new apply is issued.

        Args:
            plan: Validated resource plan.
            run_state: Run state holding one entry per plan resource.
            cancellation: Optional cancellation token shared with the caller.

        Returns:
            ConvergenceResult: Final outcome and per-resource report.

        Raises:
            ValueError: Raised when run state and plan disagree.
            RuntimeError: Raised when a worker fails unexpectedly; remaining workers are drained first.
        """

        if set(run_state.run_state_snapshot()) != set(plan.plan_resource_ids()):
            raise ValueError("run_state must contain exactly the plan resources")

        cancellation = cancellation or RunCancellation()
        logger.info(
            "Converging run %s: %d resources, max_in_flight=%d",
            run_state.run_id,
            len(plan.specs),
            self._config.max_in_flight,
        )
        unexpected_error = self._engine_schedule(plan, run_state, cancellation)
        if unexpected_error is not None:
            raise RuntimeError(f"convergence worker failed unexpectedly: {unexpected_error}") from unexpected_error

        outcome = self._engine_decide_outcome(plan, run_state, cancellation)
        logger.info("Run %s finished with outcome %s", run_state.run_id, outcome.value)
        return ConvergenceResult(
            outcome=outcome,
            report=job_build_run_report(plan, run_state.run_state_snapshot(), outcome),
        )

    def _engine_schedule(
        self,
        plan: ResourcePlan,
        run_state: RunState,
        cancellation: RunCancellation,
    ) -> BaseException | None:
        """Run the frontier scheduling loop until nothing is eligible or in flight.

        Returns:
            BaseException | None: First unexpected worker error, if any.
        """

        in_flight: dict[Future[None], str] = {}
        unexpected_error: BaseException | None = None
        with ThreadPoolExecutor(
            max_workers=self._config.max_in_flight,
            thread_name_prefix="converge",
        ) as pool:
            while True:
                if not cancellation.is_cancelled:
                    for resource_id in self._engine_dispatchable(plan, run_state, set(in_flight.values())):
                        if len(in_flight) >= self._config.max_in_flight:
                            break
                        spec = plan.plan_get(resource_id)
                        resumed = run_state.run_state_phase(resource_id) in IN_FLIGHT_PHASES
                        if not resumed:
                            run_state.run_state_transition(resource_id, ResourcePhase.APPLYING)
                        logger.debug("Dispatching %s (resumed=%s)", resource_id, resumed)
                        future = pool.submit(self._engine_drive_resource, spec, run_state, cancellation, resumed)
                        in_flight[future] = resource_id

                if not in_flight:
                    return unexpected_error

                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    resource_id = in_flight.pop(future)
                    error = future.exception()
                    if error is not None and unexpected_error is None:
                        logger.error("Worker for %s failed unexpectedly: %s", resource_id, error)
                        unexpected_error = error
                        cancellation.cancel()

    def _engine_dispatchable(
        self,
        plan: ResourcePlan,
        run_state: RunState,
        in_flight_ids: set[str],
    ) -> list[str]:
        """Return resumable in-flight resources first, then the Pending frontier, in plan order."""

        snapshot = run_state.run_state_snapshot()
        resumable = [
            resource_id
            for resource_id, status in snapshot.items()
            if status.phase in IN_FLIGHT_PHASES and resource_id not in in_flight_ids
        ]
        frontier = [
            spec.resource_id
            for spec in plan.specs
            if snapshot[spec.resource_id].phase == ResourcePhase.PENDING
            and spec.resource_id not in in_flight_ids
            and all(snapshot[dependency].phase == ResourcePhase.READY for dependency in spec.depends_on)
        ]
        return resumable + frontier

    def _engine_drive_resource(
        self,
        spec: ResourceSpec,
        run_state: RunState,
        cancellation: RunCancellation,
        resumed: bool,
    ) -> None:
        """Drive one resource until Ready, Failed, or a cancellation checkpoint."""

        resource_id = spec.resource_id
        needs_apply = True
        if resumed:
            needs_apply = self._engine_reconcile_resumed(resource_id, run_state)
            if run_state.run_state_phase(resource_id) == ResourcePhase.READY:
                return

        while True:
            if cancellation.is_cancelled:
                logger.info("Stopping %s at checkpoint: run cancelled", resource_id)
                return

            if needs_apply:
                if run_state.run_state_phase(resource_id) == ResourcePhase.WAITING_READY:
                    run_state.run_state_transition(resource_id, ResourcePhase.APPLYING)
                attempt = run_state.run_state_record_attempt(resource_id)
                try:
                    self._control_plane.adapter_apply(spec)
                except ControlPlaneTerminalError as error:
                    logger.error("Apply of %s rejected: %s", resource_id, error)
                    run_state.run_state_transition(
                        resource_id, ResourcePhase.FAILED, error_code=APPLY_TERMINAL_CODE, error_message=str(error)
                    )
                    return
                except ControlPlaneTransientError as error:
                    if not self._engine_retry_or_fail(
                        resource_id, run_state, cancellation, attempt, TRANSIENT_ERROR_CODE, str(error),
                        retry_after_seconds=error.retry_after_seconds,
                    ):
                        return
                    continue
                run_state.run_state_transition(resource_id, ResourcePhase.WAITING_READY)
            needs_apply = True

            wait_result, message = self._engine_wait_ready(resource_id, run_state, cancellation)
            if wait_result == _WaitResult.READY:
                run_state.run_state_transition(resource_id, ResourcePhase.READY)
                logger.info("Resource %s is Ready", resource_id)
                return
            if wait_result == _WaitResult.CANCELLED:
                logger.info("Stopping %s at checkpoint: run cancelled", resource_id)
                return
            if wait_result == _WaitResult.TERMINAL:
                logger.error("Resource %s reported a terminal condition: %s", resource_id, message)
                run_state.run_state_transition(
                    resource_id, ResourcePhase.FAILED, error_code=HEALTH_TERMINAL_CODE, error_message=message
                )
                return

            attempt = run_state.run_state_status(resource_id).attempts
            logger.warning(
                "Timed out after %.1fs waiting for %s to become ready (attempt %d): %s",
                self._config.ready_timeout_seconds,
                resource_id,
                attempt,
                message,
            )
            if not self._engine_retry_or_fail(
                resource_id, run_state, cancellation, attempt, READY_TIMEOUT_CODE,
                f"readiness timeout: {message or 'not ready'}",
            ):
                return

    def _engine_reconcile_resumed(self, resource_id: str, run_state: RunState) -> bool:
        """Re-poll a resource left in flight by an earlier execution.

        Returns:
            bool: True when the resource must be (re)applied, False when it
            exists and only needs readiness waiting.
        """

        try:
            signal = self._control_plane.adapter_get_status(resource_id)
        except ControlPlaneTransientError as error:
            logger.warning("Could not re-poll resumed %s, will reapply: %s", resource_id, error)
            return True
        except ControlPlaneTerminalError as error:
            logger.warning("Re-poll of resumed %s rejected, will reapply: %s", resource_id, error)
            return True

        if signal.ready:
            logger.info("Resumed resource %s already Ready", resource_id)
            run_state.run_state_transition(resource_id, ResourcePhase.READY)
            return False
        if signal.exists and not signal.terminal:
            if run_state.run_state_phase(resource_id) == ResourcePhase.APPLYING:
                run_state.run_state_transition(resource_id, ResourcePhase.WAITING_READY)
            return False
        if run_state.run_state_phase(resource_id) == ResourcePhase.WAITING_READY:
            run_state.run_state_transition(resource_id, ResourcePhase.APPLYING)
        return True

    def _engine_wait_ready(
        self,
        resource_id: str,
        run_state: RunState,
        cancellation: RunCancellation,
    ) -> tuple[_WaitResult, str | None]:
        """Poll readiness until ready, terminal, timed out, or cancelled."""

        deadline = self._clock() + self._config.ready_timeout_seconds
        last_message: str | None = None
        while True:
            try:
                signal = self._control_plane.adapter_get_status(resource_id)
            except ControlPlaneTerminalError as error:
                return _WaitResult.TERMINAL, str(error)
            except ControlPlaneTransientError as error:
                logger.debug("Transient status read failure for %s: %s", resource_id, error)
                last_message = str(error)
            else:
                if signal.ready:
                    return _WaitResult.READY, None
                if signal.terminal:
                    return _WaitResult.TERMINAL, signal.last_error
                last_message = signal.last_error
                if last_message:
                    run_state.run_state_record_error(resource_id, "NOT_READY", last_message)

            if self._clock() >= deadline:
                return _WaitResult.TIMEOUT, last_message
            if self._engine_sleep(self._config.poll_interval_seconds, cancellation):
                return _WaitResult.CANCELLED, last_message

    def _engine_retry_or_fail(
        self,
        resource_id: str,
        run_state: RunState,
        cancellation: RunCancellation,
        attempt: int,
        error_code: str,
        error_message: str,
        retry_after_seconds: float | None = None,
    ) -> bool:
        """Fail the resource when the budget is spent, otherwise back off.

        Returns:
            bool: True when the caller should try again.
        """

        if not self._retry_policy.policy_has_attempts_remaining(attempt):
            logger.error(
                "Resource %s failed after %d attempts: %s", resource_id, attempt, error_message
            )
            run_state.run_state_transition(
                resource_id,
                ResourcePhase.FAILED,
                error_code=RETRY_BUDGET_EXHAUSTED_CODE if error_code == TRANSIENT_ERROR_CODE else error_code,
                error_message=error_message,
            )
            return False

        run_state.run_state_record_error(resource_id, error_code, error_message)
        delay_seconds = self._retry_policy.policy_calculate_backoff_seconds(
            retry_index=attempt - 1,
            retry_after_seconds=retry_after_seconds,
        )
        logger.warning(
            "Retrying %s in %.2fs (attempt %d/%d): %s",
            resource_id,
            delay_seconds,
            attempt,
            self._retry_policy.max_attempts,
            error_message,
        )
        return not self._engine_sleep(delay_seconds, cancellation)

    def _engine_sleep(self, seconds: float, cancellation: RunCancellation | None) -> bool:
        """Wait without blocking other workers.

        Returns:
            bool: True when cancellation was requested.
        """

        if self._sleeper is not None:
            if seconds > 0:
                self._sleeper(seconds)
            return cancellation is not None and cancellation.is_cancelled
        if cancellation is None:
            time.sleep(max(0.0, seconds))
            return False
        return cancellation.cancellation_wait(seconds)

    def _engine_decide_outcome(
        self,
        plan: ResourcePlan,
        run_state: RunState,
        cancellation: RunCancellation,
    ) -> RunOutcome:
        """Derive the final outcome once no further progress is possible."""

        if cancellation.is_cancelled:
            if cancellation.rollback_requested:
                return self._engine_rollback(plan, run_state)
            return RunOutcome.CANCELLED

        snapshot = run_state.run_state_snapshot()
        if all(status.phase == ResourcePhase.READY for status in snapshot.values()):
            return RunOutcome.SUCCEEDED
        if self._config.rollback_enabled:
            return self._engine_rollback(plan, run_state)
        return RunOutcome.FAILED

    def _engine_rollback(self, plan: ResourcePlan, run_state: RunState) -> RunOutcome:
        """Tear down applied resources in reverse dependency order.

        Every dependent of a resource precedes it in reversed plan order, so a
        resource is only deleted after everything built on it is gone.
        Resources a cancellation stopped while Applying or WaitingReady may
        already exist in the cluster and are deleted too.

        Returns:
            RunOutcome: `RolledBack` when teardown completed, `Failed` otherwise.
        """

        rollback_phases = {ResourcePhase.READY, ResourcePhase.FAILED} | IN_FLIGHT_PHASES
        targets = [
            spec.resource_id
            for spec in reversed(plan.specs)
            if run_state.run_state_phase(spec.resource_id) in rollback_phases
        ]
        logger.warning("Rolling back run %s: %d resources to delete", run_state.run_id, len(targets))
        for resource_id in targets:
            if not self._engine_delete_with_retry(resource_id, run_state):
                return RunOutcome.FAILED
            run_state.run_state_transition(resource_id, ResourcePhase.ROLLED_BACK)
            logger.info("Rolled back %s", resource_id)
        return RunOutcome.ROLLED_BACK

    def _engine_delete_with_retry(self, resource_id: str, run_state: RunState) -> bool:
        """Delete one resource under the retry policy.

        Returns:
            bool: True when the delete was accepted.
        """

        for attempt in range(1, self._retry_policy.max_attempts + 1):
            try:
                self._control_plane.adapter_delete(resource_id)
                return True
            except ControlPlaneTerminalError as error:
                logger.error("Rollback delete of %s rejected: %s", resource_id, error)
                run_state.run_state_record_error(resource_id, ROLLBACK_FAILED_CODE, str(error))
                return False
            except ControlPlaneTransientError as error:
                if attempt >= self._retry_policy.max_attempts:
                    logger.error("Rollback delete of %s exhausted retries: %s", resource_id, error)
                    run_state.run_state_record_error(resource_id, ROLLBACK_FAILED_CODE, str(error))
                    return False
                delay_seconds = self._retry_policy.policy_calculate_backoff_seconds(
                    retry_index=attempt - 1,
                    retry_after_seconds=error.retry_after_seconds,
                )
                logger.warning("Retrying delete of %s in %.2fs: %s", resource_id, delay_seconds, error)
                self._engine_sleep(delay_seconds, None)
        return False
