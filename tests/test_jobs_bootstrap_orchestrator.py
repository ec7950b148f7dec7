"""Regression tests for bootstrap run orchestration against a SQLite run store."""

from __future__ import annotations

import pytest

from bootstrapper.adapters import ControlPlaneTerminalError, ControlPlaneTransientError, InMemoryControlPlaneAdapter
from bootstrapper.db import (
    BootstrapRunAlreadyActiveError,
    SQLAlchemyBootstrapRunService,
    db_create_engine,
    db_create_schema,
)
from bootstrapper.domain import (
    DatabaseToggle,
    DesiredState,
    ObjectStorageToggle,
    PhaseTransition,
    ResourcePhase,
    RunOutcome,
)
from bootstrapper.jobs import (
    APPLY_TERMINAL_CODE,
    RETRY_BUDGET_EXHAUSTED_CODE,
    TRANSIENT_ERROR_CODE,
    BootstrapJobOrchestrator,
    BootstrapOrchestratorConfig,
    ConvergenceConfig,
    PreparedBootstrapRun,
    ResourceStatus,
    RetryPolicy,
)
from bootstrapper.planning import InvalidPlanError
from bootstrapper.reporting import ProgressEventStream

_APP_DEPLOYMENT_ID = "Deployment/team/chat-app"


def _build_repository(tmp_path) -> SQLAlchemyBootstrapRunService:
    """Create a run repository on a fresh SQLite file.

    Args:
        tmp_path: Pytest temporary directory.

    Returns:
        SQLAlchemyBootstrapRunService: Repository with schema created.

    Raises:
        RuntimeError: Raised when schema creation fails.
    """

    engine = db_create_engine(f"sqlite:///{tmp_path / 'runs.db'}")
    db_create_schema(engine)
    return SQLAlchemyBootstrapRunService(engine=engine)


def _build_desired_state() -> DesiredState:
    """Build the reduced topology: namespace, app config, app deployment and service."""

    return DesiredState(
        instance_name="chat",
        namespace="team",
        database=DatabaseToggle(enabled=False, external_dsn="postgres://u:p@db.example:5432/mm"),
        object_storage=ObjectStorageToggle(
            enabled=False,
            external_endpoint="s3.example.com",
            access_key="access",
            secret_key="secret",
        ),
    )


def _build_orchestrator(
    repository: SQLAlchemyBootstrapRunService,
    control_plane: InMemoryControlPlaneAdapter,
    rollback_enabled: bool = False,
) -> BootstrapJobOrchestrator:
    """Build an orchestrator that never sleeps."""

    return BootstrapJobOrchestrator(
        run_repository=repository,
        control_plane=control_plane,
        config=BootstrapOrchestratorConfig(
            retry_policy=RetryPolicy(max_attempts=2, random_unit_interval_provider=lambda: 0.5),
            convergence=ConvergenceConfig(
                max_in_flight=2,
                poll_interval_seconds=0.0,
                rollback_enabled=rollback_enabled,
            ),
        ),
        sleeper=lambda _seconds: None,
    )


def test_orchestrator_execute_persists_successful_run(tmp_path) -> None:
    """Persist every transition and finalize the run as succeeded.

    Returns:
        None: Assertions validate persisted run state.

    Raises:
        AssertionError: Raised when persisted state diverges.
    """

    repository = _build_repository(tmp_path)
    control_plane = InMemoryControlPlaneAdapter()
    orchestrator = _build_orchestrator(repository, control_plane)

    result = orchestrator.job_execute(_build_desired_state())

    assert result.status == "succeeded"
    assert result.outcome == RunOutcome.SUCCEEDED
    run_record = repository.db_bootstrap_run_get_by_id(result.run_id)
    assert run_record is not None
    assert run_record.state.status == "succeeded"
    assert run_record.state.error_code is None
    assert run_record.state.duration_ms is not None
    assert run_record.desired_state["instance_name"] == "chat"
    assert run_record.state.diagnostics["report"]["ready_count"] == 4
    stages = [(event["stage"], event["status"]) for event in run_record.state.diagnostics["timeline"]]
    assert stages[0] == ("run", "started")
    assert stages[-1] == ("run", "succeeded")
    timeline = run_record.state.diagnostics["timeline"]
    assert {event["run_id"] for event in timeline} == {result.run_id}
    assert [event["sequence"] for event in timeline] == list(range(1, len(timeline) + 1))

    resources = repository.db_bootstrap_resource_list(result.run_id)
    assert [resource.phase for resource in resources] == ["Ready"] * 4
    transitions = repository.db_bootstrap_transition_list(result.run_id)
    assert len(transitions) == 12
    assert orchestrator.job_active_run_ids() == ()


def test_orchestrator_records_failure_code_of_first_failing_resource(tmp_path) -> None:
    """Finalize as failed with the failing resource's code and a partial-success message."""

    repository = _build_repository(tmp_path)
    control_plane = InMemoryControlPlaneAdapter(
        apply_failures={_APP_DEPLOYMENT_ID: [ControlPlaneTerminalError("admission webhook denied")]},
    )
    orchestrator = _build_orchestrator(repository, control_plane)

    result = orchestrator.job_execute(_build_desired_state())

    assert result.status == "failed"
    run_record = repository.db_bootstrap_run_get_by_id(result.run_id)
    assert run_record.state.error_code == APPLY_TERMINAL_CODE
    assert run_record.state.error_message == "1 of 4 resources not Ready"
    resources = {resource.resource_id: resource for resource in repository.db_bootstrap_resource_list(result.run_id)}
    assert resources[_APP_DEPLOYMENT_ID].phase == "Failed"
    assert resources[_APP_DEPLOYMENT_ID].last_error == "admission webhook denied"


def test_orchestrator_rolls_back_when_requested_per_run(tmp_path) -> None:
    """Honour a per-run rollback override and finalize as rolled_back."""

    repository = _build_repository(tmp_path)
    control_plane = InMemoryControlPlaneAdapter(
        apply_failures={_APP_DEPLOYMENT_ID: [ControlPlaneTerminalError("quota exceeded")]},
    )
    orchestrator = _build_orchestrator(repository, control_plane, rollback_enabled=False)

    prepared = orchestrator.job_prepare(_build_desired_state(), rollback_enabled=True)
    result = orchestrator.job_run(prepared)

    assert result.status == "rolled_back"
    assert control_plane.adapter_object_ids() == ()
    phases = {resource.phase for resource in repository.db_bootstrap_resource_list(result.run_id)}
    assert phases == {"RolledBack"}


def test_orchestrator_rejects_invalid_plan_without_creating_run(tmp_path) -> None:
    """Raise InvalidPlanError before any run row exists."""

    repository = _build_repository(tmp_path)
    orchestrator = _build_orchestrator(repository, InMemoryControlPlaneAdapter())

    with pytest.raises(InvalidPlanError):
        orchestrator.job_execute(DesiredState(instance_name="chat", namespace="team"))

    assert repository.db_bootstrap_run_list(limit=10, offset=0) == []


def test_orchestrator_rejects_second_active_run_for_instance(tmp_path) -> None:
    """Allow only one running run per application instance.

    Returns:
        None: Assertions validate the single-active-run rule.

    Raises:
        AssertionError: Raised when a second run is accepted.
    """

    repository = _build_repository(tmp_path)
    orchestrator = _build_orchestrator(repository, InMemoryControlPlaneAdapter())

    prepared = orchestrator.job_prepare(_build_desired_state())
    with pytest.raises(BootstrapRunAlreadyActiveError):
        orchestrator.job_prepare(_build_desired_state())

    orchestrator.job_run(prepared)
    second = orchestrator.job_execute(_build_desired_state())
    assert second.status == "succeeded"


def test_orchestrator_cancel_and_resume_finishes_without_reapplying(tmp_path) -> None:
    """Resume a cancelled run from persisted phases and apply only what is left.

    Returns:
        None: Assertions validate cancel and resume behavior.

    Raises:
        AssertionError: Raised when resumed work repeats finished work.
    """

    repository = _build_repository(tmp_path)
    control_plane = InMemoryControlPlaneAdapter()
    orchestrator = _build_orchestrator(repository, control_plane)
    prepared = orchestrator.job_prepare(_build_desired_state())

    def _cancel_after_namespace(transition: PhaseTransition, _status: ResourceStatus) -> None:
        if transition.resource_id == "Namespace/-/team" and transition.to_phase == ResourcePhase.READY:
            orchestrator.job_cancel(prepared.run_id)

    prepared.run_state.run_state_add_listener(_cancel_after_namespace)
    cancelled = orchestrator.job_run(prepared)

    assert cancelled.status == "cancelled"
    assert control_plane.apply_calls == ["Namespace/-/team"]
    assert orchestrator.job_cancel(prepared.run_id) is False

    resumed = orchestrator.job_resume(prepared.run_id)

    assert resumed.status == "succeeded"
    assert resumed.run_id == prepared.run_id
    assert control_plane.apply_calls.count("Namespace/-/team") == 1
    assert len(control_plane.apply_calls) == 4
    run_record = repository.db_bootstrap_run_get_by_id(prepared.run_id)
    assert run_record.run_type == "resume"
    assert run_record.state.status == "succeeded"


def test_orchestrator_refuses_to_resume_finished_run(tmp_path) -> None:
    repository = _build_repository(tmp_path)
    orchestrator = _build_orchestrator(repository, InMemoryControlPlaneAdapter())
    result = orchestrator.job_execute(_build_desired_state())

    with pytest.raises(ValueError, match="cannot be resumed"):
        orchestrator.job_resume(result.run_id)


def test_orchestrator_resume_unknown_run_raises_lookup_error(tmp_path) -> None:
    orchestrator = _build_orchestrator(_build_repository(tmp_path), InMemoryControlPlaneAdapter())

    with pytest.raises(LookupError):
        orchestrator.job_resume("missing-run")


def test_orchestrator_streams_progress_events_to_extra_listeners(tmp_path) -> None:
    """Deliver one progress event per transition to a registered stream."""

    repository = _build_repository(tmp_path)
    orchestrator = _build_orchestrator(repository, InMemoryControlPlaneAdapter())
    stream = ProgressEventStream()

    prepared = orchestrator.job_prepare(_build_desired_state(), listeners=(stream,))
    orchestrator.job_run(prepared)
    stream.stream_close()
    events = list(stream)

    assert len(events) == 12
    assert events[0].resource_id == "Namespace/-/team"
    assert events[0].phase == ResourcePhase.APPLYING
    assert sum(1 for event in events if event.phase == ResourcePhase.READY) == 4
    assert stream.is_closed is True


def test_orchestrator_invokes_listener_factories_per_run(tmp_path) -> None:
    repository = _build_repository(tmp_path)
    seen_run_ids: list[str] = []

    def _factory(run_id: str):
        seen_run_ids.append(run_id)
        return lambda _transition, _status: None

    orchestrator = BootstrapJobOrchestrator(
        run_repository=repository,
        control_plane=InMemoryControlPlaneAdapter(),
        config=BootstrapOrchestratorConfig(convergence=ConvergenceConfig(poll_interval_seconds=0.0)),
        listener_factories=(_factory,),
    )

    result = orchestrator.job_execute(_build_desired_state())

    assert seen_run_ids == [result.run_id]


def test_orchestrator_resume_keeps_retry_budget_spent_before_cancel(tmp_path) -> None:
    """Persist attempts between transitions so resume cannot refill the retry budget.

    Returns:
        None: Assertions validate the total apply budget across cancel and resume.

    Raises:
        AssertionError: Raised when resume grants extra attempts.
    """

    repository = _build_repository(tmp_path)
    control_plane = InMemoryControlPlaneAdapter(
        apply_failures={_APP_DEPLOYMENT_ID: [ControlPlaneTransientError("etcd leader changed") for _ in range(10)]},
    )
    backoff_sleeps: list[float] = []
    prepared_runs: list[PreparedBootstrapRun] = []

    def _cancel_on_second_backoff(seconds: float) -> None:
        backoff_sleeps.append(seconds)
        if len(backoff_sleeps) == 2:
            orchestrator.job_cancel(prepared_runs[0].run_id)

    orchestrator = BootstrapJobOrchestrator(
        run_repository=repository,
        control_plane=control_plane,
        config=BootstrapOrchestratorConfig(
            retry_policy=RetryPolicy(max_attempts=3, random_unit_interval_provider=lambda: 0.5),
            convergence=ConvergenceConfig(max_in_flight=2, poll_interval_seconds=0.0),
        ),
        sleeper=_cancel_on_second_backoff,
    )
    prepared_runs.append(orchestrator.job_prepare(_build_desired_state()))

    cancelled = orchestrator.job_run(prepared_runs[0])

    assert cancelled.status == "cancelled"
    assert control_plane.apply_calls.count(_APP_DEPLOYMENT_ID) == 2
    resources = {resource.resource_id: resource for resource in repository.db_bootstrap_resource_list(cancelled.run_id)}
    assert resources[_APP_DEPLOYMENT_ID].attempts == 2
    assert resources[_APP_DEPLOYMENT_ID].last_error_code == TRANSIENT_ERROR_CODE
    assert resources[_APP_DEPLOYMENT_ID].last_error == "etcd leader changed"

    resumed = orchestrator.job_resume(cancelled.run_id)

    assert resumed.status == "failed"
    assert control_plane.apply_calls.count(_APP_DEPLOYMENT_ID) == 3
    resources = {resource.resource_id: resource for resource in repository.db_bootstrap_resource_list(resumed.run_id)}
    assert resources[_APP_DEPLOYMENT_ID].phase == "Failed"
    assert resources[_APP_DEPLOYMENT_ID].attempts == 3
    assert resources[_APP_DEPLOYMENT_ID].last_error_code == RETRY_BUDGET_EXHAUSTED_CODE
