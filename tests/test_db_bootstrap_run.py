"""Tests for bootstrap run persistence on an embedded SQLite database."""

from __future__ import annotations

import pytest

from bootstrapper.db import (
    BootstrapRunAlreadyActiveError,
    SQLAlchemyBootstrapRunService,
    SQLAlchemyDatabaseHealthService,
    db_create_engine,
    db_create_schema,
)
from bootstrapper.domain import PhaseTransition, ResourcePhase, domain_utc_now

_RESOURCE_IDS = ["Namespace/-/team", "Secret/team/chat-app-config"]


@pytest.fixture
def repository(tmp_path) -> SQLAlchemyBootstrapRunService:
    """Create a run repository backed by a fresh SQLite file.

    Args:
        tmp_path: Pytest temporary directory.

    Returns:
        SQLAlchemyBootstrapRunService: Repository under test.
    """

    engine = db_create_engine(f"sqlite:///{tmp_path / 'runs.db'}")
    db_create_schema(engine)
    return SQLAlchemyBootstrapRunService(engine=engine)


def _create_run(repository: SQLAlchemyBootstrapRunService, instance_name: str = "chat"):
    return repository.db_bootstrap_run_create_started(
        instance_name=instance_name,
        namespace="team",
        desired_state={"instance_name": instance_name, "namespace": "team"},
        resource_ids=list(_RESOURCE_IDS),
    )


def test_db_create_started_run_seeds_pending_resources(repository) -> None:
    """Create a running run with one Pending row per plan entry.

    Returns:
        None: Assertions validate created rows.

    Raises:
        AssertionError: Raised when created rows diverge.
    """

    run = _create_run(repository)

    assert run.run_type == "bootstrap"
    assert run.state.status == "running"
    assert run.state.ended_at_utc is None
    assert run.desired_state == {"instance_name": "chat", "namespace": "team"}
    resources = repository.db_bootstrap_resource_list(run.run_id)
    assert [(item.resource_id, item.plan_position, item.phase) for item in resources] == [
        ("Namespace/-/team", 0, "Pending"),
        ("Secret/team/chat-app-config", 1, "Pending"),
    ]


def test_db_create_started_rejects_second_running_run(repository) -> None:
    _create_run(repository)

    with pytest.raises(BootstrapRunAlreadyActiveError, match="instance=chat"):
        _create_run(repository)

    other_instance = _create_run(repository, instance_name="support")
    assert other_instance.state.status == "running"


def test_db_create_started_validates_inputs(repository) -> None:
    with pytest.raises(ValueError, match="instance_name"):
        _create_run(repository, instance_name="  ")
    with pytest.raises(ValueError, match="resource_ids"):
        repository.db_bootstrap_run_create_started("chat", "team", {}, [])


def test_db_record_transition_updates_resource_and_appends_history(repository) -> None:
    """Persist the resource status and append the transition row.

    Returns:
        None: Assertions validate persisted transition state.

    Raises:
        AssertionError: Raised when persisted state diverges.
    """

    run = _create_run(repository)
    repository.db_bootstrap_run_record_transition(
        run_id=run.run_id,
        transition=PhaseTransition(
            resource_id="Namespace/-/team",
            from_phase=ResourcePhase.PENDING,
            to_phase=ResourcePhase.APPLYING,
            at_utc=domain_utc_now(),
        ),
        attempts=0,
        last_error_code=None,
        last_error=None,
    )
    repository.db_bootstrap_run_record_transition(
        run_id=run.run_id,
        transition=PhaseTransition(
            resource_id="Namespace/-/team",
            from_phase=ResourcePhase.APPLYING,
            to_phase=ResourcePhase.FAILED,
            at_utc=domain_utc_now(),
            attempt=1,
            error_code="APPLY_TERMINAL",
            error_message="namespace is terminating",
        ),
        attempts=1,
        last_error_code="APPLY_TERMINAL",
        last_error="namespace is terminating",
    )

    namespace_row = repository.db_bootstrap_resource_list(run.run_id)[0]
    assert namespace_row.phase == "Failed"
    assert namespace_row.attempts == 1
    assert namespace_row.last_error_code == "APPLY_TERMINAL"
    transitions = repository.db_bootstrap_transition_list(run.run_id)
    assert [(item.from_phase, item.to_phase) for item in transitions] == [
        ("Pending", "Applying"),
        ("Applying", "Failed"),
    ]
    assert transitions[0].transition_id < transitions[1].transition_id
    assert transitions[1].error_message == "namespace is terminating"


def test_db_record_transition_for_unknown_resource_raises(repository) -> None:
    run = _create_run(repository)

    with pytest.raises(LookupError, match="Service/team/ghost"):
        repository.db_bootstrap_run_record_transition(
            run_id=run.run_id,
            transition=PhaseTransition(
                resource_id="Service/team/ghost",
                from_phase=ResourcePhase.PENDING,
                to_phase=ResourcePhase.APPLYING,
                at_utc=domain_utc_now(),
            ),
            attempts=0,
            last_error_code=None,
            last_error=None,
        )


def test_db_record_progress_updates_attempts_without_history(repository) -> None:
    """Store attempts and last error between transitions, keeping phase and history."""

    run = _create_run(repository)

    repository.db_bootstrap_resource_record_progress(
        run_id=run.run_id,
        resource_id="Namespace/-/team",
        attempts=2,
        last_error_code="TRANSIENT_ERROR",
        last_error="too many requests",
    )

    namespace_row = repository.db_bootstrap_resource_list(run.run_id)[0]
    assert namespace_row.phase == "Pending"
    assert namespace_row.attempts == 2
    assert namespace_row.last_error_code == "TRANSIENT_ERROR"
    assert namespace_row.last_error == "too many requests"
    assert repository.db_bootstrap_transition_list(run.run_id) == []
    with pytest.raises(LookupError, match="Service/team/ghost"):
        repository.db_bootstrap_resource_record_progress(
            run_id=run.run_id,
            resource_id="Service/team/ghost",
            attempts=1,
            last_error_code=None,
            last_error=None,
        )


def test_db_finalize_sets_outcome_and_releases_instance(repository) -> None:
    """Finalize a run and allow a new run for the same instance afterwards."""

    run = _create_run(repository)

    finalized = repository.db_bootstrap_run_finalize(
        run_id=run.run_id,
        status="failed",
        error_code="APPLY_TERMINAL",
        error_message="1 of 2 resources not Ready",
        diagnostics={"timeline": [], "report": {"ready_count": 1}},
    )

    assert finalized.state.status == "failed"
    assert finalized.state.ended_at_utc is not None
    assert finalized.state.duration_ms >= 0
    assert finalized.state.diagnostics == {"timeline": [], "report": {"ready_count": 1}}
    assert _create_run(repository).state.status == "running"


def test_db_finalize_rejects_non_final_status(repository) -> None:
    run = _create_run(repository)

    with pytest.raises(ValueError, match="status must be one of"):
        repository.db_bootstrap_run_finalize(run.run_id, "running", None, None, None)
    with pytest.raises(LookupError):
        repository.db_bootstrap_run_finalize("missing", "failed", None, None, None)


def test_db_mark_resumed_follows_resumable_statuses(repository) -> None:
    """Resume cancelled runs, refuse finished ones and unknown ids.

    Returns:
        None: Assertions validate resume rules.

    Raises:
        AssertionError: Raised when resume rules diverge.
    """

    cancelled = _create_run(repository)
    repository.db_bootstrap_run_finalize(cancelled.run_id, "cancelled", "CANCELLED", None, None)

    resumed = repository.db_bootstrap_run_mark_resumed(cancelled.run_id)

    assert resumed.run_type == "resume"
    assert resumed.state.status == "running"
    assert resumed.state.ended_at_utc is None
    assert resumed.state.error_code is None

    repository.db_bootstrap_run_finalize(cancelled.run_id, "succeeded", None, None, None)
    with pytest.raises(ValueError, match="cannot be resumed"):
        repository.db_bootstrap_run_mark_resumed(cancelled.run_id)
    with pytest.raises(LookupError):
        repository.db_bootstrap_run_mark_resumed("missing")


def test_db_mark_resumed_rejects_when_instance_has_other_active_run(repository) -> None:
    cancelled = _create_run(repository)
    repository.db_bootstrap_run_finalize(cancelled.run_id, "cancelled", None, None, None)
    _create_run(repository)

    with pytest.raises(BootstrapRunAlreadyActiveError):
        repository.db_bootstrap_run_mark_resumed(cancelled.run_id)


def test_db_list_runs_paginates(repository) -> None:
    created_ids = {_create_run(repository, instance_name=name).run_id for name in ("a", "b", "c")}

    first_page = repository.db_bootstrap_run_list(limit=2, offset=0)
    second_page = repository.db_bootstrap_run_list(limit=2, offset=2)

    assert len(first_page) == 2
    assert len(second_page) == 1
    assert {run.run_id for run in first_page + second_page} == created_ids
    assert repository.db_bootstrap_run_get_by_id("missing") is None
    with pytest.raises(ValueError, match="limit"):
        repository.db_bootstrap_run_list(limit=0, offset=0)


def test_db_health_reports_missing_tables(tmp_path) -> None:
    """Report degraded before the schema exists and ok afterwards."""

    engine = db_create_engine(f"sqlite:///{tmp_path / 'health.db'}")
    health_service = SQLAlchemyDatabaseHealthService(engine=engine)

    before = health_service.db_check_health()
    db_create_schema(engine)
    after = health_service.db_check_health()

    assert before.status == "degraded"
    assert "bootstrap_run" in before.detail
    assert after.status == "ok"
    assert health_service.db_connection_label().startswith("sqlite:///")
