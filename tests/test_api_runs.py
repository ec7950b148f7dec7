"""Tests for bootstrap run API endpoints over a real orchestrator and SQLite run store."""

from __future__ import annotations

from fastapi.testclient import TestClient

from bootstrapper.adapters import ControlPlaneTerminalError, InMemoryControlPlaneAdapter
from bootstrapper.api.application import create_api_application
from bootstrapper.config import BootstrapSettings, config_parse_desired_state
from bootstrapper.db import (
    SQLAlchemyBootstrapRunService,
    SQLAlchemyDatabaseHealthService,
    db_create_engine,
    db_create_schema,
)
from bootstrapper.jobs import (
    BootstrapJobOrchestrator,
    BootstrapOrchestratorConfig,
    ConvergenceConfig,
    RetryPolicy,
)

_OBJECT_STORAGE_SECRET = "s3-secret-value"


def _desired_state_payload(instance_name: str = "chat") -> dict:
    return {
        "instance_name": instance_name,
        "namespace": "team",
        "database": {"enabled": False, "external_dsn": "postgres://mm:pw@db.example:5432/mm"},
        "object_storage": {
            "enabled": False,
            "external_endpoint": "s3.example.com",
            "access_key": "access",
            "secret_key": _OBJECT_STORAGE_SECRET,
        },
    }


class _ApiHarness:
    """Wire the API to an in-memory control plane and a temporary run store."""

    def __init__(self, tmp_path, control_plane: InMemoryControlPlaneAdapter | None = None):
        engine = db_create_engine(f"sqlite:///{tmp_path / 'api.db'}")
        db_create_schema(engine)
        self.control_plane = control_plane or InMemoryControlPlaneAdapter()
        self.repository = SQLAlchemyBootstrapRunService(engine=engine)
        self.orchestrator = BootstrapJobOrchestrator(
            run_repository=self.repository,
            control_plane=self.control_plane,
            config=BootstrapOrchestratorConfig(
                retry_policy=RetryPolicy(max_attempts=1),
                convergence=ConvergenceConfig(poll_interval_seconds=0.0),
            ),
            sleeper=lambda _seconds: None,
        )
        settings = BootstrapSettings(
            environment_name="test",
            database_url=str(engine.url),
            api_default_limit=2,
            api_max_limit=3,
        )
        self.client = TestClient(
            create_api_application(
                settings=settings,
                db_health_service=SQLAlchemyDatabaseHealthService(engine=engine),
                control_plane=self.control_plane,
                run_repository=self.repository,
                orchestrator=self.orchestrator,
            )
        )


def test_api_trigger_converges_run_in_background(tmp_path) -> None:
    """Accept a trigger with 202 and expose the converged run through the detail endpoint.

    Returns:
        None: Assertions validate trigger and detail payloads.

    Raises:
        AssertionError: Raised when payloads diverge.
    """

    harness = _ApiHarness(tmp_path)

    trigger_response = harness.client.post("/runs", json=_desired_state_payload())

    assert trigger_response.status_code == 202
    trigger_body = trigger_response.json()
    assert trigger_body["status"] == "running"
    assert trigger_body["resource_count"] == 4
    assert trigger_body["rollback_enabled"] is False

    detail_response = harness.client.get(f"/runs/{trigger_body['run_id']}")

    assert detail_response.status_code == 200
    detail = detail_response.json()
    assert detail["status"] == "succeeded"
    assert detail["active"] is False
    assert detail["ready_count"] == 4
    assert detail["total_count"] == 4
    assert detail["resources"][0]["resource_id"] == "Namespace/-/team"
    assert len(detail["transitions"]) == 12
    assert detail["failed_resources"] == []
    assert _OBJECT_STORAGE_SECRET not in detail_response.text


def test_api_trigger_reports_failed_and_blocked_resources(tmp_path) -> None:
    """Expose failing and blocked resources of a partially converged run."""

    control_plane = InMemoryControlPlaneAdapter(
        apply_failures={"Secret/team/chat-app-config": [ControlPlaneTerminalError("admission webhook denied")]},
    )
    harness = _ApiHarness(tmp_path, control_plane=control_plane)

    run_id = harness.client.post("/runs", json=_desired_state_payload()).json()["run_id"]
    detail = harness.client.get(f"/runs/{run_id}").json()

    assert detail["status"] == "failed"
    assert detail["error_code"] == "APPLY_TERMINAL"
    assert detail["failed_resources"] == ["Secret/team/chat-app-config"]
    assert detail["blocked_resources"] == ["Deployment/team/chat-app"]
    assert detail["ready_count"] == 2


def test_api_trigger_rejects_malformed_desired_state(tmp_path) -> None:
    harness = _ApiHarness(tmp_path)

    response = harness.client.post("/runs", json={"namespace": "team", "unexpected": True})

    assert response.status_code == 400
    assert response.json()["status"] == "error"
    assert response.json()["code"] == "INVALID_DESIRED_STATE"


def test_api_trigger_rejects_unresolvable_toggles_with_problem_list(tmp_path) -> None:
    """Return every plan problem at once and create no run."""

    harness = _ApiHarness(tmp_path)
    payload = _desired_state_payload()
    payload["object_storage"] = {"enabled": False}

    response = harness.client.post("/runs", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "INVALID_PLAN"
    assert body["problems"]
    assert harness.client.get("/runs").json()["items"] == []


def test_api_trigger_rejects_second_active_run(tmp_path) -> None:
    harness = _ApiHarness(tmp_path)
    prepared = harness.orchestrator.job_prepare(config_parse_desired_state(_desired_state_payload()))

    response = harness.client.post("/runs", json=_desired_state_payload())

    assert response.status_code == 409
    assert response.json()["code"] == "RUN_ALREADY_ACTIVE"
    harness.orchestrator.job_run(prepared)


def test_api_cancel_and_resume_run(tmp_path) -> None:
    """Cancel an active run, then resume it to completion through the API.

    Returns:
        None: Assertions validate cancel and resume endpoints.

    Raises:
        AssertionError: Raised when endpoint behavior diverges.
    """

    harness = _ApiHarness(tmp_path)
    prepared = harness.orchestrator.job_prepare(config_parse_desired_state(_desired_state_payload()))

    cancel_response = harness.client.post(f"/runs/{prepared.run_id}/cancel")
    assert cancel_response.status_code == 202
    assert cancel_response.json() == {"run_id": prepared.run_id, "status": "cancelling", "rollback": False}

    cancelled = harness.orchestrator.job_run(prepared)
    assert cancelled.status == "cancelled"

    resume_response = harness.client.post(f"/runs/{prepared.run_id}/resume")
    assert resume_response.status_code == 202

    detail = harness.client.get(f"/runs/{prepared.run_id}").json()
    assert detail["status"] == "succeeded"
    assert detail["run_type"] == "resume"


def test_api_cancel_and_resume_reject_inactive_or_unknown_runs(tmp_path) -> None:
    harness = _ApiHarness(tmp_path)
    run_id = harness.client.post("/runs", json=_desired_state_payload()).json()["run_id"]

    cancel_finished = harness.client.post(f"/runs/{run_id}/cancel")
    resume_finished = harness.client.post(f"/runs/{run_id}/resume")
    cancel_unknown = harness.client.post("/runs/missing/cancel")
    resume_unknown = harness.client.post("/runs/missing/resume")
    detail_unknown = harness.client.get("/runs/missing")

    assert cancel_finished.status_code == 409
    assert cancel_finished.json()["code"] == "RUN_NOT_ACTIVE"
    assert resume_finished.status_code == 409
    assert resume_finished.json()["code"] == "RUN_NOT_RESUMABLE"
    assert cancel_unknown.status_code == 404
    assert resume_unknown.status_code == 404
    assert detail_unknown.status_code == 404
    assert detail_unknown.json()["code"] == "RUN_NOT_FOUND"


def test_api_run_list_caps_limit(tmp_path) -> None:
    """Apply the default page size and cap explicit limits at the configured maximum."""

    harness = _ApiHarness(tmp_path)
    for instance_name in ("a", "b", "c", "d"):
        assert harness.client.post("/runs", json=_desired_state_payload(instance_name)).status_code == 202

    default_page = harness.client.get("/runs").json()
    capped_page = harness.client.get("/runs", params={"limit": 50}).json()
    offset_page = harness.client.get("/runs", params={"limit": 3, "offset": 3}).json()

    assert default_page["page"]["returned"] == 2
    assert capped_page["page"] == {"limit": 50, "applied_limit": 3, "offset": 0, "returned": 3}
    assert offset_page["page"]["returned"] == 1
    assert all(_OBJECT_STORAGE_SECRET not in str(item) for item in capped_page["items"])
