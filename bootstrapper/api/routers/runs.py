"""Bootstrap run router composition for trigger, control and diagnostics endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Query, status
from fastapi.responses import JSONResponse

from bootstrapper.config import BootstrapSettings, DesiredStateLoadError, config_parse_desired_state
from bootstrapper.db import (
    BootstrapResourceRecord,
    BootstrapRunAlreadyActiveError,
    BootstrapRunRecord,
    BootstrapRunRepositoryPort,
    BootstrapTransitionRecord,
)
from bootstrapper.jobs import BootstrapJobOrchestrator, job_extract_failed_resources_from_diagnostics
from bootstrapper.planning import InvalidPlanError


def api_create_runs_router(
    settings: BootstrapSettings,
    run_repository: BootstrapRunRepositoryPort,
    orchestrator: BootstrapJobOrchestrator,
) -> APIRouter:
    """Create run router with trigger, cancel, resume and list/detail endpoints.

    Convergence runs as a background task after the trigger response is sent;
    clients follow progress through `GET /runs/{run_id}`.

    Args:
        settings: Runtime settings used for pagination defaults.
        run_repository: DB-layer run repository.
        orchestrator: Job orchestrator executing runs.

    Returns:
        APIRouter: Router exposing run APIs.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if settings is None:
        raise ValueError("settings must not be None")
    if run_repository is None:
        raise ValueError("run_repository must not be None")
    if orchestrator is None:
        raise ValueError("orchestrator must not be None")

    router = APIRouter(prefix="/runs", tags=["runs"])

    @router.post("")
    def api_run_trigger(
        background_tasks: BackgroundTasks,
        payload: dict[str, Any] = Body(...),
        rollback: bool | None = Query(default=None),
    ) -> JSONResponse:
        """Validate a desired state, create a run and converge it in the background.

        Args:
            payload: Desired-state document.
            rollback: Optional per-run rollback override.

        Returns:
            JSONResponse: 202 with the run id, 400 for invalid input, 409 when a run is active.
        """

        try:
            desired_state = config_parse_desired_state(payload)
        except DesiredStateLoadError as error:
            return _api_error_response(status.HTTP_400_BAD_REQUEST, "INVALID_DESIRED_STATE", str(error))

        try:
            prepared = orchestrator.job_prepare(desired_state, rollback_enabled=rollback)
        except InvalidPlanError as error:
            return _api_error_response(
                status.HTTP_400_BAD_REQUEST,
                "INVALID_PLAN",
                str(error),
                problems=list(error.problems),
            )
        except BootstrapRunAlreadyActiveError as error:
            return _api_error_response(status.HTTP_409_CONFLICT, "RUN_ALREADY_ACTIVE", str(error))

        background_tasks.add_task(orchestrator.job_run, prepared)
        return JSONResponse(
            content={
                "run_id": prepared.run_id,
                "status": "running",
                "resource_count": len(prepared.plan.specs),
                "rollback_enabled": prepared.rollback_enabled,
            },
            status_code=status.HTTP_202_ACCEPTED,
        )

    @router.get("")
    def api_run_list(
        limit: int = Query(default=settings.api_default_limit, ge=1),
        offset: int = Query(default=0, ge=0),
    ) -> JSONResponse:
        """Return runs ordered by latest first.

        Args:
            limit: Max rows to return, capped at `api_max_limit`.
            offset: Rows to skip.

        Returns:
            JSONResponse: Runs list payload.

        Raises:
            RuntimeError: Raised when repository read fails.
        """

        applied_limit = min(limit, settings.api_max_limit)
        run_rows = run_repository.db_bootstrap_run_list(limit=applied_limit, offset=offset)
        payload = {
            "items": [api_serialize_run_record(run_record) for run_record in run_rows],
            "page": {
                "limit": limit,
                "applied_limit": applied_limit,
                "offset": offset,
                "returned": len(run_rows),
            },
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.get("/{run_id}")
    def api_run_detail(run_id: str) -> JSONResponse:
        """Return one run with resource phases and transition history.

        Returns:
            JSONResponse: Run detail payload or 404 when absent.

        Raises:
            RuntimeError: Raised when repository read fails.
        """

        run_record = run_repository.db_bootstrap_run_get_by_id(run_id)
        if run_record is None:
            return _api_error_response(status.HTTP_404_NOT_FOUND, "RUN_NOT_FOUND", "bootstrap run not found")

        resources = run_repository.db_bootstrap_resource_list(run_id)
        transitions = run_repository.db_bootstrap_transition_list(run_id)
        report = (run_record.state.diagnostics or {}).get("report")
        payload = api_serialize_run_record(run_record)
        payload.update(
            {
                "active": run_id in orchestrator.job_active_run_ids(),
                "ready_count": sum(1 for resource in resources if resource.phase == "Ready"),
                "total_count": len(resources),
                "resources": [api_serialize_resource_record(resource) for resource in resources],
                "transitions": [api_serialize_transition_record(transition) for transition in transitions],
                **job_extract_failed_resources_from_diagnostics(report),
            }
        )
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.post("/{run_id}/cancel")
    def api_run_cancel(run_id: str, rollback: bool = Query(default=False)) -> JSONResponse:
        """Request cancellation of an active run.

        Args:
            run_id: Run identifier.
            rollback: Whether applied resources are torn down once workers stop.

        Returns:
            JSONResponse: 202 when requested, 404 for unknown runs, 409 for inactive runs.
        """

        if orchestrator.job_cancel(run_id, rollback=rollback):
            return JSONResponse(
                content={"run_id": run_id, "status": "cancelling", "rollback": rollback},
                status_code=status.HTTP_202_ACCEPTED,
            )
        if run_repository.db_bootstrap_run_get_by_id(run_id) is None:
            return _api_error_response(status.HTTP_404_NOT_FOUND, "RUN_NOT_FOUND", "bootstrap run not found")
        return _api_error_response(status.HTTP_409_CONFLICT, "RUN_NOT_ACTIVE", "bootstrap run is not executing")

    @router.post("/{run_id}/resume")
    def api_run_resume(
        run_id: str,
        background_tasks: BackgroundTasks,
        rollback: bool | None = Query(default=None),
    ) -> JSONResponse:
        """Resume a cancelled or interrupted run in the background.

        Args:
            run_id: Run identifier.
            rollback: Optional per-run rollback override.

        Returns:
            JSONResponse: 202 when resumed, 404 for unknown runs, 409 when not resumable.
        """

        try:
            prepared = orchestrator.job_prepare_resume(run_id, rollback_enabled=rollback)
        except LookupError as error:
            return _api_error_response(status.HTTP_404_NOT_FOUND, "RUN_NOT_FOUND", str(error))
        except BootstrapRunAlreadyActiveError as error:
            return _api_error_response(status.HTTP_409_CONFLICT, "RUN_ALREADY_ACTIVE", str(error))
        except ValueError as error:
            return _api_error_response(status.HTTP_409_CONFLICT, "RUN_NOT_RESUMABLE", str(error))

        background_tasks.add_task(orchestrator.job_run, prepared)
        return JSONResponse(
            content={"run_id": run_id, "status": "running", "rollback_enabled": prepared.rollback_enabled},
            status_code=status.HTTP_202_ACCEPTED,
        )

    return router


def _api_error_response(status_code: int, code: str, message: str, **extra: Any) -> JSONResponse:
    payload: dict[str, Any] = {"status": "error", "code": code, "message": message}
    payload.update(extra)
    return JSONResponse(content=payload, status_code=status_code)


def api_serialize_run_record(run_record: BootstrapRunRecord) -> dict[str, Any]:
    """Serialize typed run row to JSON response payload.

    Secret values in the stored desired state are never returned; only the
    instance identity is exposed.
    """

    return {
        "run_id": run_record.run_id,
        "instance_name": run_record.instance_name,
        "namespace": run_record.namespace,
        "run_type": run_record.run_type,
        "status": run_record.state.status,
        "started_at_utc": run_record.state.started_at_utc.isoformat(),
        "ended_at_utc": run_record.state.ended_at_utc.isoformat() if run_record.state.ended_at_utc else None,
        "duration_ms": run_record.state.duration_ms,
        "error_code": run_record.state.error_code,
        "error_message": run_record.state.error_message,
        "diagnostics": run_record.state.diagnostics,
        "created_at_utc": run_record.created_at_utc.isoformat(),
    }


def api_serialize_resource_record(resource: BootstrapResourceRecord) -> dict[str, Any]:
    return {
        "resource_id": resource.resource_id,
        "plan_position": resource.plan_position,
        "phase": resource.phase,
        "attempts": resource.attempts,
        "last_error_code": resource.last_error_code,
        "last_error": resource.last_error,
        "updated_at_utc": resource.updated_at_utc.isoformat(),
    }


def api_serialize_transition_record(transition: BootstrapTransitionRecord) -> dict[str, Any]:
    return {
        "resource_id": transition.resource_id,
        "from_phase": transition.from_phase,
        "to_phase": transition.to_phase,
        "attempt": transition.attempt,
        "error_code": transition.error_code,
        "error_message": transition.error_message,
        "at_utc": transition.at_utc.isoformat(),
    }
