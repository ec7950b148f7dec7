"""Health endpoint router composition for run store and control-plane checks."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from bootstrapper.adapters import ControlPlanePort
from bootstrapper.db import DatabaseHealthPort


def api_create_health_router(
    db_health_service: DatabaseHealthPort,
    control_plane: ControlPlanePort,
) -> APIRouter:
    """Create health-check router reporting run store and control-plane status.

    Args:
        db_health_service: DB-layer health service interface.
        control_plane: Control-plane adapter probed for reachability.

    Returns:
        APIRouter: Router exposing `/health` endpoint.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if db_health_service is None:
        raise ValueError("db_health_service must not be None")
    if control_plane is None:
        raise ValueError("control_plane must not be None")

    router = APIRouter(tags=["health"])

    @router.get("/health")
    def api_health_status() -> JSONResponse:
        """Return application, run store and control-plane health state.

        Any component that is down or degraded makes the overall status
        `degraded` with HTTP 503.

        Returns:
            JSONResponse: Deterministic health payload for operational checks.
        """

        database_payload: dict[str, str] = {"target": db_health_service.db_connection_label()}
        try:
            db_health = db_health_service.db_check_health()
            database_payload.update(status=db_health.status, detail=db_health.detail)
        except ConnectionError as error:
            database_payload.update(status="down", detail=str(error))

        control_plane_payload: dict[str, str] = {"target": control_plane.adapter_source_name()}
        try:
            control_plane_health = control_plane.adapter_check_health()
            control_plane_payload.update(status=control_plane_health.status, detail=control_plane_health.detail)
        except ConnectionError as error:
            control_plane_payload.update(status="down", detail=str(error))

        healthy = database_payload["status"] == "ok" and control_plane_payload["status"] == "ok"
        payload = {
            "status": "ok" if healthy else "degraded",
            "app": "up",
            "database": database_payload,
            "control_plane": control_plane_payload,
        }
        return JSONResponse(
            content=payload,
            status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return router
