"""FastAPI application factory for the bootstrapper service.

The API is the status and trigger surface consumed by the companion web
frontend and by operators.
"""

from fastapi import FastAPI

from bootstrapper.adapters import ControlPlanePort
from bootstrapper.config import BootstrapSettings
from bootstrapper.db import BootstrapRunRepositoryPort, DatabaseHealthPort
from bootstrapper.jobs import BootstrapJobOrchestrator

from .routers import api_create_health_router, api_create_runs_router


def create_api_application(
    settings: BootstrapSettings,
    db_health_service: DatabaseHealthPort,
    control_plane: ControlPlanePort,
    run_repository: BootstrapRunRepositoryPort,
    orchestrator: BootstrapJobOrchestrator,
) -> FastAPI:
    """Create the FastAPI application instance for the service.

    Args:
        settings: Validated settings used for runtime metadata and pagination.
        db_health_service: Database health service used by health endpoints.
        control_plane: Control-plane adapter probed by health endpoints.
        run_repository: Run repository for list/detail APIs.
        orchestrator: Job orchestrator executing triggered runs.

    Returns:
        FastAPI: Framework application instance.
    """

    application = FastAPI(title="Cloud-Native Bootstrapper")

    @application.get("/", tags=["foundation"])
    def foundation_index() -> dict[str, str]:
        """Return service identity and the control plane it drives."""

        return {
            "service": "cloudnative-bootstrapper",
            "status": "ready",
            "environment": settings.environment_name,
            "control_plane": control_plane.adapter_source_name(),
        }

    application.include_router(
        api_create_health_router(db_health_service=db_health_service, control_plane=control_plane)
    )
    application.include_router(
        api_create_runs_router(
            settings=settings,
            run_repository=run_repository,
            orchestrator=orchestrator,
        )
    )

    return application
