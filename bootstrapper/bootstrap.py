"""Runtime wiring for startup validation and dependency assembly."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import FastAPI

from bootstrapper.adapters import ControlPlanePort, InMemoryControlPlaneAdapter, KubernetesControlPlaneAdapter
from bootstrapper.api import create_api_application
from bootstrapper.config import BootstrapSettings, config_load_settings
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
from bootstrapper.reporting import LoggingProgressReporter


@dataclass(frozen=True)
class BootstrapRuntime:
    """Assembled runtime dependencies shared by the API and CLI surfaces.

    Attributes:
        settings: Validated runtime settings.
        control_plane: Control-plane adapter (Kubernetes, or in-memory for dry runs).
        run_repository: Run persistence service.
        db_health_service: Run store health service.
        orchestrator: Bootstrap job orchestrator.
    """

    settings: BootstrapSettings
    control_plane: ControlPlanePort
    run_repository: SQLAlchemyBootstrapRunService
    db_health_service: SQLAlchemyDatabaseHealthService
    orchestrator: BootstrapJobOrchestrator


def bootstrap_create_control_plane(settings: BootstrapSettings, dry_run: bool = False) -> ControlPlanePort:
    """Build the control-plane adapter selected by settings.

    Args:
        settings: Validated runtime settings.
        dry_run: Use the in-memory simulated cluster instead of a real API server.

    Returns:
        ControlPlanePort: Adapter instance.
    """

    if dry_run:
        return InMemoryControlPlaneAdapter(ready_after_polls=1)
    return KubernetesControlPlaneAdapter(
        base_url=settings.control_plane_url,
        token=settings.control_plane_token,
        field_manager=settings.control_plane_field_manager,
        ca_cert_path=settings.control_plane_ca_cert_path,
        verify_tls=settings.control_plane_verify_tls,
        request_timeout_seconds=settings.control_plane_request_timeout_seconds,
    )


def bootstrap_build_orchestrator_config(settings: BootstrapSettings, dry_run: bool = False) -> BootstrapOrchestratorConfig:
    """Translate settings into retry and convergence configuration.

    Dry runs poll without delay because the simulated cluster answers instantly.
    """

    return BootstrapOrchestratorConfig(
        retry_policy=RetryPolicy(
            max_attempts=settings.convergence_retry_attempts,
            backoff_base_seconds=settings.convergence_backoff_base_seconds,
            max_backoff_seconds=settings.convergence_backoff_max_seconds,
            jitter_min_multiplier=settings.convergence_jitter_min_multiplier,
            jitter_max_multiplier=settings.convergence_jitter_max_multiplier,
        ),
        convergence=ConvergenceConfig(
            max_in_flight=settings.convergence_max_in_flight,
            ready_timeout_seconds=settings.convergence_ready_timeout_seconds,
            poll_interval_seconds=0.0 if dry_run else settings.convergence_poll_interval_seconds,
            rollback_enabled=settings.convergence_rollback_enabled,
        ),
    )


def bootstrap_create_runtime(
    settings: BootstrapSettings | None = None,
    dry_run: bool = False,
) -> BootstrapRuntime:
    """Assemble every runtime dependency after validating configuration.

    The embedded SQLite run store is created on first use; other databases
    are expected to be migrated with Alembic beforehand.

    Args:
        settings: Optional pre-loaded settings.
        dry_run: Drive the in-memory simulated cluster.

    Returns:
        BootstrapRuntime: Assembled runtime.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    resolved_settings = settings or config_load_settings()
    engine = db_create_engine(database_url=resolved_settings.database_url)
    if engine.dialect.name == "sqlite":
        db_create_schema(engine)

    run_repository = SQLAlchemyBootstrapRunService(engine=engine)
    control_plane = bootstrap_create_control_plane(resolved_settings, dry_run=dry_run)
    orchestrator = BootstrapJobOrchestrator(
        run_repository=run_repository,
        control_plane=control_plane,
        config=bootstrap_build_orchestrator_config(resolved_settings, dry_run=dry_run),
        listener_factories=(LoggingProgressReporter,),
    )
    return BootstrapRuntime(
        settings=resolved_settings,
        control_plane=control_plane,
        run_repository=run_repository,
        db_health_service=SQLAlchemyDatabaseHealthService(engine=engine),
        orchestrator=orchestrator,
    )


def bootstrap_create_application(dry_run: bool = False) -> FastAPI:
    """Assemble the API application after validating startup configuration.

    Returns:
        FastAPI: Fully initialized FastAPI application instance.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    runtime = bootstrap_create_runtime(dry_run=dry_run)
    return create_api_application(
        settings=runtime.settings,
        db_health_service=runtime.db_health_service,
        control_plane=runtime.control_plane,
        run_repository=runtime.run_repository,
        orchestrator=runtime.orchestrator,
    )
