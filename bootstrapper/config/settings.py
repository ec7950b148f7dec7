"""Typed runtime settings with dotenv support and startup validation."""

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATABASE_URL = "sqlite:///./bootstrapper.db"


class SettingsLoadError(RuntimeError):
    """Raised when runtime settings cannot be loaded or validated."""


class BootstrapSettings(BaseSettings):
    """Runtime settings for the API, the control-plane client and convergence.

    Environment variable names map directly to field names in uppercase.
    Example: `control_plane_url` reads from `CONTROL_PLANE_URL`.

    Attributes:
        environment_name: Runtime environment label.
        application_host: Host interface for web server binding.
        application_port: Web server port.
        database_url: SQLAlchemy URL of the run store.
        control_plane_url: Base URL of the control-plane API server.
        control_plane_token: Bearer token for control-plane requests.
        control_plane_ca_cert_path: Optional CA bundle for the API server certificate.
        control_plane_verify_tls: Whether the API server certificate is verified.
        control_plane_field_manager: Field manager name used for server-side apply.
        control_plane_request_timeout_seconds: Per-request timeout.
        convergence_retry_attempts: Attempts allowed per resource, first try included.
        convergence_backoff_base_seconds: Base retry delay for exponential backoff.
        convergence_backoff_max_seconds: Maximum retry delay cap.
        convergence_jitter_min_multiplier: Minimum retry jitter multiplier.
        convergence_jitter_max_multiplier: Maximum retry jitter multiplier.
        convergence_ready_timeout_seconds: Readiness deadline per attempt.
        convergence_poll_interval_seconds: Delay between readiness polls.
        convergence_max_in_flight: Maximum resources driven concurrently.
        convergence_rollback_enabled: Whether failed runs are rolled back by default.
        log_level: Root log level name.
        api_default_limit: Default list endpoint limit.
        api_max_limit: Maximum allowed list endpoint limit.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment_name: str = Field(default="development")
    application_host: str = Field(default="0.0.0.0")
    application_port: int = Field(default=8000, ge=1, le=65535)
    database_url: str = Field(default=DEFAULT_DATABASE_URL)
    control_plane_url: str = Field(default="https://kubernetes.default.svc")
    control_plane_token: str = Field(default="")
    control_plane_ca_cert_path: str | None = Field(default=None)
    control_plane_verify_tls: bool = Field(default=True)
    control_plane_field_manager: str = Field(default="cloudnative-bootstrapper", min_length=1)
    control_plane_request_timeout_seconds: float = Field(default=30.0, gt=0)
    convergence_retry_attempts: int = Field(default=5, ge=1)
    convergence_backoff_base_seconds: float = Field(default=2.0, ge=0)
    convergence_backoff_max_seconds: float = Field(default=60.0, gt=0)
    convergence_jitter_min_multiplier: float = Field(default=0.5, gt=0)
    convergence_jitter_max_multiplier: float = Field(default=1.5, gt=0)
    convergence_ready_timeout_seconds: float = Field(default=600.0, gt=0)
    convergence_poll_interval_seconds: float = Field(default=5.0, ge=0)
    convergence_max_in_flight: int = Field(default=4, ge=1)
    convergence_rollback_enabled: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    api_default_limit: int = Field(default=50, ge=1)
    api_max_limit: int = Field(default=200, ge=1)

    @field_validator("control_plane_url", "control_plane_field_manager", "database_url")
    @classmethod
    def _validate_non_empty_string(cls, value: str) -> str:
        stripped_value = value.strip()
        if not stripped_value:
            raise ValueError("value must not be blank")
        return stripped_value

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        normalized_value = value.strip().upper()
        if normalized_value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("log_level must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return normalized_value

    @field_validator("api_max_limit")
    @classmethod
    def _validate_limit_bounds(cls, value: int, info) -> int:
        default_limit = info.data.get("api_default_limit", 50)
        if value < default_limit:
            raise ValueError("api_max_limit must be greater than or equal to api_default_limit")
        return value

    @field_validator("convergence_backoff_max_seconds")
    @classmethod
    def _validate_backoff_cap_bounds(cls, value: float, info) -> float:
        backoff_base_seconds = float(info.data.get("convergence_backoff_base_seconds", 2.0))
        if value < backoff_base_seconds:
            raise ValueError(
                "convergence_backoff_max_seconds must be greater than or equal to convergence_backoff_base_seconds"
            )
        return value

    @field_validator("convergence_jitter_max_multiplier")
    @classmethod
    def _validate_jitter_bounds(cls, value: float, info) -> float:
        jitter_min_multiplier = float(info.data.get("convergence_jitter_min_multiplier", 0.5))
        if value < jitter_min_multiplier:
            raise ValueError(
                "convergence_jitter_max_multiplier must be greater than or equal to "
                "convergence_jitter_min_multiplier"
            )
        return value


class DatabaseUrlSettings(BaseSettings):
    """Minimal settings model used by migration tooling.

    Only the run store URL is read, so `alembic upgrade` works without the
    control-plane settings.

    Attributes:
        database_url: SQLAlchemy URL for schema migrations.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    database_url: str = Field(default=DEFAULT_DATABASE_URL)


def config_load_settings() -> BootstrapSettings:
    """Load and validate runtime settings from environment and dotenv.

    Returns:
        BootstrapSettings: Validated runtime settings object.

    Raises:
        SettingsLoadError: Raised when settings are invalid.
    """

    try:
        return BootstrapSettings()
    except ValidationError as error:
        raise SettingsLoadError(
            f"Startup configuration validation failed. Update .env or environment variables. Details: {error}"
        ) from error


def config_load_database_url() -> str:
    """Load and validate only the database URL setting.

    Returns:
        str: Non-empty database URL for migration and db tooling.

    Raises:
        SettingsLoadError: Raised when database URL cannot be loaded.
    """

    try:
        database_settings = DatabaseUrlSettings()
    except ValidationError as error:
        raise SettingsLoadError(
            f"Database URL configuration validation failed. Update .env or environment variables. Details: {error}"
        ) from error

    database_url = str(database_settings.database_url).strip()
    if not database_url:
        raise SettingsLoadError("Database URL configuration validation failed. DATABASE_URL must not be blank.")
    return database_url
