"""Tests for runtime settings loading and validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from bootstrapper.config import (
    BootstrapSettings,
    SettingsLoadError,
    config_load_database_url,
    config_load_settings,
)
from bootstrapper.config.settings import DEFAULT_DATABASE_URL


def test_config_load_settings_reads_environment(tmp_path, monkeypatch) -> None:
    """Map uppercase environment variables to typed settings fields.

    Args:
        tmp_path: Pytest temporary directory used as working directory.
        monkeypatch: Pytest environment patching fixture.

    Returns:
        None: Assertions validate loaded values.

    Raises:
        AssertionError: Raised when loaded settings diverge.
    """

    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("CONTROL_PLANE_URL", "  https://cluster.example:6443  ")
    monkeypatch.setenv("CONVERGENCE_MAX_IN_FLIGHT", "8")
    monkeypatch.setenv("CONVERGENCE_ROLLBACK_ENABLED", "true")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = config_load_settings()

    assert settings.control_plane_url == "https://cluster.example:6443"
    assert settings.convergence_max_in_flight == 8
    assert settings.convergence_rollback_enabled is True
    assert settings.log_level == "DEBUG"
    assert settings.database_url == DEFAULT_DATABASE_URL


def test_config_load_settings_reads_dotenv_file(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CONVERGENCE_RETRY_ATTEMPTS", raising=False)
    (tmp_path / ".env").write_text("CONVERGENCE_RETRY_ATTEMPTS=9\n", encoding="utf-8")

    assert config_load_settings().convergence_retry_attempts == 9


def test_config_load_settings_wraps_validation_errors(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LOG_LEVEL", "verbose")

    with pytest.raises(SettingsLoadError, match="Startup configuration validation failed"):
        config_load_settings()


@pytest.mark.parametrize(
    "overrides",
    [
        {"convergence_backoff_base_seconds": 10.0, "convergence_backoff_max_seconds": 5.0},
        {"convergence_jitter_min_multiplier": 1.5, "convergence_jitter_max_multiplier": 1.0},
        {"api_default_limit": 100, "api_max_limit": 10},
        {"convergence_max_in_flight": 0},
        {"control_plane_url": "   "},
    ],
)
def test_config_settings_reject_inconsistent_bounds(overrides) -> None:
    with pytest.raises(ValidationError):
        BootstrapSettings(**overrides)


def test_config_load_database_url_only_needs_database_setting(tmp_path, monkeypatch) -> None:
    """Load the run store URL even when unrelated settings are invalid."""

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", "sqlite:///runs.db")
    monkeypatch.setenv("LOG_LEVEL", "verbose")

    assert config_load_database_url() == "sqlite:///runs.db"


def test_config_load_database_url_rejects_blank_value(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", "  ")

    with pytest.raises(SettingsLoadError, match="must not be blank"):
        config_load_database_url()
