"""Configuration package for runtime settings and desired-state documents."""

from .desired_state import (
	DesiredStateDocument,
	DesiredStateLoadError,
	config_dump_desired_state,
	config_load_desired_state,
	config_parse_desired_state,
)
from .settings import (
	BootstrapSettings,
	DatabaseUrlSettings,
	SettingsLoadError,
	config_load_database_url,
	config_load_settings,
)

__all__ = [
	"BootstrapSettings",
	"DatabaseUrlSettings",
	"DesiredStateDocument",
	"DesiredStateLoadError",
	"SettingsLoadError",
	"config_dump_desired_state",
	"config_load_database_url",
	"config_load_desired_state",
	"config_load_settings",
	"config_parse_desired_state",
]
