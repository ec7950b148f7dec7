"""Domain models used across application layer boundaries."""

from .desired_state import (
	ApplicationSpec,
	DatabaseToggle,
	DesiredState,
	ExtraResourceRequest,
	IngressToggle,
	ObjectStorageToggle,
	ResourceSizing,
)
from .models import HealthStatus
from .phases import (
	ALLOWED_PHASE_TRANSITIONS,
	IN_FLIGHT_PHASES,
	HealthSignal,
	PhaseTransition,
	ProgressEvent,
	ResourcePhase,
	RunOutcome,
	domain_phase_transition_is_allowed,
)
from .resources import (
	CLUSTER_SCOPED_KINDS,
	ResourceKind,
	ResourcePlan,
	ResourceSpec,
	domain_build_resource_id,
	domain_parse_resource_id,
)
from .timeline import RunTimeline, domain_build_stage_event, domain_utc_now

__all__ = [
	"ALLOWED_PHASE_TRANSITIONS",
	"ApplicationSpec",
	"CLUSTER_SCOPED_KINDS",
	"DatabaseToggle",
	"DesiredState",
	"ExtraResourceRequest",
	"HealthSignal",
	"HealthStatus",
	"IN_FLIGHT_PHASES",
	"IngressToggle",
	"ObjectStorageToggle",
	"PhaseTransition",
	"ProgressEvent",
	"ResourceKind",
	"ResourcePhase",
	"ResourcePlan",
	"ResourceSizing",
	"ResourceSpec",
	"RunOutcome",
	"RunTimeline",
	"domain_build_resource_id",
	"domain_build_stage_event",
	"domain_parse_resource_id",
	"domain_phase_transition_is_allowed",
	"domain_utc_now",
]
