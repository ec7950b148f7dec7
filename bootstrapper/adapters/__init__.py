"""Adapter layer package for control-plane integration boundaries."""

from .control_plane_errors import (
	ControlPlaneConnectionError,
	ControlPlaneError,
	ControlPlanePermissionError,
	ControlPlaneQuotaExceededError,
	ControlPlaneTerminalError,
	ControlPlaneTimeoutError,
	ControlPlaneTransientError,
	ControlPlaneValidationError,
)
from .in_memory import InMemoryControlPlaneAdapter
from .interfaces import ApplyReceipt, ControlPlanePort
from .kubernetes_api import KubernetesControlPlaneAdapter
from .readiness import ReadinessVerdict, adapter_evaluate_readiness

__all__ = [
	"ApplyReceipt",
	"ControlPlaneConnectionError",
	"ControlPlaneError",
	"ControlPlanePermissionError",
	"ControlPlanePort",
	"ControlPlaneQuotaExceededError",
	"ControlPlaneTerminalError",
	"ControlPlaneTimeoutError",
	"ControlPlaneTransientError",
	"ControlPlaneValidationError",
	"InMemoryControlPlaneAdapter",
	"KubernetesControlPlaneAdapter",
	"ReadinessVerdict",
	"adapter_evaluate_readiness",
]
