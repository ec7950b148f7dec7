"""Planning layer package for desired-state to resource-plan translation."""

from .errors import InvalidPlanError
from .graph import planning_topological_order
from .plan_builder import ResourcePlanBuilder

__all__ = [
	"InvalidPlanError",
	"ResourcePlanBuilder",
	"planning_topological_order",
]
