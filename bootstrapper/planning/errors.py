"""Typed exceptions for resource plan construction failures."""

from __future__ import annotations


class InvalidPlanError(ValueError):
    """Desired state cannot be turned into a valid resource plan.

    Raised before any control-plane mutation; never retried.

    Attributes:
        problems: Every validation problem found, in detection order.
    """

    def __init__(self, problems: list[str]):
        if not problems:
            raise ValueError("problems must not be empty")
        super().__init__("invalid resource plan: " + "; ".join(problems))
        self.problems = tuple(problems)
