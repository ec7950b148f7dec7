"""Typed domain models shared across runtime layers.

This module provides simple data contracts for cross-layer communication that
do not belong to a single bootstrap concept.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class HealthStatus:
    """Health response contract used by health-check surfaces.

    Attributes:
        status: Overall status text for service health.
        detail: Additional message suitable for operational diagnostics.
    """

    status: str
    detail: str
