"""Regression tests for centralized control-plane failure classification."""

from __future__ import annotations

import pytest

from bootstrapper.adapters.control_plane_error_codes import (
    CONTROL_PLANE_PERMISSION_REASONS,
    CONTROL_PLANE_TRANSIENT_REASONS,
    CONTROL_PLANE_VALIDATION_REASONS,
    control_plane_classify_failure,
    control_plane_parse_retry_after,
)


def test_adapters_control_plane_reason_sets_are_disjoint() -> None:
    """Ensure no status reason is classified two ways.

    Returns:
        None: Assertions validate classification-set separation.

    Raises:
        AssertionError: Raised when classification sets overlap.
    """

    assert CONTROL_PLANE_TRANSIENT_REASONS.isdisjoint(CONTROL_PLANE_PERMISSION_REASONS)
    assert CONTROL_PLANE_TRANSIENT_REASONS.isdisjoint(CONTROL_PLANE_VALIDATION_REASONS)
    assert CONTROL_PLANE_PERMISSION_REASONS.isdisjoint(CONTROL_PLANE_VALIDATION_REASONS)


@pytest.mark.parametrize(
    ("status_code", "reason", "expected"),
    [
        (409, "Conflict", "transient"),
        (429, "TooManyRequests", "transient"),
        (503, None, "transient"),
        (504, None, "transient"),
        (500, "InternalError", "transient"),
        (403, "Forbidden", "permission"),
        (401, None, "permission"),
        (422, "Invalid", "validation"),
        (400, None, "validation"),
        (404, "NotFound", "validation"),
    ],
)
def test_adapters_control_plane_classify_failure(status_code: int, reason: str | None, expected: str) -> None:
    """Map status code and reason pairs to retry classes."""

    assert control_plane_classify_failure(status_code=status_code, reason=reason, message="") == expected


def test_adapters_control_plane_reason_wins_over_status_code() -> None:
    """Trust a stable upstream reason over the raw HTTP status."""

    assert control_plane_classify_failure(status_code=500, reason="Invalid", message="") == "validation"


def test_adapters_control_plane_quota_message_is_terminal() -> None:
    """Treat quota rejections as terminal even though the API answers 403."""

    classification = control_plane_classify_failure(
        status_code=403,
        reason="Forbidden",
        message='pods "chat-app" is forbidden: exceeded quota: compute-resources',
    )

    assert classification == "quota"


def test_adapters_control_plane_parse_retry_after() -> None:
    assert control_plane_parse_retry_after("5") == 5.0
    assert control_plane_parse_retry_after(" -3 ") == 0.0
    assert control_plane_parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None
    assert control_plane_parse_retry_after(None) is None
