"""Tests for the simulated in-memory control plane."""

from __future__ import annotations

import pytest

from bootstrapper.adapters import ControlPlaneTransientError, InMemoryControlPlaneAdapter
from bootstrapper.domain import ResourceKind, ResourceSpec

_SPEC = ResourceSpec(kind=ResourceKind.CONFIG_MAP, name="chat-app-config", namespace="team", payload={"data": {}})


def test_in_memory_reports_ready_after_configured_polls() -> None:
    """Report a rollout in progress until the configured poll count is reached.

    Returns:
        None: Assertions validate simulated readiness.

    Raises:
        AssertionError: Raised when readiness timing diverges.
    """

    adapter = InMemoryControlPlaneAdapter(ready_after_polls=2)

    adapter.adapter_apply(_SPEC)
    first = adapter.adapter_get_status(_SPEC.resource_id)
    second = adapter.adapter_get_status(_SPEC.resource_id)

    assert first.ready is False
    assert first.last_error == "simulated rollout in progress"
    assert second.ready is True
    assert adapter.adapter_object_ids() == (_SPEC.resource_id,)


def test_in_memory_missing_object_does_not_exist() -> None:
    signal = InMemoryControlPlaneAdapter().adapter_get_status("Secret/team/missing")

    assert signal.exists is False
    assert signal.ready is False


def test_in_memory_raises_scripted_failures_in_order() -> None:
    """Raise each scripted apply failure once, then apply normally."""

    adapter = InMemoryControlPlaneAdapter(
        apply_failures={_SPEC.resource_id: [ControlPlaneTransientError("conflict", reason="Conflict")]},
    )

    with pytest.raises(ControlPlaneTransientError, match="conflict"):
        adapter.adapter_apply(_SPEC)
    receipt = adapter.adapter_apply(_SPEC)

    assert receipt.resource_id == _SPEC.resource_id
    assert adapter.apply_calls == [_SPEC.resource_id, _SPEC.resource_id]


def test_in_memory_delete_is_idempotent() -> None:
    adapter = InMemoryControlPlaneAdapter()
    adapter.adapter_apply(_SPEC)

    adapter.adapter_delete(_SPEC.resource_id)
    adapter.adapter_delete(_SPEC.resource_id)

    assert adapter.adapter_object_ids() == ()
    assert adapter.delete_calls == [_SPEC.resource_id, _SPEC.resource_id]


def test_in_memory_seed_controls_readiness() -> None:
    adapter = InMemoryControlPlaneAdapter(ready_after_polls=3)
    adapter.adapter_seed("Namespace/-/team")
    adapter.adapter_seed("Deployment/team/chat-app", ready=False)

    assert adapter.adapter_get_status("Namespace/-/team").ready is True
    assert adapter.adapter_get_status("Deployment/team/chat-app").ready is False


def test_in_memory_rejects_negative_poll_count() -> None:
    with pytest.raises(ValueError, match="ready_after_polls"):
        InMemoryControlPlaneAdapter(ready_after_polls=-1)
