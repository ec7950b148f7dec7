"""Regression tests for desired-state to resource-plan translation."""

from __future__ import annotations

import pytest

from bootstrapper.domain import (
    DatabaseToggle,
    DesiredState,
    ExtraResourceRequest,
    IngressToggle,
    ObjectStorageToggle,
    ResourceKind,
)
from bootstrapper.planning import InvalidPlanError, ResourcePlanBuilder


def _build_desired_state(**overrides) -> DesiredState:
    """Build a resolvable desired state with every toggle enabled.

    Returns:
        DesiredState: Desired state for instance `chat` in namespace `team`.

    Raises:
        TypeError: Raised when override names are not DesiredState fields.
    """

    values = {
        "instance_name": "chat",
        "namespace": "team",
        "database": DatabaseToggle(password="db-secret"),
        "object_storage": ObjectStorageToggle(access_key="access", secret_key="secret"),
    }
    values.update(overrides)
    return DesiredState(**values)


def test_plan_build_generates_full_topology_in_dependency_order() -> None:
    """Emit namespace, database, object store and application specs with dependencies first.

    Returns:
        None: Assertions validate plan content and ordering.

    Raises:
        AssertionError: Raised when plan shape or ordering is wrong.
    """

    plan = ResourcePlanBuilder().plan_build(_build_desired_state())

    resource_ids = plan.plan_resource_ids()
    assert resource_ids[0] == "Namespace/-/team"
    assert set(resource_ids) == {
        "Namespace/-/team",
        "Secret/team/chat-db-credentials",
        "Service/team/chat-db",
        "StatefulSet/team/chat-db",
        "Secret/team/chat-objectstore-credentials",
        "PersistentVolumeClaim/team/chat-objectstore-data",
        "Deployment/team/chat-objectstore",
        "Service/team/chat-objectstore",
        "Secret/team/chat-app-config",
        "Deployment/team/chat-app",
        "Service/team/chat-app",
    }
    positions = {resource_id: index for index, resource_id in enumerate(resource_ids)}
    for spec in plan.specs:
        for dependency in spec.depends_on:
            assert positions[dependency] < positions[spec.resource_id]

    app_dependencies = plan.plan_dependencies_of("Deployment/team/chat-app")
    assert "StatefulSet/team/chat-db" in app_dependencies
    assert "Deployment/team/chat-objectstore" in app_dependencies
    assert "Secret/team/chat-app-config" in app_dependencies


def test_plan_build_is_deterministic_for_equal_inputs() -> None:
    """Two builds of the same desired state produce identical plans."""

    builder = ResourcePlanBuilder()

    first_plan = builder.plan_build(_build_desired_state())
    second_plan = builder.plan_build(_build_desired_state())

    assert first_plan == second_plan


def test_plan_build_uses_external_services_when_toggles_are_disabled() -> None:
    """Skip in-cluster database and object store when external endpoints are given.

    Returns:
        None: Assertions validate reduced topology and wiring.

    Raises:
        AssertionError: Raised when disabled components are still planned.
    """

    desired_state = _build_desired_state(
        database=DatabaseToggle(enabled=False, external_dsn="postgres://u:p@db.example:5432/mm"),
        object_storage=ObjectStorageToggle(
            enabled=False,
            external_endpoint="s3.example.com",
            access_key="access",
            secret_key="secret",
        ),
    )

    plan = ResourcePlanBuilder().plan_build(desired_state)

    assert plan.plan_resource_ids() == (
        "Namespace/-/team",
        "Secret/team/chat-app-config",
        "Deployment/team/chat-app",
        "Service/team/chat-app",
    )
    config_payload = plan.plan_get("Secret/team/chat-app-config").payload
    assert config_payload["stringData"]["MM_SQLSETTINGS_DATASOURCE"] == "postgres://u:p@db.example:5432/mm"
    assert config_payload["stringData"]["MM_FILESETTINGS_AMAZONS3ENDPOINT"] == "s3.example.com"


def test_plan_build_adds_ingress_after_application() -> None:
    """Plan an ingress that depends on the application deployment and service."""

    desired_state = _build_desired_state(
        ingress=IngressToggle(enabled=True, hostname="chat.example.com", tls_secret_name="chat-tls"),
    )

    plan = ResourcePlanBuilder().plan_build(desired_state)

    ingress = plan.plan_get("Ingress/team/chat-ingress")
    assert set(ingress.depends_on) == {"Deployment/team/chat-app", "Service/team/chat-app"}
    assert plan.plan_resource_ids()[-1] == "Ingress/team/chat-ingress"
    assert ingress.payload["spec"]["tls"][0]["hosts"] == ["chat.example.com"]


def test_plan_build_rejects_unresolvable_toggles_with_every_problem() -> None:
    """Collect all toggle problems into one InvalidPlanError.

    Returns:
        None: Assertions validate the reported problems.

    Raises:
        AssertionError: Raised when problems are missing.
    """

    desired_state = _build_desired_state(
        database=DatabaseToggle(enabled=False),
        object_storage=ObjectStorageToggle(enabled=True),
        ingress=IngressToggle(enabled=True),
    )

    with pytest.raises(InvalidPlanError) as error_info:
        ResourcePlanBuilder().plan_build(desired_state)

    problems = error_info.value.problems
    assert any("external_dsn" in problem for problem in problems)
    assert any("access_key" in problem for problem in problems)
    assert any("hostname" in problem for problem in problems)


def test_plan_build_rejects_invalid_instance_name() -> None:
    """Reject names that are not lowercase DNS labels."""

    with pytest.raises(InvalidPlanError, match="instance_name"):
        ResourcePlanBuilder().plan_build(_build_desired_state(instance_name="Chat_App"))


def test_plan_build_appends_extra_resources_with_namespace_dependency() -> None:
    """Attach caller-supplied resources after their declared dependencies."""

    desired_state = _build_desired_state(
        extra_resources=(
            ExtraResourceRequest(
                kind="ConfigMap",
                name="branding",
                payload={"data": {"theme": "dark"}},
                depends_on=("Deployment/team/chat-app",),
            ),
        ),
    )

    plan = ResourcePlanBuilder().plan_build(desired_state)

    extra = plan.plan_get("ConfigMap/team/branding")
    assert extra.kind == ResourceKind.CONFIG_MAP
    assert set(extra.depends_on) == {"Deployment/team/chat-app", "Namespace/-/team"}
    assert extra.payload["metadata"]["namespace"] == "team"
    assert extra.payload["data"] == {"theme": "dark"}
    resource_ids = plan.plan_resource_ids()
    assert resource_ids.index("Deployment/team/chat-app") < resource_ids.index("ConfigMap/team/branding")


def test_plan_build_rejects_unknown_dependency_of_extra_resource() -> None:
    """Report a dangling dependency reference instead of building a partial plan."""

    desired_state = _build_desired_state(
        extra_resources=(
            ExtraResourceRequest(kind="ConfigMap", name="branding", depends_on=("Deployment/team/missing",)),
        ),
    )

    with pytest.raises(InvalidPlanError, match="unknown resource Deployment/team/missing"):
        ResourcePlanBuilder().plan_build(desired_state)


def test_plan_build_rejects_duplicate_identifiers() -> None:
    """Reject an extra resource that collides with a generated one."""

    desired_state = _build_desired_state(
        extra_resources=(ExtraResourceRequest(kind="Service", name="chat-app"),),
    )

    with pytest.raises(InvalidPlanError, match="duplicate resource identifier Service/team/chat-app"):
        ResourcePlanBuilder().plan_build(desired_state)


def test_plan_build_rejects_unsupported_extra_kind() -> None:
    """Reject kinds the control-plane adapters cannot manage."""

    desired_state = _build_desired_state(
        extra_resources=(ExtraResourceRequest(kind="CronJob", name="backup"),),
    )

    with pytest.raises(InvalidPlanError, match="unsupported kind 'CronJob'"):
        ResourcePlanBuilder().plan_build(desired_state)
