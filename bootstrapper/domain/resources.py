"""Resource specification contracts consumed by the convergence engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final


class ResourceKind(str, Enum):
    """Control-plane object kinds the bootstrapper knows how to manage."""

    NAMESPACE = "Namespace"
    SECRET = "Secret"
    CONFIG_MAP = "ConfigMap"
    SERVICE = "Service"
    PERSISTENT_VOLUME_CLAIM = "PersistentVolumeClaim"
    DEPLOYMENT = "Deployment"
    STATEFUL_SET = "StatefulSet"
    INGRESS = "Ingress"


CLUSTER_SCOPED_KINDS: Final[frozenset[ResourceKind]] = frozenset({ResourceKind.NAMESPACE})

CLUSTER_SCOPE_MARKER: Final[str] = "-"


def domain_build_resource_id(kind: ResourceKind, namespace: str | None, name: str) -> str:
    """Build the stable identifier of one resource.

    Args:
        kind: Resource kind.
        namespace: Owning namespace, ignored for cluster-scoped kinds.
        name: Resource name.

    Returns:
        str: Identifier in `{kind}/{namespace}/{name}` form.

    Raises:
        ValueError: Raised when name is blank or a namespaced kind has no namespace.
    """

    normalized_name = name.strip()
    if not normalized_name:
        raise ValueError("name must not be blank")
    if kind in CLUSTER_SCOPED_KINDS:
        return f"{kind.value}/{CLUSTER_SCOPE_MARKER}/{normalized_name}"
    normalized_namespace = (namespace or "").strip()
    if not normalized_namespace:
        raise ValueError(f"namespace is required for kind={kind.value}")
    return f"{kind.value}/{normalized_namespace}/{normalized_name}"


def domain_parse_resource_id(resource_id: str) -> tuple[ResourceKind, str | None, str]:
    """Split an identifier into kind, namespace and name.

    Args:
        resource_id: Identifier produced by `domain_build_resource_id`.

    Returns:
        tuple[ResourceKind, str | None, str]: Kind, namespace (None when cluster-scoped) and name.

    Raises:
        ValueError: Raised when identifier shape or kind is invalid.
    """

    parts = resource_id.split("/")
    if len(parts) != 3 or not all(part.strip() for part in parts):
        raise ValueError(f"invalid resource identifier: {resource_id!r}")
    kind_value, namespace, name = parts
    try:
        kind = ResourceKind(kind_value)
    except ValueError as error:
        raise ValueError(f"unsupported resource kind: {kind_value!r}") from error
    if namespace == CLUSTER_SCOPE_MARKER:
        return kind, None, name
    return kind, namespace, name


@dataclass(frozen=True)
class ResourceSpec:
    """One unit of work against the control plane.

    The payload is the full manifest body for `kind`; the engine never inspects
    it, only adapters do.

    Attributes:
        kind: Resource kind discriminator.
        name: Resource name.
        namespace: Owning namespace, None for cluster-scoped kinds.
        payload: Manifest body.
        depends_on: Identifiers that must be Ready before this resource is applied.
    """

    kind: ResourceKind
    name: str
    namespace: str | None
    payload: dict[str, Any] = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()

    @property
    def resource_id(self) -> str:
        """Return the stable identifier for this spec."""

        return domain_build_resource_id(self.kind, self.namespace, self.name)


@dataclass(frozen=True)
class ResourcePlan:
    """Ordered, validated set of resource specs for one desired state.

    Attributes:
        instance_name: Instance the plan was built for.
        specs: Specs in a deterministic topological order.
    """

    instance_name: str
    specs: tuple[ResourceSpec, ...]

    def plan_resource_ids(self) -> tuple[str, ...]:
        """Return identifiers in plan order."""

        return tuple(spec.resource_id for spec in self.specs)

    def plan_get(self, resource_id: str) -> ResourceSpec:
        """Return one spec by identifier.

        Raises:
            KeyError: Raised when identifier is not part of the plan.
        """

        for spec in self.specs:
            if spec.resource_id == resource_id:
                return spec
        raise KeyError(resource_id)

    def plan_dependencies_of(self, resource_id: str) -> tuple[str, ...]:
        """Return declared dependencies of one resource."""

        return self.plan_get(resource_id).depends_on

    def plan_dependents_of(self, resource_id: str) -> tuple[str, ...]:
        """Return resources that declare a dependency on `resource_id`."""

        return tuple(spec.resource_id for spec in self.specs if resource_id in spec.depends_on)
