"""Manifest payload builders for the generated application topology.

Builders are pure functions of their inputs: no random values, no timestamps,
so a desired state always renders to byte-identical manifests.
"""

from __future__ import annotations

from typing import Any, Final

MANAGED_BY_LABEL_VALUE: Final[str] = "cloudnative-bootstrapper"
DATABASE_PORT: Final[int] = 5432
OBJECT_STORAGE_PORT: Final[int] = 9000


def manifest_labels(instance_name: str, component: str) -> dict[str, str]:
    """Return the standard label set stamped on every generated resource."""

    return {
        "app.kubernetes.io/name": component,
        "app.kubernetes.io/instance": instance_name,
        "app.kubernetes.io/component": component,
        "app.kubernetes.io/managed-by": MANAGED_BY_LABEL_VALUE,
    }


def manifest_selector_labels(instance_name: str, component: str) -> dict[str, str]:
    """Return the immutable selector subset of the standard labels."""

    return {
        "app.kubernetes.io/instance": instance_name,
        "app.kubernetes.io/component": component,
    }


def _manifest_metadata(name: str, namespace: str | None, labels: dict[str, str]) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": name, "labels": dict(labels)}
    if namespace is not None:
        metadata["namespace"] = namespace
    return metadata


def manifest_namespace(name: str, instance_name: str) -> dict[str, Any]:
    """Build a Namespace manifest."""

    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": _manifest_metadata(name, None, manifest_labels(instance_name, "namespace")),
    }


def manifest_secret(
    name: str,
    namespace: str,
    instance_name: str,
    component: str,
    string_data: dict[str, str],
) -> dict[str, Any]:
    """Build an Opaque Secret manifest from plain string values."""

    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": _manifest_metadata(name, namespace, manifest_labels(instance_name, component)),
        "type": "Opaque",
        "stringData": dict(sorted(string_data.items())),
    }


def manifest_service(
    name: str,
    namespace: str,
    instance_name: str,
    component: str,
    port: int,
    headless: bool = False,
) -> dict[str, Any]:
    """Build a ClusterIP Service manifest selecting one component."""

    spec: dict[str, Any] = {
        "selector": manifest_selector_labels(instance_name, component),
        "ports": [{"name": "tcp", "port": port, "targetPort": port}],
    }
    if headless:
        spec["clusterIP"] = "None"
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _manifest_metadata(name, namespace, manifest_labels(instance_name, component)),
        "spec": spec,
    }


def manifest_volume_claim(
    name: str,
    namespace: str,
    instance_name: str,
    component: str,
    storage_size: str,
) -> dict[str, Any]:
    """Build a ReadWriteOnce PersistentVolumeClaim manifest."""

    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": _manifest_metadata(name, namespace, manifest_labels(instance_name, component)),
        "spec": {
            "accessModes": ["ReadWriteOnce"],
            "resources": {"requests": {"storage": storage_size}},
        },
    }


def manifest_container(
    name: str,
    image: str,
    port: int,
    env_from_secret: str | None = None,
    args: list[str] | None = None,
    resources: dict[str, Any] | None = None,
    volume_mounts: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build one container definition."""

    container: dict[str, Any] = {
        "name": name,
        "image": image,
        "ports": [{"containerPort": port}],
    }
    if args:
        container["args"] = list(args)
    if env_from_secret is not None:
        container["envFrom"] = [{"secretRef": {"name": env_from_secret}}]
    if resources:
        container["resources"] = resources
    if volume_mounts:
        container["volumeMounts"] = volume_mounts
    return container


def manifest_workload(
    kind: str,
    name: str,
    namespace: str,
    instance_name: str,
    component: str,
    replicas: int,
    containers: list[dict[str, Any]],
    volumes: list[dict[str, Any]] | None = None,
    service_name: str | None = None,
    volume_claim_templates: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build a Deployment or StatefulSet manifest.

    Args:
        kind: `Deployment` or `StatefulSet`.
        name: Workload name.
        namespace: Owning namespace.
        instance_name: Application instance name used for labels.
        component: Component label value.
        replicas: Desired replica count.
        containers: Pod containers.
        volumes: Optional pod volumes.
        service_name: Governing service (StatefulSet only).
        volume_claim_templates: Per-replica volume claims (StatefulSet only).

    Returns:
        dict[str, Any]: Workload manifest.

    Raises:
        ValueError: Raised when kind is not a supported workload kind.
    """

    if kind not in ("Deployment", "StatefulSet"):
        raise ValueError(f"unsupported workload kind={kind}")

    labels = manifest_labels(instance_name, component)
    pod_spec: dict[str, Any] = {"containers": containers}
    if volumes:
        pod_spec["volumes"] = volumes
    spec: dict[str, Any] = {
        "replicas": replicas,
        "selector": {"matchLabels": manifest_selector_labels(instance_name, component)},
        "template": {"metadata": {"labels": dict(labels)}, "spec": pod_spec},
    }
    if kind == "StatefulSet":
        spec["serviceName"] = service_name or name
        if volume_claim_templates:
            spec["volumeClaimTemplates"] = volume_claim_templates
    return {
        "apiVersion": "apps/v1",
        "kind": kind,
        "metadata": _manifest_metadata(name, namespace, labels),
        "spec": spec,
    }


def manifest_ingress(
    name: str,
    namespace: str,
    instance_name: str,
    hostname: str,
    ingress_class: str,
    service_name: str,
    service_port: int,
    tls_secret_name: str | None = None,
) -> dict[str, Any]:
    """Build an Ingress manifest routing one host to one service."""

    spec: dict[str, Any] = {
        "ingressClassName": ingress_class,
        "rules": [
            {
                "host": hostname,
                "http": {
                    "paths": [
                        {
                            "path": "/",
                            "pathType": "Prefix",
                            "backend": {"service": {"name": service_name, "port": {"number": service_port}}},
                        }
                    ]
                },
            }
        ],
    }
    if tls_secret_name:
        spec["tls"] = [{"hosts": [hostname], "secretName": tls_secret_name}]
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": _manifest_metadata(name, namespace, manifest_labels(instance_name, "ingress")),
        "spec": spec,
    }


DEFAULT_API_VERSIONS: Final[dict[str, str]] = {
    "Namespace": "v1",
    "Secret": "v1",
    "ConfigMap": "v1",
    "Service": "v1",
    "PersistentVolumeClaim": "v1",
    "Deployment": "apps/v1",
    "StatefulSet": "apps/v1",
    "Ingress": "networking.k8s.io/v1",
}


def manifest_complete_extra(
    kind: str,
    name: str,
    namespace: str | None,
    instance_name: str,
    payload: dict[str, Any],
) -> dict[str, Any]:
    """Fill identity fields of a caller-supplied manifest.

    Caller values for `apiVersion` and labels are kept; `kind`, `metadata.name`
    and `metadata.namespace` always follow the requested identity.
    """

    completed = dict(payload)
    completed.setdefault("apiVersion", DEFAULT_API_VERSIONS[kind])
    completed["kind"] = kind
    metadata = dict(completed.get("metadata") or {})
    metadata["name"] = name
    if namespace is not None:
        metadata["namespace"] = namespace
    labels = dict(manifest_labels(instance_name, "extra"))
    labels.update(metadata.get("labels") or {})
    metadata["labels"] = labels
    completed["metadata"] = metadata
    return completed
