"""Immutable desired-state contracts describing one target deployment.

A `DesiredState` is built by the caller (CLI file, API body) and handed to the
plan builder. Nothing in a bootstrap run mutates it; a new run needs a new
desired state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ResourceSizing:
    """Compute requests and limits applied to the core application containers.

    Attributes:
        cpu_request: CPU request quantity (for example `500m`).
        memory_request: Memory request quantity (for example `1Gi`).
        cpu_limit: Optional CPU limit quantity.
        memory_limit: Optional memory limit quantity.
    """

    cpu_request: str = "500m"
    memory_request: str = "1Gi"
    cpu_limit: str | None = "2"
    memory_limit: str | None = "4Gi"


@dataclass(frozen=True)
class ApplicationSpec:
    """Core application server image and scale settings.

    Attributes:
        image: Container image repository.
        version: Image tag deployed for this instance.
        replicas: Desired replica count.
        port: Container HTTP port.
        sizing: Container resource sizing.
    """

    image: str = "mattermost/mattermost-enterprise-edition"
    version: str = "10.5.0"
    replicas: int = 1
    port: int = 8065
    sizing: ResourceSizing = field(default_factory=ResourceSizing)


@dataclass(frozen=True)
class DatabaseToggle:
    """Dependent PostgreSQL service toggle.

    When `enabled` is False the application must be pointed at an existing
    database through `external_dsn`.

    Attributes:
        enabled: Whether the bootstrapper provisions the database in-cluster.
        image: Database container image repository.
        version: Database image tag.
        storage_size: Volume claim size for database data.
        username: Database login role.
        password: Database login password.
        database_name: Application database name.
        external_dsn: Connection string for an externally managed database.
    """

    enabled: bool = True
    image: str = "postgres"
    version: str = "16"
    storage_size: str = "10Gi"
    username: str = "mmuser"
    password: str = ""
    database_name: str = "mattermost"
    external_dsn: str | None = None


@dataclass(frozen=True)
class ObjectStorageToggle:
    """Dependent S3-compatible object store toggle.

    Attributes:
        enabled: Whether the bootstrapper provisions the object store in-cluster.
        image: Object store container image repository.
        version: Object store image tag.
        storage_size: Volume claim size for object data.
        bucket: Bucket used by the application for file storage.
        access_key: Object store access key.
        secret_key: Object store secret key.
        external_endpoint: Endpoint for an externally managed object store.
    """

    enabled: bool = True
    image: str = "minio/minio"
    version: str = "RELEASE.2024-12-18T13-15-44Z"
    storage_size: str = "20Gi"
    bucket: str = "mattermost-files"
    access_key: str = ""
    secret_key: str = ""
    external_endpoint: str | None = None


@dataclass(frozen=True)
class IngressToggle:
    """Ingress exposure toggle for the application service.

    Attributes:
        enabled: Whether an ingress is created.
        hostname: Public host name routed to the application.
        ingress_class: Ingress controller class name.
        tls_secret_name: Optional TLS secret referenced by the ingress.
    """

    enabled: bool = False
    hostname: str | None = None
    ingress_class: str = "nginx"
    tls_secret_name: str | None = None


@dataclass(frozen=True)
class ExtraResourceRequest:
    """Caller-supplied resource appended to the generated plan.

    Attributes:
        kind: Resource kind name (must be a supported kind).
        name: Resource name.
        payload: Manifest body for the resource.
        depends_on: Identifiers of plan resources this resource waits for.
    """

    kind: str
    name: str
    payload: dict[str, Any] = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()


@dataclass(frozen=True)
class DesiredState:
    """Declarative description of one target deployment.

    Attributes:
        instance_name: Stable application instance identifier.
        namespace: Namespace that receives every namespaced resource.
        application: Core application settings.
        database: Database toggle.
        object_storage: Object storage toggle.
        ingress: Ingress toggle.
        extra_resources: Additional resources appended to the generated plan.
    """

    instance_name: str
    namespace: str
    application: ApplicationSpec = field(default_factory=ApplicationSpec)
    database: DatabaseToggle = field(default_factory=DatabaseToggle)
    object_storage: ObjectStorageToggle = field(default_factory=ObjectStorageToggle)
    ingress: IngressToggle = field(default_factory=IngressToggle)
    extra_resources: tuple[ExtraResourceRequest, ...] = ()
