"""Desired-state document parsing for CLI files, API bodies and persisted runs.

Documents are validated with pydantic and converted into the immutable domain
`DesiredState`. Structural checks (types, required fields, bounds) live here;
cross-resource checks such as toggle resolvability belong to the plan builder.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bootstrapper.domain import (
    ApplicationSpec,
    DatabaseToggle,
    DesiredState,
    ExtraResourceRequest,
    IngressToggle,
    ObjectStorageToggle,
    ResourceSizing,
)


class DesiredStateLoadError(ValueError):
    """Raised when a desired-state document cannot be read or validated."""


class _DocumentModel(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class ResourceSizingDocument(_DocumentModel):
    cpu_request: str = Field(default="500m", min_length=1)
    memory_request: str = Field(default="1Gi", min_length=1)
    cpu_limit: str | None = "2"
    memory_limit: str | None = "4Gi"


class ApplicationDocument(_DocumentModel):
    image: str = Field(default="mattermost/mattermost-enterprise-edition", min_length=1)
    version: str = Field(default="10.5.0", min_length=1)
    replicas: int = Field(default=1, ge=0)
    port: int = Field(default=8065, ge=1, le=65535)
    sizing: ResourceSizingDocument = Field(default_factory=ResourceSizingDocument)


class DatabaseDocument(_DocumentModel):
    enabled: bool = True
    image: str = "postgres"
    version: str = "16"
    storage_size: str = "10Gi"
    username: str = "mmuser"
    password: str = ""
    database_name: str = "mattermost"
    external_dsn: str | None = None


class ObjectStorageDocument(_DocumentModel):
    enabled: bool = True
    image: str = "minio/minio"
    version: str = "RELEASE.2024-12-18T13-15-44Z"
    storage_size: str = "20Gi"
    bucket: str = "mattermost-files"
    access_key: str = ""
    secret_key: str = ""
    external_endpoint: str | None = None


class IngressDocument(_DocumentModel):
    enabled: bool = False
    hostname: str | None = None
    ingress_class: str = "nginx"
    tls_secret_name: str | None = None


class ExtraResourceDocument(_DocumentModel):
    kind: str = Field(min_length=1)
    name: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list)


class DesiredStateDocument(_DocumentModel):
    """Wire form of one desired state.

    Example:
        {"instance_name": "chat", "namespace": "chat",
         "database": {"password": "..."},
         "object_storage": {"access_key": "...", "secret_key": "..."}}
    """

    instance_name: str = Field(min_length=1)
    namespace: str = Field(min_length=1)
    application: ApplicationDocument = Field(default_factory=ApplicationDocument)
    database: DatabaseDocument = Field(default_factory=DatabaseDocument)
    object_storage: ObjectStorageDocument = Field(default_factory=ObjectStorageDocument)
    ingress: IngressDocument = Field(default_factory=IngressDocument)
    extra_resources: list[ExtraResourceDocument] = Field(default_factory=list)

    def to_domain(self) -> DesiredState:
        """Convert the validated document into the immutable domain value."""

        sizing = self.application.sizing
        return DesiredState(
            instance_name=self.instance_name,
            namespace=self.namespace,
            application=ApplicationSpec(
                image=self.application.image,
                version=self.application.version,
                replicas=self.application.replicas,
                port=self.application.port,
                sizing=ResourceSizing(
                    cpu_request=sizing.cpu_request,
                    memory_request=sizing.memory_request,
                    cpu_limit=sizing.cpu_limit,
                    memory_limit=sizing.memory_limit,
                ),
            ),
            database=DatabaseToggle(**self.database.model_dump()),
            object_storage=ObjectStorageToggle(**self.object_storage.model_dump()),
            ingress=IngressToggle(**self.ingress.model_dump()),
            extra_resources=tuple(
                ExtraResourceRequest(
                    kind=extra.kind,
                    name=extra.name,
                    payload=dict(extra.payload),
                    depends_on=tuple(extra.depends_on),
                )
                for extra in self.extra_resources
            ),
        )


def config_parse_desired_state(payload: Any) -> DesiredState:
    """Validate a JSON-compatible desired-state payload.

    Args:
        payload: Decoded JSON document.

    Returns:
        DesiredState: Immutable desired state.

    Raises:
        DesiredStateLoadError: Raised when the payload fails validation.
    """

    try:
        return DesiredStateDocument.model_validate(payload).to_domain()
    except ValidationError as error:
        raise DesiredStateLoadError(f"desired state validation failed: {error}") from error


def config_load_desired_state(path: str | Path) -> DesiredState:
    """Read and validate a desired-state JSON file.

    Args:
        path: File path.

    Returns:
        DesiredState: Immutable desired state.

    Raises:
        DesiredStateLoadError: Raised when the file is unreadable, not JSON, or invalid.
    """

    file_path = Path(path)
    try:
        raw_text = file_path.read_text(encoding="utf-8")
    except OSError as error:
        raise DesiredStateLoadError(f"cannot read desired state file {file_path}: {error}") from error
    try:
        payload = json.loads(raw_text)
    except json.JSONDecodeError as error:
        raise DesiredStateLoadError(f"desired state file {file_path} is not valid JSON: {error}") from error
    return config_parse_desired_state(payload)


def config_dump_desired_state(desired_state: DesiredState) -> dict[str, Any]:
    """Render a desired state as JSON-compatible data accepted by `config_parse_desired_state`."""

    application = desired_state.application
    return {
        "instance_name": desired_state.instance_name,
        "namespace": desired_state.namespace,
        "application": {
            "image": application.image,
            "version": application.version,
            "replicas": application.replicas,
            "port": application.port,
            "sizing": {
                "cpu_request": application.sizing.cpu_request,
                "memory_request": application.sizing.memory_request,
                "cpu_limit": application.sizing.cpu_limit,
                "memory_limit": application.sizing.memory_limit,
            },
        },
        "database": DatabaseDocument.model_validate(desired_state.database, from_attributes=True).model_dump(),
        "object_storage": ObjectStorageDocument.model_validate(
            desired_state.object_storage, from_attributes=True
        ).model_dump(),
        "ingress": IngressDocument.model_validate(desired_state.ingress, from_attributes=True).model_dump(),
        "extra_resources": [
            {
                "kind": extra.kind,
                "name": extra.name,
                "payload": dict(extra.payload),
                "depends_on": list(extra.depends_on),
            }
            for extra in desired_state.extra_resources
        ],
    }
