"""Resource plan builder translating a desired state into an ordered DAG of specs."""

from __future__ import annotations

import re
from typing import Final

from bootstrapper.domain import (
    DesiredState,
    ExtraResourceRequest,
    ResourceKind,
    ResourcePlan,
    ResourceSpec,
    domain_build_resource_id,
)

from . import manifests
from .errors import InvalidPlanError
from .graph import planning_topological_order

_DNS_LABEL_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-z0-9]([-a-z0-9]{0,61}[a-z0-9])?$")


class ResourcePlanBuilder:
    """Build deterministic resource plans for the messaging application topology.

    The generated plan is: namespace, optional database (credentials, service,
    statefulset), optional object store (credentials, volume claim, deployment,
    service), application config secret, application deployment and service,
    optional ingress, then caller-supplied extra resources.
    """

    def plan_build(self, desired_state: DesiredState) -> ResourcePlan:
        """Build the ordered resource plan for one desired state.

        Args:
            desired_state: Validated target deployment description.

        Returns:
            ResourcePlan: Specs in deterministic topological order.

        Raises:
            InvalidPlanError: Raised when toggles are unresolvable, identifiers
                collide, dependencies are unknown or form a cycle.
        """

        problems = self._plan_validate_desired_state(desired_state)
        if problems:
            raise InvalidPlanError(problems)

        specs = self._plan_generate_specs(desired_state)
        specs.extend(self._plan_generate_extra_specs(desired_state, problems))
        if problems:
            raise InvalidPlanError(problems)

        specs_by_id: dict[str, ResourceSpec] = {}
        for spec in specs:
            if spec.resource_id in specs_by_id:
                problems.append(f"duplicate resource identifier {spec.resource_id}")
                continue
            specs_by_id[spec.resource_id] = spec
        if problems:
            raise InvalidPlanError(problems)

        ordered_ids = planning_topological_order(
            {resource_id: spec.depends_on for resource_id, spec in specs_by_id.items()}
        )
        return ResourcePlan(
            instance_name=desired_state.instance_name,
            specs=tuple(specs_by_id[resource_id] for resource_id in ordered_ids),
        )

    def _plan_validate_desired_state(self, desired_state: DesiredState) -> list[str]:
        """Return every problem that prevents resolving the desired state."""

        problems: list[str] = []
        for field_name, value in (
            ("instance_name", desired_state.instance_name),
            ("namespace", desired_state.namespace),
        ):
            if not _DNS_LABEL_PATTERN.match(value or ""):
                problems.append(f"{field_name} must be a lowercase DNS label, got {value!r}")

        application = desired_state.application
        if not application.image.strip() or not application.version.strip():
            problems.append("application image and version must not be blank")
        if application.replicas < 0:
            problems.append("application replicas must be >= 0")

        database = desired_state.database
        if database.enabled:
            if not database.password:
                problems.append("database is enabled but no password was provided")
            if not database.username.strip() or not database.database_name.strip():
                problems.append("database username and database_name must not be blank")
        elif not (database.external_dsn or "").strip():
            problems.append("database is disabled and no external_dsn was provided")

        object_storage = desired_state.object_storage
        if object_storage.enabled:
            if not object_storage.access_key or not object_storage.secret_key:
                problems.append("object storage is enabled but access_key/secret_key are missing")
        elif not (object_storage.external_endpoint or "").strip():
            problems.append("object storage is disabled and no external_endpoint was provided")
        if not object_storage.bucket.strip():
            problems.append("object storage bucket must not be blank")

        if desired_state.ingress.enabled and not (desired_state.ingress.hostname or "").strip():
            problems.append("ingress is enabled but no hostname was provided")
        return problems

    def _plan_generate_specs(self, desired_state: DesiredState) -> list[ResourceSpec]:
        """Generate specs for the built-in application topology."""

        instance = desired_state.instance_name
        namespace = desired_state.namespace
        namespace_spec = ResourceSpec(
            kind=ResourceKind.NAMESPACE,
            name=namespace,
            namespace=None,
            payload=manifests.manifest_namespace(namespace, instance),
        )
        namespace_id = namespace_spec.resource_id
        specs = [namespace_spec]
        application_dependencies: list[str] = []

        database = desired_state.database
        if database.enabled:
            database_specs = self._plan_database_specs(desired_state, namespace_id)
            specs.extend(database_specs)
            application_dependencies.extend(
                spec.resource_id for spec in database_specs if spec.kind != ResourceKind.SECRET
            )
            database_host = f"{instance}-db.{namespace}.svc"
            datasource = (
                f"postgres://{database.username}:{database.password}@{database_host}:{manifests.DATABASE_PORT}/"
                f"{database.database_name}?sslmode=disable&connect_timeout=10"
            )
        else:
            datasource = str(database.external_dsn)

        object_storage = desired_state.object_storage
        if object_storage.enabled:
            storage_specs = self._plan_object_storage_specs(desired_state, namespace_id)
            specs.extend(storage_specs)
            application_dependencies.extend(
                spec.resource_id
                for spec in storage_specs
                if spec.kind in (ResourceKind.DEPLOYMENT, ResourceKind.SERVICE)
            )
            storage_endpoint = f"{instance}-objectstore.{namespace}.svc:{manifests.OBJECT_STORAGE_PORT}"
        else:
            storage_endpoint = str(object_storage.external_endpoint)

        config_values = {
            "MM_SQLSETTINGS_DRIVERNAME": "postgres",
            "MM_SQLSETTINGS_DATASOURCE": datasource,
            "MM_FILESETTINGS_DRIVERNAME": "amazons3",
            "MM_FILESETTINGS_AMAZONS3ENDPOINT": storage_endpoint,
            "MM_FILESETTINGS_AMAZONS3BUCKET": object_storage.bucket,
            "MM_FILESETTINGS_AMAZONS3SSL": "false" if object_storage.enabled else "true",
            "MM_FILESETTINGS_AMAZONS3ACCESSKEYID": object_storage.access_key,
            "MM_FILESETTINGS_AMAZONS3SECRETACCESSKEY": object_storage.secret_key,
        }
        if desired_state.ingress.enabled:
            scheme = "https" if desired_state.ingress.tls_secret_name else "http"
            config_values["MM_SERVICESETTINGS_SITEURL"] = f"{scheme}://{desired_state.ingress.hostname}"
        config_name = f"{instance}-app-config"
        config_spec = ResourceSpec(
            kind=ResourceKind.SECRET,
            name=config_name,
            namespace=namespace,
            payload=manifests.manifest_secret(config_name, namespace, instance, "app", config_values),
            depends_on=(namespace_id,),
        )
        specs.append(config_spec)

        application = desired_state.application
        sizing = application.sizing
        resources: dict[str, dict[str, str]] = {
            "requests": {"cpu": sizing.cpu_request, "memory": sizing.memory_request},
        }
        limits = {
            key: value for key, value in (("cpu", sizing.cpu_limit), ("memory", sizing.memory_limit)) if value
        }
        if limits:
            resources["limits"] = limits
        app_name = f"{instance}-app"
        app_deployment = ResourceSpec(
            kind=ResourceKind.DEPLOYMENT,
            name=app_name,
            namespace=namespace,
            payload=manifests.manifest_workload(
                kind="Deployment",
                name=app_name,
                namespace=namespace,
                instance_name=instance,
                component="app",
                replicas=application.replicas,
                containers=[
                    manifests.manifest_container(
                        name="app",
                        image=f"{application.image}:{application.version}",
                        port=application.port,
                        env_from_secret=config_name,
                        resources=resources,
                    )
                ],
            ),
            depends_on=tuple(sorted({config_spec.resource_id, *application_dependencies})),
        )
        app_service = ResourceSpec(
            kind=ResourceKind.SERVICE,
            name=app_name,
            namespace=namespace,
            payload=manifests.manifest_service(app_name, namespace, instance, "app", application.port),
            depends_on=(namespace_id,),
        )
        specs.extend([app_deployment, app_service])

        ingress = desired_state.ingress
        if ingress.enabled:
            ingress_name = f"{instance}-ingress"
            specs.append(
                ResourceSpec(
                    kind=ResourceKind.INGRESS,
                    name=ingress_name,
                    namespace=namespace,
                    payload=manifests.manifest_ingress(
                        name=ingress_name,
                        namespace=namespace,
                        instance_name=instance,
                        hostname=str(ingress.hostname),
                        ingress_class=ingress.ingress_class,
                        service_name=app_name,
                        service_port=application.port,
                        tls_secret_name=ingress.tls_secret_name,
                    ),
                    depends_on=(app_service.resource_id, app_deployment.resource_id),
                )
            )
        return specs

    def _plan_database_specs(self, desired_state: DesiredState, namespace_id: str) -> list[ResourceSpec]:
        """Generate credentials, service and statefulset for the database."""

        instance = desired_state.instance_name
        namespace = desired_state.namespace
        database = desired_state.database
        name = f"{instance}-db"
        credentials_name = f"{name}-credentials"
        credentials = ResourceSpec(
            kind=ResourceKind.SECRET,
            name=credentials_name,
            namespace=namespace,
            payload=manifests.manifest_secret(
                credentials_name,
                namespace,
                instance,
                "database",
                {
                    "POSTGRES_USER": database.username,
                    "POSTGRES_PASSWORD": database.password,
                    "POSTGRES_DB": database.database_name,
                },
            ),
            depends_on=(namespace_id,),
        )
        service = ResourceSpec(
            kind=ResourceKind.SERVICE,
            name=name,
            namespace=namespace,
            payload=manifests.manifest_service(name, namespace, instance, "database", manifests.DATABASE_PORT),
            depends_on=(namespace_id,),
        )
        statefulset = ResourceSpec(
            kind=ResourceKind.STATEFUL_SET,
            name=name,
            namespace=namespace,
            payload=manifests.manifest_workload(
                kind="StatefulSet",
                name=name,
                namespace=namespace,
                instance_name=instance,
                component="database",
                replicas=1,
                containers=[
                    manifests.manifest_container(
                        name="postgres",
                        image=f"{database.image}:{database.version}",
                        port=manifests.DATABASE_PORT,
                        env_from_secret=credentials_name,
                        volume_mounts=[{"name": "data", "mountPath": "/var/lib/postgresql/data"}],
                    )
                ],
                service_name=name,
                volume_claim_templates=[
                    {
                        "metadata": {"name": "data"},
                        "spec": {
                            "accessModes": ["ReadWriteOnce"],
                            "resources": {"requests": {"storage": database.storage_size}},
                        },
                    }
                ],
            ),
            depends_on=(credentials.resource_id, service.resource_id),
        )
        return [credentials, service, statefulset]

    def _plan_object_storage_specs(self, desired_state: DesiredState, namespace_id: str) -> list[ResourceSpec]:
        """Generate credentials, volume claim, deployment and service for the object store."""

        instance = desired_state.instance_name
        namespace = desired_state.namespace
        object_storage = desired_state.object_storage
        name = f"{instance}-objectstore"
        credentials_name = f"{name}-credentials"
        claim_name = f"{name}-data"
        credentials = ResourceSpec(
            kind=ResourceKind.SECRET,
            name=credentials_name,
            namespace=namespace,
            payload=manifests.manifest_secret(
                credentials_name,
                namespace,
                instance,
                "objectstore",
                {
                    "MINIO_ROOT_USER": object_storage.access_key,
                    "MINIO_ROOT_PASSWORD": object_storage.secret_key,
                },
            ),
            depends_on=(namespace_id,),
        )
        claim = ResourceSpec(
            kind=ResourceKind.PERSISTENT_VOLUME_CLAIM,
            name=claim_name,
            namespace=namespace,
            payload=manifests.manifest_volume_claim(
                claim_name, namespace, instance, "objectstore", object_storage.storage_size
            ),
            depends_on=(namespace_id,),
        )
        deployment = ResourceSpec(
            kind=ResourceKind.DEPLOYMENT,
            name=name,
            namespace=namespace,
            payload=manifests.manifest_workload(
                kind="Deployment",
                name=name,
                namespace=namespace,
                instance_name=instance,
                component="objectstore",
                replicas=1,
                containers=[
                    manifests.manifest_container(
                        name="minio",
                        image=f"{object_storage.image}:{object_storage.version}",
                        port=manifests.OBJECT_STORAGE_PORT,
                        env_from_secret=credentials_name,
                        args=["server", "/data"],
                        volume_mounts=[{"name": "data", "mountPath": "/data"}],
                    )
                ],
                volumes=[{"name": "data", "persistentVolumeClaim": {"claimName": claim_name}}],
            ),
            depends_on=(claim.resource_id, credentials.resource_id),
        )
        service = ResourceSpec(
            kind=ResourceKind.SERVICE,
            name=name,
            namespace=namespace,
            payload=manifests.manifest_service(
                name, namespace, instance, "objectstore", manifests.OBJECT_STORAGE_PORT
            ),
            depends_on=(namespace_id,),
        )
        return [credentials, claim, deployment, service]

    def _plan_generate_extra_specs(self, desired_state: DesiredState, problems: list[str]) -> list[ResourceSpec]:
        """Turn caller-supplied extra resources into specs, recording problems."""

        namespace_id = domain_build_resource_id(ResourceKind.NAMESPACE, None, desired_state.namespace)
        specs: list[ResourceSpec] = []
        for request in desired_state.extra_resources:
            spec = self._plan_build_extra_spec(desired_state, request, namespace_id, problems)
            if spec is not None:
                specs.append(spec)
        return specs

    def _plan_build_extra_spec(
        self,
        desired_state: DesiredState,
        request: ExtraResourceRequest,
        namespace_id: str,
        problems: list[str],
    ) -> ResourceSpec | None:
        try:
            kind = ResourceKind(request.kind)
        except ValueError:
            problems.append(f"extra resource {request.name!r} has unsupported kind {request.kind!r}")
            return None
        if not _DNS_LABEL_PATTERN.match(request.name or ""):
            problems.append(f"extra resource name must be a lowercase DNS label, got {request.name!r}")
            return None

        namespace = None if kind == ResourceKind.NAMESPACE else desired_state.namespace
        depends_on = set(request.depends_on)
        if kind != ResourceKind.NAMESPACE:
            depends_on.add(namespace_id)
        return ResourceSpec(
            kind=kind,
            name=request.name,
            namespace=namespace,
            payload=manifests.manifest_complete_extra(
                kind.value, request.name, namespace, desired_state.instance_name, request.payload
            ),
            depends_on=tuple(sorted(depends_on)),
        )
