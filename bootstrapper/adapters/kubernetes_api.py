"""Kubernetes API server adapter implementation for declarative resource management."""

from __future__ import annotations

import json
import ssl
from typing import Any, Final

import httpx

from bootstrapper.domain import (
    HealthSignal,
    HealthStatus,
    ResourceKind,
    ResourceSpec,
    domain_parse_resource_id,
    domain_utc_now,
)

from .control_plane_error_codes import control_plane_classify_failure, control_plane_parse_retry_after
from .control_plane_errors import (
    ControlPlaneConnectionError,
    ControlPlaneError,
    ControlPlanePermissionError,
    ControlPlaneQuotaExceededError,
    ControlPlaneTimeoutError,
    ControlPlaneTransientError,
    ControlPlaneValidationError,
)
from .interfaces import ApplyReceipt, ControlPlanePort
from .readiness import adapter_evaluate_readiness

_KIND_API_PATHS: Final[dict[ResourceKind, tuple[str, str]]] = {
    ResourceKind.NAMESPACE: ("/api/v1", "namespaces"),
    ResourceKind.SECRET: ("/api/v1", "secrets"),
    ResourceKind.CONFIG_MAP: ("/api/v1", "configmaps"),
    ResourceKind.SERVICE: ("/api/v1", "services"),
    ResourceKind.PERSISTENT_VOLUME_CLAIM: ("/api/v1", "persistentvolumeclaims"),
    ResourceKind.DEPLOYMENT: ("/apis/apps/v1", "deployments"),
    ResourceKind.STATEFUL_SET: ("/apis/apps/v1", "statefulsets"),
    ResourceKind.INGRESS: ("/apis/networking.k8s.io/v1", "ingresses"),
}


class KubernetesControlPlaneAdapter(ControlPlanePort):
    """Adapter implementation for server-side apply, status reads and deletes."""

    _USER_AGENT: Final[str] = "cloudnative-bootstrapper/1.0 (Python/httpx)"
    _APPLY_CONTENT_TYPE: Final[str] = "application/apply-patch+yaml"

    def __init__(
        self,
        base_url: str,
        token: str = "",
        field_manager: str = "cloudnative-bootstrapper",
        ca_cert_path: str | None = None,
        verify_tls: bool = True,
        request_timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize Kubernetes control-plane adapter.

        Args:
            base_url: API server base URL.
            token: Optional bearer token.
            field_manager: Field manager name recorded for server-side apply.
            ca_cert_path: Optional CA bundle used to verify the API server.
            verify_tls: Whether TLS certificates are verified.
            request_timeout_seconds: HTTP request timeout in seconds.
            transport: Optional httpx transport override.

        Returns:
            None: Initializer does not return a value.

        Raises:
            ValueError: Raised when required config values are invalid.
        """

        normalized_base_url = base_url.strip()
        normalized_field_manager = field_manager.strip()
        if not normalized_base_url:
            raise ValueError("base_url must not be blank")
        if not normalized_field_manager:
            raise ValueError("field_manager must not be blank")
        if request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be > 0")

        headers = {"User-Agent": self._USER_AGENT, "Accept": "application/json"}
        normalized_token = token.strip()
        if normalized_token:
            headers["Authorization"] = f"Bearer {normalized_token}"

        verify: ssl.SSLContext | bool = verify_tls
        if verify_tls and ca_cert_path:
            verify = ssl.create_default_context(cafile=ca_cert_path)

        self._base_url = normalized_base_url.rstrip("/")
        self._field_manager = normalized_field_manager
        self._client = httpx.Client(
            base_url=self._base_url,
            headers=headers,
            timeout=request_timeout_seconds,
            verify=verify,
            transport=transport,
        )

    def adapter_source_name(self) -> str:
        """Return stable adapter source label.

        Returns:
            str: Source identifier including the API server URL.
        """

        return f"kubernetes:{self._base_url}"

    def adapter_apply(self, spec: ResourceSpec) -> ApplyReceipt:
        """Apply one manifest with server-side apply.

        Args:
            spec: Resource specification to apply.

        Returns:
            ApplyReceipt: Acceptance record with the new resource version.

        Raises:
            ControlPlaneTransientError: Raised for retryable failures.
            ControlPlaneTerminalError: Raised for non-retryable failures.
        """

        resource_id = spec.resource_id
        path = self._adapter_resource_path(spec.kind, spec.namespace, spec.name)
        response = self._adapter_request(
            "PATCH",
            path,
            params={"fieldManager": self._field_manager, "force": "true"},
            content=json.dumps(spec.payload, sort_keys=True).encode("utf-8"),
            headers={"Content-Type": self._APPLY_CONTENT_TYPE},
        )
        self._adapter_raise_for_failure(response, action=f"apply {resource_id}")
        body = self._adapter_json_body(response)
        resource_version = (body.get("metadata") or {}).get("resourceVersion")
        return ApplyReceipt(resource_id=resource_id, resource_version=resource_version)

    def adapter_get_status(self, resource_id: str) -> HealthSignal:
        """Read one object and evaluate its readiness.

        Args:
            resource_id: Resource identifier.

        Returns:
            HealthSignal: Readiness observation; absent objects report `exists=False`.

        Raises:
            ControlPlaneTransientError: Raised for retryable failures.
            ControlPlaneTerminalError: Raised for non-retryable failures.
        """

        kind, namespace, name = domain_parse_resource_id(resource_id)
        response = self._adapter_request("GET", self._adapter_resource_path(kind, namespace, name))
        if response.status_code == 404:
            return HealthSignal(
                resource_id=resource_id,
                ready=False,
                exists=False,
                observed_at_utc=domain_utc_now(),
                last_error="resource not found",
            )
        self._adapter_raise_for_failure(response, action=f"read {resource_id}")
        verdict = adapter_evaluate_readiness(kind, self._adapter_json_body(response))
        return HealthSignal(
            resource_id=resource_id,
            ready=verdict.ready,
            exists=True,
            terminal=verdict.terminal,
            last_error=verdict.message,
            observed_at_utc=domain_utc_now(),
        )

    def adapter_delete(self, resource_id: str) -> None:
        """Delete one object with foreground propagation.

        Args:
            resource_id: Resource identifier.

        Raises:
            ControlPlaneTransientError: Raised for retryable failures.
            ControlPlaneTerminalError: Raised for non-retryable failures.
        """

        kind, namespace, name = domain_parse_resource_id(resource_id)
        response = self._adapter_request(
            "DELETE",
            self._adapter_resource_path(kind, namespace, name),
            params={"propagationPolicy": "Foreground"},
        )
        if response.status_code == 404:
            return
        self._adapter_raise_for_failure(response, action=f"delete {resource_id}")

    def adapter_check_health(self) -> HealthStatus:
        """Verify API server reachability through the version endpoint.

        Returns:
            HealthStatus: Health payload with the reported server version.

        Raises:
            ConnectionError: Raised when the API server cannot be reached or is unhealthy.
        """

        try:
            response = self._adapter_request("GET", "/version")
            self._adapter_raise_for_failure(response, action="read server version")
        except ControlPlaneError as error:
            raise ConnectionError("control plane connectivity check failed") from error
        git_version = str(self._adapter_json_body(response).get("gitVersion") or "unknown")
        return HealthStatus(status="ok", detail=f"control plane reachable, version={git_version}")

    def adapter_close(self) -> None:
        """Release the underlying HTTP connection pool."""

        self._client.close()

    def _adapter_request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Execute one HTTP request with transport error mapping.

        Args:
            method: HTTP method.
            path: Request path relative to the API server URL.
            **kwargs: Extra keyword arguments forwarded to httpx.

        Returns:
            httpx.Response: Raw response, including non-success statuses.

        Raises:
            ControlPlaneTimeoutError: Raised when the transport times out.
            ControlPlaneConnectionError: Raised for other transport failures.
        """

        try:
            return self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as error:
            raise ControlPlaneTimeoutError(f"control plane request timed out: {method} {path}") from error
        except httpx.TransportError as error:
            raise ControlPlaneConnectionError(f"control plane request failed: {method} {path}") from error

    def _adapter_raise_for_failure(self, response: httpx.Response, action: str) -> None:
        """Raise a classified adapter error for non-success responses.

        Args:
            response: HTTP response to inspect.
            action: Human-readable action label for error messages.

        Raises:
            ControlPlaneTransientError: Raised for retryable statuses.
            ControlPlaneTerminalError: Raised for non-retryable statuses.
        """

        if response.status_code < 400:
            return

        body = self._adapter_json_body(response)
        reason = body.get("reason")
        upstream_message = str(body.get("message") or response.reason_phrase or "")
        message = f"{action} failed: HTTP {response.status_code} {reason or ''} {upstream_message}".strip()
        classification = control_plane_classify_failure(
            status_code=response.status_code,
            reason=reason,
            message=upstream_message,
        )
        if classification == "transient":
            raise ControlPlaneTransientError(
                message,
                reason=reason,
                status_code=response.status_code,
                retry_after_seconds=control_plane_parse_retry_after(response.headers.get("Retry-After")),
            )
        if classification == "quota":
            raise ControlPlaneQuotaExceededError(message, reason=reason, status_code=response.status_code)
        if classification == "permission":
            raise ControlPlanePermissionError(message, reason=reason, status_code=response.status_code)
        raise ControlPlaneValidationError(message, reason=reason, status_code=response.status_code)

    def _adapter_json_body(self, response: httpx.Response) -> dict[str, Any]:
        """Best-effort JSON object parse of a response body."""

        try:
            body = response.json()
        except ValueError:
            return {}
        if not isinstance(body, dict):
            return {}
        return body

    def _adapter_resource_path(self, kind: ResourceKind, namespace: str | None, name: str) -> str:
        """Build the REST path of one named object.

        Raises:
            ValueError: Raised when a namespaced kind has no namespace.
        """

        group_prefix, plural = _KIND_API_PATHS[kind]
        if kind == ResourceKind.NAMESPACE:
            return f"{group_prefix}/{plural}/{name}"
        if not namespace:
            raise ValueError(f"namespace is required for kind={kind.value}")
        return f"{group_prefix}/namespaces/{namespace}/{plural}/{name}"
