"""Kubernetes API client wrapper.

Wraps the official kubernetes Python client with kubeconfig/in-cluster
loading, namespace resolution, lazy CoreV1Api access, retry for transient
connection errors and consistent error translation.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from kube_relay.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)

if TYPE_CHECKING:
    from kubernetes.client import CoreV1Api

    from kube_relay.integrations.kubernetes.config import KubernetesConfig

logger = structlog.get_logger()

SERVICE_ACCOUNT_NAMESPACE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")
DEFAULT_NAMESPACE = "default"


class KubernetesClient:
    """Kubernetes API client for a single cluster context.

    Example:
        ```python
        from kube_relay.integrations.kubernetes import KubernetesClient, KubernetesConfig

        with KubernetesClient(KubernetesConfig.from_env()) as client:
            pods = client.core_v1.list_namespaced_pod(client.default_namespace)
        ```
    """

    def __init__(self, k8s_config: KubernetesConfig) -> None:
        """Initialize the client and load cluster credentials.

        Args:
            k8s_config: Connection configuration.

        Raises:
            KubernetesConnectionError: If neither a kubeconfig nor in-cluster
                credentials can be loaded.
        """
        self._config = k8s_config
        self._retries = k8s_config.retry_attempts
        self._current_context: str | None = None
        self._context_namespace: str | None = None
        self._core_v1: CoreV1Api | None = None

        self._load_config()

        logger.info(
            "Kubernetes client initialized",
            context=self._current_context,
            default_namespace=self.default_namespace,
        )

    def _load_config(self) -> None:
        """Load credentials from kubeconfig, falling back to in-cluster."""
        from kubernetes import config
        from kubernetes.config import ConfigException

        try:
            config.load_kube_config(
                config_file=self._config.kubeconfig,
                context=self._config.context,
            )
            self._current_context, self._context_namespace = self._read_active_context()
            logger.debug(
                "loaded_kubeconfig",
                context=self._current_context,
                kubeconfig=self._config.kubeconfig,
            )
        except ConfigException:
            try:
                config.load_incluster_config()
                self._current_context = "in-cluster"
                self._context_namespace = self._read_service_account_namespace()
                logger.debug("loaded_incluster_config")
            except ConfigException as e:
                raise KubernetesConnectionError(
                    message="Cannot load Kubernetes configuration. "
                    "Ensure kubeconfig exists or running inside a cluster.",
                    original_error=e,
                ) from e

        self._core_v1 = None

    def _read_active_context(self) -> tuple[str | None, str | None]:
        """Return the (name, namespace) of the kubeconfig context in use."""
        from kubernetes import config

        try:
            contexts, active = config.list_kube_config_contexts(
                config_file=self._config.kubeconfig,
            )
        except Exception:
            return self._config.context, None

        selected = active
        if self._config.context:
            selected = next(
                (ctx for ctx in contexts or [] if ctx.get("name") == self._config.context),
                active,
            )
        if not selected:
            return self._config.context, None
        return selected.get("name"), selected.get("context", {}).get("namespace")

    @staticmethod
    def _read_service_account_namespace() -> str | None:
        try:
            return SERVICE_ACCOUNT_NAMESPACE.read_text().strip() or None
        except OSError:
            return None

    @property
    def core_v1(self) -> CoreV1Api:
        """Get CoreV1Api instance (pods and their subresources)."""
        if self._core_v1 is None:
            from kubernetes.client import CoreV1Api

            self._core_v1 = CoreV1Api()
        return self._core_v1

    def get_current_context(self) -> str:
        """Get the active context name, or 'in-cluster' inside a pod."""
        return self._current_context or "unknown"

    @property
    def default_namespace(self) -> str:
        """Namespace from config, then kubeconfig context, then 'default'."""
        return self._config.namespace or self._context_namespace or DEFAULT_NAMESPACE

    @property
    def request_timeout(self) -> int:
        """Per-request API timeout in seconds."""
        return self._config.request_timeout

    @staticmethod
    def translate_api_exception(
        e: Exception,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> KubernetesError:
        """Translate a kubernetes client exception to a KubernetesError.

        Args:
            e: The original exception.
            resource_type: Type of resource being operated on.
            resource_name: Name of the resource.
            namespace: Namespace of the resource.

        Returns:
            An appropriate KubernetesError subclass.
        """
        from kubernetes.client import ApiException
        from urllib3.exceptions import HTTPError as Urllib3HTTPError

        if isinstance(e, KubernetesError):
            return e

        if isinstance(e, (Urllib3HTTPError, OSError)):
            return KubernetesConnectionError(
                message=f"Kubernetes API unreachable: {e}",
                original_error=e,
            )

        if not isinstance(e, ApiException):
            return KubernetesError(
                message=str(e),
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        status = e.status

        if status in (401, 403):
            return KubernetesAuthError(
                message=e.reason or "Authentication/authorization failed",
                status_code=status,
                reason=e.reason,
            )

        if status == 404:
            return KubernetesNotFoundError(
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        if status == 409:
            return KubernetesConflictError(
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        if status in (400, 422):
            return KubernetesValidationError(
                message=e.reason or "Validation failed",
                status_code=status,
            )

        return KubernetesError(
            message=e.reason or f"Kubernetes API error: {status}",
            status_code=status,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )

    def make_retry_decorator(self) -> Any:
        """Create a retry decorator for transient connection errors.

        Returns:
            A tenacity retry decorator configured with exponential backoff.
        """
        return retry(
            retry=retry_if_exception_type(KubernetesConnectionError),
            stop=stop_after_attempt(self._retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        )

    def close(self) -> None:
        """Close the API connection pool and drop the cached API instance."""
        if self._core_v1 is not None:
            self._core_v1.api_client.close()
            self._core_v1 = None
        logger.debug("Kubernetes client closed")

    def __enter__(self) -> KubernetesClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
