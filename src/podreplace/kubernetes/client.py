"""Kubernetes API client wrapper.

Loads cluster credentials, determines the active namespace and runs the
blocking client calls in a worker thread so they can be awaited.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from kubernetes import client, config
from kubernetes.config import ConfigException

from podreplace.config.settings import KubernetesSettings, get_settings
from podreplace.observability._logging import get_logger


log = get_logger(__name__)

# HTTP Status codes
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409

SERVICE_ACCOUNT_NAMESPACE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")
DEFAULT_NAMESPACE = "default"


class KubeClient:
    """Kubernetes clients scoped to one cluster and one active namespace.

    Attributes:
        api_client: Underlying client shared by the typed APIs
        core: CoreV1Api for claims and secrets
        apps: AppsV1Api for deployments, stateful sets and replica sets
    """

    def __init__(
        self,
        api_client: client.ApiClient | None = None,
        namespace: str | None = None,
        k8s_settings: KubernetesSettings | None = None,
    ) -> None:
        """Initialize clients, loading credentials unless a client is given."""
        self._settings = k8s_settings or get_settings().kubernetes
        self.api_client = api_client or self._load_api_client()
        self.core = client.CoreV1Api(self.api_client)
        self.apps = client.AppsV1Api(self.api_client)
        self._namespace = namespace or self._settings.namespace or self._detect_namespace()

    def namespace(self) -> str:
        """Namespace used when a dev pod does not name one."""
        return self._namespace

    async def call(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Run a blocking Kubernetes client call in a thread."""
        return await asyncio.to_thread(func, *args, **kwargs)

    def close(self) -> None:
        """Release the connection pool."""
        try:
            self.api_client.close()
        except (OSError, RuntimeError) as exc:
            log.debug("kube_client_close_failed", error=str(exc))

    def _load_api_client(self) -> client.ApiClient:
        """Load Kubernetes config into a dedicated ApiClient."""
        config_obj = client.Configuration()
        if self._settings.in_cluster:
            config.load_incluster_config(client_configuration=config_obj)
            log.info("k8s_config_loaded", mode="in_cluster")
        else:
            config.load_kube_config(
                config_file=self._settings.kubeconfig,
                context=self._settings.context,
                client_configuration=config_obj,
            )
            log.info("k8s_config_loaded", mode="kubeconfig", context=self._settings.context)
        return client.ApiClient(config_obj)

    def _detect_namespace(self) -> str:
        """Namespace of the active kubeconfig context or service account."""
        if self._settings.in_cluster:
            if SERVICE_ACCOUNT_NAMESPACE.exists():
                return SERVICE_ACCOUNT_NAMESPACE.read_text().strip() or DEFAULT_NAMESPACE
            return DEFAULT_NAMESPACE

        try:
            contexts, active = config.list_kube_config_contexts(
                config_file=self._settings.kubeconfig
            )
        except ConfigException:
            return DEFAULT_NAMESPACE

        selected = active
        if self._settings.context:
            selected = next(
                (c for c in contexts or [] if c.get("name") == self._settings.context),
                active,
            )
        context = (selected or {}).get("context") or {}
        return context.get("namespace") or DEFAULT_NAMESPACE


__all__ = [
    "DEFAULT_NAMESPACE",
    "HTTP_CONFLICT",
    "HTTP_NOT_FOUND",
    "KubeClient",
]
