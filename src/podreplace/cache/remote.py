"""Dev pod cache persisted in the cluster.

The cache maps dev pod names to what was done for them (target, replacement,
volume claim). It is stored as JSON in a secret so a later process, possibly
on another machine, can continue or revert the replacement.
"""

from __future__ import annotations

import base64
import json
import threading
from typing import Any

from kubernetes import client
from kubernetes.client.rest import ApiException
from pydantic import ValidationError

from podreplace.config.settings import get_settings
from podreplace.errors import KubernetesOperationError, ReplaceError
from podreplace.kubernetes.client import HTTP_NOT_FOUND, KubeClient
from podreplace.models import DevPodCache
from podreplace.observability._logging import get_logger


log = get_logger(__name__)

CACHE_DATA_KEY = "cache"


class RemoteCache:
    """In-memory view of the cache secret.

    Reads and writes of the in-memory map are guarded by a lock, so tasks
    reconciling different dev pods can share one instance.
    """

    def __init__(
        self,
        namespace: str,
        secret_name: str | None = None,
        dev_pods: dict[str, DevPodCache] | None = None,
    ) -> None:
        self.namespace = namespace
        self.secret_name = secret_name or get_settings().replace.cache_secret_name
        self._dev_pods: dict[str, DevPodCache] = dict(dev_pods or {})
        self._lock = threading.Lock()

    @classmethod
    async def load(
        cls,
        kube: KubeClient,
        namespace: str | None = None,
        secret_name: str | None = None,
    ) -> RemoteCache:
        """Load the cache from its secret; a missing secret yields an empty cache."""
        namespace = namespace or kube.namespace()
        cache = cls(namespace, secret_name)
        try:
            secret = await kube.call(
                kube.core.read_namespaced_secret, cache.secret_name, namespace
            )
        except ApiException as e:
            if e.status == HTTP_NOT_FOUND:
                log.debug("remote_cache_empty", secret=cache.secret_name, namespace=namespace)
                return cache
            raise KubernetesOperationError.from_exception(
                "read",
                e,
                kind="Secret",
                name=cache.secret_name,
                namespace=namespace,
                phase="load_cache",
            ) from e

        raw = (secret.data or {}).get(CACHE_DATA_KEY)
        if raw:
            cache._dev_pods = cls._decode(raw, cache.secret_name)
        return cache

    def get_dev_pod(self, name: str) -> DevPodCache | None:
        """Return a copy of the entry for ``name``, or None if there is none."""
        with self._lock:
            entry = self._dev_pods.get(name)
            return entry.model_copy() if entry else None

    def set_dev_pod(self, name: str, entry: DevPodCache) -> None:
        with self._lock:
            self._dev_pods[name] = entry.model_copy()

    def delete_dev_pod(self, name: str) -> None:
        with self._lock:
            self._dev_pods.pop(name, None)

    def list_dev_pods(self) -> list[DevPodCache]:
        with self._lock:
            return [entry.model_copy() for entry in self._dev_pods.values()]

    async def save(self, kube: KubeClient) -> None:
        """Write the cache to its secret, creating the secret if needed.

        Raises:
            KubernetesOperationError: If the secret cannot be written
        """
        with self._lock:
            payload = self._encode()
        body = client.V1Secret(
            metadata=client.V1ObjectMeta(name=self.secret_name, namespace=self.namespace),
            type="Opaque",
            data={CACHE_DATA_KEY: payload},
        )
        try:
            await kube.call(
                kube.core.replace_namespaced_secret, self.secret_name, self.namespace, body
            )
        except ApiException as e:
            if e.status != HTTP_NOT_FOUND:
                raise self._wrap("replace", e) from e
            try:
                await kube.call(kube.core.create_namespaced_secret, self.namespace, body)
            except ApiException as create_error:
                raise self._wrap("create", create_error) from create_error
        log.debug("remote_cache_saved", secret=self.secret_name, namespace=self.namespace)

    def _encode(self) -> str:
        data: dict[str, Any] = {
            "devPods": {
                name: entry.model_dump(mode="json", by_alias=True)
                for name, entry in sorted(self._dev_pods.items())
            }
        }
        return base64.b64encode(json.dumps(data, sort_keys=True).encode()).decode()

    @staticmethod
    def _decode(raw: str, secret_name: str) -> dict[str, DevPodCache]:
        try:
            data = json.loads(base64.b64decode(raw))
            return {
                name: DevPodCache.model_validate(entry)
                for name, entry in (data.get("devPods") or {}).items()
            }
        except (ValueError, AttributeError, ValidationError) as e:
            msg = f"cache secret {secret_name} is malformed: {e}"
            raise ReplaceError(msg, code="cache_malformed", phase="load_cache") from e

    def _wrap(self, operation: str, error: ApiException) -> KubernetesOperationError:
        return KubernetesOperationError.from_exception(
            operation,
            error,
            kind="Secret",
            name=self.secret_name,
            namespace=self.namespace,
            phase="save_cache",
        )


__all__ = ["RemoteCache"]
