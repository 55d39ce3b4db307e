"""Find the workload a dev pod replaces."""

from __future__ import annotations

from kubernetes.client.rest import ApiException

from podreplace.constants import REPLICA_SET_LABEL
from podreplace.errors import KubernetesOperationError, TargetNotFoundError
from podreplace.kubernetes.client import HTTP_NOT_FOUND, KubeClient
from podreplace.kubernetes.workloads import (
    REPLICA_SET,
    WORKLOAD_TYPES,
    Workload,
    WorkloadType,
    get_workload_type,
)
from podreplace.observability._logging import get_logger


log = get_logger(__name__)


def format_selector(selector: dict[str, str]) -> str:
    """Render a label selector the way kubectl accepts it."""
    return ",".join(f"{key}={value}" for key, value in sorted(selector.items()))


def _template_matches(workload: Workload, selector: dict[str, str]) -> bool:
    template = workload.pod_template
    labels = (template.metadata.labels if template and template.metadata else None) or {}
    return all(labels.get(key) == value for key, value in selector.items())


def _is_candidate(workload: Workload) -> bool:
    if workload.type is not REPLICA_SET:
        return True
    metadata = workload.obj.metadata
    # Replacements and replica sets owned by a deployment are never targets
    if REPLICA_SET_LABEL in (metadata.labels or {}):
        return False
    return not any(ref.controller for ref in metadata.owner_references or [])


class TargetResolver:
    """Looks up replaceable workloads by selector or by kind and name."""

    def __init__(self, kube: KubeClient) -> None:
        self._kube = kube

    async def find_by_selector(self, namespace: str, selector: dict[str, str]) -> Workload | None:
        """Find the workload whose pods match ``selector``.

        All supported kinds are searched. When several workloads match, the
        first by kind (Deployment, StatefulSet, ReplicaSet) and then by name
        wins.

        Returns:
            Workload | None: The target, or None if nothing matches
        """
        candidates: list[Workload] = []
        for workload_type in WORKLOAD_TYPES.values():
            for obj in await self._list(workload_type, namespace):
                workload = Workload(type=workload_type, obj=obj)
                if obj.metadata.namespace is None:
                    obj.metadata.namespace = namespace
                if _is_candidate(workload) and _template_matches(workload, selector):
                    candidates.append(workload)

        if not candidates:
            return None
        if len(candidates) > 1:
            log.warning(
                "multiple_targets_matched",
                selector=format_selector(selector),
                candidates=[c.ref() for c in candidates],
            )
        return candidates[0]

    async def find_by_kind_name(self, kind: str, namespace: str, name: str) -> Workload:
        """Read a workload directly.

        Raises:
            TargetNotFoundError: If the workload does not exist
            UnsupportedKindError: If the kind cannot be replaced
            KubernetesOperationError: For other API failures
        """
        workload_type = get_workload_type(kind)
        try:
            obj = await self._kube.call(workload_type.read(self._kube.apps), name, namespace)
        except ApiException as e:
            if e.status == HTTP_NOT_FOUND:
                raise TargetNotFoundError(workload_type.kind, namespace, name) from e
            raise KubernetesOperationError.from_exception(
                "read",
                e,
                kind=workload_type.kind,
                name=name,
                namespace=namespace,
                phase="resolve_target",
            ) from e
        return Workload(type=workload_type, obj=obj)

    async def _list(self, workload_type: WorkloadType, namespace: str) -> list:
        try:
            result = await self._kube.call(workload_type.list(self._kube.apps), namespace)
        except ApiException as e:
            raise KubernetesOperationError.from_exception(
                "list",
                e,
                kind=workload_type.kind,
                name="*",
                namespace=namespace,
                phase="resolve_target",
            ) from e
        return sorted(result.items or [], key=lambda obj: obj.metadata.name)


__all__ = ["TargetResolver", "format_selector"]
