"""Scale target workloads down to zero and back.

The replica count a target had before scale-down is kept in an annotation on
the target itself, written in the same patch that sets replicas to zero, and
is the only source used to restore it.
"""

from __future__ import annotations

import copy
from typing import Any

from kubernetes.client.rest import ApiException

from podreplace.constants import REPLICAS_ANNOTATION
from podreplace.errors import KubernetesOperationError, ScaleStateError
from podreplace.kubernetes.client import KubeClient
from podreplace.kubernetes.patch import MERGE_PATCH_CONTENT_TYPE, create_merge_patch, to_dict
from podreplace.kubernetes.workloads import Workload
from podreplace.observability._logging import get_logger
from podreplace.observability._metrics import scale_operations_total


log = get_logger(__name__)


def parse_replicas(value: str | None) -> int | None:
    """Parse a stored replica count, ``None`` if missing or not a non-negative integer."""
    if value is None:
        return None
    value = value.strip()
    if not value.isdecimal():
        return None
    return int(value)


class ScaleController:
    """Drives target workloads to zero replicas and restores them."""

    def __init__(self, kube: KubeClient) -> None:
        self._kube = kube

    async def scale_down(self, target: Workload) -> bool:
        """Scale ``target`` to zero, remembering its replica count.

        A target already at zero with a stored count is left untouched so a
        previously stored count is never overwritten. A target that was at
        zero before any replacement only gets the annotation recording that.

        Returns:
            bool: Whether a patch was sent
        """
        replicas = target.replicas
        if replicas == 0 and REPLICAS_ANNOTATION in target.annotations:
            log.debug("target_already_scaled_down", target=target.ref())
            return False

        scaled = copy.deepcopy(target.obj)
        scaled.metadata.annotations = {
            **(scaled.metadata.annotations or {}),
            REPLICAS_ANNOTATION: str(replicas),
        }
        scaled.spec.replicas = 0

        await self._patch(target, scaled, "scale down")
        scale_operations_total.labels(direction="down", kind=target.kind).inc()
        log.info("target_scaled_down", target=target.ref(), previous_replicas=replicas)
        return True

    async def scale_up(self, target: Workload) -> int:
        """Restore the replica count stored on ``target`` and drop the annotation.

        Returns:
            int: Restored replica count

        Raises:
            ScaleStateError: If the stored count is missing or malformed
        """
        value = target.annotations.get(REPLICAS_ANNOTATION)
        replicas = parse_replicas(value)
        if replicas is None:
            raise ScaleStateError(target.kind, target.namespace, target.name, value)

        scaled = copy.deepcopy(target.obj)
        annotations = dict(scaled.metadata.annotations or {})
        annotations.pop(REPLICAS_ANNOTATION, None)
        scaled.metadata.annotations = annotations
        scaled.spec.replicas = replicas

        await self._patch(target, scaled, "scale up")
        scale_operations_total.labels(direction="up", kind=target.kind).inc()
        log.info("target_scaled_up", target=target.ref(), replicas=replicas)
        return replicas

    async def _patch(self, target: Workload, modified: Any, operation: str) -> None:
        patch = create_merge_patch(to_dict(target.obj), to_dict(modified))
        try:
            await self._kube.call(
                target.type.patch(self._kube.apps),
                target.name,
                target.namespace,
                patch,
                _content_type=MERGE_PATCH_CONTENT_TYPE,
            )
        except ApiException as e:
            raise KubernetesOperationError.from_exception(
                operation,
                e,
                kind=target.kind,
                name=target.name,
                namespace=target.namespace,
                phase=operation.replace(" ", "_"),
            ) from e
        target.obj = modified


__all__ = ["ScaleController", "parse_replicas"]
