"""Replaceable workload kinds.

Each supported kind is described once in ``WORKLOAD_TYPES``: which AppsV1Api
methods read, list and patch it, and which extra volumes its pods need when
their template is moved into a plain replica set. Code acting on a target
looks the kind up here instead of branching on it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from kubernetes import client

from podreplace.errors import UnsupportedKindError


def _no_extra_volumes(obj: Any) -> list[client.V1Volume]:  # noqa: ARG001
    return []


def _stateful_set_claim_volumes(obj: client.V1StatefulSet) -> list[client.V1Volume]:
    """Volumes pointing at the claims the first stateful set replica uses."""
    templates = obj.spec.volume_claim_templates if obj.spec else None
    volumes = []
    for template in templates or []:
        claim_name = f"{template.metadata.name}-{obj.metadata.name}-0"
        volumes.append(
            client.V1Volume(
                name=template.metadata.name,
                persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(
                    claim_name=claim_name,
                ),
            )
        )
    return volumes


@dataclass(frozen=True)
class WorkloadType:
    """Capabilities of one replaceable workload kind."""

    kind: str
    read_method: str
    list_method: str
    patch_method: str
    api_version: str = "apps/v1"
    extra_volumes: Callable[[Any], list[client.V1Volume]] = field(
        default=_no_extra_volumes, compare=False
    )

    def read(self, apps: client.AppsV1Api) -> Callable[..., Any]:
        return getattr(apps, self.read_method)

    def list(self, apps: client.AppsV1Api) -> Callable[..., Any]:
        return getattr(apps, self.list_method)

    def patch(self, apps: client.AppsV1Api) -> Callable[..., Any]:
        return getattr(apps, self.patch_method)


DEPLOYMENT = WorkloadType(
    kind="Deployment",
    read_method="read_namespaced_deployment",
    list_method="list_namespaced_deployment",
    patch_method="patch_namespaced_deployment",
)
STATEFUL_SET = WorkloadType(
    kind="StatefulSet",
    read_method="read_namespaced_stateful_set",
    list_method="list_namespaced_stateful_set",
    patch_method="patch_namespaced_stateful_set",
    extra_volumes=_stateful_set_claim_volumes,
)
REPLICA_SET = WorkloadType(
    kind="ReplicaSet",
    read_method="read_namespaced_replica_set",
    list_method="list_namespaced_replica_set",
    patch_method="patch_namespaced_replica_set",
)

# Order doubles as the tie-break priority when a selector matches several kinds
WORKLOAD_TYPES: dict[str, WorkloadType] = {
    t.kind: t for t in (DEPLOYMENT, STATEFUL_SET, REPLICA_SET)
}


def get_workload_type(kind: str) -> WorkloadType:
    """Look up a workload kind, case-insensitively."""
    for workload_type in WORKLOAD_TYPES.values():
        if workload_type.kind.lower() == kind.lower():
            return workload_type
    raise UnsupportedKindError(kind)


@dataclass
class Workload:
    """A target workload object together with its kind."""

    type: WorkloadType
    obj: Any

    @property
    def kind(self) -> str:
        return self.type.kind

    @property
    def name(self) -> str:
        return self.obj.metadata.name

    @property
    def namespace(self) -> str:
        return self.obj.metadata.namespace

    @property
    def annotations(self) -> dict[str, str]:
        return self.obj.metadata.annotations or {}

    @property
    def replicas(self) -> int:
        """Desired replica count, 1 when unset as the API server defaults it."""
        replicas = self.obj.spec.replicas if self.obj.spec else None
        return 1 if replicas is None else int(replicas)

    @property
    def pod_template(self) -> client.V1PodTemplateSpec:
        return self.obj.spec.template

    def ref(self) -> str:
        """Human readable reference used in logs and errors."""
        return f"{self.kind} {self.namespace}/{self.name}"


__all__ = [
    "DEPLOYMENT",
    "REPLICA_SET",
    "STATEFUL_SET",
    "WORKLOAD_TYPES",
    "Workload",
    "WorkloadType",
    "get_workload_type",
]
