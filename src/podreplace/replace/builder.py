"""Build the replacement replica set for a target workload."""

from __future__ import annotations

import copy

from kubernetes import client

from podreplace.constants import (
    DEV_POD_CONFIG_HASH_ANNOTATION,
    REPLICA_SET_LABEL,
    REPLICA_SET_LABEL_VALUE,
    TARGET_KIND_ANNOTATION,
    TARGET_NAME_ANNOTATION,
)
from podreplace.kubernetes.workloads import Workload
from podreplace.models import DevPod
from podreplace.replace.devcontainer import apply_dev_containers
from podreplace.replace.hasher import hash_config


def claim_name_for(replica_set_name: str, dev_pod: DevPod) -> str:
    """Name of the volume claim backing the replacement's persisted paths."""
    options = dev_pod.persistence_options
    if options is not None and options.name:
        return options.name
    return replica_set_name


def build_replica_set(name: str, target: Workload, dev_pod: DevPod) -> client.V1ReplicaSet:
    """Build the desired replacement for ``target``.

    The target's pod template is copied, patched with the dev pod's container
    overrides and wrapped in a single-replica replica set that records the
    target and the dev pod's config hash. The result only depends on the
    arguments, so two calls with the same input compare equal.

    Args:
        name: Name of the replacement replica set
        target: Workload whose pods are replaced
        dev_pod: Dev pod declaration

    Returns:
        client.V1ReplicaSet: Replacement ready to create or compare
    """
    template = copy.deepcopy(target.pod_template)
    if template.metadata is None:
        template.metadata = client.V1ObjectMeta()
    template.metadata.creation_timestamp = None
    template.metadata.labels = {
        **(template.metadata.labels or {}),
        REPLICA_SET_LABEL: REPLICA_SET_LABEL_VALUE,
    }

    pod_spec = template.spec
    existing = {v.name for v in pod_spec.volumes or []}
    extra = [v for v in target.type.extra_volumes(target.obj) if v.name not in existing]
    if extra:
        pod_spec.volumes = [*(pod_spec.volumes or []), *extra]

    apply_dev_containers(pod_spec, dev_pod, claim_name_for(name, dev_pod))

    return client.V1ReplicaSet(
        api_version="apps/v1",
        kind="ReplicaSet",
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=target.namespace,
            labels={REPLICA_SET_LABEL: REPLICA_SET_LABEL_VALUE},
            annotations={
                TARGET_KIND_ANNOTATION: target.kind,
                TARGET_NAME_ANNOTATION: target.name,
                DEV_POD_CONFIG_HASH_ANNOTATION: hash_config(dev_pod),
            },
        ),
        spec=client.V1ReplicaSetSpec(
            replicas=1,
            selector=client.V1LabelSelector(match_labels=dict(template.metadata.labels)),
            template=template,
        ),
    )


__all__ = ["build_replica_set", "claim_name_for"]
