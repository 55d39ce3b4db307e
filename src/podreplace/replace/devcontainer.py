"""Apply dev container overrides to a pod spec."""

from __future__ import annotations

from kubernetes import client

from podreplace.constants import PERSISTENCE_VOLUME_NAME
from podreplace.errors import ReplaceError
from podreplace.models import DevContainer, DevPod


def apply_dev_containers(pod_spec: client.V1PodSpec, dev_pod: DevPod, claim_name: str) -> None:
    """Rewrite ``pod_spec`` in place according to the dev pod's containers.

    Args:
        pod_spec: Pod spec copied from the target workload
        dev_pod: Dev pod declaration
        claim_name: Volume claim backing persisted paths
    """
    for dev_container in dev_pod.dev_containers():
        container = _find_container(pod_spec, dev_container, dev_pod.name)
        _patch_container(container, dev_container)

    if dev_pod.has_persist_paths:
        volumes = [v for v in pod_spec.volumes or [] if v.name != PERSISTENCE_VOLUME_NAME]
        volumes.append(
            client.V1Volume(
                name=PERSISTENCE_VOLUME_NAME,
                persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(
                    claim_name=claim_name,
                ),
            )
        )
        pod_spec.volumes = volumes


def _find_container(
    pod_spec: client.V1PodSpec,
    dev_container: DevContainer,
    dev_pod_name: str,
) -> client.V1Container:
    containers = pod_spec.containers or []
    if not containers:
        msg = f"dev pod {dev_pod_name}: target pod template has no containers"
        raise ReplaceError(msg, code="container_not_found", phase="build_replica_set")
    if not dev_container.container:
        return containers[0]
    for container in containers:
        if container.name == dev_container.container:
            return container
    msg = f"dev pod {dev_pod_name}: container {dev_container.container} not found in target"
    raise ReplaceError(
        msg,
        code="container_not_found",
        phase="build_replica_set",
        details={"container": dev_container.container},
    )


def _patch_container(container: client.V1Container, dev_container: DevContainer) -> None:
    if dev_container.image:
        container.image = dev_container.image
    if dev_container.command is not None:
        container.command = list(dev_container.command)
    if dev_container.args is not None:
        container.args = list(dev_container.args)
    if dev_container.working_dir:
        container.working_dir = dev_container.working_dir

    if dev_container.env:
        env = list(container.env or [])
        for name in sorted(dev_container.env):
            value = dev_container.env[name]
            env = [e for e in env if e.name != name]
            env.append(client.V1EnvVar(name=name, value=value))
        container.env = env

    if dev_container.persist_paths:
        mount_paths = {p.path for p in dev_container.persist_paths}
        mounts = [m for m in container.volume_mounts or [] if m.mount_path not in mount_paths]
        for persist_path in dev_container.persist_paths:
            mounts.append(
                client.V1VolumeMount(
                    name=PERSISTENCE_VOLUME_NAME,
                    mount_path=persist_path.path,
                    sub_path=persist_path.sub_path,
                    read_only=persist_path.read_only or None,
                )
            )
        container.volume_mounts = mounts


__all__ = ["apply_dev_containers"]
