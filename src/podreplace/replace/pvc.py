"""Volume claims backing a replacement's persisted paths."""

from __future__ import annotations

import asyncio
import time

from kubernetes import client
from kubernetes.client.rest import ApiException
from kubernetes.utils import parse_quantity

from podreplace.config.settings import ReplaceSettings, get_settings
from podreplace.errors import KubernetesOperationError, PVCTerminationTimeoutError, ReplaceError
from podreplace.kubernetes.client import HTTP_CONFLICT, HTTP_NOT_FOUND, KubeClient
from podreplace.models import DEFAULT_ACCESS_MODES, DEFAULT_PVC_SIZE, DevPod
from podreplace.observability._logging import get_logger
from podreplace.observability._metrics import pvc_operations_total
from podreplace.replace.builder import claim_name_for


log = get_logger(__name__)

PVC_KIND = "PersistentVolumeClaim"


def build_pvc(replica_set: client.V1ReplicaSet, dev_pod: DevPod) -> client.V1PersistentVolumeClaim:
    """Build the claim requested by a dev pod's persistence options.

    Defaults to 10Gi, ReadWriteOnce, the cluster's default storage class and
    the replacement's name. Claims named after the replacement are owned by
    it; explicitly named claims are not, so they outlive the replacement.

    Raises:
        ReplaceError: If the requested size is not a valid quantity
    """
    options = dev_pod.persistence_options
    size = DEFAULT_PVC_SIZE
    if options is not None and options.size:
        try:
            parse_quantity(options.size)
        except ValueError as e:
            msg = f"error parsing persistent volume size {options.size}: {e}"
            raise ReplaceError(msg, code="invalid_pvc_size", phase="ensure_pvc") from e
        size = options.size

    storage_class_name = None
    if options is not None and options.storage_class_name:
        storage_class_name = options.storage_class_name

    access_modes = list(DEFAULT_ACCESS_MODES)
    if options is not None and options.access_modes is not None:
        access_modes = list(options.access_modes)

    name = claim_name_for(replica_set.metadata.name, dev_pod)
    explicit = options is not None and bool(options.name)

    owner_references = None
    if not explicit:
        owner_references = [
            client.V1OwnerReference(
                api_version="apps/v1",
                kind="ReplicaSet",
                name=replica_set.metadata.name,
                uid=replica_set.metadata.uid,
                controller=True,
            )
        ]

    return client.V1PersistentVolumeClaim(
        api_version="v1",
        kind=PVC_KIND,
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=replica_set.metadata.namespace,
            owner_references=owner_references,
        ),
        spec=client.V1PersistentVolumeClaimSpec(
            access_modes=access_modes,
            resources=client.V1VolumeResourceRequirements(requests={"storage": size}),
            storage_class_name=storage_class_name,
        ),
    )


class VolumeClaimProvisioner:
    """Creates, replaces and deletes replacement volume claims."""

    def __init__(self, kube: KubeClient, replace_settings: ReplaceSettings | None = None) -> None:
        self._kube = kube
        self._settings = replace_settings or get_settings().replace

    async def ensure_pvc(self, replica_set: client.V1ReplicaSet, dev_pod: DevPod) -> str:
        """Make sure the replacement's claim exists.

        An existing claim with an explicit name is reused, and so is a claim
        with the derived name that ``replica_set`` already owns. Any other
        claim with the derived name belongs to an earlier replacement: it is
        deleted, and once it has terminated the claim is created again.

        Returns:
            str: Name of the claim

        Raises:
            PVCTerminationTimeoutError: If the stale claim does not go away in time
            KubernetesOperationError: For other API failures
        """
        claim = build_pvc(replica_set, dev_pod)
        name = claim.metadata.name
        namespace = claim.metadata.namespace
        explicit = claim.metadata.owner_references is None

        try:
            await self._create(claim)
        except ApiException as e:
            if e.status != HTTP_CONFLICT:
                raise self._wrap("create", e, name, namespace) from e
            if explicit:
                log.info("pvc_adopted", pvc=name, replica_set=replica_set.metadata.name)
                pvc_operations_total.labels(action="adopt").inc()
                return name
            if await self._owned_by(name, namespace, replica_set.metadata.uid):
                log.debug("pvc_already_owned", pvc=name, replica_set=replica_set.metadata.name)
                return name

            log.info("waiting_for_stale_pvc_termination", pvc=name, namespace=namespace)
            await self.delete_pvc(name, namespace)
            await self._wait_for_deletion(name, namespace)
            try:
                await self._create(claim)
            except ApiException as retry_error:
                raise self._wrap("create", retry_error, name, namespace) from retry_error

        log.info("pvc_created", pvc=name, replica_set=replica_set.metadata.name)
        pvc_operations_total.labels(action="create").inc()
        return name

    async def delete_pvc(self, name: str, namespace: str) -> None:
        """Delete a claim; a missing claim counts as deleted."""
        try:
            await self._kube.call(
                self._kube.core.delete_namespaced_persistent_volume_claim, name, namespace
            )
        except ApiException as e:
            if e.status == HTTP_NOT_FOUND:
                return
            raise self._wrap("delete", e, name, namespace) from e
        log.info("pvc_deleted", pvc=name, namespace=namespace)
        pvc_operations_total.labels(action="delete").inc()

    async def _create(self, claim: client.V1PersistentVolumeClaim) -> None:
        await self._kube.call(
            self._kube.core.create_namespaced_persistent_volume_claim,
            claim.metadata.namespace,
            claim,
        )

    async def _owned_by(self, name: str, namespace: str, uid: str | None) -> bool:
        try:
            existing = await self._kube.call(
                self._kube.core.read_namespaced_persistent_volume_claim, name, namespace
            )
        except ApiException as e:
            if e.status == HTTP_NOT_FOUND:
                return False
            raise self._wrap("read", e, name, namespace) from e
        owners = existing.metadata.owner_references if existing.metadata else None
        return uid is not None and any(ref.uid == uid for ref in owners or [])

    async def _exists(self, name: str, namespace: str) -> bool:
        try:
            await self._kube.call(
                self._kube.core.read_namespaced_persistent_volume_claim, name, namespace
            )
        except ApiException as e:
            if e.status == HTTP_NOT_FOUND:
                return False
            log.debug("pvc_poll_failed", pvc=name, namespace=namespace, error=e.reason)
        return True

    async def _wait_for_deletion(self, name: str, namespace: str) -> None:
        """Poll until the claim is gone; cancelling the task stops the wait."""
        timeout = self._settings.pvc_termination_timeout
        deadline = time.monotonic() + timeout
        while await self._exists(name, namespace):
            if time.monotonic() >= deadline:
                raise PVCTerminationTimeoutError(namespace, name, timeout)
            await asyncio.sleep(self._settings.pvc_poll_interval)

    @staticmethod
    def _wrap(
        operation: str, error: ApiException, name: str, namespace: str
    ) -> KubernetesOperationError:
        return KubernetesOperationError.from_exception(
            operation,
            error,
            kind=PVC_KIND,
            name=name,
            namespace=namespace,
            phase="ensure_pvc",
        )


__all__ = ["VolumeClaimProvisioner", "build_pvc"]
