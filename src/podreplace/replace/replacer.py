"""Replace a target workload's pods with a dev replica set, and undo it.

A replace pass is safe to repeat: it either finds the replacement up to date
(NO_CHANGES), patches its pod template in place (PATCHED), or scales the
target down and creates the replacement (CREATED). Before the first mutation
the target and replacement are recorded in the remote cache, so an
interrupted pass can always be reverted.
"""

from __future__ import annotations

import copy
from enum import Enum

from kubernetes import client
from kubernetes.client.rest import ApiException

from podreplace.cache import RemoteCache
from podreplace.config.settings import ReplaceSettings, get_settings
from podreplace.constants import (
    DEFAULT_SELECTOR_LABEL,
    DEV_POD_CONFIG_HASH_ANNOTATION,
    REPLICAS_ANNOTATION,
    TARGET_KIND_ANNOTATION,
    TARGET_NAME_ANNOTATION,
    replica_set_name,
)
from podreplace.errors import (
    KubernetesOperationError,
    NoMatchingTargetError,
    ReplaceConflictError,
    ReplaceError,
    TargetNotFoundError,
    UnsupportedKindError,
)
from podreplace.kubernetes.client import HTTP_CONFLICT, HTTP_NOT_FOUND, KubeClient
from podreplace.kubernetes.patch import (
    MERGE_PATCH_CONTENT_TYPE,
    create_merge_patch,
    semantic_equal,
    to_dict,
)
from podreplace.models import DevPod, DevPodCache
from podreplace.observability._logging import get_logger
from podreplace.observability._metrics import (
    replace_duration_seconds,
    replacements_total,
    reverts_total,
)
from podreplace.replace.builder import build_replica_set
from podreplace.replace.pvc import VolumeClaimProvisioner
from podreplace.replace.scale import ScaleController
from podreplace.replace.target import TargetResolver, format_selector


log = get_logger(__name__)

REPLICA_SET_KIND = "ReplicaSet"


class ReplaceOutcome(str, Enum):
    """Result of a replace pass."""

    NO_CHANGES = "no_changes"
    PATCHED = "patched"
    CREATED = "created"


class _CreateConflict(Exception):
    """The replacement was created concurrently; the pass should start over."""

    def __init__(self, replica_set: str) -> None:
        super().__init__(replica_set)
        self.replica_set = replica_set


class PodReplacer:
    """Reconciles dev pods against the cluster.

    Args:
        kube: Cluster client
        cache: Remote cache shared with other passes
        replace_settings: Overrides for the replace settings section
    """

    def __init__(
        self,
        kube: KubeClient,
        cache: RemoteCache,
        replace_settings: ReplaceSettings | None = None,
    ) -> None:
        self._kube = kube
        self._cache = cache
        self._settings = replace_settings or get_settings().replace
        self._targets = TargetResolver(kube)
        self._scaler = ScaleController(kube)
        self._volumes = VolumeClaimProvisioner(kube, self._settings)

    async def replace_pod(self, dev_pod: DevPod) -> ReplaceOutcome:
        """Make the cluster run ``dev_pod`` in place of its target.

        Returns:
            ReplaceOutcome: What the pass changed

        Raises:
            NoMatchingTargetError: If no workload matches the dev pod's selector
            ReplaceConflictError: If creating the replacement keeps conflicting
            ReplaceError: For any other failure
        """
        attempts = 0
        try:
            with replace_duration_seconds.time():
                while True:
                    attempts += 1
                    try:
                        outcome = await self._replace_once(dev_pod)
                        break
                    except _CreateConflict as conflict:
                        if attempts >= self._settings.max_create_attempts:
                            raise ReplaceConflictError(
                                dev_pod.name, conflict.replica_set, attempts
                            ) from conflict
                        log.info(
                            "replica_set_create_conflict_retrying",
                            dev_pod=dev_pod.name,
                            replica_set=conflict.replica_set,
                            attempt=attempts,
                        )
        except ReplaceError as e:
            replacements_total.labels(outcome="error").inc()
            log.error("replace_failed", dev_pod=dev_pod.name, **e.to_dict())
            raise

        replacements_total.labels(outcome=outcome.value).inc()
        log.info("replace_completed", dev_pod=dev_pod.name, outcome=outcome.value)
        return outcome

    async def revert_replace_pod(self, cache_entry: DevPodCache | None) -> bool:
        """Undo a replacement recorded in the cache.

        The target is scaled back up first. If that fails nothing is deleted,
        so the revert can be retried. A target that still has replicas and no
        stored count was never scaled down and is left as it is.

        Returns:
            bool: False if there was nothing to revert

        Raises:
            ScaleStateError: If the target's stored replica count is unusable
            KubernetesOperationError: For API failures
        """
        if cache_entry is None:
            reverts_total.labels(result="skipped").inc()
            return False

        namespace = cache_entry.namespace or self._kube.namespace()
        if cache_entry.target_kind and cache_entry.target_name:
            await self._restore_target(cache_entry, namespace)

        if cache_entry.replica_set:
            await self._delete_replica_set(cache_entry.replica_set, namespace)

        if cache_entry.persistent_volume_claim and not cache_entry.retain_persistent_volume_claim:
            await self._volumes.delete_pvc(cache_entry.persistent_volume_claim, namespace)

        self._cache.delete_dev_pod(cache_entry.name)
        await self._cache.save(self._kube)

        reverts_total.labels(result="reverted").inc()
        log.info("revert_completed", dev_pod=cache_entry.name, namespace=namespace)
        return True

    async def _restore_target(self, cache_entry: DevPodCache, namespace: str) -> None:
        try:
            target = await self._targets.find_by_kind_name(
                cache_entry.target_kind, namespace, cache_entry.target_name
            )
        except TargetNotFoundError:
            log.warning(
                "revert_target_missing",
                dev_pod=cache_entry.name,
                target_kind=cache_entry.target_kind,
                target_name=cache_entry.target_name,
                namespace=namespace,
            )
            return

        if REPLICAS_ANNOTATION not in target.annotations and target.replicas > 0:
            # The replace pass stopped before the target was scaled down
            log.warning(
                "revert_target_not_scaled_down",
                dev_pod=cache_entry.name,
                target=target.ref(),
                replicas=target.replicas,
            )
            return
        await self._scaler.scale_up(target)

    async def revert_all(self) -> list[str]:
        """Revert every cached dev pod, returning the names reverted."""
        reverted = []
        for entry in self._cache.list_dev_pods():
            if await self.revert_replace_pod(entry):
                reverted.append(entry.name)
        return reverted

    async def _replace_once(self, dev_pod: DevPod) -> ReplaceOutcome:
        namespace = dev_pod.namespace or self._kube.namespace()
        entry = self._cache.get_dev_pod(dev_pod.name)
        if entry is not None and entry.namespace and entry.namespace != namespace:
            # A replacement in another namespace is undone before moving on
            log.info(
                "dev_pod_namespace_changed",
                dev_pod=dev_pod.name,
                previous_namespace=entry.namespace,
                namespace=namespace,
            )
            await self.revert_replace_pod(entry)
            entry = None
        if entry is None:
            entry = DevPodCache(name=dev_pod.name, namespace=namespace)

        if entry.replica_set:
            live = await self._read_replica_set(entry.replica_set, namespace)
            if live is not None:
                outcome = await self._update_needed(live, dev_pod, entry, namespace)
                if outcome is not None:
                    return outcome

        selector = dev_pod.label_selector or {DEFAULT_SELECTOR_LABEL: dev_pod.name}
        target = await self._targets.find_by_selector(namespace, selector)
        if target is None:
            raise NoMatchingTargetError(dev_pod.name, namespace, format_selector(selector))

        name = replica_set_name(target.name)
        entry.namespace = namespace
        entry.target_kind = target.kind
        entry.target_name = target.name
        entry.replica_set = name
        await self._record(entry)

        replica_set = build_replica_set(name, target, dev_pod)
        await self._scaler.scale_down(target)

        try:
            created = await self._kube.call(
                self._kube.apps.create_namespaced_replica_set, namespace, replica_set
            )
        except ApiException as e:
            if e.status == HTTP_CONFLICT:
                raise _CreateConflict(name) from e
            raise self._wrap("create", e, name, namespace) from e
        log.info("replica_set_created", replica_set=name, target=target.ref())

        if dev_pod.has_persist_paths:
            entry.persistent_volume_claim = await self._volumes.ensure_pvc(created, dev_pod)
            entry.retain_persistent_volume_claim = dev_pod.retain_pvc
            await self._record(entry)

        return ReplaceOutcome.CREATED

    async def _update_needed(
        self, live: client.V1ReplicaSet, dev_pod: DevPod, entry: DevPodCache, namespace: str
    ) -> ReplaceOutcome | None:
        """Bring an existing replacement up to date.

        Returns:
            ReplaceOutcome | None: None when the replacement was deleted and
            has to be created again
        """
        name = live.metadata.name
        annotations = live.metadata.annotations or {}
        target_kind = annotations.get(TARGET_KIND_ANNOTATION)
        target_name = annotations.get(TARGET_NAME_ANNOTATION)
        if not target_kind or not target_name:
            log.info("replica_set_unannotated_recreating", replica_set=name)
            await self._delete_replica_set(name, namespace)
            return None

        try:
            target = await self._targets.find_by_kind_name(target_kind, namespace, target_name)
        except (TargetNotFoundError, UnsupportedKindError):
            log.info(
                "replica_set_target_missing_recreating",
                replica_set=name,
                target_kind=target_kind,
                target_name=target_name,
            )
            await self._delete_replica_set(name, namespace)
            return None

        desired = build_replica_set(name, target, dev_pod)
        desired_hash = desired.metadata.annotations[DEV_POD_CONFIG_HASH_ANNOTATION]
        unchanged = annotations.get(DEV_POD_CONFIG_HASH_ANNOTATION) == desired_hash
        if unchanged and semantic_equal(
            to_dict(desired.spec.template), to_dict(live.spec.template)
        ):
            if self._settings.rescale_on_noop:
                try:
                    await self._scaler.scale_down(target)
                except ReplaceError as e:
                    log.warning("target_rescale_failed", target=target.ref(), error=e.message)
            log.debug("replica_set_up_to_date", replica_set=name)
            return ReplaceOutcome.NO_CHANGES

        patched = copy.deepcopy(live)
        patched.spec.template = desired.spec.template
        patched.metadata.annotations = {
            **annotations,
            DEV_POD_CONFIG_HASH_ANNOTATION: desired_hash,
        }
        patch = create_merge_patch(to_dict(live), to_dict(patched))
        try:
            await self._kube.call(
                self._kube.apps.patch_namespaced_replica_set,
                name,
                namespace,
                patch,
                _content_type=MERGE_PATCH_CONTENT_TYPE,
            )
        except ApiException as e:
            raise self._wrap("patch", e, name, namespace) from e
        log.info("replica_set_patched", replica_set=name, target=target.ref())

        if dev_pod.has_persist_paths:
            entry.persistent_volume_claim = await self._volumes.ensure_pvc(live, dev_pod)
            entry.retain_persistent_volume_claim = dev_pod.retain_pvc
            await self._record(entry)
        return ReplaceOutcome.PATCHED

    async def _record(self, entry: DevPodCache) -> None:
        self._cache.set_dev_pod(entry.name, entry)
        await self._cache.save(self._kube)

    async def _read_replica_set(self, name: str, namespace: str) -> client.V1ReplicaSet | None:
        try:
            return await self._kube.call(
                self._kube.apps.read_namespaced_replica_set, name, namespace
            )
        except ApiException as e:
            if e.status == HTTP_NOT_FOUND:
                log.info("cached_replica_set_missing", replica_set=name, namespace=namespace)
                return None
            raise self._wrap("read", e, name, namespace) from e

    async def _delete_replica_set(self, name: str, namespace: str) -> None:
        try:
            await self._kube.call(
                self._kube.apps.delete_namespaced_replica_set, name, namespace
            )
        except ApiException as e:
            if e.status == HTTP_NOT_FOUND:
                return
            raise self._wrap("delete", e, name, namespace) from e
        log.info("replica_set_deleted", replica_set=name, namespace=namespace)

    @staticmethod
    def _wrap(
        operation: str, error: ApiException, name: str, namespace: str
    ) -> KubernetesOperationError:
        return KubernetesOperationError.from_exception(
            operation,
            error,
            kind=REPLICA_SET_KIND,
            name=name,
            namespace=namespace,
            phase=f"{operation}_replica_set",
        )


__all__ = ["PodReplacer", "ReplaceOutcome"]
