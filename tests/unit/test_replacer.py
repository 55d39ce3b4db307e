"""Unit tests for the pod replacer.

The Kubernetes APIs are mocks; the objects passed through them are real
client models so merge patches and comparisons run for real.
"""

from __future__ import annotations

import copy

import pytest
from kubernetes import client

from factories import api_error, make_deployment, object_list
from podreplace.cache import RemoteCache
from podreplace.config.settings import ReplaceSettings
from podreplace.constants import (
    DEV_POD_CONFIG_HASH_ANNOTATION,
    REPLICA_SET_LABEL,
    REPLICAS_ANNOTATION,
    TARGET_KIND_ANNOTATION,
)
from podreplace.errors import (
    NoMatchingTargetError,
    ReplaceConflictError,
    ScaleStateError,
)
from podreplace.models import DevPod, DevPodCache
from podreplace.replace.hasher import hash_config
from podreplace.replace.replacer import PodReplacer, ReplaceOutcome


def _dev_pod(image: str = "dev/api:latest", **extra) -> DevPod:
    return DevPod.model_validate(
        {
            "name": "api",
            "labelSelector": {"app.kubernetes.io/name": "api"},
            "containers": [{"image": image}],
            **extra,
        }
    )


def _scaled_deployment() -> client.V1Deployment:
    return make_deployment(replicas=0, annotations={REPLICAS_ANNOTATION: "3"})


@pytest.fixture
def created(kube) -> list[client.V1ReplicaSet]:
    """Replica sets created through the mocked API, in order."""
    created_sets: list[client.V1ReplicaSet] = []

    def create(namespace: str, body: client.V1ReplicaSet) -> client.V1ReplicaSet:
        body.metadata.uid = f"{body.metadata.name}-uid"
        created_sets.append(body)
        return body

    kube.apps.create_namespaced_replica_set.side_effect = create
    kube.apps.list_namespaced_deployment.return_value = object_list(make_deployment())
    kube.apps.read_namespaced_replica_set.side_effect = api_error(404)
    return created_sets


@pytest.fixture
def cache() -> RemoteCache:
    return RemoteCache("default")


@pytest.fixture
def replacer(kube, cache) -> PodReplacer:
    return PodReplacer(kube, cache, ReplaceSettings(pvc_poll_interval=0.01))


def _serve_existing(kube, replica_set: client.V1ReplicaSet) -> None:
    """Make a previously created replacement and its scaled target readable."""
    kube.apps.read_namespaced_replica_set.side_effect = None
    kube.apps.read_namespaced_replica_set.return_value = replica_set
    kube.apps.read_namespaced_deployment.return_value = _scaled_deployment()


class TestReplacePod:
    """Tests for PodReplacer.replace_pod."""

    @pytest.mark.asyncio
    async def test_creates_replacement(self, kube, cache, replacer, created) -> None:
        """Test the first pass: scale down, create, record."""
        outcome = await replacer.replace_pod(_dev_pod())

        assert outcome is ReplaceOutcome.CREATED
        (replica_set,) = created
        assert replica_set.metadata.name == "api-deploy-devspace"
        assert replica_set.spec.template.spec.containers[0].image == "dev/api:latest"
        assert replica_set.spec.template.metadata.labels[REPLICA_SET_LABEL] == "true"

        scale_patch = kube.apps.patch_namespaced_deployment.call_args.args[2]
        assert scale_patch["spec"] == {"replicas": 0}
        assert scale_patch["metadata"]["annotations"] == {REPLICAS_ANNOTATION: "3"}

        entry = cache.get_dev_pod("api")
        assert (entry.target_kind, entry.target_name) == ("Deployment", "api-deploy")
        assert entry.replica_set == "api-deploy-devspace"
        assert entry.persistent_volume_claim == ""

    @pytest.mark.asyncio
    async def test_cache_written_before_mutation(self, kube, replacer, created) -> None:
        """Test that the cache secret is saved before the target is touched."""
        calls: list[str] = []
        kube.core.replace_namespaced_secret.side_effect = lambda *a: calls.append("save")
        kube.apps.patch_namespaced_deployment.side_effect = lambda *a, **kw: calls.append("scale")
        create = kube.apps.create_namespaced_replica_set.side_effect

        def record_create(namespace, body):
            calls.append("create")
            return create(namespace, body)

        kube.apps.create_namespaced_replica_set.side_effect = record_create

        await replacer.replace_pod(_dev_pod())

        assert calls == ["save", "scale", "create"]

    @pytest.mark.asyncio
    async def test_default_selector_uses_dev_pod_name(self, kube, replacer, created) -> None:
        """Test that an empty selector matches app.kubernetes.io/name=<dev pod>."""
        outcome = await replacer.replace_pod(DevPod(name="api"))

        assert outcome is ReplaceOutcome.CREATED
        assert created[0].metadata.annotations[TARGET_KIND_ANNOTATION] == "Deployment"

    @pytest.mark.asyncio
    async def test_no_matching_target(self, kube, cache, replacer, created) -> None:
        """Test that an unmatched selector fails without side effects."""
        kube.apps.list_namespaced_deployment.return_value = object_list()

        with pytest.raises(NoMatchingTargetError) as exc_info:
            await replacer.replace_pod(_dev_pod())

        assert "app.kubernetes.io/name=api" in exc_info.value.message
        assert created == []
        kube.apps.patch_namespaced_deployment.assert_not_called()
        assert cache.get_dev_pod("api") is None

    @pytest.mark.asyncio
    async def test_second_pass_is_noop(self, kube, replacer, created) -> None:
        """Test that an unchanged dev pod leaves the cluster alone."""
        await replacer.replace_pod(_dev_pod())
        _serve_existing(kube, created[0])

        outcome = await replacer.replace_pod(_dev_pod())

        assert outcome is ReplaceOutcome.NO_CHANGES
        assert len(created) == 1
        kube.apps.patch_namespaced_replica_set.assert_not_called()
        assert kube.apps.patch_namespaced_deployment.call_count == 1

    @pytest.mark.asyncio
    async def test_noop_rescales_target(self, kube, replacer, created) -> None:
        """Test that a target scaled back up is scaled down again."""
        await replacer.replace_pod(_dev_pod())
        _serve_existing(kube, created[0])
        kube.apps.read_namespaced_deployment.return_value = make_deployment(
            replicas=2, annotations={REPLICAS_ANNOTATION: "3"}
        )

        outcome = await replacer.replace_pod(_dev_pod())

        assert outcome is ReplaceOutcome.NO_CHANGES
        assert kube.apps.patch_namespaced_deployment.call_count == 2
        rescale_patch = kube.apps.patch_namespaced_deployment.call_args.args[2]
        assert rescale_patch["metadata"]["annotations"] == {REPLICAS_ANNOTATION: "2"}

    @pytest.mark.asyncio
    async def test_noop_rescale_failure_is_not_fatal(self, kube, replacer, created) -> None:
        """Test that a failing re-scale only logs a warning."""
        await replacer.replace_pod(_dev_pod())
        _serve_existing(kube, created[0])
        kube.apps.read_namespaced_deployment.return_value = make_deployment(replicas=2)
        kube.apps.patch_namespaced_deployment.side_effect = api_error(500)

        outcome = await replacer.replace_pod(_dev_pod())

        assert outcome is ReplaceOutcome.NO_CHANGES

    @pytest.mark.asyncio
    async def test_changed_dev_pod_patches_replacement(self, kube, replacer, created) -> None:
        """Test that a changed declaration patches the template and hash."""
        await replacer.replace_pod(_dev_pod())
        _serve_existing(kube, created[0])
        changed = _dev_pod(image="dev/api:v2")

        outcome = await replacer.replace_pod(changed)

        assert outcome is ReplaceOutcome.PATCHED
        name, namespace, patch = kube.apps.patch_namespaced_replica_set.call_args.args
        assert (name, namespace) == ("api-deploy-devspace", "default")
        assert patch["metadata"]["annotations"] == {
            DEV_POD_CONFIG_HASH_ANNOTATION: hash_config(changed)
        }
        containers = patch["spec"]["template"]["spec"]["containers"]
        assert containers[0]["image"] == "dev/api:v2"
        assert "replicas" not in patch["spec"]
        assert len(created) == 1

    @pytest.mark.asyncio
    async def test_missing_replacement_is_recreated(self, kube, cache, replacer, created) -> None:
        """Test that a cached but deleted replacement is created again."""
        await replacer.replace_pod(_dev_pod())
        kube.apps.list_namespaced_deployment.return_value = object_list(_scaled_deployment())

        outcome = await replacer.replace_pod(_dev_pod())

        assert outcome is ReplaceOutcome.CREATED
        assert len(created) == 2
        assert cache.get_dev_pod("api").replica_set == "api-deploy-devspace"

    @pytest.mark.asyncio
    async def test_unannotated_replacement_is_recreated(self, kube, replacer, created) -> None:
        """Test that a replacement without target annotations is rebuilt."""
        await replacer.replace_pod(_dev_pod())
        stripped = copy.deepcopy(created[0])
        stripped.metadata.annotations = {}
        _serve_existing(kube, stripped)
        kube.apps.list_namespaced_deployment.return_value = object_list(_scaled_deployment())

        outcome = await replacer.replace_pod(_dev_pod())

        assert outcome is ReplaceOutcome.CREATED
        kube.apps.delete_namespaced_replica_set.assert_called_once_with(
            "api-deploy-devspace", "default"
        )

    @pytest.mark.asyncio
    async def test_missing_target_recreates_replacement(self, kube, replacer, created) -> None:
        """Test that a replacement whose target vanished is rebuilt."""
        await replacer.replace_pod(_dev_pod())
        _serve_existing(kube, created[0])
        kube.apps.read_namespaced_deployment.side_effect = api_error(404)
        kube.apps.list_namespaced_deployment.return_value = object_list(
            make_deployment(name="api-v2")
        )

        outcome = await replacer.replace_pod(_dev_pod())

        assert outcome is ReplaceOutcome.CREATED
        kube.apps.delete_namespaced_replica_set.assert_called_once()
        assert created[-1].metadata.name == "api-v2-devspace"

    @pytest.mark.asyncio
    async def test_unsupported_target_kind_recreates_replacement(
        self, kube, replacer, created
    ) -> None:
        """Test that a replacement naming an unknown target kind is rebuilt."""
        await replacer.replace_pod(_dev_pod())
        corrupted = copy.deepcopy(created[0])
        corrupted.metadata.annotations = {
            **corrupted.metadata.annotations,
            TARGET_KIND_ANNOTATION: "DaemonSet",
        }
        _serve_existing(kube, corrupted)
        kube.apps.list_namespaced_deployment.return_value = object_list(_scaled_deployment())

        outcome = await replacer.replace_pod(_dev_pod())

        assert outcome is ReplaceOutcome.CREATED
        kube.apps.delete_namespaced_replica_set.assert_called_once_with(
            "api-deploy-devspace", "default"
        )
        assert len(created) == 2

    @pytest.mark.asyncio
    async def test_patch_provisions_added_claim(self, kube, cache, replacer, created) -> None:
        """Test that persisted paths added by an update get their claim."""
        await replacer.replace_pod(_dev_pod())
        _serve_existing(kube, created[0])
        kube.core.create_namespaced_persistent_volume_claim.assert_not_called()

        outcome = await replacer.replace_pod(
            _dev_pod(containers=[{"image": "dev/api:latest", "persistPaths": [{"path": "/data"}]}])
        )

        assert outcome is ReplaceOutcome.PATCHED
        namespace, claim = kube.core.create_namespaced_persistent_volume_claim.call_args.args
        assert (namespace, claim.metadata.name) == ("default", "api-deploy-devspace")
        assert claim.metadata.owner_references[0].uid == "api-deploy-devspace-uid"
        assert cache.get_dev_pod("api").persistent_volume_claim == "api-deploy-devspace"

    @pytest.mark.asyncio
    async def test_namespace_change_reverts_previous_replacement(
        self, kube, cache, replacer, created
    ) -> None:
        """Test that a replacement left in another namespace is undone first."""
        cache.set_dev_pod(
            "api",
            DevPodCache(
                name="api",
                namespace="other",
                target_kind="Deployment",
                target_name="api-deploy",
                replica_set="api-deploy-devspace",
            ),
        )
        kube.apps.read_namespaced_deployment.return_value = make_deployment(
            namespace="other", replicas=0, annotations={REPLICAS_ANNOTATION: "2"}
        )

        outcome = await replacer.replace_pod(_dev_pod())

        assert outcome is ReplaceOutcome.CREATED
        kube.apps.read_namespaced_deployment.assert_called_once_with("api-deploy", "other")
        restore = kube.apps.patch_namespaced_deployment.call_args_list[0]
        assert restore.args[:2] == ("api-deploy", "other")
        assert restore.args[2]["spec"] == {"replicas": 2}
        kube.apps.delete_namespaced_replica_set.assert_called_once_with(
            "api-deploy-devspace", "other"
        )
        kube.apps.read_namespaced_replica_set.assert_not_called()
        assert cache.get_dev_pod("api").namespace == "default"

    @pytest.mark.asyncio
    async def test_create_conflict_retries_once(self, kube, replacer, created) -> None:
        """Test that a concurrently created replacement is picked up."""
        create = kube.apps.create_namespaced_replica_set.side_effect

        def conflicting_create(namespace, body):
            create(namespace, body)
            _serve_existing(kube, body)
            raise api_error(409)

        kube.apps.create_namespaced_replica_set.side_effect = conflicting_create

        outcome = await replacer.replace_pod(_dev_pod())

        assert outcome is ReplaceOutcome.NO_CHANGES
        assert kube.apps.create_namespaced_replica_set.call_count == 1

    @pytest.mark.asyncio
    async def test_create_conflict_retry_cap(self, kube, replacer, created) -> None:
        """Test that persistent conflicts stop after the configured attempts."""
        kube.apps.create_namespaced_replica_set.side_effect = api_error(409)

        with pytest.raises(ReplaceConflictError) as exc_info:
            await replacer.replace_pod(_dev_pod())

        assert exc_info.value.details["attempts"] == 2
        assert exc_info.value.retryable is True
        assert kube.apps.create_namespaced_replica_set.call_count == 2

    @pytest.mark.asyncio
    async def test_persisted_paths_create_claim(self, kube, cache, replacer, created) -> None:
        """Test the claim is created for the replacement and recorded."""
        dev_pod = DevPod.model_validate(
            {"name": "api", "containers": [{"persistPaths": [{"path": "/data"}]}]}
        )

        await replacer.replace_pod(dev_pod)

        namespace, claim = kube.core.create_namespaced_persistent_volume_claim.call_args.args
        assert claim.metadata.name == "api-deploy-devspace"
        assert claim.metadata.owner_references[0].uid == "api-deploy-devspace-uid"
        entry = cache.get_dev_pod("api")
        assert entry.persistent_volume_claim == "api-deploy-devspace"
        assert entry.retain_persistent_volume_claim is False

    @pytest.mark.asyncio
    async def test_explicit_claim_is_retained(self, kube, cache, replacer, created) -> None:
        """Test that an explicitly named claim is marked as retained."""
        dev_pod = DevPod.model_validate(
            {
                "name": "api",
                "containers": [{"persistPaths": [{"path": "/data"}]}],
                "persistenceOptions": {"name": "api-data"},
            }
        )

        await replacer.replace_pod(dev_pod)

        entry = cache.get_dev_pod("api")
        assert entry.persistent_volume_claim == "api-data"
        assert entry.retain_persistent_volume_claim is True


class TestRevertReplacePod:
    """Tests for PodReplacer.revert_replace_pod."""

    @pytest.fixture
    def entry(self, cache) -> DevPodCache:
        cached = DevPodCache(
            name="api",
            namespace="default",
            target_kind="Deployment",
            target_name="api-deploy",
            replica_set="api-deploy-devspace",
            persistent_volume_claim="api-deploy-devspace",
        )
        cache.set_dev_pod("api", cached)
        return cached

    @pytest.mark.asyncio
    async def test_nothing_cached(self, replacer) -> None:
        """Test that a missing entry is reported as not reverted."""
        assert await replacer.revert_replace_pod(None) is False

    @pytest.mark.asyncio
    async def test_full_revert(self, kube, cache, replacer, entry) -> None:
        """Test scale up, replacement and claim deletion, cache cleanup."""
        kube.apps.read_namespaced_deployment.return_value = _scaled_deployment()

        assert await replacer.revert_replace_pod(entry) is True

        scale_patch = kube.apps.patch_namespaced_deployment.call_args.args[2]
        assert scale_patch["spec"] == {"replicas": 3}
        kube.apps.delete_namespaced_replica_set.assert_called_once_with(
            "api-deploy-devspace", "default"
        )
        kube.core.delete_namespaced_persistent_volume_claim.assert_called_once_with(
            "api-deploy-devspace", "default"
        )
        assert cache.get_dev_pod("api") is None
        kube.core.replace_namespaced_secret.assert_called()

    @pytest.mark.asyncio
    async def test_retained_claim_is_kept(self, kube, replacer, entry) -> None:
        """Test that retained claims survive the revert."""
        kube.apps.read_namespaced_deployment.return_value = _scaled_deployment()
        entry.retain_persistent_volume_claim = True

        await replacer.revert_replace_pod(entry)

        kube.core.delete_namespaced_persistent_volume_claim.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_target_still_cleans_up(self, kube, cache, replacer, entry) -> None:
        """Test that a vanished target does not block the revert."""
        kube.apps.read_namespaced_deployment.side_effect = api_error(404)

        assert await replacer.revert_replace_pod(entry) is True

        kube.apps.patch_namespaced_deployment.assert_not_called()
        kube.apps.delete_namespaced_replica_set.assert_called_once()
        assert cache.get_dev_pod("api") is None

    @pytest.mark.asyncio
    async def test_scale_state_error_stops_revert(self, kube, cache, replacer, entry) -> None:
        """Test that nothing is deleted when the target cannot be restored."""
        kube.apps.read_namespaced_deployment.return_value = make_deployment(replicas=0)

        with pytest.raises(ScaleStateError):
            await replacer.revert_replace_pod(entry)

        kube.apps.delete_namespaced_replica_set.assert_not_called()
        kube.core.delete_namespaced_persistent_volume_claim.assert_not_called()
        assert cache.get_dev_pod("api") is not None

    @pytest.mark.asyncio
    async def test_target_never_scaled_down_is_left_alone(
        self, kube, cache, replacer, entry
    ) -> None:
        """Test revert of a pass that stopped before the scale-down."""
        kube.apps.read_namespaced_deployment.return_value = make_deployment(replicas=3)

        assert await replacer.revert_replace_pod(entry) is True

        kube.apps.patch_namespaced_deployment.assert_not_called()
        kube.apps.delete_namespaced_replica_set.assert_called_once()
        assert cache.get_dev_pod("api") is None

    @pytest.mark.asyncio
    async def test_already_deleted_objects_are_ignored(self, kube, replacer, entry) -> None:
        """Test that not-found deletes count as done."""
        kube.apps.read_namespaced_deployment.return_value = _scaled_deployment()
        kube.apps.delete_namespaced_replica_set.side_effect = api_error(404)
        kube.core.delete_namespaced_persistent_volume_claim.side_effect = api_error(404)

        assert await replacer.revert_replace_pod(entry) is True

    @pytest.mark.asyncio
    async def test_revert_all(self, kube, cache, replacer, entry) -> None:
        """Test that every cached dev pod is reverted."""
        cache.set_dev_pod(
            "web",
            DevPodCache(name="web", namespace="default", replica_set="web-devspace"),
        )
        kube.apps.read_namespaced_deployment.return_value = _scaled_deployment()

        reverted = await replacer.revert_all()

        assert sorted(reverted) == ["api", "web"]
        assert cache.list_dev_pods() == []
        assert kube.apps.delete_namespaced_replica_set.call_count == 2


def test_outcome_values() -> None:
    """Test the outcome wire values."""
    assert [o.value for o in ReplaceOutcome] == ["no_changes", "patched", "created"]
