"""Pytest configuration and fixtures for podreplace tests."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest
from kubernetes import client

from factories import object_list

if TYPE_CHECKING:
    from collections.abc import Generator

    from podreplace.kubernetes import KubeClient


# Ensure we're using test configuration
os.environ.setdefault("PODREPLACE_OBSERVABILITY_LOG_LEVEL", "DEBUG")
os.environ.setdefault("PODREPLACE_K8S_NAMESPACE", "default")


@pytest.fixture(autouse=True)
def reset_settings() -> Generator[None, None, None]:
    """Reset settings cache before each test."""
    from podreplace.config.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def kube() -> Generator[KubeClient, None, None]:
    """KubeClient whose typed APIs are mocks.

    Calls still go through ``KubeClient.call`` so they run in a worker thread
    exactly as they do against a cluster.
    """
    from podreplace.kubernetes import KubeClient

    kube_client = KubeClient(api_client=client.ApiClient(), namespace="default")
    kube_client.core = MagicMock()
    kube_client.apps = MagicMock()
    kube_client.apps.list_namespaced_deployment.return_value = object_list()
    kube_client.apps.list_namespaced_stateful_set.return_value = object_list()
    kube_client.apps.list_namespaced_replica_set.return_value = object_list()
    yield kube_client
    kube_client.close()


@pytest.fixture
def fast_replace_settings():
    """Replace settings with a short claim termination wait."""
    from podreplace.config.settings import ReplaceSettings

    return ReplaceSettings(pvc_termination_timeout=0.2, pvc_poll_interval=0.01)
