"""Unit tests for podreplace configuration settings."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from podreplace.config.settings import (
    KubernetesSettings,
    ReplaceSettings,
    Settings,
    get_settings,
    reload_settings,
)


class TestReplaceSettings:
    """Tests for the replace settings section."""

    def test_defaults(self) -> None:
        """Test default replace settings."""
        settings = ReplaceSettings()

        assert settings.pvc_termination_timeout == 120.0
        assert settings.pvc_poll_interval == 1.0
        assert settings.max_create_attempts == 2
        assert settings.rescale_on_noop is True
        assert settings.cache_secret_name == "devspace-cache"

    def test_from_env(self) -> None:
        """Test replace settings from environment variables."""
        with patch.dict(
            os.environ,
            {
                "PODREPLACE_REPLACE_MAX_CREATE_ATTEMPTS": "3",
                "PODREPLACE_REPLACE_RESCALE_ON_NOOP": "false",
            },
        ):
            settings = ReplaceSettings()

            assert settings.max_create_attempts == 3
            assert settings.rescale_on_noop is False

    def test_attempts_bounds(self) -> None:
        """Test that create attempts are validated."""
        with pytest.raises(ValidationError):
            ReplaceSettings(max_create_attempts=0)

    def test_poll_interval_within_timeout(self) -> None:
        """Test that the poll interval cannot exceed the timeout."""
        with pytest.raises(ValidationError):
            ReplaceSettings(pvc_termination_timeout=1.0, pvc_poll_interval=5.0)


class TestKubernetesSettings:
    """Tests for the Kubernetes settings section."""

    def test_kubeconfig_home_is_expanded(self) -> None:
        """Test that a leading ~ is expanded."""
        settings = KubernetesSettings(kubeconfig="~/.kube/dev")

        assert not settings.kubeconfig.startswith("~")
        assert settings.kubeconfig.endswith("/.kube/dev")


class TestSettings:
    """Tests for the main Settings class."""

    def test_nested_sections(self) -> None:
        """Test that every section is present."""
        settings = Settings()

        assert settings.kubernetes.namespace == "default"
        assert settings.observability.metrics_namespace == "podreplace"
        assert settings.replace.max_create_attempts == 2

    def test_get_settings_is_cached(self) -> None:
        """Test that settings are cached."""
        assert get_settings() is get_settings()

    def test_reload_settings(self) -> None:
        """Test that reload picks up environment changes."""
        first = get_settings()
        with patch.dict(os.environ, {"PODREPLACE_REPLACE_CACHE_SECRET_NAME": "my-cache"}):
            reloaded = reload_settings()

            assert reloaded is not first
            assert reloaded.replace.cache_secret_name == "my-cache"
