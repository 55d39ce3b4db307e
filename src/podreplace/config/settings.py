"""podreplace settings.

Every section reads ``PODREPLACE_<SECTION>_*`` environment variables; the
top-level ``Settings`` also reads a ``.env`` file with ``__`` as the nested
delimiter (``PODREPLACE_REPLACE__MAX_CREATE_ATTEMPTS=3``).
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from podreplace.version import __version__


class KubernetesSettings(BaseSettings):
    """Kubernetes configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PODREPLACE_K8S_",
        extra="ignore",
    )

    in_cluster: bool = Field(
        default=False,
        description="Whether running inside a Kubernetes cluster",
    )
    kubeconfig: str | None = Field(
        default=None,
        description="Path to kubeconfig file (if not in-cluster)",
    )
    context: str | None = Field(
        default=None,
        description="Kubernetes context to use",
    )
    namespace: str | None = Field(
        default=None,
        description="Namespace override (None = namespace of the active context)",
    )

    @field_validator("kubeconfig", mode="after")
    @classmethod
    def expand_kubeconfig(cls, v: str | None) -> str | None:
        """Expand ``~`` so the path can be handed to the client as is."""
        return str(Path(v).expanduser()) if v else None


class ReplaceSettings(BaseSettings):
    """Pod replacement configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PODREPLACE_REPLACE_",
        extra="ignore",
    )

    pvc_termination_timeout: float = Field(
        default=120.0,
        gt=0,
        description="Seconds to wait for a stale persistent volume claim to terminate",
    )
    pvc_poll_interval: float = Field(
        default=1.0,
        gt=0,
        description="Seconds between checks while waiting for claim termination",
    )
    max_create_attempts: int = Field(
        default=2,
        ge=1,
        le=5,
        description="Replace passes attempted when the replica set create conflicts",
    )
    rescale_on_noop: bool = Field(
        default=True,
        description="Scale the target back down when an unchanged replacement is found",
    )
    cache_secret_name: str = Field(
        default="devspace-cache",
        description="Name of the secret holding the dev pod cache",
    )

    @field_validator("pvc_poll_interval", mode="after")
    @classmethod
    def validate_poll_interval(cls, v: float, info) -> float:
        """Ensure at least one poll fits into the termination timeout."""
        timeout = info.data.get("pvc_termination_timeout")
        if timeout is not None and v > timeout:
            msg = f"pvc_poll_interval ({v}) must not exceed pvc_termination_timeout ({timeout})"
            raise ValueError(msg)
        return v


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PODREPLACE_OBSERVABILITY_",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format",
    )
    prometheus_enabled: bool = Field(
        default=True,
        description="Register metrics in the default Prometheus registry",
    )
    metrics_namespace: str = Field(
        default="podreplace",
        description="Prefix for all exported metric names",
    )


class Settings(BaseSettings):
    """Main podreplace configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PODREPLACE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    version: str = Field(default=__version__)

    kubernetes: KubernetesSettings = Field(default_factory=KubernetesSettings)
    replace: ReplaceSettings = Field(default_factory=ReplaceSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache
def get_settings() -> Settings:
    """Settings loaded once from the environment and ``.env``."""
    return Settings()


def reload_settings() -> Settings:
    """Drop the cached settings and read the environment again."""
    get_settings.cache_clear()
    return get_settings()
