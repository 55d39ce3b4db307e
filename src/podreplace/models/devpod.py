"""Pydantic models for dev pod declarations.

A dev pod names a workload through a label selector and describes how the
pod template of its replacement differs from the original: container
overrides and paths that should be persisted in a volume claim.
"""

from __future__ import annotations

from collections.abc import Iterator

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_PVC_SIZE = "10Gi"
DEFAULT_ACCESS_MODES = ("ReadWriteOnce",)


class PersistentPath(BaseModel):
    """A container path backed by the replacement's volume claim."""

    model_config = ConfigDict(populate_by_name=True)

    path: str = Field(description="Absolute path inside the container")
    volume_path: str | None = Field(
        default=None,
        alias="volumePath",
        description="Sub path inside the claim (derived from path if unset)",
    )
    read_only: bool = Field(default=False, alias="readOnly")

    @property
    def sub_path(self) -> str:
        """Sub path used for the volume mount."""
        if self.volume_path:
            return self.volume_path
        return self.path.strip("/").replace("/", "-") or "root"


class DevContainer(BaseModel):
    """Overrides for a single container of the replaced pod."""

    model_config = ConfigDict(populate_by_name=True)

    container: str | None = Field(
        default=None,
        description="Container to patch (first container if unset)",
    )
    image: str | None = Field(default=None, description="Replacement image")
    command: list[str] | None = Field(default=None, description="Entrypoint override")
    args: list[str] | None = Field(default=None, description="Arguments override")
    working_dir: str | None = Field(default=None, alias="workingDir")
    env: dict[str, str] = Field(default_factory=dict, description="Extra environment")
    persist_paths: list[PersistentPath] = Field(
        default_factory=list,
        alias="persistPaths",
        description="Paths stored in the replacement's volume claim",
    )


class PersistenceOptions(BaseModel):
    """Options for the volume claim created for persisted paths."""

    model_config = ConfigDict(populate_by_name=True)

    size: str | None = Field(default=None, description=f"Claim size (default {DEFAULT_PVC_SIZE})")
    storage_class_name: str | None = Field(default=None, alias="storageClassName")
    access_modes: list[str] | None = Field(default=None, alias="accessModes")
    name: str | None = Field(
        default=None,
        description="Explicit claim name; an existing claim with this name is reused",
    )
    retain: bool | None = Field(
        default=None,
        description="Keep the claim on revert (defaults to True when name is set)",
    )


class DevPod(BaseModel):
    """Declaration of a dev pod replacing the pods of an existing workload."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(description="Name of the dev pod")
    namespace: str | None = Field(
        default=None,
        description="Namespace of the target (active namespace if unset)",
    )
    label_selector: dict[str, str] = Field(
        default_factory=dict,
        alias="labelSelector",
        description="Labels identifying the target workload's pods",
    )
    containers: list[DevContainer] = Field(default_factory=list)
    persistence_options: PersistenceOptions | None = Field(
        default=None,
        alias="persistenceOptions",
    )

    def dev_containers(self) -> Iterator[DevContainer]:
        """Iterate over the dev container descriptors."""
        yield from self.containers

    @property
    def has_persist_paths(self) -> bool:
        """Whether any dev container requests persisted paths."""
        return any(container.persist_paths for container in self.dev_containers())

    @property
    def retain_pvc(self) -> bool:
        """Whether revert should keep the volume claim."""
        options = self.persistence_options
        if options is None:
            return False
        if options.retain is not None:
            return options.retain
        return bool(options.name)


__all__ = [
    "DEFAULT_ACCESS_MODES",
    "DEFAULT_PVC_SIZE",
    "DevContainer",
    "DevPod",
    "PersistenceOptions",
    "PersistentPath",
]
