"""Pydantic model for the persisted dev pod cache entry."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class DevPodCache(BaseModel):
    """What this controller has done for one dev pod.

    If ``replica_set`` is set, a replacement with that name is expected to
    exist in ``namespace``. Its absence is recoverable: the next replace pass
    recreates it.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(description="Name of the dev pod")
    namespace: str = Field(description="Namespace of the target and replacement")
    target_kind: str = Field(default="", alias="targetKind")
    target_name: str = Field(default="", alias="targetName")
    replica_set: str = Field(default="", alias="replicaSet")
    persistent_volume_claim: str = Field(default="", alias="persistentVolumeClaim")
    retain_persistent_volume_claim: bool = Field(
        default=False,
        alias="retainPersistentVolumeClaim",
    )


__all__ = ["DevPodCache"]
