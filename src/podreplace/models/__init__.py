"""podreplace models package.

Dev pod declarations and the persisted cache entry.
"""

from podreplace.models.cache import DevPodCache
from podreplace.models.devpod import (
    DEFAULT_ACCESS_MODES,
    DEFAULT_PVC_SIZE,
    DevContainer,
    DevPod,
    PersistenceOptions,
    PersistentPath,
)


__all__ = [
    "DEFAULT_ACCESS_MODES",
    "DEFAULT_PVC_SIZE",
    "DevContainer",
    "DevPod",
    "DevPodCache",
    "PersistenceOptions",
    "PersistentPath",
]
