"""Annotations, labels and names shared with other dev tooling.

These values are visible on cluster objects and must not change.
"""

# Stored on the replacement replica set
TARGET_KIND_ANNOTATION = "devspace.sh/parent-kind"
TARGET_NAME_ANNOTATION = "devspace.sh/parent-name"
DEV_POD_CONFIG_HASH_ANNOTATION = "devspace.sh/config-hash"

# Stored on the target workload
REPLICAS_ANNOTATION = "devspace.sh/replicas"

REPLICA_SET_LABEL = "devspace.sh/replaced"
REPLICA_SET_LABEL_VALUE = "true"

REPLICA_SET_SUFFIX = "-devspace"

PERSISTENCE_VOLUME_NAME = "devspace-persistence"

DEFAULT_SELECTOR_LABEL = "app.kubernetes.io/name"


def replica_set_name(target_name: str) -> str:
    """Name of the replacement for a target workload."""
    return f"{target_name}{REPLICA_SET_SUFFIX}"
