"""podreplace - dev pod replacement reconciler.

Replaces the pods of an existing Deployment, StatefulSet or ReplicaSet with a
developer-controlled single-replica ReplicaSet and restores the original
workload on revert.
"""

from podreplace.version import __version__


__all__ = ["__version__"]
