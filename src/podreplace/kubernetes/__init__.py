"""podreplace Kubernetes package.

Kubernetes API access, merge patches and the replaceable workload kinds.
"""

from podreplace.kubernetes.client import HTTP_CONFLICT, HTTP_NOT_FOUND, KubeClient
from podreplace.kubernetes.workloads import (
    WORKLOAD_TYPES,
    Workload,
    WorkloadType,
    get_workload_type,
)


__all__ = [
    "HTTP_CONFLICT",
    "HTTP_NOT_FOUND",
    "WORKLOAD_TYPES",
    "KubeClient",
    "Workload",
    "WorkloadType",
    "get_workload_type",
]
