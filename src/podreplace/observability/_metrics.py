"""podreplace Prometheus metrics.

Metrics go to the default registry unless exporting is disabled, in which
case they are still recorded in a private registry so code can update them
unconditionally.
"""

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

from podreplace.config.settings import get_settings


_observability = get_settings().observability
_namespace = _observability.metrics_namespace

registry = REGISTRY if _observability.prometheus_enabled else CollectorRegistry()


# ============================================================================
# Replace and revert
# ============================================================================

replacements_total = Counter(
    name="replacements_total",
    documentation="Total number of replace passes by outcome",
    labelnames=["outcome"],
    registry=registry,
    namespace=_namespace,
)

reverts_total = Counter(
    name="reverts_total",
    documentation="Total number of revert passes by result",
    labelnames=["result"],
    registry=registry,
    namespace=_namespace,
)

scale_operations_total = Counter(
    name="scale_operations_total",
    documentation="Total number of target workload scale patches",
    labelnames=["direction", "kind"],
    registry=registry,
    namespace=_namespace,
)

pvc_operations_total = Counter(
    name="pvc_operations_total",
    documentation="Total number of persistent volume claim operations",
    labelnames=["action"],
    registry=registry,
    namespace=_namespace,
)


# ============================================================================
# Durations
# ============================================================================

replace_duration_seconds = Histogram(
    name="replace_duration_seconds",
    documentation="Time taken by a replace pass",
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
    registry=registry,
    namespace=_namespace,
)


__all__ = [
    "pvc_operations_total",
    "registry",
    "replace_duration_seconds",
    "replacements_total",
    "reverts_total",
    "scale_operations_total",
]
