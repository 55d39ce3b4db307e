"""Structured errors for pod replacement workflows."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from kubernetes.client.rest import ApiException


class ReplaceError(RuntimeError):
    """Structured exception for replace and revert failures."""

    default_code = "replace_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        phase: str = "replace",
        retryable: bool = False,
        details: dict[str, Any] | None = None,
        timestamp: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.phase = phase
        self.message = message
        self.retryable = retryable
        self.details = details or {}
        self.timestamp = timestamp or datetime.now(UTC).isoformat()

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for logs and the command line."""
        return {
            "code": self.code,
            "phase": self.phase,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        """Serialize the error as a compact JSON string."""
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=True)


class KubernetesOperationError(ReplaceError):
    """A Kubernetes API call failed for a reason other than the expected ones."""

    default_code = "kubernetes_error"

    def __init__(self, message: str, *, status: int | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.status = status

    @classmethod
    def from_exception(
        cls,
        operation: str,
        error: ApiException,
        *,
        kind: str,
        name: str,
        namespace: str,
        phase: str = "replace",
    ) -> KubernetesOperationError:
        """Wrap an API exception with the operation and object it concerned."""
        reason = error.reason or "unknown"
        return cls(
            f"{operation} {kind} {namespace}/{name}: {reason}",
            status=error.status,
            phase=phase,
            retryable=error.status is None or error.status >= 500,
            details={
                "operation": operation,
                "kind": kind,
                "name": name,
                "namespace": namespace,
                "status": error.status,
                "reason": reason,
            },
        )


class TargetNotFoundError(ReplaceError):
    """The workload referenced by kind and name does not exist."""

    default_code = "target_not_found"

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        super().__init__(
            f"{kind} {namespace}/{name} not found",
            phase="resolve_target",
            details={"kind": kind, "name": name, "namespace": namespace},
        )
        self.kind = kind
        self.name = name
        self.namespace = namespace


class NoMatchingTargetError(ReplaceError):
    """No workload matches the dev pod's label selector."""

    default_code = "no_matching_target"

    def __init__(self, dev_pod: str, namespace: str, selector: str) -> None:
        super().__init__(
            f"couldn't find a matching deployment, statefulset or replica set for dev pod "
            f"{dev_pod} in namespace {namespace} (selector {selector})",
            phase="resolve_target",
            details={"dev_pod": dev_pod, "namespace": namespace, "selector": selector},
        )


class UnsupportedKindError(ReplaceError):
    """The workload kind cannot be replaced."""

    default_code = "unsupported_kind"

    def __init__(self, kind: str) -> None:
        super().__init__(
            f"unsupported workload kind {kind!r}",
            phase="resolve_target",
            details={"kind": kind},
        )


class ScaleStateError(ReplaceError):
    """The stored replica count on a target is missing or malformed."""

    default_code = "scale_state_invalid"

    def __init__(self, kind: str, namespace: str, name: str, value: str | None) -> None:
        problem = "missing" if value is None else f"invalid ({value!r})"
        super().__init__(
            f"cannot scale up {kind} {namespace}/{name}: stored replica count is {problem}",
            phase="scale_up",
            details={"kind": kind, "name": name, "namespace": namespace, "value": value},
        )


class ReplaceConflictError(ReplaceError):
    """The replacement kept colliding with a concurrently created one."""

    default_code = "replace_conflict"

    def __init__(self, dev_pod: str, replica_set: str, attempts: int) -> None:
        super().__init__(
            f"replica set {replica_set} for dev pod {dev_pod} still conflicts "
            f"after {attempts} attempts",
            phase="create_replica_set",
            retryable=True,
            details={"dev_pod": dev_pod, "replica_set": replica_set, "attempts": attempts},
        )


class PVCTerminationTimeoutError(ReplaceError):
    """A stale volume claim did not terminate in time."""

    default_code = "pvc_termination_timeout"

    def __init__(self, namespace: str, name: str, timeout: float) -> None:
        super().__init__(
            f"waiting for persistent volume claim {namespace}/{name} to terminate "
            f"timed out after {timeout:g}s",
            phase="ensure_pvc",
            retryable=True,
            details={"name": name, "namespace": namespace, "timeout": timeout},
        )


class ConfigHashError(ReplaceError):
    """The dev pod declaration could not be serialized for hashing."""

    default_code = "config_hash_failed"


def ensure_replace_error(
    error: Exception,
    *,
    code: str = "replace_unexpected_error",
    phase: str = "replace",
    details: dict[str, Any] | None = None,
) -> ReplaceError:
    """Normalize unknown exceptions into a structured replace error."""
    if isinstance(error, ReplaceError):
        return error

    merged_details = dict(details or {})
    merged_details.setdefault("exception_type", type(error).__name__)

    return ReplaceError(
        str(error) or "Unknown replace error",
        code=code,
        phase=phase,
        details=merged_details,
    )


__all__ = [
    "ConfigHashError",
    "KubernetesOperationError",
    "NoMatchingTargetError",
    "PVCTerminationTimeoutError",
    "ReplaceConflictError",
    "ReplaceError",
    "ScaleStateError",
    "TargetNotFoundError",
    "UnsupportedKindError",
    "ensure_replace_error",
]
