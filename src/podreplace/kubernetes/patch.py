"""Merge patch and semantic comparison helpers for Kubernetes objects.

Objects are compared and diffed in their serialized (camelCase, ``None``
dropped) form, which is what the API server receives.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from kubernetes import client


MERGE_PATCH_CONTENT_TYPE = "application/merge-patch+json"


@lru_cache(maxsize=1)
def _serializer() -> client.ApiClient:
    return client.ApiClient()


def to_dict(obj: Any) -> Any:
    """Serialize a Kubernetes model (or plain structure) to JSON-ready data."""
    return _serializer().sanitize_for_serialization(obj)


def create_merge_patch(original: Any, modified: Any) -> dict[str, Any]:
    """Compute a JSON merge patch (RFC 7386) turning ``original`` into ``modified``.

    Removed keys become ``None``; lists are replaced as a whole.
    """
    if not isinstance(original, dict) or not isinstance(modified, dict):
        msg = "merge patches can only be computed between two objects"
        raise TypeError(msg)

    patch: dict[str, Any] = {}
    for key in original.keys() - modified.keys():
        patch[key] = None
    for key, value in modified.items():
        if key not in original:
            patch[key] = value
            continue
        old = original[key]
        if old == value:
            continue
        if isinstance(old, dict) and isinstance(value, dict):
            nested = create_merge_patch(old, value)
            if nested:
                patch[key] = nested
        else:
            patch[key] = value
    return patch


def semantic_equal(desired: Any, live: Any) -> bool:
    """Whether ``live`` carries every value set in ``desired``.

    Keys present only in ``live`` are treated as server-side defaults and
    ignored. Lists must have the same length and match element by element.
    """
    if isinstance(desired, dict):
        if not isinstance(live, dict):
            return False
        return all(
            semantic_equal(value, live.get(key))
            for key, value in desired.items()
            if value is not None
        )
    if isinstance(desired, list):
        if not isinstance(live, list) or len(desired) != len(live):
            return False
        return all(
            semantic_equal(wanted, actual)
            for wanted, actual in zip(desired, live, strict=True)
        )
    return desired == live


__all__ = [
    "MERGE_PATCH_CONTENT_TYPE",
    "create_merge_patch",
    "semantic_equal",
    "to_dict",
]
