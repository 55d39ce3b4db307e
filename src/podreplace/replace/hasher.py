"""Deterministic hash of a dev pod declaration."""

from __future__ import annotations

import hashlib
import json

from pydantic_core import PydanticSerializationError

from podreplace.errors import ConfigHashError
from podreplace.models import DevPod


def hash_config(dev_pod: DevPod) -> str:
    """Hash every field of a dev pod that can change the replacement.

    The declaration is serialized with its wire aliases and sorted keys, so
    the digest does not depend on how the model was constructed.

    Raises:
        ConfigHashError: If the declaration cannot be serialized
    """
    try:
        data = dev_pod.model_dump(mode="json", by_alias=True)
        encoded = json.dumps(data, sort_keys=True, separators=(",", ":"))
    except (PydanticSerializationError, TypeError, ValueError) as e:
        msg = f"hash config of dev pod {dev_pod.name}: {e}"
        raise ConfigHashError(msg, phase="hash_config") from e
    return hashlib.sha256(encoded.encode()).hexdigest()


__all__ = ["hash_config"]
