"""podreplace replace package.

Target resolution, replacement building, scaling, volume claims and the
reconciliation engine tying them together.
"""

from podreplace.replace.builder import build_replica_set, claim_name_for
from podreplace.replace.hasher import hash_config
from podreplace.replace.pvc import VolumeClaimProvisioner, build_pvc
from podreplace.replace.replacer import PodReplacer, ReplaceOutcome
from podreplace.replace.scale import ScaleController, parse_replicas
from podreplace.replace.target import TargetResolver, format_selector


__all__ = [
    "PodReplacer",
    "ReplaceOutcome",
    "ScaleController",
    "TargetResolver",
    "VolumeClaimProvisioner",
    "build_pvc",
    "build_replica_set",
    "claim_name_for",
    "format_selector",
    "hash_config",
    "parse_replicas",
]
