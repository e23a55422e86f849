"""Policy loading, resolution and evaluation."""

from policy_gate.policy.evaluator import Evaluator, path_scope_matches
from policy_gate.policy.resolver import PolicyResolver, default_policy_pack
from policy_gate.policy.source import (
    PolicyValidationResult,
    build_policy_pack,
    compute_checksum,
    parse_policy_source,
    validate_policy_source,
)
from policy_gate.policy.store import CachedPolicyStore, InMemoryPolicyStore, PolicyStore

__all__ = [
    "CachedPolicyStore",
    "Evaluator",
    "InMemoryPolicyStore",
    "PolicyResolver",
    "PolicyStore",
    "PolicyValidationResult",
    "build_policy_pack",
    "compute_checksum",
    "default_policy_pack",
    "parse_policy_source",
    "path_scope_matches",
    "validate_policy_source",
]
