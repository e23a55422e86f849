"""Evidence hashing, production and export."""

from policy_gate.evidence.hashing import canonical_json, hash_diff, hash_file_list, sha256_hex
from policy_gate.evidence.producer import (
    EvidenceProducer,
    EvidenceStore,
    InMemoryEvidenceStore,
    export_bundle,
)

__all__ = [
    "EvidenceProducer",
    "EvidenceStore",
    "InMemoryEvidenceStore",
    "canonical_json",
    "export_bundle",
    "hash_diff",
    "hash_file_list",
    "sha256_hex",
]
