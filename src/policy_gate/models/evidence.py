"""Evidence bundle models: the write-once audit trail of a decision."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from policy_gate.models.evaluation import EvaluationResult
from policy_gate.models.findings import Finding
from policy_gate.models.policy import PolicySnapshot

EXPORT_SCHEMA_VERSION = "1.0.0"


class ResourceKind(Enum):
    """Kind of decision an evidence bundle is linked to."""

    REVIEW = "review"
    TEST = "test"
    DOC = "doc"


@dataclass(frozen=True)
class LinkedResource:
    """The review, test run or doc sync a bundle proves."""

    kind: ResourceKind
    id: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "id": self.id}


@dataclass(frozen=True)
class EvidenceInputs:
    """Hashes and context describing what was evaluated."""

    diff_hash: str | None = None
    file_list_hash: str | None = None
    commit_sha: str | None = None
    branch: str | None = None
    pr_number: int | None = None
    files: tuple[dict[str, Any], ...] = ()
    extra: dict[str, Any] = field(default_factory=dict)
    tool_versions: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "diffHash": self.diff_hash,
            "fileListHash": self.file_list_hash,
            "commitSha": self.commit_sha,
            "branch": self.branch,
            "prNumber": self.pr_number,
            "files": [dict(f) for f in self.files],
        }
        data.update(self.extra)
        return data


@dataclass(frozen=True)
class EvidenceOutputs:
    """What the evaluation produced."""

    findings: tuple[Finding, ...]
    evaluation: EvaluationResult
    artifacts: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "findings": [f.to_dict() for f in self.findings],
            "evaluationResult": self.evaluation.to_dict(),
            "artifacts": dict(self.artifacts),
        }


@dataclass(frozen=True)
class EvidenceBundle:
    """Immutable, hash-pinned record proving which policy version produced a decision."""

    id: str
    linked_resource: LinkedResource
    inputs_metadata: EvidenceInputs
    rules_fired: tuple[str, ...]
    deterministic_score: int
    policy_checksum: str
    policy_snapshot: PolicySnapshot
    outputs: EvidenceOutputs
    tool_versions: dict[str, str]
    timings: dict[str, float]
    evaluated_at: datetime
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "linkedResource": self.linked_resource.to_dict(),
            "inputsMetadata": self.inputs_metadata.to_dict(),
            "rulesFired": list(self.rules_fired),
            "deterministicScore": self.deterministic_score,
            "policyChecksum": self.policy_checksum,
            "toolVersions": dict(self.tool_versions),
            "timings": dict(self.timings),
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class EvidenceExport:
    """Stable, versioned export shape of an evidence bundle."""

    schema_version: str
    evidence_bundle: EvidenceBundle
    policy: PolicySnapshot
    inputs: EvidenceInputs
    outputs: EvidenceOutputs
    created_at: datetime
    evaluated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "evidenceBundle": self.evidence_bundle.to_dict(),
            "policy": self.policy.to_dict(),
            "inputs": self.inputs.to_dict(),
            "outputs": self.outputs.to_dict(),
            "timestamps": {
                "createdAt": self.created_at.isoformat(),
                "evaluatedAt": self.evaluated_at.isoformat(),
            },
        }
