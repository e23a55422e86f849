"""Data models for Policy Gate."""

from policy_gate.models.context import RepoContext
from policy_gate.models.evaluation import EvaluationResult
from policy_gate.models.evidence import (
    EXPORT_SCHEMA_VERSION,
    EvidenceBundle,
    EvidenceExport,
    EvidenceInputs,
    EvidenceOutputs,
    LinkedResource,
    ResourceKind,
)
from policy_gate.models.findings import Action, Finding, Severity, sort_findings
from policy_gate.models.policy import (
    WILDCARD_RULE_ID,
    EffectivePolicy,
    EnforcementTier,
    PolicyPack,
    PolicyRule,
    PolicySnapshot,
    Waiver,
    WaiverScope,
)
from policy_gate.models.review import (
    ReviewConfig,
    ReviewFile,
    ReviewRequest,
    ReviewResult,
    ReviewStatus,
    SeveritySummary,
)

__all__ = [
    "EXPORT_SCHEMA_VERSION",
    "WILDCARD_RULE_ID",
    "Action",
    "EffectivePolicy",
    "EnforcementTier",
    "EvaluationResult",
    "EvidenceBundle",
    "EvidenceExport",
    "EvidenceInputs",
    "EvidenceOutputs",
    "Finding",
    "LinkedResource",
    "PolicyPack",
    "PolicyRule",
    "PolicySnapshot",
    "RepoContext",
    "ResourceKind",
    "ReviewConfig",
    "ReviewFile",
    "ReviewRequest",
    "ReviewResult",
    "ReviewStatus",
    "Severity",
    "SeveritySummary",
    "Waiver",
    "WaiverScope",
    "sort_findings",
]
