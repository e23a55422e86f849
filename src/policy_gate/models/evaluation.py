"""Evaluation result model."""

from dataclasses import dataclass
from typing import Any

from policy_gate.models.findings import Finding


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of judging a finding set against an effective policy.

    Pure derived value: identical inputs always produce an identical result.
    """

    blocked: bool
    score: int  # 0 - 100
    rules_fired: tuple[str, ...]
    waived_findings: tuple[Finding, ...]
    non_waived_findings: tuple[Finding, ...]
    blocking_finding: Finding | None = None

    @property
    def blocking_reason(self) -> str | None:
        """Human-readable reason naming the first blocking finding."""
        if self.blocking_finding is None:
            return None
        f = self.blocking_finding
        return f"{f.severity.value} issue found: {f.rule_id} in {f.location}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "blocked": self.blocked,
            "score": self.score,
            "rulesFired": list(self.rules_fired),
            "waivedFindings": [f.to_dict() for f in self.waived_findings],
            "nonWaivedFindings": [f.to_dict() for f in self.non_waived_findings],
            "blockingReason": self.blocking_reason,
        }
