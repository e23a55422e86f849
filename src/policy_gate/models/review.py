"""Review request and result models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from policy_gate.models.findings import Finding, Severity


class ReviewStatus(Enum):
    """Terminal status of one evaluation attempt."""

    COMPLETED = "completed"
    BLOCKED = "blocked"
    FAILED = "failed"


@dataclass(frozen=True)
class ReviewFile:
    """A changed file, with its previous content when available."""

    path: str
    content: str
    before_content: str | None = None

    @property
    def is_modification(self) -> bool:
        return self.before_content is not None


@dataclass
class ReviewConfig:
    """Per-request review options."""

    excluded_paths: list[str] = field(default_factory=list)


@dataclass
class ReviewRequest:
    """A normalized change (PR/MR/commit) to evaluate."""

    organization_id: str
    repository_id: str
    pr_number: int
    pr_sha: str
    files: list[ReviewFile]
    pr_title: str | None = None
    branch: str | None = None
    diff: str | None = None
    config: ReviewConfig = field(default_factory=ReviewConfig)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ReviewRequest":
        """Build a request from a JSON payload (camelCase keys)."""
        files = [
            ReviewFile(
                path=f["path"],
                content=f.get("content", ""),
                before_content=f.get("beforeContent"),
            )
            for f in raw.get("files", [])
        ]
        config_raw = raw.get("config") or {}
        return cls(
            organization_id=raw["organizationId"],
            repository_id=raw["repositoryId"],
            pr_number=int(raw["prNumber"]),
            pr_sha=raw["prSha"],
            files=files,
            pr_title=raw.get("prTitle"),
            branch=raw.get("branch"),
            diff=raw.get("diff"),
            config=ReviewConfig(excluded_paths=list(config_raw.get("excludedPaths", []))),
        )


@dataclass(frozen=True)
class SeveritySummary:
    """Counts of non-waived findings by severity."""

    total: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0

    @classmethod
    def from_findings(cls, findings: tuple[Finding, ...] | list[Finding]) -> "SeveritySummary":
        counts: dict[Severity, int] = dict.fromkeys(Severity, 0)
        for finding in findings:
            counts[finding.severity] += 1
        return cls(
            total=len(findings),
            critical=counts[Severity.CRITICAL],
            high=counts[Severity.HIGH],
            medium=counts[Severity.MEDIUM],
            low=counts[Severity.LOW],
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "critical": self.critical,
            "high": self.high,
            "medium": self.medium,
            "low": self.low,
        }


@dataclass(frozen=True)
class ReviewResult:
    """Final decision record for one (repository, change reference) attempt."""

    id: str
    repository_id: str
    pr_number: int
    pr_sha: str
    status: ReviewStatus
    is_blocked: bool
    summary: SeveritySummary
    started_at: datetime
    completed_at: datetime
    findings: tuple[Finding, ...] = ()
    waived_findings: tuple[Finding, ...] = ()
    blocked_reason: str | None = None
    remediation: str | None = None
    score: int | None = None
    policy_version: str | None = None
    policy_checksum: str | None = None
    review_signature: str | None = None
    evidence_bundle_id: str | None = None

    @property
    def failed(self) -> bool:
        return self.status is ReviewStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "repositoryId": self.repository_id,
            "prNumber": self.pr_number,
            "prSha": self.pr_sha,
            "status": self.status.value,
            "isBlocked": self.is_blocked,
            "blockedReason": self.blocked_reason,
            "remediation": self.remediation,
            "summary": self.summary.to_dict(),
            "issues": [f.to_dict() for f in self.findings],
            "waivedIssues": [f.to_dict() for f in self.waived_findings],
            "policyScore": self.score,
            "policyVersion": self.policy_version,
            "policyChecksum": self.policy_checksum,
            "reviewIdSignature": self.review_signature,
            "evidenceBundleId": self.evidence_bundle_id,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat(),
        }
