"""Policy configuration models: packs, rules, waivers and the effective policy."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from policy_gate.models.findings import Action, Severity

WILDCARD_RULE_ID = "*"


class EnforcementTier(Enum):
    """Organization-level enforcement strength used when no policy is configured."""

    BASIC = "basic"
    MODERATE = "moderate"
    MAXIMUM = "maximum"


class WaiverScope(Enum):
    """Where a waiver applies."""

    REPO = "repo"
    BRANCH = "branch"
    PATH = "path"


@dataclass(frozen=True)
class PolicyRule:
    """Maps finding severities to actions for one rule id (or the "*" wildcard)."""

    rule_id: str
    severity_mapping: dict[Severity, Action]
    enabled: bool = True
    params: dict[str, Any] | None = None
    id: str | None = None

    def action_for(self, severity: Severity) -> Action:
        """Action for a severity; unmapped severities block."""
        return self.severity_mapping.get(severity, Action.BLOCK)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "ruleId": self.rule_id,
            "severityMapping": {
                severity.value: self.severity_mapping[severity].value
                for severity in Severity
                if severity in self.severity_mapping
            },
            "enabled": self.enabled,
        }
        if self.params is not None:
            data["params"] = self.params
        return data


@dataclass(frozen=True)
class PolicyPack:
    """A versioned, checksummed set of rules for an organization or repository.

    repository_id None means organization-wide. Packs are append-only: a new
    version is a new pack, never an edit of an existing one.
    """

    id: str
    organization_id: str
    repository_id: str | None
    version: str
    source_text: str
    checksum: str
    rules: tuple[PolicyRule, ...] = ()
    created_at: datetime | None = None

    @property
    def is_organization_default(self) -> bool:
        return self.repository_id is None


@dataclass(frozen=True)
class Waiver:
    """A scoped, time-bounded exemption for one rule id."""

    id: str
    rule_id: str
    scope: WaiverScope
    scope_value: str | None = None
    expires_at: datetime | None = None
    reason: str | None = None

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ruleId": self.rule_id,
            "scope": self.scope.value,
            "scopeValue": self.scope_value,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass(frozen=True)
class EffectivePolicy:
    """Request-scoped merge of the governing pack and active waivers.

    Never persisted; rebuilt for every evaluation. branch is the evaluation
    context used by branch-scoped waivers, None when unknown.
    """

    pack: PolicyPack
    rules: dict[str, PolicyRule]
    waivers: tuple[Waiver, ...] = ()
    branch: str | None = None
    tier: EnforcementTier | None = None

    def rule_for(self, rule_id: str) -> PolicyRule | None:
        """Exact rule match, else the wildcard rule, else None."""
        return self.rules.get(rule_id) or self.rules.get(WILDCARD_RULE_ID)

    @property
    def is_default(self) -> bool:
        return self.tier is not None


@dataclass(frozen=True)
class PolicySnapshot:
    """The parts of an effective policy an evidence export needs to stay interpretable."""

    pack_id: str
    version: str
    checksum: str
    rules: tuple[PolicyRule, ...] = field(default_factory=tuple)

    @classmethod
    def from_policy(cls, policy: EffectivePolicy) -> "PolicySnapshot":
        ordered = tuple(policy.rules[key] for key in sorted(policy.rules))
        return cls(
            pack_id=policy.pack.id,
            version=policy.pack.version,
            checksum=policy.pack.checksum,
            rules=ordered,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "packId": self.pack_id,
            "version": self.version,
            "checksum": self.checksum,
            "rules": [rule.to_dict() for rule in self.rules],
        }
