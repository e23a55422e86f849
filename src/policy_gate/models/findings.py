"""Finding models consumed by the policy evaluator."""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from policy_gate.errors import MalformedFindingError


class Severity(Enum):
    """Severity levels for findings.

    - CRITICAL: blocks in every enforcement tier.
    - HIGH: blocks from the moderate tier up.
    - MEDIUM: blocks only in the maximum tier.
    - LOW: never blocks under a default policy.
    """

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Ordering index, 0 for the most severe."""
        return _SEVERITY_RANK[self]

    @property
    def penalty(self) -> int:
        """Score deduction for one non-waived finding of this severity."""
        return _SEVERITY_PENALTY[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
}

_SEVERITY_PENALTY = {
    Severity.CRITICAL: 20,
    Severity.HIGH: 10,
    Severity.MEDIUM: 5,
    Severity.LOW: 2,
}


class Action(Enum):
    """What a policy rule does with a finding of a given severity."""

    BLOCK = "block"
    WARN = "warn"
    ALLOW = "allow"


@dataclass(frozen=True)
class Finding:
    """A single issue reported by an analyzer about a file and line."""

    rule_id: str
    severity: Severity
    file: str
    line: int
    message: str
    confidence: float  # 0.0 - 1.0
    column: int | None = None
    fix: str | None = None

    def __post_init__(self) -> None:
        """Validate finding data."""
        if not self.rule_id:
            raise MalformedFindingError("Finding rule_id must not be empty")
        if not isinstance(self.severity, Severity):
            raise MalformedFindingError(f"Finding severity must be a Severity, got {self.severity!r}")
        if not self.file:
            raise MalformedFindingError("Finding file must not be empty")
        if self.line < 1:
            raise MalformedFindingError(f"Finding line must be >= 1, got {self.line}")
        if self.column is not None and self.column < 1:
            raise MalformedFindingError(f"Finding column must be >= 1, got {self.column}")
        if not self.message:
            raise MalformedFindingError("Finding message must not be empty")
        if not 0.0 <= self.confidence <= 1.0:
            raise MalformedFindingError(
                f"Confidence must be between 0.0 and 1.0, got {self.confidence}"
            )

    @property
    def sort_key(self) -> tuple[str, int, str, int, int, str]:
        """Canonical evaluation order: file, line, rule, then tie-breakers."""
        return (
            self.file,
            self.line,
            self.rule_id,
            self.severity.rank,
            self.column or 0,
            self.message,
        )

    @property
    def location(self) -> str:
        return f"{self.file}:{self.line}"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Finding":
        """Build a finding from loosely shaped analyzer output.

        Accepts camelCase or snake_case keys. Raises MalformedFindingError
        for anything that cannot be coerced into a valid finding.
        """
        if not isinstance(raw, Mapping):
            raise MalformedFindingError(f"Finding must be an object, got {type(raw).__name__}")

        try:
            rule_id = raw.get("ruleId", raw.get("rule_id"))
            severity = Severity(str(raw["severity"]).lower())
            file = raw.get("file", raw.get("file_path"))
            line = int(raw["line"])
            column = int(raw["column"]) if raw.get("column") is not None else None
            confidence = float(raw.get("confidence", 0.8))
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedFindingError(f"Malformed finding {dict(raw)!r}: {e}") from e

        return cls(
            rule_id=str(rule_id or ""),
            severity=severity,
            file=str(file or ""),
            line=line,
            message=str(raw.get("message") or ""),
            confidence=confidence,
            column=column,
            fix=raw.get("fix"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "ruleId": self.rule_id,
            "severity": self.severity.value,
            "file": self.file,
            "line": self.line,
            "message": self.message,
            "confidence": self.confidence,
        }
        if self.column is not None:
            data["column"] = self.column
        if self.fix is not None:
            data["fix"] = self.fix
        return data


def sort_findings(findings: list[Finding]) -> list[Finding]:
    """Return findings in canonical evaluation order."""
    return sorted(findings, key=lambda f: f.sort_key)
