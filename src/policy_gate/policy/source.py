"""Policy-as-code source parsing, validation and checksumming.

A policy source is JSON or YAML text:

    version: "1.2.0"
    rules:
      - ruleId: security.sql-injection
        severityMapping: {critical: block, high: block, medium: warn, low: allow}
      - ruleId: "*"
        severityMapping: {critical: block, high: warn}
        enabled: true
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import yaml

from policy_gate.errors import PolicySourceError
from policy_gate.evidence.hashing import sha256_hex
from policy_gate.models.findings import Action, Severity
from policy_gate.models.policy import PolicyPack, PolicyRule

logger = logging.getLogger(__name__)

_SEVERITY_VALUES = {s.value for s in Severity}
_ACTION_VALUES = {a.value for a in Action}


@dataclass
class PolicyValidationResult:
    """Outcome of validating a policy source document."""

    valid: bool
    message: str
    errors: list[tuple[str, str]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "message": self.message,
            "errors": [{"ruleId": rule_id, "error": error} for rule_id, error in self.errors],
            "warnings": list(self.warnings),
        }


def compute_checksum(source_text: str) -> str:
    """Deterministic checksum of a policy source."""
    return sha256_hex(source_text)


def parse_policy_source(source_text: str) -> dict[str, Any]:
    """Parse JSON or YAML policy source into a document dict.

    Raises:
        PolicySourceError: If the text is not a mapping with version and rules
    """
    try:
        document = yaml.safe_load(source_text)
    except yaml.YAMLError as e:
        raise PolicySourceError(f"Policy must be valid JSON or YAML: {e}") from e

    if not isinstance(document, dict):
        raise PolicySourceError("Policy must be a JSON or YAML object")
    if not document.get("version") or not isinstance(document.get("rules"), list):
        raise PolicySourceError("Policy must have version and rules array")

    return document


def validate_policy_source(source_text: str) -> PolicyValidationResult:
    """Check a policy source for syntax and structural problems."""
    try:
        document = parse_policy_source(source_text)
    except PolicySourceError as e:
        return PolicyValidationResult(
            valid=False,
            message="Policy validation failed",
            errors=[("syntax", str(e))],
        )

    errors: list[tuple[str, str]] = []
    warnings: list[str] = []
    seen: set[str] = set()

    for raw in document["rules"]:
        if not isinstance(raw, dict) or not raw.get("ruleId"):
            errors.append(("unknown", "Rule missing ruleId"))
            continue

        rule_id = str(raw["ruleId"])
        if rule_id in seen:
            errors.append((rule_id, "Duplicate ruleId"))
        seen.add(rule_id)

        mapping = raw.get("severityMapping")
        if not isinstance(mapping, dict):
            errors.append((rule_id, "Rule missing severityMapping"))
            continue

        for severity, action in mapping.items():
            if str(severity).lower() not in _SEVERITY_VALUES:
                errors.append((rule_id, f"Unknown severity '{severity}'"))
            if str(action).lower() not in _ACTION_VALUES:
                errors.append((rule_id, f"Unknown action '{action}' for severity '{severity}'"))

        missing = sorted(_SEVERITY_VALUES - {str(s).lower() for s in mapping})
        if missing:
            warnings.append(
                f"Rule '{rule_id}' does not map {', '.join(missing)}; those severities will block"
            )

    if errors:
        return PolicyValidationResult(
            valid=False,
            message="Policy validation failed",
            errors=errors,
            warnings=warnings,
        )

    return PolicyValidationResult(valid=True, message="Policy is valid", warnings=warnings)


def _parse_rule(raw: dict[str, Any]) -> PolicyRule:
    mapping = {
        Severity(str(severity).lower()): Action(str(action).lower())
        for severity, action in raw["severityMapping"].items()
    }
    return PolicyRule(
        rule_id=str(raw["ruleId"]),
        severity_mapping=mapping,
        enabled=bool(raw.get("enabled", True)),
        params=raw.get("params"),
        id=raw.get("id"),
    )


def build_policy_pack(
    organization_id: str,
    repository_id: str | None,
    source_text: str,
    pack_id: str | None = None,
    created_at: datetime | None = None,
) -> PolicyPack:
    """Build an immutable policy pack from source text.

    Raises:
        PolicySourceError: If the source does not validate
    """
    validation = validate_policy_source(source_text)
    if not validation.valid:
        details = "; ".join(f"{rule_id}: {error}" for rule_id, error in validation.errors)
        raise PolicySourceError(f"Invalid policy source: {details}")

    document = parse_policy_source(source_text)
    rules = tuple(_parse_rule(raw) for raw in document["rules"])
    checksum = compute_checksum(source_text)

    logger.debug(
        f"Built policy pack v{document['version']} for {organization_id}/{repository_id or '*'} "
        f"({len(rules)} rules, checksum {checksum[:12]})"
    )

    return PolicyPack(
        id=pack_id or f"pack-{uuid.uuid4().hex[:12]}",
        organization_id=organization_id,
        repository_id=repository_id,
        version=str(document["version"]),
        source_text=source_text,
        checksum=checksum,
        rules=rules,
        created_at=created_at or datetime.now(timezone.utc),
    )
