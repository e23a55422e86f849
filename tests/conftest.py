"""Pytest configuration and shared fixtures."""

import pytest

SAMPLE_POLICY_YAML = """\
version: "2.1.0"
rules:
  - ruleId: security.sql-injection
    severityMapping: {critical: block, high: block, medium: warn, low: allow}
  - ruleId: style.naming
    severityMapping: {critical: warn, high: warn, medium: allow, low: allow}
  - ruleId: "*"
    severityMapping: {critical: block, high: warn, medium: allow, low: allow}
"""

SAMPLE_FINDINGS = [
    {
        "ruleId": "security.sql-injection",
        "severity": "critical",
        "file": "a.ts",
        "line": 10,
        "message": "User input concatenated into SQL query",
        "fix": "Use a parameterized query",
        "confidence": 0.95,
    },
    {
        "ruleId": "perf.n-plus-one",
        "severity": "high",
        "file": "b.ts",
        "line": 4,
        "message": "Query inside loop",
        "confidence": 0.8,
    },
]


@pytest.fixture
def sample_policy_yaml() -> str:
    """A repository policy with an exact rule, a lenient rule and a wildcard."""
    return SAMPLE_POLICY_YAML


@pytest.fixture
def sample_findings_raw() -> list[dict]:
    """Loosely shaped analyzer output (camelCase keys)."""
    return [dict(f) for f in SAMPLE_FINDINGS]


@pytest.fixture
def make_finding():
    """Factory for valid findings with overridable fields."""
    from policy_gate.models.findings import Finding, Severity

    def _make(
        rule_id: str = "security.sql-injection",
        severity: Severity | str = Severity.CRITICAL,
        file: str = "a.ts",
        line: int = 10,
        message: str = "Issue found",
        confidence: float = 0.9,
        **kwargs,
    ) -> Finding:
        if isinstance(severity, str):
            severity = Severity(severity)
        return Finding(
            rule_id=rule_id,
            severity=severity,
            file=file,
            line=line,
            message=message,
            confidence=confidence,
            **kwargs,
        )

    return _make


@pytest.fixture
def policy_store():
    """Empty in-memory policy store (basic tier)."""
    from policy_gate.policy.store import InMemoryPolicyStore

    return InMemoryPolicyStore()


@pytest.fixture
def default_policy():
    """Factory for the effective default policy of a tier, with optional waivers."""
    from policy_gate.models.policy import EffectivePolicy, EnforcementTier
    from policy_gate.policy.resolver import default_policy_pack

    def _make(tier: EnforcementTier = EnforcementTier.BASIC, waivers=(), branch=None):
        pack = default_policy_pack(tier, "org-1", "repo-1")
        return EffectivePolicy(
            pack=pack,
            rules={rule.rule_id: rule for rule in pack.rules},
            waivers=tuple(waivers),
            branch=branch,
            tier=tier,
        )

    return _make


@pytest.fixture
def review_request():
    """Factory for a review request over two small files."""
    from policy_gate.models.review import ReviewFile, ReviewRequest

    def _make(files=None, **kwargs) -> ReviewRequest:
        defaults = {
            "organization_id": "org-1",
            "repository_id": "repo-1",
            "pr_number": 42,
            "pr_sha": "abc123def4567890",
            "branch": "feature/auth",
        }
        defaults.update(kwargs)
        return ReviewRequest(
            files=files
            if files is not None
            else [
                ReviewFile(path="src/a.ts", content="const a = 1;\n"),
                ReviewFile(path="src/b.ts", content="const b = 2;\n"),
            ],
            **defaults,
        )

    return _make
