"""Policy evaluator: pure mapping of findings and policy to a decision."""

import logging
import re
from fnmatch import fnmatchcase

from policy_gate.models.evaluation import EvaluationResult
from policy_gate.models.findings import Action, Finding, Severity, sort_findings
from policy_gate.models.policy import EffectivePolicy, Waiver, WaiverScope

logger = logging.getLogger(__name__)

MAX_SCORE = 100

# Used when neither an exact nor a wildcard rule governs a finding
CONSERVATIVE_DEFAULTS: dict[Severity, Action] = {
    Severity.CRITICAL: Action.BLOCK,
    Severity.HIGH: Action.BLOCK,
    Severity.MEDIUM: Action.WARN,
    Severity.LOW: Action.ALLOW,
}


def path_scope_matches(pattern: str, path: str) -> bool:
    """Match a path-scoped waiver pattern against a file path.

    Every "*" becomes ".*" (so "**" needs no special handling) and the
    pattern must cover the whole path.
    """
    regex = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.fullmatch(regex, path) is not None


class Evaluator:
    """Judges findings against an effective policy. No I/O."""

    def evaluate(self, findings: list[Finding], policy: EffectivePolicy) -> EvaluationResult:
        """Evaluate findings against policy.

        Findings are sorted by (file, line, rule) first, so the result does
        not depend on the order analyzers produced them in.

        Algorithm:
        1. Split findings into waived and non-waived
        2. Resolve each non-waived finding's rule (exact, "*", built-in default)
        3. The first finding whose action is block becomes the blocking reason
        4. Deduct a per-severity penalty from 100, clamped to [0, 100]
        5. rules_fired is the sorted set of non-waived rule ids

        Args:
            findings: Findings to judge
            policy: Effective policy for this evaluation

        Returns:
            Immutable evaluation result
        """
        ordered = sort_findings(findings)

        waived: list[Finding] = []
        non_waived: list[Finding] = []
        for finding in ordered:
            if self.find_applicable_waiver(finding, policy) is not None:
                waived.append(finding)
            else:
                non_waived.append(finding)

        blocking_finding: Finding | None = None
        score = MAX_SCORE
        for finding in non_waived:
            if self.action_for(finding, policy) is Action.BLOCK and blocking_finding is None:
                blocking_finding = finding
            score -= finding.severity.penalty

        return EvaluationResult(
            blocked=blocking_finding is not None,
            score=max(0, min(MAX_SCORE, score)),
            rules_fired=tuple(sorted({f.rule_id for f in non_waived})),
            waived_findings=tuple(waived),
            non_waived_findings=tuple(non_waived),
            blocking_finding=blocking_finding,
        )

    def action_for(self, finding: Finding, policy: EffectivePolicy) -> Action:
        """Action the policy takes for one finding."""
        rule = policy.rule_for(finding.rule_id)
        if rule is not None:
            return rule.action_for(finding.severity)
        return CONSERVATIVE_DEFAULTS[finding.severity]

    def find_applicable_waiver(
        self, finding: Finding, policy: EffectivePolicy
    ) -> Waiver | None:
        """First waiver in the policy that covers this finding, if any."""
        for waiver in policy.waivers:
            if waiver.rule_id != finding.rule_id:
                continue

            if waiver.scope is WaiverScope.REPO:
                return waiver

            if waiver.scope is WaiverScope.BRANCH and waiver.scope_value:
                if policy.branch is None:
                    logger.warning(
                        f"Branch waiver {waiver.id} for {waiver.rule_id} not applied: "
                        "no branch context for this evaluation"
                    )
                    continue
                if fnmatchcase(policy.branch, waiver.scope_value):
                    return waiver

            if waiver.scope is WaiverScope.PATH and waiver.scope_value:
                if path_scope_matches(waiver.scope_value, finding.file):
                    return waiver

        return None
