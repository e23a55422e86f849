"""Diff-level analysis of modified files for risky wholesale rewrites."""

import logging
import re

from policy_gate.models.findings import Finding, Severity
from policy_gate.models.review import ReviewFile

logger = logging.getLogger(__name__)

_FUNCTION_PATTERN = re.compile(
    r"(?:\bdef\s+\w+|\bfunction\b|const\s+\w+\s*=\s*(?:async\s+)?\(|export\s+(?:async\s+)?function)"
)
_ANY_TYPE_PATTERN = re.compile(r":\s*(?:any|Any)\b")
_TRY_PATTERN = re.compile(r"\btry\s*[:{]")


class DiffAnalyzer:
    """Flags large refactors and regressions between before/after content."""

    name = "diff"

    def __init__(
        self,
        large_file_lines: int = 300,
        change_ratio_threshold: float = 0.3,
        function_delta_threshold: int = 5,
    ) -> None:
        self.large_file_lines = large_file_lines
        self.change_ratio_threshold = change_ratio_threshold
        self.function_delta_threshold = function_delta_threshold

    def analyze(self, files: list[ReviewFile]) -> list[Finding]:
        """Analyze modified files in file-list order."""
        findings: list[Finding] = []

        for file in files:
            if not file.is_modification or not file.before_content:
                continue
            if len(file.content.split("\n")) <= self.large_file_lines:
                continue

            findings.extend(self._analyze_file(file))

        if findings:
            logger.info(f"Diff analysis produced {len(findings)} findings")
        return findings

    def _analyze_file(self, file: ReviewFile) -> list[Finding]:
        before = file.before_content or ""
        after = file.content
        findings = []

        before_lines = len(before.split("\n"))
        after_lines = len(after.split("\n"))
        change_ratio = abs(after_lines - before_lines) / before_lines

        if change_ratio > self.change_ratio_threshold:
            findings.append(
                Finding(
                    rule_id="diff.large-refactor",
                    severity=Severity.HIGH,
                    file=file.path,
                    line=1,
                    message=(
                        f"Large refactor detected: {round(change_ratio * 100)}% of file changed "
                        "- ensure edge cases are tested"
                    ),
                    fix="Review the diff carefully, test edge cases, consider smaller changes",
                    confidence=0.8,
                )
            )

        before_functions = len(_FUNCTION_PATTERN.findall(before))
        after_functions = len(_FUNCTION_PATTERN.findall(after))
        if abs(after_functions - before_functions) > self.function_delta_threshold:
            findings.append(
                Finding(
                    rule_id="diff.many-functions-changed",
                    severity=Severity.MEDIUM,
                    file=file.path,
                    line=1,
                    message=(
                        f"Many functions changed ({before_functions} → {after_functions}) "
                        "- verify all functions still work correctly"
                    ),
                    fix="Test each changed function individually",
                    confidence=0.7,
                )
            )

        before_any = len(_ANY_TYPE_PATTERN.findall(before))
        after_any = len(_ANY_TYPE_PATTERN.findall(after))
        if after_any > before_any:
            findings.append(
                Finding(
                    rule_id="diff.type-erosion",
                    severity=Severity.HIGH,
                    file=file.path,
                    line=1,
                    message=f"Type safety regression: 'any' types increased ({before_any} → {after_any})",
                    fix="Replace any types with precise types",
                    confidence=0.9,
                )
            )

        before_try = len(_TRY_PATTERN.findall(before))
        after_try = len(_TRY_PATTERN.findall(after))
        if after_try < before_try:
            findings.append(
                Finding(
                    rule_id="diff.error-handling-removed",
                    severity=Severity.HIGH,
                    file=file.path,
                    line=1,
                    message=f"Error handling removed: try blocks decreased ({before_try} → {after_try})",
                    fix="Ensure error handling is not removed without a replacement",
                    confidence=0.85,
                )
            )

        return findings
