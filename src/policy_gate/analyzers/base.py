"""Analyzer collaborator interfaces and the finding adapter boundary."""

import logging
from typing import Any, Protocol

from policy_gate.errors import AnalyzerError, MalformedFindingError
from policy_gate.models.context import RepoContext
from policy_gate.models.findings import Finding

logger = logging.getLogger(__name__)


class StaticAnalyzer(Protocol):
    """Deterministic per-file analyzer."""

    name: str

    async def analyze(self, file_path: str, content: str) -> list[Finding]: ...


class AIAnalyzer(Protocol):
    """Model-backed per-file analyzer. Failures are fatal to a review."""

    name: str

    async def analyze(
        self, file_path: str, content: str, repo_context: RepoContext
    ) -> list[Finding]: ...


class SchemaReconciler(Protocol):
    """Checks migrations against code. Failures degrade to a synthetic finding."""

    name: str

    async def reconcile(
        self, migration_files: dict[str, str], code_files: dict[str, str]
    ) -> list[Finding]: ...


def analyzer_name(analyzer: Any) -> str:
    return getattr(analyzer, "name", None) or type(analyzer).__name__


def parse_findings(raw_findings: Any, analyzer: str = "unknown") -> list[Finding]:
    """Turn loosely shaped analyzer output into validated findings.

    Individual malformed findings are dropped with a warning; a payload that
    is not a list at all is an analyzer failure.

    Raises:
        AnalyzerError: If raw_findings is not a list
    """
    if not isinstance(raw_findings, list):
        raise AnalyzerError(
            f"Analyzer {analyzer} returned {type(raw_findings).__name__}, expected a list of findings",
            analyzer=analyzer,
        )

    findings = []
    for raw in raw_findings:
        try:
            findings.append(Finding.from_dict(raw))
        except MalformedFindingError as e:
            logger.warning(f"Rejected finding from {analyzer}: {e}")
            continue

    return findings
