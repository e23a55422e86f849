"""Change evaluation pipeline: collect findings, judge them, persist proof."""

import asyncio
import logging
import re
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

from policy_gate.analyzers.base import SchemaReconciler, analyzer_name
from policy_gate.analyzers.diff import DiffAnalyzer
from policy_gate.errors import PolicyGateError, UsageLimitExceededError
from policy_gate.evidence.hashing import hash_diff, hash_file_list, sha256_hex
from policy_gate.evidence.producer import EvidenceProducer
from policy_gate.models.context import RepoContext
from policy_gate.models.evaluation import EvaluationResult
from policy_gate.models.evidence import (
    EvidenceInputs,
    EvidenceOutputs,
    LinkedResource,
    ResourceKind,
)
from policy_gate.models.findings import Finding, Severity
from policy_gate.models.policy import EffectivePolicy
from policy_gate.models.review import (
    ReviewFile,
    ReviewRequest,
    ReviewResult,
    ReviewStatus,
    SeveritySummary,
)
from policy_gate.orchestrator.collector import FindingCollector
from policy_gate.orchestrator.telemetry import TelemetryEvent, TelemetryQueue
from policy_gate.policy.evaluator import Evaluator
from policy_gate.policy.resolver import PolicyResolver

logger = logging.getLogger(__name__)

SCHEMA_FAILURE_RULE_ID = "schema.reconciliation-failed"
DEFAULT_REMEDIATION = "Retry the review. If the problem persists, contact your administrator."


class ReviewState(Enum):
    """Stages of one evaluation attempt."""

    STARTED = "started"
    COLLECTING_FINDINGS = "collecting_findings"
    EVALUATING = "evaluating"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    FAILED = "failed"


class ReviewStore(Protocol):
    """Persistence for review decision records."""

    async def save(self, result: ReviewResult) -> str:
        """Persist a result and return its id."""
        ...


class InMemoryReviewStore:
    """In-process review store, keyed by review id."""

    def __init__(self) -> None:
        self._results: dict[str, ReviewResult] = {}

    async def save(self, result: ReviewResult) -> str:
        self._results[result.id] = result
        return result.id

    async def get(self, review_id: str) -> ReviewResult | None:
        return self._results.get(review_id)

    def for_change(self, repository_id: str, pr_sha: str) -> list[ReviewResult]:
        """All recorded attempts for one change reference."""
        return [
            r for r in self._results.values()
            if r.repository_id == repository_id and r.pr_sha == pr_sha
        ]

    def __len__(self) -> int:
        return len(self._results)


def excluded_path_matches(pattern: str, path: str) -> bool:
    """Glob match for excluded paths: "**" spans directories, "*" does not."""
    regex = "".join(
        ".*" if part == "**" else "[^/]*" if part == "*" else re.escape(part)
        for part in re.split(r"(\*\*|\*)", pattern)
    )
    return re.fullmatch(regex, path) is not None


def is_migration_file(path: str) -> bool:
    lowered = path.lower()
    return "migration" in lowered or lowered.endswith(".sql")


def review_signature(repository_id: str, pr_number: int, pr_sha: str, policy_checksum: str) -> str:
    """Short stable id tying a decision to the change and the policy version."""
    return sha256_hex(f"{repository_id}:{pr_number}:{pr_sha}:{policy_checksum}")[:16]


def _schema_failure_finding(reason: str) -> Finding:
    return Finding(
        rule_id=SCHEMA_FAILURE_RULE_ID,
        severity=Severity.HIGH,
        file="migration",
        line=1,
        message=f"Schema reconciliation could not complete: {reason}",
        confidence=1.0,
        fix="Verify the migration matches the code that uses it before merging.",
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 3)


class ReviewPipeline:
    """Runs one change through collection, evaluation and persistence.

    Any analyzer or policy failure produces a FAILED result that is reported
    as blocked. Nothing is ever allowed through because analysis could not
    run.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        evaluator: Evaluator,
        evidence_producer: EvidenceProducer,
        review_store: ReviewStore,
        collector: FindingCollector | None = None,
        diff_analyzer: DiffAnalyzer | None = None,
        schema_reconciler: SchemaReconciler | None = None,
        telemetry: TelemetryQueue | None = None,
        excluded_paths: list[str] | None = None,
        schema_timeout_seconds: float = 120,
        on_transition: Callable[[str, ReviewState], None] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the pipeline.

        Args:
            resolver: Builds the effective policy for each review
            evaluator: Judges findings against the policy
            evidence_producer: Persists the evidence bundle
            review_store: Persists the review decision record
            collector: Per-file analyzer fan-out (no per-file analysis if None)
            diff_analyzer: Diff-level analyzer run before per-file analysis
            schema_reconciler: Optional migration/code consistency check
            telemetry: Best-effort side channel for violations and timings
            excluded_paths: Globs excluded from every review
            schema_timeout_seconds: Time limit for the schema reconciler call
            on_transition: Called with (review_id, state) on every state change
            clock: Source of timestamps
        """
        self.resolver = resolver
        self.evaluator = evaluator
        self.evidence_producer = evidence_producer
        self.review_store = review_store
        self.collector = collector
        self.diff_analyzer = diff_analyzer
        self.schema_reconciler = schema_reconciler
        self.telemetry = telemetry
        self.excluded_paths = list(excluded_paths or [])
        self.schema_timeout_seconds = schema_timeout_seconds
        self._on_transition = on_transition
        self._clock = clock

    async def review_change(self, request: ReviewRequest) -> ReviewResult:
        """Evaluate one change and return its decision record.

        Args:
            request: The normalized change to evaluate

        Returns:
            COMPLETED, BLOCKED or FAILED result (FAILED is always blocked)

        Raises:
            UsageLimitExceededError: Re-raised unchanged after a FAILED result is recorded
            asyncio.CancelledError: If the caller cancels; nothing is persisted
        """
        review_id = f"review-{uuid.uuid4().hex[:12]}"
        started_at = self._clock()
        start = time.monotonic()
        timings: dict[str, float] = {}
        self._transition(review_id, ReviewState.STARTED)

        logger.info(
            f"Starting review {review_id} for {request.repository_id}#{request.pr_number} "
            f"@ {request.pr_sha[:12]}"
        )

        try:
            files = self._filter_files(request)

            self._transition(review_id, ReviewState.COLLECTING_FINDINGS)
            stage = time.monotonic()
            findings = await self._collect_findings(request, files)
            timings["collectMs"] = _elapsed_ms(stage)

            self._transition(review_id, ReviewState.EVALUATING)
            stage = time.monotonic()
            policy = await self.resolver.resolve(
                request.organization_id,
                request.repository_id,
                ref=request.pr_sha,
                branch=request.branch,
            )
            evaluation = self.evaluator.evaluate(findings, policy)
            timings["evaluateMs"] = _elapsed_ms(stage)

            self._transition(review_id, ReviewState.PERSISTING)
            result = await self._persist(
                review_id, request, files, findings, policy, evaluation, started_at, start, timings
            )
        except asyncio.CancelledError:
            logger.info(f"Review {review_id} cancelled; discarding partial findings")
            raise
        except UsageLimitExceededError as e:
            logger.warning(f"Review {review_id} stopped by usage limit: {e.status.value}")
            await self._record_failure(review_id, request, started_at, e)
            raise
        except PolicyGateError as e:
            logger.error(f"Review {review_id} failed: {e}")
            return await self._record_failure(review_id, request, started_at, e)
        except Exception as e:
            logger.exception(f"Review {review_id} failed unexpectedly")
            return await self._record_failure(review_id, request, started_at, e)

        final_state = ReviewState.BLOCKED if result.is_blocked else ReviewState.COMPLETED
        self._transition(review_id, final_state)
        self._submit_telemetry(request, result, evaluation, timings)

        logger.info(
            f"Review {review_id} {final_state.value}: score {result.score}, "
            f"{result.summary.total} findings, {len(result.waived_findings)} waived"
        )
        return result

    def _filter_files(self, request: ReviewRequest) -> list[ReviewFile]:
        patterns = self.excluded_paths + request.config.excluded_paths
        if not patterns:
            return list(request.files)

        kept = [
            f for f in request.files
            if not any(excluded_path_matches(p, f.path) for p in patterns)
        ]
        if len(kept) != len(request.files):
            logger.info(f"Excluded {len(request.files) - len(kept)} files from review")
        return kept

    async def _collect_findings(
        self, request: ReviewRequest, files: list[ReviewFile]
    ) -> list[Finding]:
        """Merge findings in a fixed order: diff, per-file, schema."""
        findings: list[Finding] = []

        if self.diff_analyzer is not None:
            findings.extend(self.diff_analyzer.analyze(files))

        if self.collector is not None:
            context = RepoContext(
                organization_id=request.organization_id,
                repository_id=request.repository_id,
                pr_number=request.pr_number,
                pr_sha=request.pr_sha,
                pr_title=request.pr_title,
                branch=request.branch,
                changed_files=[f.path for f in files],
            )
            findings.extend(await self.collector.collect(files, context))

        findings.extend(await self._reconcile_schema(files))
        return findings

    async def _reconcile_schema(self, files: list[ReviewFile]) -> list[Finding]:
        """Run the schema check; its failure becomes a finding, not an abort.

        Usage limits and cancellation still propagate.
        """
        if self.schema_reconciler is None:
            return []

        migrations = {f.path: f.content for f in files if is_migration_file(f.path)}
        if not migrations:
            return []
        code = {f.path: f.content for f in files if not is_migration_file(f.path)}

        try:
            return list(
                await asyncio.wait_for(
                    self.schema_reconciler.reconcile(migrations, code),
                    timeout=self.schema_timeout_seconds,
                )
            )
        except UsageLimitExceededError:
            raise
        except asyncio.TimeoutError:
            logger.warning(
                f"Schema reconciliation ({analyzer_name(self.schema_reconciler)}) timed out "
                f"after {self.schema_timeout_seconds}s"
            )
            return [_schema_failure_finding(f"timed out after {self.schema_timeout_seconds}s")]
        except Exception as e:
            logger.warning(
                f"Schema reconciliation ({analyzer_name(self.schema_reconciler)}) failed: {e}"
            )
            return [_schema_failure_finding(str(e))]

    async def _persist(
        self,
        review_id: str,
        request: ReviewRequest,
        files: list[ReviewFile],
        findings: list[Finding],
        policy: EffectivePolicy,
        evaluation: EvaluationResult,
        started_at: datetime,
        start: float,
        timings: dict[str, float],
    ) -> ReviewResult:
        inputs = EvidenceInputs(
            diff_hash=hash_diff(request.diff, ((f.path, f.content) for f in files)),
            file_list_hash=hash_file_list(f.path for f in files),
            commit_sha=request.pr_sha,
            branch=request.branch,
            pr_number=request.pr_number,
            files=tuple({"path": f.path, "size": len(f.content)} for f in files),
        )
        outputs = EvidenceOutputs(findings=tuple(findings), evaluation=evaluation)
        timings["totalMs"] = _elapsed_ms(start)

        bundle = await self.evidence_producer.produce_evidence(
            inputs,
            outputs,
            policy,
            LinkedResource(ResourceKind.REVIEW, review_id),
            timings=timings,
        )

        result = ReviewResult(
            id=review_id,
            repository_id=request.repository_id,
            pr_number=request.pr_number,
            pr_sha=request.pr_sha,
            status=ReviewStatus.BLOCKED if evaluation.blocked else ReviewStatus.COMPLETED,
            is_blocked=evaluation.blocked,
            summary=SeveritySummary.from_findings(evaluation.non_waived_findings),
            started_at=started_at,
            completed_at=self._clock(),
            findings=evaluation.non_waived_findings,
            waived_findings=evaluation.waived_findings,
            blocked_reason=evaluation.blocking_reason,
            remediation=evaluation.blocking_finding.fix if evaluation.blocking_finding else None,
            score=evaluation.score,
            policy_version=policy.pack.version,
            policy_checksum=policy.pack.checksum,
            review_signature=review_signature(
                request.repository_id, request.pr_number, request.pr_sha, policy.pack.checksum
            ),
            evidence_bundle_id=bundle.id,
        )
        await self.review_store.save(result)
        return result

    async def _record_failure(
        self,
        review_id: str,
        request: ReviewRequest,
        started_at: datetime,
        error: Exception,
    ) -> ReviewResult:
        """Record a FAILED, blocked result for an attempt that could not finish."""
        self._transition(review_id, ReviewState.FAILED)
        result = ReviewResult(
            id=review_id,
            repository_id=request.repository_id,
            pr_number=request.pr_number,
            pr_sha=request.pr_sha,
            status=ReviewStatus.FAILED,
            is_blocked=True,
            summary=SeveritySummary(),
            started_at=started_at,
            completed_at=self._clock(),
            blocked_reason=f"Review failed: {error}. This change is blocked until the review completes.",
            remediation=error.remediation if isinstance(error, PolicyGateError) else DEFAULT_REMEDIATION,
        )

        try:
            await self.review_store.save(result)
        except Exception as e:
            logger.error(f"Could not record failed review {review_id}: {e}")

        if self.telemetry is not None:
            self.telemetry.submit(
                TelemetryEvent(
                    "audit",
                    {
                        "action": "review.failed",
                        "reviewId": review_id,
                        "repositoryId": request.repository_id,
                        "prSha": request.pr_sha,
                        "error": type(error).__name__,
                    },
                )
            )
        return result

    def _submit_telemetry(
        self,
        request: ReviewRequest,
        result: ReviewResult,
        evaluation: EvaluationResult,
        timings: dict[str, float],
    ) -> None:
        if self.telemetry is None:
            return

        for finding in evaluation.non_waived_findings:
            self.telemetry.submit(
                TelemetryEvent(
                    "violation",
                    {
                        "organizationId": request.organization_id,
                        "repositoryId": request.repository_id,
                        "ruleId": finding.rule_id,
                        "severity": finding.severity.value,
                        "file": finding.file,
                    },
                )
            )
        self.telemetry.submit(
            TelemetryEvent("performance", {"reviewId": result.id, **timings})
        )
        self.telemetry.submit(
            TelemetryEvent(
                "audit",
                {
                    "action": "review.completed",
                    "reviewId": result.id,
                    "repositoryId": request.repository_id,
                    "prSha": request.pr_sha,
                    "blocked": result.is_blocked,
                    "score": result.score,
                    "policyChecksum": result.policy_checksum,
                },
            )
        )

    def _transition(self, review_id: str, state: ReviewState) -> None:
        logger.debug(f"Review {review_id} -> {state.value}")
        if self._on_transition is not None:
            self._on_transition(review_id, state)
