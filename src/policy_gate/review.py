"""Process-level wiring: build the review pipeline and its collaborators from config.

Resolver, evaluator and evidence producer are constructed once per process
and handed to the pipeline explicitly. The only shared mutable state is the
time-boxed policy cache.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from policy_gate.analyzers.diff import DiffAnalyzer
from policy_gate.analyzers.remote import RemoteAnalyzer, RemoteAnalyzerConfig
from policy_gate.config import Config
from policy_gate.evidence.producer import EvidenceProducer, EvidenceStore, InMemoryEvidenceStore
from policy_gate.models.policy import EnforcementTier
from policy_gate.orchestrator.collector import FindingCollector, OrchestratorConfig
from policy_gate.orchestrator.drift import DriftChecker
from policy_gate.orchestrator.pipeline import InMemoryReviewStore, ReviewPipeline, ReviewStore
from policy_gate.orchestrator.telemetry import TelemetryEvent, TelemetryQueue
from policy_gate.policy.evaluator import Evaluator
from policy_gate.policy.resolver import PolicyResolver
from policy_gate.policy.store import CachedPolicyStore, InMemoryPolicyStore, PolicyStore

logger = logging.getLogger(__name__)


async def log_telemetry_event(event: TelemetryEvent) -> None:
    """Default telemetry sink: one debug log line per event."""
    logger.debug(f"telemetry {event.kind}: {event.payload}")


@dataclass
class Services:
    """Everything a caller needs to run reviews and export evidence."""

    policy_store: PolicyStore
    resolver: PolicyResolver
    evaluator: Evaluator
    evidence_producer: EvidenceProducer
    review_store: ReviewStore
    pipeline: ReviewPipeline
    drift_checker: DriftChecker
    telemetry: TelemetryQueue | None = None
    remote_analyzer: RemoteAnalyzer | None = None

    async def start(self) -> None:
        if self.telemetry is not None:
            await self.telemetry.start()

    async def close(self) -> None:
        """Flush telemetry and release network clients."""
        if self.telemetry is not None:
            await self.telemetry.stop()
        if self.remote_analyzer is not None:
            await self.remote_analyzer.close()


def build_policy_store(config: Config) -> PolicyStore:
    """Load the configured policy store, wrapped in the TTL cache."""
    tier = config.policy.default_tier
    if not isinstance(tier, EnforcementTier):
        tier = EnforcementTier.BASIC

    if config.policy.store_path:
        store = InMemoryPolicyStore.from_file(Path(config.policy.store_path), default_tier=tier)
        logger.info(f"Loaded policy store from {config.policy.store_path}")
    else:
        store = InMemoryPolicyStore(default_tier=tier)
        logger.info(f"No policy store configured; using {tier.value} tier defaults")

    if config.policy.cache_ttl_seconds > 0:
        return CachedPolicyStore(store, ttl_seconds=config.policy.cache_ttl_seconds)
    return store


def build_services(
    config: Config,
    policy_store: PolicyStore | None = None,
    evidence_store: EvidenceStore | None = None,
    review_store: ReviewStore | None = None,
) -> Services:
    """Construct the pipeline and its collaborators.

    Args:
        config: Application configuration
        policy_store: Override the configured policy store
        evidence_store: Override the in-memory evidence store
        review_store: Override the in-memory review store

    Returns:
        Wired services (call start() before serving)
    """
    if policy_store is None:
        policy_store = build_policy_store(config)
    if evidence_store is None:
        evidence_store = InMemoryEvidenceStore()
    if review_store is None:
        review_store = InMemoryReviewStore()

    resolver = PolicyResolver(policy_store)
    evaluator = Evaluator()
    evidence_producer = EvidenceProducer(evidence_store, tool_versions=config.evidence.tool_versions)

    remote_analyzer = None
    if config.analyzer.enabled:
        remote_analyzer = RemoteAnalyzer(
            RemoteAnalyzerConfig(
                base_url=config.analyzer.base_url,
                api_key=config.analyzer.api_key,
                model=config.analyzer.model,
                timeout=config.analyzer.timeout_seconds,
            )
        )

    collector = FindingCollector(
        ai_analyzers=[remote_analyzer] if remote_analyzer else [],
        config=OrchestratorConfig(
            timeout_seconds=config.orchestrator.timeout_seconds,
            max_parallel_analyzers=config.orchestrator.max_parallel_analyzers,
        ),
    )

    telemetry = None
    if config.telemetry.enabled:
        telemetry = TelemetryQueue(
            sinks=[log_telemetry_event], max_queue_size=config.telemetry.max_queue_size
        )

    pipeline = ReviewPipeline(
        resolver=resolver,
        evaluator=evaluator,
        evidence_producer=evidence_producer,
        review_store=review_store,
        collector=collector,
        diff_analyzer=DiffAnalyzer() if config.orchestrator.diff_analysis else None,
        telemetry=telemetry,
        excluded_paths=config.orchestrator.excluded_paths,
        schema_timeout_seconds=config.orchestrator.timeout_seconds,
    )

    return Services(
        policy_store=policy_store,
        resolver=resolver,
        evaluator=evaluator,
        evidence_producer=evidence_producer,
        review_store=review_store,
        pipeline=pipeline,
        drift_checker=DriftChecker(resolver, evaluator, evidence_producer),
        telemetry=telemetry,
        remote_analyzer=remote_analyzer,
    )
