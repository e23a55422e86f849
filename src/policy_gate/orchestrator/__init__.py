"""Orchestrator components for Policy Gate."""

from policy_gate.orchestrator.collector import FindingCollector, OrchestratorConfig
from policy_gate.orchestrator.drift import (
    DriftCheckRequest,
    DriftCheckResult,
    DriftChecker,
    Endpoint,
    endpoints_from_openapi,
)
from policy_gate.orchestrator.pipeline import (
    InMemoryReviewStore,
    ReviewPipeline,
    ReviewState,
    ReviewStore,
)
from policy_gate.orchestrator.telemetry import TelemetryEvent, TelemetryQueue

__all__ = [
    "DriftCheckRequest",
    "DriftCheckResult",
    "DriftChecker",
    "Endpoint",
    "FindingCollector",
    "InMemoryReviewStore",
    "OrchestratorConfig",
    "ReviewPipeline",
    "ReviewState",
    "ReviewStore",
    "TelemetryEvent",
    "TelemetryQueue",
    "endpoints_from_openapi",
]
