"""Documentation drift check: endpoints in code vs endpoints in the OpenAPI doc."""

import logging
from dataclasses import dataclass, field
from typing import Any

from policy_gate.errors import PolicyGateError
from policy_gate.evidence.hashing import canonical_json, hash_diff, hash_file_list
from policy_gate.evidence.producer import EvidenceProducer
from policy_gate.models.evaluation import EvaluationResult
from policy_gate.models.evidence import (
    EvidenceInputs,
    EvidenceOutputs,
    LinkedResource,
    ResourceKind,
)
from policy_gate.models.findings import Finding, Severity
from policy_gate.policy.evaluator import Evaluator
from policy_gate.policy.resolver import PolicyResolver

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "post", "put", "delete", "patch")


@dataclass(frozen=True)
class Endpoint:
    """An HTTP route, as found in code or in documentation."""

    method: str
    path: str
    file: str | None = None
    line: int | None = None
    params: Any = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.method.upper(), self.path)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"method": self.method.upper(), "path": self.path}
        if self.file is not None:
            data["file"] = self.file
            data["line"] = self.line
        return data


def endpoints_from_openapi(spec: dict[str, Any]) -> list[Endpoint]:
    """List the operations declared in an OpenAPI document."""
    endpoints = []
    for path, operations in (spec.get("paths") or {}).items():
        for method, operation in (operations or {}).items():
            if method.lower() not in HTTP_METHODS:
                continue
            params = operation.get("parameters") if isinstance(operation, dict) else None
            endpoints.append(Endpoint(method=method.upper(), path=path, params=params))
    return endpoints


def _canonical_endpoints(endpoints: list[Endpoint]) -> list[dict[str, Any]]:
    """Endpoint dicts in (method, path, file, line) order for hashing."""
    ordered = sorted(endpoints, key=lambda e: (e.key, e.file or "", e.line or 0))
    return [e.to_dict() for e in ordered]


@dataclass
class DriftCheckRequest:
    """Current endpoints of a ref and the endpoints its docs describe."""

    organization_id: str
    repository_id: str
    ref: str
    current_endpoints: list[Endpoint]
    documented_endpoints: list[Endpoint]
    branch: str | None = None
    doc_id: str | None = None


@dataclass
class DriftCheckResult:
    """Outcome of a drift check under the effective policy."""

    drift_detected: bool
    is_blocked: bool
    missing_endpoints: list[Endpoint] = field(default_factory=list)
    extra_endpoints: list[Endpoint] = field(default_factory=list)
    changed_endpoints: list[Endpoint] = field(default_factory=list)
    evaluation: EvaluationResult | None = None
    blocked_reason: str | None = None
    remediation: str | None = None
    evidence_bundle_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "driftDetected": self.drift_detected,
            "isBlocked": self.is_blocked,
            "missingEndpoints": [e.to_dict() for e in self.missing_endpoints],
            "extraEndpoints": [e.to_dict() for e in self.extra_endpoints],
            "changedEndpoints": [e.to_dict() for e in self.changed_endpoints],
            "blockedReason": self.blocked_reason,
            "remediation": self.remediation,
            "evidenceBundleId": self.evidence_bundle_id,
        }


class DriftChecker:
    """Runs documentation drift through the same policy and evidence path as reviews."""

    def __init__(
        self,
        resolver: PolicyResolver,
        evaluator: Evaluator,
        evidence_producer: EvidenceProducer,
    ) -> None:
        self.resolver = resolver
        self.evaluator = evaluator
        self.evidence_producer = evidence_producer

    async def check_drift(self, request: DriftCheckRequest) -> DriftCheckResult:
        """Compare endpoints, judge the drift and record evidence.

        Policy or evidence failures block the check rather than letting
        undocumented changes through.
        """
        documented = {e.key: e for e in request.documented_endpoints}
        current = {e.key: e for e in request.current_endpoints}

        missing = [e for e in request.current_endpoints if e.key not in documented]
        changed = [
            e for e in request.current_endpoints
            if e.key in documented and e.params != documented[e.key].params
        ]
        extra = [e for e in request.documented_endpoints if e.key not in current]
        drift_detected = bool(missing or changed or extra)

        findings = self._drift_findings(missing, changed, extra)
        logger.info(
            f"Drift check for {request.repository_id}@{request.ref[:12]}: "
            f"{len(missing)} missing, {len(changed)} changed, {len(extra)} extra"
        )

        try:
            policy = await self.resolver.resolve(
                request.organization_id,
                request.repository_id,
                ref=request.ref,
                branch=request.branch,
            )
            evaluation = self.evaluator.evaluate(findings, policy)

            all_endpoints = request.current_endpoints + request.documented_endpoints
            inputs = EvidenceInputs(
                diff_hash=hash_diff(
                    canonical_json(
                        {
                            "current": _canonical_endpoints(request.current_endpoints),
                            "documented": _canonical_endpoints(request.documented_endpoints),
                        }
                    )
                ),
                file_list_hash=hash_file_list({e.file for e in all_endpoints if e.file}),
                commit_sha=request.ref,
                branch=request.branch,
                extra={"docId": request.doc_id} if request.doc_id else {},
            )
            bundle = await self.evidence_producer.produce_evidence(
                inputs,
                EvidenceOutputs(findings=tuple(findings), evaluation=evaluation),
                policy,
                LinkedResource(ResourceKind.DOC, request.doc_id or f"{request.repository_id}@{request.ref}"),
            )
        except PolicyGateError as e:
            logger.error(f"Drift check for {request.repository_id} failed: {e}")
            return DriftCheckResult(
                drift_detected=drift_detected,
                is_blocked=True,
                missing_endpoints=missing,
                extra_endpoints=extra,
                changed_endpoints=changed,
                blocked_reason=f"Drift check failed: {e}",
                remediation=e.remediation,
            )

        return DriftCheckResult(
            drift_detected=drift_detected,
            is_blocked=evaluation.blocked,
            missing_endpoints=missing,
            extra_endpoints=extra,
            changed_endpoints=changed,
            evaluation=evaluation,
            blocked_reason=evaluation.blocking_reason,
            remediation="Regenerate the API documentation for this ref." if evaluation.blocked else None,
            evidence_bundle_id=bundle.id,
        )

    def _drift_findings(
        self,
        missing: list[Endpoint],
        changed: list[Endpoint],
        extra: list[Endpoint],
    ) -> list[Finding]:
        findings = []
        for endpoint in missing:
            findings.append(
                Finding(
                    rule_id="docs.drift.missing-endpoint",
                    severity=Severity.MEDIUM,
                    file=endpoint.file or "openapi",
                    line=endpoint.line or 1,
                    message=f"{endpoint.method.upper()} {endpoint.path} is not documented",
                    confidence=1.0,
                    fix="Add the endpoint to the OpenAPI document.",
                )
            )
        for endpoint in changed:
            findings.append(
                Finding(
                    rule_id="docs.drift.changed-endpoint",
                    severity=Severity.MEDIUM,
                    file=endpoint.file or "openapi",
                    line=endpoint.line or 1,
                    message=f"{endpoint.method.upper()} {endpoint.path}: parameters or response changed",
                    confidence=1.0,
                    fix="Update the documented parameters to match the code.",
                )
            )
        for endpoint in extra:
            findings.append(
                Finding(
                    rule_id="docs.drift.extra-endpoint",
                    severity=Severity.LOW,
                    file="openapi",
                    line=1,
                    message=f"{endpoint.method.upper()} {endpoint.path} is documented but not implemented",
                    confidence=1.0,
                    fix="Remove the endpoint from the OpenAPI document.",
                )
            )
        return findings
