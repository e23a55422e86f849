"""Tests for the documentation drift check."""

from unittest.mock import AsyncMock, MagicMock

import pytest

OPENAPI_DOC = {
    "openapi": "3.0.0",
    "paths": {
        "/users": {
            "get": {"parameters": [{"name": "limit", "in": "query"}]},
            "post": {},
        },
        "/users/{id}": {
            "parameters": [{"name": "id", "in": "path"}],
            "delete": {},
        },
    },
}


def _checker(policy_store=None):
    from policy_gate.evidence.producer import EvidenceProducer, InMemoryEvidenceStore
    from policy_gate.orchestrator.drift import DriftChecker
    from policy_gate.policy.evaluator import Evaluator
    from policy_gate.policy.resolver import PolicyResolver
    from policy_gate.policy.store import InMemoryPolicyStore

    evidence_store = InMemoryEvidenceStore()
    checker = DriftChecker(
        resolver=PolicyResolver(policy_store or InMemoryPolicyStore()),
        evaluator=Evaluator(),
        evidence_producer=EvidenceProducer(evidence_store),
    )
    return checker, evidence_store


def _request(current, documented, **kwargs):
    from policy_gate.orchestrator.drift import DriftCheckRequest

    return DriftCheckRequest(
        organization_id="org-1",
        repository_id="repo-1",
        ref="abc123def456",
        current_endpoints=current,
        documented_endpoints=documented,
        **kwargs,
    )


class TestEndpointsFromOpenAPI:
    """Tests for reading endpoints out of an OpenAPI document."""

    def test_operations_listed(self):
        """Test HTTP operations are listed and non-operation keys skipped."""
        from policy_gate.orchestrator.drift import endpoints_from_openapi

        endpoints = endpoints_from_openapi(OPENAPI_DOC)

        assert [e.key for e in endpoints] == [
            ("GET", "/users"),
            ("POST", "/users"),
            ("DELETE", "/users/{id}"),
        ]
        assert endpoints[0].params == [{"name": "limit", "in": "query"}]
        assert endpoints[1].params is None

    def test_empty_document(self):
        """Test a document without paths has no endpoints."""
        from policy_gate.orchestrator.drift import endpoints_from_openapi

        assert endpoints_from_openapi({"openapi": "3.0.0"}) == []


class TestDriftChecker:
    """Tests for DriftChecker.check_drift."""

    @pytest.mark.asyncio
    async def test_no_drift(self):
        """Test matching endpoints produce a clean, evidenced result."""
        from policy_gate.orchestrator.drift import endpoints_from_openapi

        checker, evidence_store = _checker()
        documented = endpoints_from_openapi(OPENAPI_DOC)

        result = await checker.check_drift(_request(list(documented), documented))

        assert not result.drift_detected
        assert not result.is_blocked
        assert result.evaluation.score == 100
        assert await evidence_store.get(result.evidence_bundle_id) is not None

    @pytest.mark.asyncio
    async def test_missing_changed_and_extra(self):
        """Test each kind of drift is detected and reported as a finding."""
        from policy_gate.orchestrator.drift import Endpoint

        checker, evidence_store = _checker()
        documented = [
            Endpoint("GET", "/users", params=[{"name": "limit"}]),
            Endpoint("DELETE", "/legacy"),
        ]
        current = [
            Endpoint("get", "/users", file="api/users.py", line=12, params=[{"name": "page"}]),
            Endpoint("POST", "/orders", file="api/orders.py", line=30),
        ]

        result = await checker.check_drift(_request(current, documented))

        assert result.drift_detected
        assert [e.key for e in result.missing_endpoints] == [("POST", "/orders")]
        assert [e.key for e in result.changed_endpoints] == [("GET", "/users")]
        assert [e.key for e in result.extra_endpoints] == [("DELETE", "/legacy")]
        # Basic tier allows medium and low findings
        assert not result.is_blocked
        assert result.evaluation.rules_fired == (
            "docs.drift.changed-endpoint",
            "docs.drift.extra-endpoint",
            "docs.drift.missing-endpoint",
        )
        assert result.evaluation.score == 100 - 5 - 5 - 2

        bundle = await evidence_store.get(result.evidence_bundle_id)
        assert bundle.linked_resource.kind.value == "doc"
        assert bundle.linked_resource.id == "repo-1@abc123def456"

    @pytest.mark.asyncio
    async def test_strict_tier_blocks_drift(self):
        """Test undocumented endpoints block under the maximum tier."""
        from policy_gate.models.policy import EnforcementTier
        from policy_gate.orchestrator.drift import Endpoint
        from policy_gate.policy.store import InMemoryPolicyStore

        checker, _ = _checker(InMemoryPolicyStore(default_tier=EnforcementTier.MAXIMUM))
        current = [Endpoint("POST", "/orders", file="api/orders.py", line=30)]

        result = await checker.check_drift(_request(current, [], doc_id="openapi-v2"))

        assert result.is_blocked
        assert "api/orders.py:30" in result.blocked_reason
        assert result.remediation

    @pytest.mark.asyncio
    async def test_endpoint_order_does_not_change_hash(self):
        """Test the same endpoints listed in another order hash the same."""
        from policy_gate.orchestrator.drift import Endpoint

        checker, evidence_store = _checker()
        current = [
            Endpoint("POST", "/orders", file="api/orders.py", line=30),
            Endpoint("GET", "/users", file="api/users.py", line=12),
        ]
        documented = [Endpoint("GET", "/users"), Endpoint("DELETE", "/legacy")]

        first = await checker.check_drift(_request(current, documented))
        second = await checker.check_drift(_request(current[::-1], documented[::-1]))

        first_bundle = await evidence_store.get(first.evidence_bundle_id)
        second_bundle = await evidence_store.get(second.evidence_bundle_id)
        assert first_bundle.inputs_metadata.diff_hash == second_bundle.inputs_metadata.diff_hash
        assert first.evaluation.score == second.evaluation.score

    @pytest.mark.asyncio
    async def test_doc_id_links_evidence(self):
        """Test a given doc id becomes the linked resource."""
        checker, evidence_store = _checker()

        result = await checker.check_drift(_request([], [], doc_id="openapi-v2"))

        bundle = await evidence_store.get(result.evidence_bundle_id)
        assert bundle.linked_resource.id == "openapi-v2"
        assert bundle.inputs_metadata.extra == {"docId": "openapi-v2"}

    @pytest.mark.asyncio
    async def test_policy_failure_blocks(self):
        """Test a policy store outage blocks the drift check."""
        from policy_gate.orchestrator.drift import Endpoint

        store = MagicMock()
        store.load_latest_pack = AsyncMock(side_effect=TimeoutError("store timeout"))
        checker, evidence_store = _checker(store)

        result = await checker.check_drift(_request([Endpoint("GET", "/a")], []))

        assert result.is_blocked
        assert result.drift_detected
        assert "store timeout" in result.blocked_reason
        assert result.evidence_bundle_id is None
        assert len(evidence_store) == 0

    def test_result_to_dict(self):
        """Test the result serializes with camelCase keys."""
        from policy_gate.orchestrator.drift import DriftCheckResult, Endpoint

        result = DriftCheckResult(
            drift_detected=True,
            is_blocked=False,
            missing_endpoints=[Endpoint("post", "/orders", file="api/orders.py", line=30)],
        )

        data = result.to_dict()

        assert data["driftDetected"] is True
        assert data["missingEndpoints"] == [
            {"method": "POST", "path": "/orders", "file": "api/orders.py", "line": 30}
        ]
        assert data["extraEndpoints"] == []
