"""Tests for evidence hashing, production and export."""

from datetime import datetime, timezone

import pytest

FIXED_NOW = datetime(2026, 3, 14, 9, 26, 53, tzinfo=timezone.utc)


class TestHashing:
    """Tests for canonical hashing helpers."""

    def test_canonical_json_key_order(self):
        """Test key order does not change canonical output."""
        from policy_gate.evidence.hashing import canonical_json

        assert canonical_json({"b": 1, "a": [1, 2]}) == canonical_json({"a": [1, 2], "b": 1})
        assert canonical_json({"a": 1}) == '{"a":1}'

    def test_file_list_hash_order_insensitive(self):
        """Test file list hashing sorts before digesting."""
        from policy_gate.evidence.hashing import hash_file_list

        assert hash_file_list(["b.ts", "a.ts"]) == hash_file_list(["a.ts", "b.ts"])
        assert hash_file_list(["a.ts"]) != hash_file_list(["a.ts", "b.ts"])

    def test_hash_diff_prefers_diff_text(self):
        """Test the diff is hashed when given, file contents otherwise."""
        from policy_gate.evidence.hashing import hash_diff, sha256_hex

        assert hash_diff("diff --git a b") == sha256_hex("diff --git a b")
        from_files = hash_diff(None, [("a.ts", "x"), ("b.ts", "y")])
        assert from_files == sha256_hex("a.ts\nx\n---\nb.ts\ny")

    def test_hash_diff_file_order_insensitive(self):
        """Test the file-content fallback hashes the same for any file order."""
        from policy_gate.evidence.hashing import hash_diff

        assert hash_diff(None, [("b.ts", "y"), ("a.ts", "x")]) == hash_diff(None, [("a.ts", "x"), ("b.ts", "y")])
        assert hash_diff(None, [("a.ts", "x")]) != hash_diff(None, [("a.ts", "y")])


def _outputs(findings, policy):
    from policy_gate.models.evidence import EvidenceOutputs
    from policy_gate.policy.evaluator import Evaluator

    return EvidenceOutputs(findings=tuple(findings), evaluation=Evaluator().evaluate(findings, policy))


class TestEvidenceProducer:
    """Tests for EvidenceProducer."""

    @pytest.mark.asyncio
    async def test_produce_records_policy_checksum(self, make_finding, default_policy):
        """Test the bundle pins the pack checksum, score and rules fired."""
        from policy_gate.evidence.producer import EvidenceProducer, InMemoryEvidenceStore
        from policy_gate.models.evidence import EvidenceInputs, LinkedResource, ResourceKind

        store = InMemoryEvidenceStore()
        producer = EvidenceProducer(store, clock=lambda: FIXED_NOW)
        policy = default_policy()

        bundle = await producer.produce_evidence(
            EvidenceInputs(commit_sha="abc", files=({"path": "a.ts", "size": 3},)),
            _outputs([make_finding()], policy),
            policy,
            LinkedResource(ResourceKind.REVIEW, "review-1"),
            timings={"totalMs": 12.5},
        )

        assert bundle.id.startswith("evidence-")
        assert bundle.policy_checksum == policy.pack.checksum
        assert bundle.deterministic_score == 80
        assert bundle.rules_fired == ("security.sql-injection",)
        assert bundle.created_at == FIXED_NOW
        assert bundle.timings == {"totalMs": 12.5}
        assert bundle.tool_versions["policyEngine"]
        assert bundle.inputs_metadata.diff_hash
        assert bundle.inputs_metadata.file_list_hash
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_reproducible_for_fixed_inputs(self, make_finding, default_policy):
        """Test identical inputs reproduce score, rules and hashes."""
        from policy_gate.evidence.producer import EvidenceProducer, InMemoryEvidenceStore
        from policy_gate.models.evidence import EvidenceInputs, LinkedResource, ResourceKind

        producer = EvidenceProducer(InMemoryEvidenceStore())
        policy = default_policy()
        findings = [make_finding(), make_finding(rule_id="r.low", severity="low", file="b.ts")]
        inputs = EvidenceInputs(commit_sha="abc", files=({"path": "b.ts"}, {"path": "a.ts"}))

        first = await producer.produce_evidence(
            inputs, _outputs(findings, policy), policy, LinkedResource(ResourceKind.REVIEW, "r1")
        )
        second = await producer.produce_evidence(
            inputs, _outputs(list(reversed(findings)), policy), policy, LinkedResource(ResourceKind.REVIEW, "r2")
        )

        assert first.id != second.id
        assert first.deterministic_score == second.deterministic_score
        assert first.rules_fired == second.rules_fired
        assert first.policy_checksum == second.policy_checksum
        assert first.inputs_metadata.diff_hash == second.inputs_metadata.diff_hash
        assert first.inputs_metadata.file_list_hash == second.inputs_metadata.file_list_hash

    @pytest.mark.asyncio
    async def test_pre_supplied_hashes_kept(self, default_policy):
        """Test caller-supplied hashes are recorded verbatim."""
        from policy_gate.evidence.producer import EvidenceProducer, InMemoryEvidenceStore
        from policy_gate.models.evidence import EvidenceInputs, LinkedResource, ResourceKind

        policy = default_policy()
        bundle = await EvidenceProducer(InMemoryEvidenceStore()).produce_evidence(
            EvidenceInputs(diff_hash="d" * 64, file_list_hash="f" * 64),
            _outputs([], policy),
            policy,
            LinkedResource(ResourceKind.TEST, "run-1"),
        )

        assert bundle.inputs_metadata.diff_hash == "d" * 64
        assert bundle.inputs_metadata.file_list_hash == "f" * 64

    @pytest.mark.asyncio
    async def test_store_is_write_once(self, default_policy):
        """Test saving an existing bundle id is rejected."""
        from policy_gate.errors import EvidenceStoreError
        from policy_gate.evidence.producer import EvidenceProducer, InMemoryEvidenceStore
        from policy_gate.models.evidence import EvidenceInputs, LinkedResource, ResourceKind

        store = InMemoryEvidenceStore()
        policy = default_policy()
        bundle = await EvidenceProducer(store).produce_evidence(
            EvidenceInputs(), _outputs([], policy), policy, LinkedResource(ResourceKind.DOC, "doc-1")
        )

        with pytest.raises(EvidenceStoreError):
            await store.save(bundle)

    @pytest.mark.asyncio
    async def test_export_shape(self, make_finding, default_policy):
        """Test export is a versioned reshape of the stored bundle."""
        from policy_gate.evidence.producer import EvidenceProducer, InMemoryEvidenceStore
        from policy_gate.models.evidence import EvidenceInputs, LinkedResource, ResourceKind

        producer = EvidenceProducer(InMemoryEvidenceStore(), clock=lambda: FIXED_NOW)
        policy = default_policy()
        bundle = await producer.produce_evidence(
            EvidenceInputs(commit_sha="abc", branch="main", pr_number=42),
            _outputs([make_finding()], policy),
            policy,
            LinkedResource(ResourceKind.REVIEW, "review-1"),
        )

        export = (await producer.export_evidence(bundle.id)).to_dict()

        assert export["schemaVersion"] == "1.0.0"
        assert export["evidenceBundle"]["id"] == bundle.id
        assert export["evidenceBundle"]["linkedResource"] == {"kind": "review", "id": "review-1"}
        assert export["policy"]["checksum"] == policy.pack.checksum
        assert export["policy"]["packId"] == "default"
        assert export["policy"]["rules"][0]["ruleId"] == "*"
        assert export["inputs"]["commitSha"] == "abc"
        assert export["outputs"]["evaluationResult"]["score"] == 80
        assert export["outputs"]["findings"][0]["ruleId"] == "security.sql-injection"
        assert export["timestamps"]["evaluatedAt"] == FIXED_NOW.isoformat()

    @pytest.mark.asyncio
    async def test_export_is_repeatable(self, default_policy):
        """Test exporting twice yields the same document."""
        from policy_gate.evidence.producer import EvidenceProducer, InMemoryEvidenceStore
        from policy_gate.models.evidence import EvidenceInputs, LinkedResource, ResourceKind

        producer = EvidenceProducer(InMemoryEvidenceStore())
        policy = default_policy()
        bundle = await producer.produce_evidence(
            EvidenceInputs(), _outputs([], policy), policy, LinkedResource(ResourceKind.REVIEW, "r")
        )

        first = (await producer.export_evidence(bundle.id)).to_dict()
        second = (await producer.export_evidence(bundle.id)).to_dict()

        assert first == second

    @pytest.mark.asyncio
    async def test_export_unknown_bundle(self):
        """Test exporting an unknown id raises EvidenceNotFoundError."""
        from policy_gate.errors import EvidenceNotFoundError
        from policy_gate.evidence.producer import EvidenceProducer, InMemoryEvidenceStore

        producer = EvidenceProducer(InMemoryEvidenceStore())

        with pytest.raises(EvidenceNotFoundError) as exc_info:
            await producer.export_evidence("evidence-missing")

        assert exc_info.value.bundle_id == "evidence-missing"

    def test_extra_tool_versions(self):
        """Test configured tool versions are merged into the defaults."""
        from policy_gate.evidence.producer import EvidenceProducer, InMemoryEvidenceStore

        producer = EvidenceProducer(InMemoryEvidenceStore(), tool_versions={"semgrep": "1.50.0"})

        assert producer.tool_versions["semgrep"] == "1.50.0"
        assert "python" in producer.tool_versions
