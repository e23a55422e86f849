"""Evidence producer: assembles and persists write-once evidence bundles."""

import logging
import platform
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Protocol

from policy_gate import __version__
from policy_gate.errors import EvidenceNotFoundError, EvidenceStoreError
from policy_gate.evidence.hashing import canonical_json, hash_diff, hash_file_list
from policy_gate.models.evidence import (
    EXPORT_SCHEMA_VERSION,
    EvidenceBundle,
    EvidenceExport,
    EvidenceInputs,
    EvidenceOutputs,
    LinkedResource,
)
from policy_gate.models.policy import EffectivePolicy, PolicySnapshot

logger = logging.getLogger(__name__)


class EvidenceStore(Protocol):
    """Write-once persistence for evidence bundles."""

    async def save(self, bundle: EvidenceBundle) -> str:
        """Persist a new bundle and return its id."""
        ...

    async def get(self, bundle_id: str) -> EvidenceBundle | None:
        """Load a bundle by id, or None."""
        ...


class InMemoryEvidenceStore:
    """In-process evidence store. Bundles can be saved once and never updated."""

    def __init__(self) -> None:
        self._bundles: dict[str, EvidenceBundle] = {}

    async def save(self, bundle: EvidenceBundle) -> str:
        if bundle.id in self._bundles:
            raise EvidenceStoreError(f"Evidence bundle {bundle.id} already exists")
        self._bundles[bundle.id] = bundle
        return bundle.id

    async def get(self, bundle_id: str) -> EvidenceBundle | None:
        return self._bundles.get(bundle_id)

    def __len__(self) -> int:
        return len(self._bundles)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EvidenceProducer:
    """Builds evidence bundles that pin a decision to the policy version behind it."""

    def __init__(
        self,
        store: EvidenceStore,
        tool_versions: dict[str, str] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the producer.

        Args:
            store: Where bundles are persisted
            tool_versions: Extra tool/analyzer versions recorded in every bundle
            clock: Source of timestamps
        """
        self.store = store
        self.tool_versions = {
            "policyEngine": __version__,
            "python": platform.python_version(),
            **(tool_versions or {}),
        }
        self._clock = clock

    async def produce_evidence(
        self,
        inputs: EvidenceInputs,
        outputs: EvidenceOutputs,
        policy: EffectivePolicy,
        linked_resource: LinkedResource,
        timings: dict[str, float] | None = None,
    ) -> EvidenceBundle:
        """Assemble and persist an evidence bundle.

        Missing input hashes are computed from the inputs themselves. The
        policy checksum is copied from the pack, never recomputed here.

        Args:
            inputs: What was evaluated (hashes may be pre-supplied)
            outputs: Findings and the evaluation result
            policy: Effective policy the decision was made under
            linked_resource: Review, test or doc the bundle proves
            timings: Optional stage timings in milliseconds

        Returns:
            The persisted bundle
        """
        diff_hash = inputs.diff_hash or hash_diff(canonical_json(inputs.to_dict()))
        file_list_hash = inputs.file_list_hash or hash_file_list(
            str(f.get("path", "")) for f in inputs.files
        )
        inputs_metadata = EvidenceInputs(
            diff_hash=diff_hash,
            file_list_hash=file_list_hash,
            commit_sha=inputs.commit_sha,
            branch=inputs.branch,
            pr_number=inputs.pr_number,
            files=inputs.files,
            extra=dict(inputs.extra),
            tool_versions=dict(inputs.tool_versions),
        )

        now = self._clock()
        bundle = EvidenceBundle(
            id=f"evidence-{uuid.uuid4().hex[:12]}",
            linked_resource=linked_resource,
            inputs_metadata=inputs_metadata,
            rules_fired=outputs.evaluation.rules_fired,
            deterministic_score=outputs.evaluation.score,
            policy_checksum=policy.pack.checksum,
            policy_snapshot=PolicySnapshot.from_policy(policy),
            outputs=outputs,
            tool_versions={**self.tool_versions, **inputs.tool_versions},
            timings=dict(timings or {}),
            evaluated_at=now,
            created_at=now,
        )

        bundle_id = await self.store.save(bundle)
        logger.info(
            f"Stored evidence {bundle_id} for {linked_resource.kind.value} {linked_resource.id} "
            f"(score {bundle.deterministic_score}, policy {bundle.policy_checksum[:12]})"
        )
        return bundle

    async def export_evidence(self, bundle_id: str) -> EvidenceExport:
        """Export a stored bundle in the versioned export format.

        Raises:
            EvidenceNotFoundError: If no bundle has this id
        """
        bundle = await self.store.get(bundle_id)
        if bundle is None:
            raise EvidenceNotFoundError(bundle_id)
        return export_bundle(bundle)


def export_bundle(bundle: EvidenceBundle) -> EvidenceExport:
    """Reshape a bundle into its export form. Pure."""
    return EvidenceExport(
        schema_version=EXPORT_SCHEMA_VERSION,
        evidence_bundle=bundle,
        policy=bundle.policy_snapshot,
        inputs=bundle.inputs_metadata,
        outputs=bundle.outputs,
        created_at=bundle.created_at,
        evaluated_at=bundle.evaluated_at,
    )
