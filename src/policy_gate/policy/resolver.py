"""Policy resolver: builds the effective policy for one evaluation."""

import logging
from datetime import datetime, timezone

from policy_gate.errors import PolicyGateError, PolicyStoreError
from policy_gate.evidence.hashing import canonical_json, sha256_hex
from policy_gate.models.findings import Action, Severity
from policy_gate.models.policy import (
    WILDCARD_RULE_ID,
    EffectivePolicy,
    EnforcementTier,
    PolicyPack,
    PolicyRule,
)
from policy_gate.policy.store import PolicyStore

logger = logging.getLogger(__name__)

DEFAULT_POLICY_VERSION = "1.0.0"
DEFAULT_PACK_ID = "default"

# Fixed per-tier mappings used when no pack is configured. Critical blocks everywhere.
TIER_SEVERITY_MAPPINGS: dict[EnforcementTier, dict[Severity, Action]] = {
    EnforcementTier.BASIC: {
        Severity.CRITICAL: Action.BLOCK,
        Severity.HIGH: Action.WARN,
        Severity.MEDIUM: Action.ALLOW,
        Severity.LOW: Action.ALLOW,
    },
    EnforcementTier.MODERATE: {
        Severity.CRITICAL: Action.BLOCK,
        Severity.HIGH: Action.BLOCK,
        Severity.MEDIUM: Action.WARN,
        Severity.LOW: Action.ALLOW,
    },
    EnforcementTier.MAXIMUM: {
        Severity.CRITICAL: Action.BLOCK,
        Severity.HIGH: Action.BLOCK,
        Severity.MEDIUM: Action.BLOCK,
        Severity.LOW: Action.WARN,
    },
}


def default_policy_pack(
    tier: EnforcementTier, organization_id: str, repository_id: str | None = None
) -> PolicyPack:
    """Synthesize the default pack for a tier.

    Pure function of its arguments: the same tier always yields the same
    rules, source text and checksum.
    """
    rule = PolicyRule(
        rule_id=WILDCARD_RULE_ID,
        severity_mapping=dict(TIER_SEVERITY_MAPPINGS[tier]),
        enabled=True,
        id=DEFAULT_PACK_ID,
    )
    source_text = canonical_json(
        {
            "version": DEFAULT_POLICY_VERSION,
            "rules": [rule.to_dict()],
            "enforcementStrength": tier.value,
        }
    )
    return PolicyPack(
        id=DEFAULT_PACK_ID,
        organization_id=organization_id,
        repository_id=repository_id,
        version=DEFAULT_POLICY_VERSION,
        source_text=source_text,
        checksum=sha256_hex(source_text),
        rules=(rule,),
    )


class PolicyResolver:
    """Merges repository and organization policy into an EffectivePolicy."""

    def __init__(self, store: PolicyStore) -> None:
        """Initialize the resolver.

        Args:
            store: Policy store adapter to read packs, waivers and tiers from
        """
        self.store = store

    async def resolve(
        self,
        organization_id: str,
        repository_id: str | None = None,
        ref: str | None = None,
        branch: str | None = None,
        now: datetime | None = None,
    ) -> EffectivePolicy:
        """Build the effective policy for an evaluation.

        The repository pack wins over the organization pack. With neither,
        a default policy derived from the organization's tier is used.

        Args:
            organization_id: Organization that owns the repository
            repository_id: Repository being evaluated, None for org scope
            ref: Change reference (commit SHA), used for logging only
            branch: Branch under evaluation, used by branch-scoped waivers
            now: Reference time for waiver expiry (defaults to current UTC time)

        Returns:
            The request-scoped effective policy

        Raises:
            PolicyStoreError: If the store cannot be read
        """
        now = now or datetime.now(timezone.utc)

        try:
            pack = None
            if repository_id:
                pack = await self.store.load_latest_pack(organization_id, repository_id)
            if pack is None:
                pack = await self.store.load_latest_pack(organization_id, None)

            tier = None
            if pack is None:
                tier = await self.store.load_enforcement_tier(organization_id)
                pack = default_policy_pack(tier, organization_id, repository_id)

            waivers = await self.store.load_active_waivers(organization_id, repository_id, now)
        except PolicyGateError:
            raise
        except Exception as e:
            raise PolicyStoreError(f"Policy store unavailable: {e}") from e

        rules = {rule.rule_id: rule for rule in pack.rules if rule.enabled}

        if tier:
            source = f" (default {tier.value} tier)"
        elif pack.is_organization_default and repository_id:
            source = " (organization pack)"
        else:
            source = ""

        logger.info(
            f"Resolved policy {pack.id} v{pack.version} for {organization_id}/"
            f"{repository_id or '*'}@{ref or 'HEAD'}{source}"
            + f": {len(rules)} rules, {len(waivers)} waivers"
        )

        return EffectivePolicy(
            pack=pack,
            rules=rules,
            waivers=tuple(waivers),
            branch=branch,
            tier=tier,
        )
