"""Policy store adapter: loads packs, waivers and enforcement tiers.

Stores are read-mostly and append-only. A new policy version is a new pack
and a new waiver is a new row, so concurrent evaluations never need locks
to see a consistent configuration.
"""

import logging
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import yaml

from policy_gate.errors import PolicySourceError, PolicyStoreError
from policy_gate.models.policy import EnforcementTier, PolicyPack, Waiver, WaiverScope
from policy_gate.policy.source import build_policy_pack

logger = logging.getLogger(__name__)


class PolicyStore(Protocol):
    """Read interface the policy resolver depends on."""

    async def load_latest_pack(
        self, organization_id: str, repository_id: str | None
    ) -> PolicyPack | None:
        """Latest pack for exactly this scope, or None."""
        ...

    async def load_active_waivers(
        self, organization_id: str, repository_id: str | None, now: datetime
    ) -> list[Waiver]:
        """Waivers for this scope that have not expired as of now."""
        ...

    async def load_enforcement_tier(self, organization_id: str) -> EnforcementTier:
        """The organization's enforcement tier."""
        ...


def _as_utc(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        raise PolicyStoreError(f"Invalid timestamp: {value!r}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class InMemoryPolicyStore:
    """Append-only in-process policy store."""

    def __init__(self, default_tier: EnforcementTier = EnforcementTier.BASIC) -> None:
        self.default_tier = default_tier
        self._packs: dict[tuple[str, str | None], list[PolicyPack]] = {}
        self._waivers: dict[tuple[str, str | None], list[Waiver]] = {}
        self._tiers: dict[str, EnforcementTier] = {}

    def add_pack(self, pack: PolicyPack) -> PolicyPack:
        """Append a pack; it becomes the latest for its scope."""
        key = (pack.organization_id, pack.repository_id)
        self._packs.setdefault(key, []).append(pack)
        logger.info(
            f"Stored policy pack {pack.id} v{pack.version} for "
            f"{pack.organization_id}/{pack.repository_id or '*'}"
        )
        return pack

    def add_waiver(
        self, organization_id: str, repository_id: str | None, waiver: Waiver
    ) -> Waiver:
        self._waivers.setdefault((organization_id, repository_id), []).append(waiver)
        return waiver

    def set_enforcement_tier(self, organization_id: str, tier: EnforcementTier) -> None:
        self._tiers[organization_id] = tier

    async def load_latest_pack(
        self, organization_id: str, repository_id: str | None
    ) -> PolicyPack | None:
        packs = self._packs.get((organization_id, repository_id))
        return packs[-1] if packs else None

    async def load_active_waivers(
        self, organization_id: str, repository_id: str | None, now: datetime
    ) -> list[Waiver]:
        return [
            w for w in self._waivers.get((organization_id, repository_id), []) if w.is_active(now)
        ]

    async def load_enforcement_tier(self, organization_id: str) -> EnforcementTier:
        return self._tiers.get(organization_id, self.default_tier)

    @classmethod
    def from_file(
        cls, path: Path, default_tier: EnforcementTier = EnforcementTier.BASIC
    ) -> "InMemoryPolicyStore":
        """Load a store from a YAML file.

        Format:
            organizations: {org-id: {tier: moderate}}
            packs: [{organization, repository, source | source_file}]
            waivers: [{organization, repository, ruleId, scope, scopeValue, expiresAt}]

        Raises:
            PolicyStoreError: If the file cannot be read or is malformed
        """
        try:
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise PolicyStoreError(f"Cannot load policy store from {path}: {e}") from e

        store = cls(default_tier=default_tier)
        try:
            for org_id, org in (raw.get("organizations") or {}).items():
                if org and org.get("tier"):
                    store.set_enforcement_tier(str(org_id), EnforcementTier(org["tier"]))

            for pack_raw in raw.get("packs") or []:
                source = pack_raw.get("source")
                if source is None and pack_raw.get("source_file"):
                    source = (path.parent / pack_raw["source_file"]).read_text()
                store.add_pack(
                    build_policy_pack(
                        organization_id=str(pack_raw["organization"]),
                        repository_id=pack_raw.get("repository"),
                        source_text=source or "",
                        pack_id=pack_raw.get("id"),
                    )
                )

            for waiver_raw in raw.get("waivers") or []:
                store.add_waiver(
                    str(waiver_raw["organization"]),
                    waiver_raw.get("repository"),
                    Waiver(
                        id=str(waiver_raw.get("id") or f"waiver-{uuid.uuid4().hex[:8]}"),
                        rule_id=str(waiver_raw["ruleId"]),
                        scope=WaiverScope(waiver_raw.get("scope", "repo")),
                        scope_value=waiver_raw.get("scopeValue"),
                        expires_at=_as_utc(waiver_raw.get("expiresAt")),
                        reason=waiver_raw.get("reason"),
                    ),
                )
        except PolicyStoreError:
            raise
        except (KeyError, ValueError, OSError, PolicySourceError) as e:
            raise PolicyStoreError(f"Malformed policy store file {path}: {e}") from e

        return store


class CachedPolicyStore:
    """Read-through cache over another store.

    Packs and tiers are cached for ttl_seconds. Waivers are always read
    from the underlying store so expiry stays exact.
    """

    def __init__(
        self,
        store: PolicyStore,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._packs: dict[tuple[str, str | None], tuple[float, PolicyPack | None]] = {}
        self._tiers: dict[str, tuple[float, EnforcementTier]] = {}

    def invalidate(self, organization_id: str | None = None) -> None:
        """Drop cached entries, for one organization or all."""
        if organization_id is None:
            self._packs.clear()
            self._tiers.clear()
            return
        for key in [k for k in self._packs if k[0] == organization_id]:
            del self._packs[key]
        self._tiers.pop(organization_id, None)

    def _fresh(self, stored_at: float) -> bool:
        return self._clock() - stored_at < self.ttl_seconds

    async def load_latest_pack(
        self, organization_id: str, repository_id: str | None
    ) -> PolicyPack | None:
        key = (organization_id, repository_id)
        cached = self._packs.get(key)
        if cached and self._fresh(cached[0]):
            return cached[1]
        pack = await self.store.load_latest_pack(organization_id, repository_id)
        self._packs[key] = (self._clock(), pack)
        return pack

    async def load_active_waivers(
        self, organization_id: str, repository_id: str | None, now: datetime
    ) -> list[Waiver]:
        return await self.store.load_active_waivers(organization_id, repository_id, now)

    async def load_enforcement_tier(self, organization_id: str) -> EnforcementTier:
        cached = self._tiers.get(organization_id)
        if cached and self._fresh(cached[0]):
            return cached[1]
        tier = await self.store.load_enforcement_tier(organization_id)
        self._tiers[organization_id] = (self._clock(), tier)
        return tier
