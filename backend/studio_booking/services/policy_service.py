"""
Cancellation policy storage.

The policy is a settings row edited from the admin screen. Reads go through
the Redis cache; a missing or unreadable row falls back to the default policy
so cancellation never breaks on a misconfigured setting.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studio_booking.core.logging import get_logger
from studio_booking.models.setting import Setting, CANCELLATION_POLICY_KEY
from studio_booking.schemas.policy import CancellationPolicy, CancellationRule
from studio_booking.services.cache_service import get_cached_policy, set_cached_policy, invalidate_policy_cache
from studio_booking.services.fee_calculator import DEFAULT_CANCELLATION_POLICY

logger = get_logger(__name__)


@dataclass(frozen=True)
class LoadedPolicy:
    rules: list[CancellationRule]
    is_default: bool


def _parse_rules(raw: object) -> Optional[list[CancellationRule]]:
    """Accept either {"rules": [...]} (as stored) or a bare rule list."""
    if isinstance(raw, dict):
        raw = raw.get("rules")
    if not isinstance(raw, list) or not raw:
        return None
    try:
        return CancellationPolicy(rules=raw).rules
    except ValidationError as e:
        logger.warning("cancellation_policy_invalid", errors=e.error_count())
        return None


class SettingsPolicyStore:
    """Reads and writes the policy stored in the `settings` table."""

    async def get_policy(self, db: AsyncSession) -> Optional[list[CancellationRule]]:
        """Configured rules, or None when nothing usable is stored."""
        cached = await get_cached_policy()
        if cached is not None:
            rules = _parse_rules(cached)
            if rules:
                return rules

        result = await db.execute(select(Setting).where(Setting.key == CANCELLATION_POLICY_KEY))
        setting = result.scalar_one_or_none()
        if setting is None:
            return None

        rules = _parse_rules(setting.value)
        if rules:
            await set_cached_policy([rule.model_dump() for rule in rules])
        return rules

    async def load(self, db: AsyncSession) -> LoadedPolicy:
        rules = await self.get_policy(db)
        if rules is None:
            return LoadedPolicy(rules=list(DEFAULT_CANCELLATION_POLICY), is_default=True)
        return LoadedPolicy(rules=rules, is_default=False)

    async def save_policy(self, db: AsyncSession, policy: CancellationPolicy) -> list[CancellationRule]:
        ordered = sorted(policy.rules, key=lambda r: r.days_before, reverse=True)
        value = {"rules": [rule.model_dump() for rule in ordered]}

        result = await db.execute(select(Setting).where(Setting.key == CANCELLATION_POLICY_KEY))
        setting = result.scalar_one_or_none()
        if setting is None:
            db.add(Setting(key=CANCELLATION_POLICY_KEY, value=value))
        else:
            setting.value = value
        await db.flush()
        await invalidate_policy_cache()

        logger.info("cancellation_policy_saved", tiers=len(ordered))
        return ordered


_store = SettingsPolicyStore()


def get_policy_store() -> SettingsPolicyStore:
    return _store
