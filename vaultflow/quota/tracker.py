"""Tier quota arithmetic.

Pure functions over ``(used, limit)`` pairs where ``limit == -1`` means
unlimited. Out-of-range inputs are clamped rather than rejected: negative
usage counts as zero and any limit below -1 counts as a zero limit.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from vaultflow.core.exceptions import ConfigError, QuotaExceeded
from vaultflow.core.models import UNLIMITED, Tier, TierUsage

NEAR_LIMIT_PERCENT = 80.0
UNLIMITED_LABEL = "∞"


# ---------------------------------------------------------------------------
# Tier policy table
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TierPolicy:
    tier: Tier
    name: str
    limit: int
    next_tier: Optional[Tier] = None
    next_limit_label: Optional[str] = None
    price: Optional[str] = None


TIER_POLICIES: dict[Tier, TierPolicy] = {
    Tier.FREE: TierPolicy(Tier.FREE, "Free", 2, Tier.STARTER, "25", "$47"),
    Tier.STARTER: TierPolicy(Tier.STARTER, "Starter", 25, Tier.PRO, "Unlimited", "$197"),
    Tier.PRO: TierPolicy(Tier.PRO, "Pro", UNLIMITED, Tier.VAULT, "Elite", "$5,000"),
    Tier.VAULT: TierPolicy(Tier.VAULT, "Vault", UNLIMITED),
}

_missing_policies = set(Tier) - set(TIER_POLICIES)
if _missing_policies:
    raise ConfigError(f"No quota policy for tier(s): {sorted(t.value for t in _missing_policies)}")


def tier_policy(tier: Tier | str) -> TierPolicy:
    return TIER_POLICIES[Tier(tier)]


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------

def _clamp(used: int, limit: int) -> tuple[int, int]:
    used = max(0, used)
    if limit != UNLIMITED:
        limit = max(0, limit)
    return used, limit


def usage_percent(used: int, limit: int) -> float:
    """Percent of quota consumed, 0 for unlimited tiers, capped at 100."""
    used, limit = _clamp(used, limit)
    if limit == UNLIMITED:
        return 0.0
    if limit == 0:
        return 100.0
    return min(100.0, used / limit * 100)


def is_at_limit(used: int, limit: int) -> bool:
    used, limit = _clamp(used, limit)
    return limit != UNLIMITED and used >= limit


def is_near_limit(used: int, limit: int, threshold: float = NEAR_LIMIT_PERCENT) -> bool:
    return not is_at_limit(used, limit) and usage_percent(used, limit) >= threshold


def remaining(used: int, limit: int) -> float:
    """Generations left in the window; ``math.inf`` when unlimited."""
    used, limit = _clamp(used, limit)
    if limit == UNLIMITED:
        return math.inf
    return max(0, limit - used)


def remaining_label(used: int, limit: int) -> str:
    left = remaining(used, limit)
    if left == math.inf:
        return UNLIMITED_LABEL
    return str(int(left))


def upgrade_message(
    tier: Tier | str, used: int, limit: int, threshold: float = NEAR_LIMIT_PERCENT
) -> Optional[str]:
    """Upgrade prompt shown for the tier's current usage, if any.

    ``threshold`` is the near-limit percentage, matching ``is_near_limit``.
    """
    tier = Tier(tier)
    at_limit = is_at_limit(used, limit)
    if tier is Tier.FREE and at_limit:
        return "You've used all 2 free hooks. Upgrade to Starter for 25 hooks/month."
    if tier is Tier.STARTER and at_limit:
        return "You've hit your 25-hook limit. Upgrade to Pro for unlimited hooks."
    if tier is Tier.STARTER and is_near_limit(used, limit, threshold):
        return "You're running low on hooks. Pro gives you unlimited freedom."
    if at_limit:
        policy = tier_policy(tier)
        return f"You've reached your {policy.name} limit ({used}/{limit})."
    return None


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

class QuotaStatus(BaseModel):
    tier: Tier
    used: int
    limit: int
    percent: float
    remaining: str
    unlimited: bool
    at_limit: bool
    near_limit: bool
    reset_at: Optional[datetime] = None
    upgrade_message: Optional[str] = None

    @property
    def can_generate(self) -> bool:
        return not self.at_limit


def quota_status(usage: TierUsage, near_limit_percent: float = NEAR_LIMIT_PERCENT) -> QuotaStatus:
    """Summarize a usage snapshot for display and gating."""
    used, limit = usage.used, usage.limit
    return QuotaStatus(
        tier=usage.tier,
        used=used,
        limit=limit,
        percent=usage_percent(used, limit),
        remaining=remaining_label(used, limit),
        unlimited=limit == UNLIMITED,
        at_limit=is_at_limit(used, limit),
        near_limit=is_near_limit(used, limit, near_limit_percent),
        reset_at=usage.reset_at,
        upgrade_message=upgrade_message(usage.tier, used, limit, near_limit_percent),
    )


def ensure_can_generate(usage: TierUsage) -> None:
    """Raise QuotaExceeded if the snapshot leaves no room for a generation."""
    if is_at_limit(usage.used, usage.limit):
        raise QuotaExceeded(
            tier=usage.tier.value,
            used=usage.used,
            limit=usage.limit,
            upgrade_message=upgrade_message(usage.tier, usage.used, usage.limit),
        )
