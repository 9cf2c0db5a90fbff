"""Usage-tracking collaborator.

The account service owns quota counters. VaultFlow only reads snapshots
and reports "one generation consumed" after a successful generation; it
never sets counters itself.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Callable, Optional, Protocol

import httpx
from pydantic import ValidationError

from vaultflow.core.config import UsageConfig
from vaultflow.core.exceptions import UsageServiceError
from vaultflow.core.models import Tier, TierUsage
from vaultflow.quota.tracker import tier_policy

logger = logging.getLogger("vaultflow.usage")


class UsageService(Protocol):
    async def get_usage(self) -> TierUsage:
        ...

    async def record_generation(self) -> None:
        ...


class HttpUsageService:
    """Reads ``GET {service_url}`` and reports ``POST {service_url}/consume``."""

    def __init__(
        self,
        config: Optional[UsageConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[dict[str, str]] = None,
        timeout_seconds: float = 10.0,
    ):
        self.config = config or UsageConfig()
        self.base_url = self.config.service_url.rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
            headers=headers or {},
        )

    async def get_usage(self) -> TierUsage:
        try:
            resp = await self._client.get(self.base_url)
            resp.raise_for_status()
            return TierUsage.model_validate(resp.json())
        except httpx.HTTPError as e:
            raise UsageServiceError(f"Usage service request failed: {e}") from e
        except (ValueError, ValidationError) as e:
            raise UsageServiceError(f"Usage service returned a bad payload: {e}") from e

    async def record_generation(self) -> None:
        try:
            resp = await self._client.post(f"{self.base_url}/consume", json={"units": 1})
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise UsageServiceError(f"Usage report failed: {e}") from e

    async def aclose(self) -> None:
        await self._client.aclose()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryUsageLedger:
    """Process-local stand-in for the account service.

    Used by the CLI when no account service is configured. Counters reset
    once ``reset_at`` has passed and the window rolls forward.
    """

    def __init__(
        self,
        tier: Tier | str = Tier.FREE,
        used: int = 0,
        limit: Optional[int] = None,
        window: timedelta = timedelta(days=30),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.tier = Tier(tier)
        self.used = used
        self.limit = tier_policy(self.tier).limit if limit is None else limit
        self.window = window
        self._clock = clock
        self.reset_at = clock() + window

    def _roll_window(self) -> None:
        now = self._clock()
        if now < self.reset_at:
            return
        while self.reset_at <= now:
            self.reset_at += self.window
        logger.info("Usage window rolled over for %s tier; counter reset", self.tier.value)
        self.used = 0

    async def get_usage(self) -> TierUsage:
        self._roll_window()
        return TierUsage(tier=self.tier, used=self.used, limit=self.limit, reset_at=self.reset_at)

    async def record_generation(self) -> None:
        self._roll_window()
        self.used += 1
        logger.debug("Recorded generation for %s tier (%d used)", self.tier.value, self.used)
