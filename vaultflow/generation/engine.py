"""Single-flight wrapper around the copy-generation collaborator.

At most one generation may be pending per engine. A second call while one
is pending is rejected with ``GenerationInProgress`` instead of being queued.
The engine never touches a session: it returns a complete ``SectionMap`` or
raises, and the caller decides what to write.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from vaultflow.core.exceptions import (
    AuthenticationError,
    GenerationFailed,
    GenerationInProgress,
    LLMError,
    QuotaExceeded,
)
from vaultflow.core.models import GenerationRequest, SectionMap
from vaultflow.generation.backends import GenerationBackend

logger = logging.getLogger("vaultflow.generation")


class GenerationEngine:
    """Async, single-flight generation.

    Args:
        backend: Collaborator producing the raw section payload.
        timeout_seconds: Optional bound on one call. ``None`` waits as long
            as the collaborator takes.
    """

    def __init__(self, backend: GenerationBackend, timeout_seconds: Optional[float] = None):
        self.backend = backend
        self.timeout_seconds = timeout_seconds
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def generate(self, request: GenerationRequest) -> SectionMap:
        """Produce all six sections for ``request``.

        Raises:
            GenerationInProgress: another call on this engine is pending.
            QuotaExceeded: the collaborator refused on quota grounds.
            GenerationFailed: any other collaborator or payload failure.
        """
        if self._in_flight:
            logger.warning("Rejected generation request: one is already in flight")
            raise GenerationInProgress()

        self._in_flight = True
        try:
            payload = await self._call_backend(request)
        finally:
            self._in_flight = False

        content = _to_section_map(payload)
        logger.info("Generated offer copy for '%s'", request.industry)
        return content

    async def _call_backend(self, request: GenerationRequest) -> Any:
        try:
            if self.timeout_seconds is None:
                return await self.backend.generate(request)
            return await asyncio.wait_for(
                self.backend.generate(request), timeout=self.timeout_seconds
            )
        except (QuotaExceeded, GenerationFailed):
            raise
        except TimeoutError as e:
            raise GenerationFailed(
                f"Generation timed out after {self.timeout_seconds}s"
            ) from e
        except AuthenticationError as e:
            raise GenerationFailed(f"Generation backend rejected credentials: {e}", retryable=False) from e
        except (LLMError, httpx.HTTPError) as e:
            raise GenerationFailed(f"Generation failed: {e}") from e


def _to_section_map(payload: Any) -> SectionMap:
    if not isinstance(payload, dict):
        raise GenerationFailed(f"Malformed generation response: expected an object, got {type(payload).__name__}")
    try:
        content = SectionMap.model_validate(payload)
    except ValidationError as e:
        raise GenerationFailed(f"Malformed generation response: {e}") from e
    missing = content.missing_sections()
    if missing:
        names = ", ".join(section.value for section in missing)
        raise GenerationFailed(f"Generation response is missing sections: {names}")
    return content
