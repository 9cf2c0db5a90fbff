"""Guidance check sub-flow gating the Next Best Actions.

Four checks are visited in a fixed order (voice, niche, proof, cta), each
exactly once. Every check records a valid / needs-revision outcome and then
advances regardless of the outcome: completion is about coverage, not
correctness. ``skip()`` is only honored before the first check is recorded.
"""

from __future__ import annotations

import enum
import logging
from typing import Optional

from pydantic import BaseModel, Field

from vaultflow.core.models import GuidanceCheck

logger = logging.getLogger("vaultflow.workflow.guidance")


class GuidanceState(str, enum.Enum):
    VOICE = "voice"
    NICHE = "niche"
    PROOF = "proof"
    CTA = "cta"
    COMPLETE = "complete"


GUIDANCE_SEQUENCE: tuple[GuidanceState, ...] = tuple(GuidanceState)

_CHECK_FOR_STATE: dict[GuidanceState, GuidanceCheck] = {
    GuidanceState.VOICE: GuidanceCheck.VOICE_MATCH,
    GuidanceState.NICHE: GuidanceCheck.NICHE_RELEVANT,
    GuidanceState.PROOF: GuidanceCheck.PROOF_VALID,
    GuidanceState.CTA: GuidanceCheck.CTA_ALIGNED,
}


def _blank_checks() -> dict[GuidanceCheck, bool]:
    return {check: False for check in GuidanceCheck}


class GuidanceCheckSubflow(BaseModel):
    state: GuidanceState = GuidanceState.VOICE
    checks: dict[GuidanceCheck, bool] = Field(default_factory=_blank_checks)
    skipped: bool = False

    @property
    def current_check(self) -> Optional[GuidanceCheck]:
        return _CHECK_FOR_STATE.get(self.state)

    @property
    def at_initial_state(self) -> bool:
        return self.state is GuidanceState.VOICE and not self.skipped

    @property
    def is_finished(self) -> bool:
        return self.state is GuidanceState.COMPLETE or self.skipped

    @property
    def all_checks_complete(self) -> bool:
        return self.state is GuidanceState.COMPLETE

    @property
    def unlocked(self) -> bool:
        """Whether the Next Best Actions are available."""
        return self.all_checks_complete or self.skipped

    def record(self, valid: bool) -> bool:
        """Record the outcome of the current check and advance.

        Returns False (and changes nothing) once the sub-flow is finished.
        """
        check = self.current_check
        if check is None or self.skipped:
            logger.debug("Guidance check outcome ignored in state '%s'", self.state.value)
            return False
        self.checks[check] = bool(valid)
        self.state = GUIDANCE_SEQUENCE[GUIDANCE_SEQUENCE.index(self.state) + 1]
        if self.state is GuidanceState.COMPLETE:
            logger.info("Guidance check complete; next best actions unlocked")
        return True

    def skip(self) -> bool:
        """Skip every check. Only honored from the initial state."""
        if not self.at_initial_state:
            logger.debug("Guidance skip ignored in state '%s'", self.state.value)
            return False
        self.skipped = True
        logger.info("Guidance check skipped; next best actions unlocked")
        return True

    def progress(self) -> tuple[int, int]:
        """(checks recorded as valid, total checks)."""
        return sum(1 for ok in self.checks.values() if ok), len(self.checks)
