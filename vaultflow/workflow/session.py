"""WorkflowSession: the aggregate root of one guided offer-building run.

A session is created when a user begins the flow and discarded when the
flow completes or is abandoned. It is owned by exactly one
``WorkflowController`` and never persisted.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Optional

from pydantic import BaseModel, Field

from vaultflow.core.models import (
    STEP_PROGRESS,
    FormData,
    Section,
    SectionMap,
    WorkflowStep,
)
from vaultflow.council.selection import DEFAULT_MAX_SELECTIONS, CouncilSelectionSet
from vaultflow.workflow.guidance import GuidanceCheckSubflow


def _now() -> datetime:
    return datetime.now(UTC)


def _new_session_id() -> str:
    return "session_" + uuid.uuid4().hex[:12]


class WorkflowSession(BaseModel):
    session_id: str = Field(default_factory=_new_session_id)
    step: WorkflowStep = WorkflowStep.WELCOME
    form_data: FormData = Field(default_factory=FormData)
    council_selection: CouncilSelectionSet = Field(default_factory=CouncilSelectionSet)
    generated_content: Optional[SectionMap] = None
    editing_section: Optional[Section] = None
    edit_buffer: str = ""
    guidance: GuidanceCheckSubflow = Field(default_factory=GuidanceCheckSubflow)
    quality_warnings: list[str] = Field(default_factory=list)
    generations: int = 0
    created_at: datetime = Field(default_factory=_now)

    @property
    def progress_percent(self) -> int:
        return STEP_PROGRESS[self.step]

    @property
    def has_content(self) -> bool:
        return self.generated_content is not None


def new_session(max_selections: int = DEFAULT_MAX_SELECTIONS) -> WorkflowSession:
    """Start a fresh session at the Welcome step."""
    return WorkflowSession(
        council_selection=CouncilSelectionSet(max_selections=max_selections),
    )
