"""Pydantic data contracts for VaultFlow.

Defines the values passed between the workflow controller and its
collaborators: tiers, steps, section maps, usage snapshots, council
members and generation requests.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Any, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _now() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Tier(str, enum.Enum):
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    VAULT = "vault"


class WorkflowStep(str, enum.Enum):
    WELCOME = "welcome"
    COUNCIL_SELECTION = "council"
    INPUT_COLLECTION = "inputs"
    GENERATION = "generation"
    REVIEW = "review"
    EXPORT = "export"


# Declaration order is the workflow order.
WORKFLOW_STEPS: tuple[WorkflowStep, ...] = tuple(WorkflowStep)

STEP_PROGRESS: dict[WorkflowStep, int] = {
    WorkflowStep.WELCOME: 0,
    WorkflowStep.COUNCIL_SELECTION: 20,
    WorkflowStep.INPUT_COLLECTION: 40,
    WorkflowStep.GENERATION: 60,
    WorkflowStep.REVIEW: 80,
    WorkflowStep.EXPORT: 100,
}


class Section(str, enum.Enum):
    HOOK = "hook"
    PROBLEM = "problem"
    STORY = "story"
    PROOF = "proof"
    OFFER = "offer"
    CTA = "cta"


SECTION_ORDER: tuple[Section, ...] = tuple(Section)


class GuidanceCheck(str, enum.Enum):
    VOICE_MATCH = "voice_match"
    NICHE_RELEVANT = "niche_relevant"
    PROOF_VALID = "proof_valid"
    CTA_ALIGNED = "cta_aligned"


# ---------------------------------------------------------------------------
# Campaign inputs
# ---------------------------------------------------------------------------

REQUIRED_FORM_FIELDS: tuple[str, ...] = ("niche", "tone", "target_audience", "pain_point")


class FormData(BaseModel):
    """Campaign parameters collected in the InputCollection step."""

    model_config = ConfigDict(extra="forbid")

    niche: str = ""
    tone: str = ""
    target_audience: str = ""
    pain_point: str = ""
    desired_outcome: str = ""
    price_point: str = ""

    def missing_required(self) -> list[str]:
        """Required fields that are empty or whitespace-only, in declaration order."""
        return [name for name in REQUIRED_FORM_FIELDS if not getattr(self, name).strip()]


# ---------------------------------------------------------------------------
# Generated copy
# ---------------------------------------------------------------------------

class SectionMap(BaseModel):
    """The six generated copy sections."""

    model_config = ConfigDict(frozen=True)

    hook: str = ""
    problem: str = ""
    story: str = ""
    proof: str = ""
    offer: str = ""
    cta: str = ""

    def get(self, section: Section | str) -> str:
        return getattr(self, Section(section).value)

    def with_section(self, section: Section | str, text: str) -> SectionMap:
        return self.model_copy(update={Section(section).value: text})

    def items(self) -> Iterator[tuple[Section, str]]:
        for section in SECTION_ORDER:
            yield section, getattr(self, section.value)

    def missing_sections(self) -> list[Section]:
        return [section for section, text in self.items() if not text.strip()]

    @property
    def is_complete(self) -> bool:
        return not self.missing_sections()


# ---------------------------------------------------------------------------
# Quota
# ---------------------------------------------------------------------------

UNLIMITED = -1


class TierUsage(BaseModel):
    """Usage snapshot owned by the external account service."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tier: Tier
    used: int = 0
    limit: int = 0
    reset_at: Optional[datetime] = None

    @property
    def is_unlimited(self) -> bool:
        return self.limit == UNLIMITED


# ---------------------------------------------------------------------------
# Council
# ---------------------------------------------------------------------------

class CouncilMember(BaseModel):
    """Static catalog entry for an advisory persona."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    title: str
    tone: str = ""
    sample_line: str
    expertise_tags: frozenset[str]

    @field_validator("expertise_tags")
    @classmethod
    def _non_empty_tags(cls, value: frozenset[str]) -> frozenset[str]:
        if not value:
            raise ValueError("expertise_tags must not be empty")
        return value


# ---------------------------------------------------------------------------
# Generation collaborator payload
# ---------------------------------------------------------------------------

class GenerationRequest(BaseModel):
    """Request sent to the copy-generation collaborator.

    Serialized with camelCase keys (``targetAudience``, ``painPoint``...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    industry: str
    target_audience: str
    pain_point: str
    desired_outcome: str = ""
    business_model: Optional[str] = None
    price_point: Optional[str] = None
    brand_personality: Optional[str] = None
    competitor_analysis: Optional[str] = None
    council_selection: list[str] = Field(default_factory=list)
    requested_at: datetime = Field(default_factory=_now, exclude=True)

    @classmethod
    def from_form(cls, form: FormData, council: list[str]) -> GenerationRequest:
        return cls(
            industry=form.niche,
            target_audience=form.target_audience,
            pain_point=form.pain_point,
            desired_outcome=form.desired_outcome,
            price_point=form.price_point or None,
            brand_personality=form.tone or None,
            council_selection=list(council),
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
