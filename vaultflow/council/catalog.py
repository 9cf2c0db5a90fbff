"""Static catalog of council personas.

Built once at import time and never mutated.
"""

from __future__ import annotations

from vaultflow.core.models import CouncilMember

COUNCIL_MEMBERS: tuple[CouncilMember, ...] = (
    CouncilMember(
        id="architect",
        name="The Architect",
        title="High-Ticket Offer Strategist",
        tone="ROI-driven, tactical, sharp",
        sample_line="Your offer sounds like a warm hug — but no one's buying hugs.",
        expertise_tags=frozenset({"Pricing Strategy", "Value Stacking", "ROI Optimization"}),
    ),
    CouncilMember(
        id="hunter",
        name="The Hunter",
        title="Conversion Coach & Funnel Killer",
        tone="Bold, high-urgency, pain-driven",
        sample_line=(
            "You're not screaming loud enough in a crowded market. "
            "Hook them by the throat or lose them forever."
        ),
        expertise_tags=frozenset({"Conversion Optimization", "Urgency Creation", "CTA Mastery"}),
    ),
    CouncilMember(
        id="empath",
        name="The Empath",
        title="Authenticity & Brand Coach",
        tone="Real, story-driven, emotionally resonant",
        sample_line="People don't buy products — they buy stories. Where's the human in this pitch?",
        expertise_tags=frozenset({"Storytelling", "Brand Voice", "Emotional Triggers"}),
    ),
    CouncilMember(
        id="surgeon",
        name="The Surgeon",
        title="Behavioral Psychology Consultant",
        tone="Precise, strategic, psychological",
        sample_line=(
            "You're not speaking their inner dialogue. "
            "Rewire your message to enter the convo already in their head."
        ),
        expertise_tags=frozenset({"Psychology", "Behavioral Triggers", "Decision Science"}),
    ),
    CouncilMember(
        id="visionary",
        name="The Visionary",
        title="Legacy Branding Advisor",
        tone="Timeless, evergreen, long-term leverage",
        sample_line="This pitch is short-term candy. Where's the evergreen leverage play?",
        expertise_tags=frozenset({"Brand Legacy", "Long-term Strategy", "Market Positioning"}),
    ),
)

_BY_ID: dict[str, CouncilMember] = {member.id: member for member in COUNCIL_MEMBERS}


def get_member(member_id: str) -> CouncilMember:
    """Look up a persona by id. Raises KeyError for unknown ids."""
    return _BY_ID[member_id]


def is_known(member_id: str) -> bool:
    return member_id in _BY_ID


def member_ids() -> list[str]:
    return [member.id for member in COUNCIL_MEMBERS]
