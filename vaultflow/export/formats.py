"""Export artifacts built from a finished session.

Plain text and the HTML preview are soft exports available whenever content
exists. The ad campaign and email sequence are the Next Best Actions and
are only handed out by the controller once the guidance check is unlocked.
Hook CSV exports serve the tiered hook generators.
"""

from __future__ import annotations

import csv
import html
import io
from datetime import date
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from vaultflow.core.models import FormData, SectionMap, Tier

OFFER_FILENAME = "vault-offer.txt"
AD_CAMPAIGN_FILENAME = "facebook-ad-campaign.txt"
EMAIL_SEQUENCE_FILENAME = "email-sequence.txt"


# ---------------------------------------------------------------------------
# Offer copy
# ---------------------------------------------------------------------------

def render_plain_text(content: SectionMap) -> str:
    """All six sections in fixed order, each under its upper-cased name."""
    return "".join(f"{section.value.upper()}\n{text}\n\n" for section, text in content.items())


def render_preview_html(content: SectionMap) -> str:
    blocks = "".join(
        '<div style="margin-bottom: 30px;">'
        f'<h2 style="color: #333; text-transform: capitalize;">{section.value}</h2>'
        f'<p style="line-height: 1.6;">{html.escape(text)}</p>'
        "</div>"
        for section, text in content.items()
    )
    return (
        "<html><head><title>Offer Preview</title></head>"
        '<body style="font-family: Arial, sans-serif; max-width: 800px; margin: 0 auto; padding: 20px;">'
        f"{blocks}</body></html>"
    )


def render_ad_campaign(content: SectionMap, form: FormData) -> str:
    niche = form.niche or "Your Niche"
    return (
        f"FACEBOOK AD CAMPAIGN - {niche}\n\n"
        f"HEADLINE: {content.hook}\n\n"
        f"PRIMARY TEXT:\n{content.problem}\n\n{content.story}\n\n"
        f"CALL TO ACTION: {content.cta}\n\n"
        f"OFFER DETAILS:\n{content.offer}\n\n"
        f"PROOF ELEMENTS:\n{content.proof}\n\n"
        f"TARGET AUDIENCE: {form.target_audience}\n"
        f"PAIN POINT: {form.pain_point}\n"
        f"TONE: {form.tone}\n"
    )


def render_email_sequence(content: SectionMap, form: FormData, council: Iterable[str]) -> str:
    niche = form.niche or "Your Niche"
    emails = [
        ("HOOK EMAIL", content.hook, content.problem),
        ("STORY EMAIL", "The story behind this transformation...", content.story),
        ("PROOF EMAIL", "Here's the proof it works...", content.proof),
        ("OFFER EMAIL", "Ready for your transformation?", content.offer),
        ("CTA EMAIL", "Last chance to join...", content.cta),
    ]
    parts = [f"EMAIL SEQUENCE - {niche}\n"]
    for number, (label, subject, body) in enumerate(emails, 1):
        parts.append(f"EMAIL {number}: {label}\nSubject: {subject}\nBody: {body}\n")
    parts.append(
        "CAMPAIGN SETTINGS:\n"
        f"Target Audience: {form.target_audience}\n"
        f"Pain Point: {form.pain_point}\n"
        f"Tone: {form.tone}\n"
        f"Council: {', '.join(council)}\n"
    )
    return "\n".join(parts)


# ---------------------------------------------------------------------------
# Hook CSV
# ---------------------------------------------------------------------------

class _HookModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StarterHook(_HookModel):
    gladiator: str
    hook: str
    variation: str = ""
    critique: str = ""
    conversion_tips: list[str] = Field(default_factory=list)


class BattleLabMetrics(_HookModel):
    predicted_ctr: float = 0
    emotional_impact: float = 0
    curiosity_gap: float = 0
    urgency_level: float = 0


class ProHook(_HookModel):
    gladiator: str
    hook: str
    neuro_triggers: list[str] = Field(default_factory=list)
    psychology_framework: str = ""
    conversion_score: float = 0
    battle_lab_metrics: BattleLabMetrics = Field(default_factory=BattleLabMetrics)
    variations: list[str] = Field(default_factory=list)


class VaultMetrics(_HookModel):
    neurological_impact: float = 0
    status_trigger: float = 0
    exclusivity_index: float = 0
    identity_shift: float = 0


class VaultHook(_HookModel):
    gladiator: str
    hook: str
    neuro_triggers: list[str] = Field(default_factory=list)
    psychology_framework: str = ""
    conversion_score: float = 0
    exclusive_insight: str = ""
    vault_metrics: VaultMetrics = Field(default_factory=VaultMetrics)
    premium_variations: list[str] = Field(default_factory=list)


STARTER_CSV_HEADERS = ["Gladiator", "Hook", "Variation", "Critique", "Conversion Tips"]
PRO_CSV_HEADERS = [
    "Gladiator", "Hook", "Neuro Triggers", "Psychology Framework", "Conversion Score",
    "Predicted CTR", "Emotional Impact", "Curiosity Gap", "Urgency Level", "Variations",
]
VAULT_CSV_HEADERS = [
    "Gladiator", "Hook", "Neuro Triggers", "Psychology Framework", "Conversion Score",
    "Exclusive Insight", "Neural Impact", "Status Trigger", "Exclusivity Index",
    "Identity Shift", "Premium Variations",
]

_CSV_FILE_LABELS = {
    Tier.STARTER: "Starter",
    Tier.PRO: "Pro",
    Tier.VAULT: "Vault-Supreme",
}


def _joined(values: list[str]) -> str:
    return "; ".join(values)


def _num(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _starter_row(hook: StarterHook) -> list[str]:
    return [hook.gladiator, hook.hook, hook.variation, hook.critique, _joined(hook.conversion_tips)]


def _pro_row(hook: ProHook) -> list[str]:
    metrics = hook.battle_lab_metrics
    return [
        hook.gladiator,
        hook.hook,
        _joined(hook.neuro_triggers),
        hook.psychology_framework,
        _num(hook.conversion_score),
        _num(metrics.predicted_ctr),
        _num(metrics.emotional_impact),
        _num(metrics.curiosity_gap),
        _num(metrics.urgency_level),
        _joined(hook.variations),
    ]


def _vault_row(hook: VaultHook) -> list[str]:
    metrics = hook.vault_metrics
    return [
        hook.gladiator,
        hook.hook,
        _joined(hook.neuro_triggers),
        hook.psychology_framework,
        _num(hook.conversion_score),
        hook.exclusive_insight,
        _num(metrics.neurological_impact),
        _num(metrics.status_trigger),
        _num(metrics.exclusivity_index),
        _num(metrics.identity_shift),
        _joined(hook.premium_variations),
    ]


def hook_csv_rows(tier: Tier | str, hooks: list[dict[str, Any]]) -> list[list[str]]:
    """Header row plus one row per hook, in the tier's column layout."""
    tier = Tier(tier)
    if tier is Tier.STARTER:
        return [STARTER_CSV_HEADERS] + [_starter_row(StarterHook.model_validate(h)) for h in hooks]
    if tier is Tier.PRO:
        return [PRO_CSV_HEADERS] + [_pro_row(ProHook.model_validate(h)) for h in hooks]
    if tier is Tier.VAULT:
        return [VAULT_CSV_HEADERS] + [_vault_row(VaultHook.model_validate(h)) for h in hooks]
    raise ValueError(f"CSV export is not available for the {tier.value} tier")


def render_hook_csv(tier: Tier | str, hooks: list[dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(hook_csv_rows(tier, hooks))
    return buffer.getvalue()


def hook_csv_filename(tier: Tier | str, on: Optional[date] = None) -> str:
    tier = Tier(tier)
    if tier not in _CSV_FILE_LABELS:
        raise ValueError(f"CSV export is not available for the {tier.value} tier")
    day = (on or date.today()).isoformat()
    return f"OnyxHooks-{_CSV_FILE_LABELS[tier]}-{day}.csv"
