"""Deterministic quality gate over generated copy.

Rules run in a fixed order and each contributes at most one warning.
An empty result means the gate passes. Warnings block the hard export
(download) only; copy and preview stay available.
"""

from __future__ import annotations

import re
from typing import Mapping, Union

from vaultflow.core.models import Section, SectionMap

HOOK_URGENCY_WARNING = "Hook lacks urgency - missing question or exclamation."
PROOF_ANCHOR_WARNING = "Numbers in proof lack anchor (e.g. timeframe or volume)."
STORY_CONTRAST_WARNING = "No emotional contrast in story."
CTA_SCARCITY_WARNING = "Missing scarcity in CTA."

STORY_CONTRAST_WORDS = ("transform", "change", "result")
CTA_SCARCITY_WORDS = ("now", "today", "limited")

_DIGIT = re.compile(r"[0-9]")

ContentLike = Union[SectionMap, Mapping[str, str]]


def _text(content: ContentLike, section: Section) -> str:
    if isinstance(content, SectionMap):
        return content.get(section)
    return content.get(section.value) or ""


def _contains_any(text: str, words: tuple[str, ...]) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in words)


def validate(content: ContentLike) -> list[str]:
    """Return quality warnings for ``content``; never mutates it."""
    warnings: list[str] = []

    hook = _text(content, Section.HOOK)
    if "?" not in hook and "!" not in hook:
        warnings.append(HOOK_URGENCY_WARNING)

    if not _DIGIT.search(_text(content, Section.PROOF)):
        warnings.append(PROOF_ANCHOR_WARNING)

    if not _contains_any(_text(content, Section.STORY), STORY_CONTRAST_WORDS):
        warnings.append(STORY_CONTRAST_WARNING)

    if not _contains_any(_text(content, Section.CTA), CTA_SCARCITY_WORDS):
        warnings.append(CTA_SCARCITY_WARNING)

    return warnings


def passes(content: ContentLike) -> bool:
    return not validate(content)
