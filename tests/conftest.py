"""Shared fixtures for VaultFlow tests.

Network collaborators are exercised through httpx.MockTransport or small
in-process backends; nothing here reaches a real service.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any, Optional

import pytest
from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent / ".env")

from vaultflow.core.config import AppConfig, load_config
from vaultflow.core.models import FormData, GenerationRequest, SectionMap, Tier
from vaultflow.generation.engine import GenerationEngine
from vaultflow.usage.service import InMemoryUsageLedger
from vaultflow.workflow.controller import WorkflowController


def _openrouter_key_set() -> bool:
    return bool(os.getenv("OPENROUTER_API_KEY"))


requires_openrouter = pytest.mark.skipif(
    not _openrouter_key_set(),
    reason="OPENROUTER_API_KEY not set",
)


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def config_dir() -> Path:
    return Path(__file__).parent.parent / "config"


@pytest.fixture
def app_config(config_dir: Path) -> AppConfig:
    return load_config(config_dir=config_dir)


# ---------------------------------------------------------------------------
# Content fixtures
# ---------------------------------------------------------------------------

PASSING_CONTENT: dict[str, str] = {
    "hook": "Tired of spinning your wheels?",
    "problem": "Most coaches chase leads that never convert.",
    "story": "I used to feel stuck until one change transformed my practice.",
    "proof": "Over 150 clients in 12 months.",
    "offer": "The Client Magnet Blueprint.",
    "cta": "Book your call today - only 5 spots left.",
}

FAILING_CONTENT: dict[str, str] = {
    "hook": "Grow your business",
    "problem": "Leads are hard.",
    "story": "I started coaching in a small town.",
    "proof": "Many clients love it.",
    "offer": "Coaching program.",
    "cta": "Sign up",
}


@pytest.fixture
def passing_payload() -> dict[str, str]:
    return dict(PASSING_CONTENT)


@pytest.fixture
def passing_content() -> SectionMap:
    return SectionMap(**PASSING_CONTENT)


@pytest.fixture
def failing_content() -> SectionMap:
    return SectionMap(**FAILING_CONTENT)


@pytest.fixture
def sample_form() -> FormData:
    return FormData(
        niche="Fitness coaching",
        tone="bold",
        target_audience="busy professionals",
        pain_point="no time to train",
        desired_outcome="lose 10kg in 12 weeks",
        price_point="$497",
    )


@pytest.fixture
def sample_request(sample_form: FormData) -> GenerationRequest:
    return GenerationRequest.from_form(sample_form, ["architect", "hunter"])


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------

class FakeBackend:
    """In-process generation backend.

    Returns ``payload`` (or raises ``error``). When ``gate`` is set, each
    call waits on it so tests can observe a pending generation.
    """

    def __init__(
        self,
        payload: Any = None,
        error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.payload = dict(PASSING_CONTENT) if payload is None else payload
        self.error = error
        self.gate = gate
        self.started = asyncio.Event() if gate is not None else None
        self.requests: list[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> Any:
        self.requests.append(request)
        if self.started is not None:
            self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.payload


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def ledger() -> InMemoryUsageLedger:
    return InMemoryUsageLedger(tier=Tier.STARTER)


def controller_at_generation(
    backend: Any,
    usage: Any = None,
    form: Optional[FormData] = None,
    council: tuple[str, ...] = ("architect",),
) -> WorkflowController:
    """A controller walked forward to the Generation step."""
    controller = WorkflowController(engine=GenerationEngine(backend), usage=usage)
    assert controller.next()
    for member_id in council:
        controller.toggle_council(member_id)
    assert controller.next()
    form = form or FormData(
        niche="Fitness coaching",
        tone="bold",
        target_audience="busy professionals",
        pain_point="no time to train",
    )
    controller.update_form(**form.model_dump())
    assert controller.next()
    return controller
