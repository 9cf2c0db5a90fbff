"""Copy-generation collaborators.

Two interchangeable backends produce the raw six-section payload:

- ``ServiceGenerationBackend`` posts the request to the product's generation
  service and tells a quota refusal (HTTP 429) apart from other failures.
- ``CouncilCopywriter`` writes the copy directly with an LLM, voicing the
  selected council personas.

Neither backend validates completeness; ``GenerationEngine`` does that.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import httpx

from vaultflow.core.config import AppConfig, GenerationConfig, PromptLoader
from vaultflow.core.exceptions import ConfigError, GenerationFailed, QuotaExceeded
from vaultflow.core.models import SECTION_ORDER, GenerationRequest
from vaultflow.council.catalog import get_member, is_known
from vaultflow.llm.client import LLMMessage, OpenRouterClient

logger = logging.getLogger("vaultflow.generation.backends")


class GenerationBackend(Protocol):
    async def generate(self, request: GenerationRequest) -> dict[str, Any]:
        ...


# ---------------------------------------------------------------------------
# HTTP generation service
# ---------------------------------------------------------------------------

class ServiceGenerationBackend:
    """Client for the remote generation service.

    Response contract: a JSON object holding the six section keys (either at
    the top level or under ``content``), or ``{"error": "..."}``.
    """

    def __init__(
        self,
        config: Optional[GenerationConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        self.config = config or GenerationConfig()
        self._transport = transport
        self._headers = headers or {}
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            # Waiting is bounded by GenerationEngine, not by the transport.
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(None),
                transport=self._transport,
                headers=self._headers,
            )
        return self._client

    async def generate(self, request: GenerationRequest) -> dict[str, Any]:
        try:
            resp = await self.client.post(self.config.service_url, json=request.to_payload())
        except httpx.HTTPError as e:
            raise GenerationFailed(f"Generation service unreachable: {e}") from e

        payload = _json_or_none(resp)

        if resp.status_code == 429:
            body = payload or {}
            raise QuotaExceeded(
                tier=str(body.get("tier", "unknown")),
                used=_as_int(body.get("used", body.get("hooksUsed"))),
                limit=_as_int(body.get("limit")),
                upgrade_message=body.get("upgradeMessage") or body.get("error"),
            )
        if resp.status_code >= 400:
            detail = (payload or {}).get("error") or resp.text[:200]
            raise GenerationFailed(
                f"Generation service returned {resp.status_code}: {detail}",
                retryable=resp.status_code >= 500,
            )
        if payload is None:
            raise GenerationFailed("Generation service returned a non-JSON response")
        if payload.get("error"):
            raise GenerationFailed(f"Generation service error: {payload['error']}")

        content = payload.get("content")
        if isinstance(content, dict):
            return content
        return payload

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _json_or_none(resp: httpx.Response) -> Optional[dict[str, Any]]:
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


# ---------------------------------------------------------------------------
# LLM copywriter
# ---------------------------------------------------------------------------

class CouncilCopywriter:
    """Writes the offer with an LLM, in the voice of the selected council.

    Injected dependencies:
        llm_client: OpenRouter client for LLM calls.
        prompt_loader: Loads the system prompt from config/prompts/.
    """

    _DEFAULT_SYSTEM_PROMPT = (
        "You are a council of direct-response copy strategists. Write a complete "
        "offer and respond with a JSON object containing exactly these string keys: "
        "hook, problem, story, proof, offer, cta."
    )

    def __init__(
        self,
        llm_client: OpenRouterClient,
        prompt_loader: Optional[PromptLoader] = None,
        model: Optional[str] = None,
    ):
        self.llm_client = llm_client
        self.model = model
        self._prompt_loader = prompt_loader or PromptLoader()

    async def generate(self, request: GenerationRequest) -> dict[str, Any]:
        messages = [
            LLMMessage(role="system", content=self._get_system_prompt()),
            LLMMessage(role="user", content=self._compose_prompt(request)),
        ]
        logger.info(
            "Copywriter drafting offer for '%s' with council %s",
            request.industry,
            request.council_selection,
        )
        return await self.llm_client.complete_json(messages, model=self.model)

    def _get_system_prompt(self) -> str:
        return self._prompt_loader.load(
            "copywriter_system.txt", default=self._DEFAULT_SYSTEM_PROMPT
        )

    def _compose_prompt(self, request: GenerationRequest) -> str:
        """Build the user prompt from the campaign brief and council voices."""
        parts = [
            "## Campaign Brief",
            f"Industry / niche: {request.industry}",
            f"Target audience: {request.target_audience}",
            f"Pain point: {request.pain_point}",
        ]
        if request.desired_outcome:
            parts.append(f"Desired outcome: {request.desired_outcome}")
        if request.business_model:
            parts.append(f"Business model: {request.business_model}")
        if request.price_point:
            parts.append(f"Price point: {request.price_point}")
        if request.brand_personality:
            parts.append(f"Tone: {request.brand_personality}")
        if request.competitor_analysis:
            parts.append(f"Competitor notes: {request.competitor_analysis}")

        voices = [get_member(mid) for mid in request.council_selection if is_known(mid)]
        if voices:
            parts.append("\n## Your Council")
            for member in voices:
                tags = ", ".join(sorted(member.expertise_tags))
                parts.append(f"- {member.name} ({member.title}; {member.tone}). Expertise: {tags}.")
                parts.append(f'  Signature line: "{member.sample_line}"')

        keys = ", ".join(section.value for section in SECTION_ORDER)
        parts.append(
            "\n## Your Task\n"
            f"Write the offer as a JSON object with the keys: {keys}. "
            "Every value must be a non-empty string."
        )
        return "\n".join(parts)


class TemplateCopywriter:
    """Offline backend filling a fixed coaching-offer template from the brief.

    Needs no network; used for demos and dry runs of the workflow.
    """

    async def generate(self, request: GenerationRequest) -> dict[str, Any]:
        audience = request.target_audience or "people like you"
        pain = request.pain_point or "struggling with the same challenges"
        return {
            "hook": f"Are you tired of {pain} while others seem to make it look effortless?",
            "problem": (
                f"Most {audience} fail because they don't have a proven system that actually "
                "works for their specific situation. You're left trying random strategies "
                "while feeling frustrated and stuck."
            ),
            "story": (
                "I remember when I first started helping people like you - I realized that "
                "cookie-cutter approaches never work. The real change came from a personalized "
                "system that fits your unique goals and lifestyle."
            ),
            "proof": (
                "In the last 12 months, I've helped over 150 people achieve breakthrough results. "
                "My average client sees measurable progress within the first 30 days."
            ),
            "offer": (
                f"The {request.industry} Transformation System - A step-by-step blueprint designed "
                f"specifically for {audience} who want real, lasting results"
            ),
            "cta": (
                "Claim your spot now - I only accept 25 new clients per quarter, "
                "and spaces are filling fast"
            ),
        }


def build_backend(
    config: AppConfig,
    llm_client: Optional[OpenRouterClient] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> GenerationBackend:
    """Instantiate the backend selected by ``generation.backend``."""
    backend = config.generation.backend
    if backend == "service":
        return ServiceGenerationBackend(config=config.generation, transport=transport)
    if backend == "llm":
        client = llm_client or OpenRouterClient(config=config.llm, transport=transport)
        return CouncilCopywriter(client, model=config.llm.model)
    if backend == "template":
        return TemplateCopywriter()
    raise ConfigError(f"Unknown generation backend '{backend}'")
