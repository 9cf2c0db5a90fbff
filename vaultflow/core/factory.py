"""Component factory for VaultFlow.

Creates and wires the generation backend and usage collaborator from
config so each WorkflowController receives initialized dependencies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from vaultflow.core.config import AppConfig, load_config
from vaultflow.core.models import Tier
from vaultflow.generation.backends import GenerationBackend, build_backend
from vaultflow.generation.engine import GenerationEngine
from vaultflow.usage.service import HttpUsageService, InMemoryUsageLedger, UsageService
from vaultflow.workflow.controller import WorkflowController

logger = logging.getLogger("vaultflow.factory")


@dataclass
class ComponentBundle:
    """Initialized collaborators shared by the controllers of one process."""

    config: AppConfig
    backend: GenerationBackend
    usage: Optional[UsageService] = None

    def new_engine(self) -> GenerationEngine:
        return GenerationEngine(self.backend, timeout_seconds=self.config.generation.timeout_seconds)

    def new_controller(self) -> WorkflowController:
        """Start a fresh session.

        Each controller owns its single-flight engine so one session's
        pending generation never blocks another. Only the backend and the
        usage collaborator are shared.
        """
        return WorkflowController(
            engine=self.new_engine(),
            usage=self.usage,
            max_selections=self.config.workflow.max_council_selections,
            near_limit_percent=self.config.workflow.near_limit_percent,
        )


class ComponentFactory:
    """Builds a ComponentBundle.

    Usage:
        bundle = ComponentFactory.create(config_dir=Path("config"), local_tier="starter")
        controller = bundle.new_controller()
    """

    @staticmethod
    def create(
        config_dir: Optional[Path] = None,
        env: Optional[str] = None,
        config: Optional[AppConfig] = None,
        local_tier: Optional[str] = None,
        track_usage: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> ComponentBundle:
        """Wire all components.

        Args:
            config_dir: Directory holding default.yaml (and env overlays).
            env: Optional environment overlay name.
            config: Pre-built config; skips loading from disk.
            local_tier: Track usage in-process for this tier instead of
                calling the account service.
            track_usage: False disables quota checks entirely.
            transport: httpx transport for every HTTP collaborator.
        """
        if config is None:
            config = load_config(config_dir=config_dir, env=env)

        backend = build_backend(config, transport=transport)

        usage: Optional[UsageService] = None
        if track_usage and local_tier:
            usage = InMemoryUsageLedger(tier=Tier(local_tier))
        elif track_usage:
            usage = HttpUsageService(config=config.usage, transport=transport)

        logger.info(
            "Components ready: backend=%s usage=%s",
            config.generation.backend,
            type(usage).__name__ if usage else "disabled",
        )
        return ComponentBundle(config=config, backend=backend, usage=usage)
