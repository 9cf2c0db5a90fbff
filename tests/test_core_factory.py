"""Tests for vaultflow/core/factory.py: component wiring."""

import asyncio

from vaultflow.core.config import AppConfig, GenerationConfig, WorkflowConfig
from vaultflow.core.factory import ComponentBundle, ComponentFactory
from vaultflow.core.models import Tier, WorkflowStep
from vaultflow.generation.backends import ServiceGenerationBackend, TemplateCopywriter
from vaultflow.usage.service import HttpUsageService, InMemoryUsageLedger

from tests.conftest import FakeBackend


def _template_config(**workflow) -> AppConfig:
    return AppConfig(
        generation=GenerationConfig(backend="template", timeout_seconds=5),
        workflow=WorkflowConfig(**workflow),
    )


class TestComponentFactory:
    def test_from_repo_config(self, config_dir):
        bundle = ComponentFactory.create(config_dir=config_dir)
        assert isinstance(bundle, ComponentBundle)
        assert isinstance(bundle.backend, ServiceGenerationBackend)
        assert isinstance(bundle.usage, HttpUsageService)
        asyncio.run(bundle.usage.aclose())

    def test_local_tier_uses_ledger(self):
        bundle = ComponentFactory.create(config=_template_config(), local_tier="starter")
        assert isinstance(bundle.backend, TemplateCopywriter)
        assert isinstance(bundle.usage, InMemoryUsageLedger)
        assert bundle.usage.tier is Tier.STARTER
        assert bundle.new_engine().timeout_seconds == 5

    def test_usage_tracking_disabled(self):
        bundle = ComponentFactory.create(config=_template_config(), track_usage=False)
        assert bundle.usage is None

    def test_new_controller_uses_workflow_config(self):
        bundle = ComponentFactory.create(
            config=_template_config(max_council_selections=2), track_usage=False
        )
        controller = bundle.new_controller()
        assert controller.step is WorkflowStep.WELCOME
        assert controller.session.council_selection.max_selections == 2
        assert controller.engine.backend is bundle.backend
        assert controller.engine.timeout_seconds == 5

    def test_controllers_get_fresh_sessions(self):
        bundle = ComponentFactory.create(config=_template_config(), track_usage=False)
        assert bundle.new_controller().session is not bundle.new_controller().session


def _walk_to_generation(controller) -> None:
    assert controller.next()
    controller.toggle_council("architect")
    assert controller.next()
    controller.update_form(
        niche="Fitness coaching",
        tone="bold",
        target_audience="busy professionals",
        pain_point="no time to train",
    )
    assert controller.next()


class TestControllerIsolation:
    def test_controllers_get_their_own_engine(self):
        bundle = ComponentFactory.create(config=_template_config(), track_usage=False)
        first, second = bundle.new_controller(), bundle.new_controller()
        assert first.engine is not second.engine
        assert first.engine.backend is second.engine.backend

    def test_pending_generation_does_not_block_other_sessions(self):
        async def scenario():
            gate = asyncio.Event()
            backend = FakeBackend(gate=gate)
            bundle = ComponentBundle(config=_template_config(), backend=backend)
            first, second = bundle.new_controller(), bundle.new_controller()
            _walk_to_generation(first)
            _walk_to_generation(second)

            pending = asyncio.create_task(first.generate())
            await backend.started.wait()

            assert first.busy
            assert not second.busy
            assert second.prev()
            assert second.step is WorkflowStep.INPUT_COLLECTION
            assert second.next()

            other = asyncio.create_task(second.generate())
            await asyncio.sleep(0)
            assert second.busy
            gate.set()
            await asyncio.gather(pending, other)

            assert first.step is WorkflowStep.REVIEW
            assert second.step is WorkflowStep.REVIEW
            assert len(backend.requests) == 2

        asyncio.run(scenario())
