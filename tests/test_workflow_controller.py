"""Tests for vaultflow/workflow/controller.py: the step state machine.

Generation runs against in-process backends; pending generations are held
open with asyncio.Event so the busy state can be observed.
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from vaultflow.core.exceptions import (
    GenerationFailed,
    GenerationInProgress,
    QuotaExceeded,
    UsageServiceError,
    WorkflowError,
)
from vaultflow.core.models import FormData, Section, Tier, TierUsage, WorkflowStep
from vaultflow.generation.engine import GenerationEngine
from vaultflow.quality.gate import CTA_SCARCITY_WARNING
from vaultflow.usage.service import InMemoryUsageLedger
from vaultflow.workflow.controller import NextAction, WorkflowController

from tests.conftest import FAILING_CONTENT, PASSING_CONTENT, FakeBackend, controller_at_generation


def _controller(backend=None, usage=None) -> WorkflowController:
    return WorkflowController(engine=GenerationEngine(backend or FakeBackend()), usage=usage)


def _at_review(backend=None, usage=None) -> WorkflowController:
    controller = controller_at_generation(backend or FakeBackend(), usage=usage)
    asyncio.run(controller.generate())
    assert controller.step is WorkflowStep.REVIEW
    return controller


def _at_export(backend=None) -> WorkflowController:
    controller = _at_review(backend)
    assert controller.next()
    assert controller.step is WorkflowStep.EXPORT
    return controller


class FailingUsage:
    def __init__(self, usage: TierUsage):
        self.usage = usage

    async def get_usage(self) -> TierUsage:
        return self.usage

    async def record_generation(self) -> None:
        raise UsageServiceError("account service down")


class TestNavigation:
    def test_starts_at_welcome(self):
        c = _controller()
        assert c.step is WorkflowStep.WELCOME
        assert c.session.progress_percent == 0
        assert not c.can_go_back()
        assert c.can_advance()

    def test_council_requires_selection(self):
        c = _controller()
        c.next()
        assert not c.next()
        assert c.step is WorkflowStep.COUNCIL_SELECTION
        assert c.blocked_reason() == "select at least one council member"

        assert c.toggle_council("empath")
        assert c.next()
        assert c.step is WorkflowStep.INPUT_COLLECTION

    def test_inputs_require_all_fields(self):
        c = _controller()
        c.next()
        c.toggle_council("architect")
        c.next()

        c.update_form(niche="Fitness", tone="bold", target_audience="dads")
        assert not c.next()
        assert "pain_point" in c.blocked_reason()

        c.update_form(pain_point="   ")
        assert not c.next()

        c.update_form(pain_point="no time")
        assert c.next()
        assert c.step is WorkflowStep.GENERATION
        assert c.session.progress_percent == 60

    def test_update_form_merges(self):
        c = _controller()
        c.update_form(niche="Fitness")
        c.update_form(tone="calm")
        assert c.session.form_data == FormData(niche="Fitness", tone="calm")

    def test_generation_requires_content(self, fake_backend):
        c = controller_at_generation(fake_backend)
        assert not c.next()
        assert c.blocked_reason() == "no generated content yet"

    def test_cannot_advance_past_export(self):
        c = _at_export()
        assert not c.next()
        assert c.step is WorkflowStep.EXPORT

    def test_prev_walks_back(self):
        c = _controller()
        c.next()
        assert c.prev()
        assert c.step is WorkflowStep.WELCOME
        assert not c.prev()

    def test_review_back_to_generation_keeps_content(self):
        c = _at_review()
        assert c.prev()
        assert c.step is WorkflowStep.GENERATION
        assert c.session.has_content
        assert c.next()
        assert c.step is WorkflowStep.REVIEW

    def test_allowed_transitions(self):
        c = _controller()
        c.next()
        assert c.allowed_transitions() == [WorkflowStep.WELCOME]
        c.toggle_council("hunter")
        assert c.allowed_transitions() == [WorkflowStep.WELCOME, WorkflowStep.INPUT_COLLECTION]

    def test_edit_offer_only_from_export(self):
        c = _at_review()
        assert not c.edit_offer()
        c.next()
        assert c.edit_offer()
        assert c.step is WorkflowStep.REVIEW


class TestCouncil:
    def test_unknown_member_ignored(self):
        c = _controller()
        assert not c.toggle_council("ghostwriter")
        assert c.session.council_selection.is_empty

    def test_fourth_member_ignored(self):
        c = _controller()
        for member_id in ("architect", "hunter", "empath"):
            assert c.toggle_council(member_id)
        assert not c.toggle_council("surgeon")
        assert len(c.session.council_selection) == 3

    def test_toggle_off_and_clear(self):
        c = _controller()
        c.toggle_council("architect")
        assert c.toggle_council("architect")
        assert c.session.council_selection.is_empty
        c.toggle_council("hunter")
        c.clear_council()
        assert c.session.council_selection.is_empty


class TestGenerate:
    def test_success_moves_to_review(self):
        backend = FakeBackend()
        c = controller_at_generation(backend, council=("architect", "surgeon"))
        content = asyncio.run(c.generate())

        assert c.step is WorkflowStep.REVIEW
        assert c.session.generated_content == content
        assert content.hook == PASSING_CONTENT["hook"]
        assert c.session.generations == 1
        assert c.session.quality_warnings == []

        request = backend.requests[0]
        assert request.industry == "Fitness coaching"
        assert request.council_selection == ["architect", "surgeon"]

    def test_outside_generation_step_raises(self):
        c = _controller()
        with pytest.raises(WorkflowError):
            asyncio.run(c.generate())

    def test_failure_leaves_session_untouched(self):
        c = controller_at_generation(FakeBackend(error=GenerationFailed("upstream 502")))
        with pytest.raises(GenerationFailed):
            asyncio.run(c.generate())
        assert c.step is WorkflowStep.GENERATION
        assert c.session.generated_content is None
        assert c.session.generations == 0
        assert not c.busy

    def test_incomplete_payload_fails(self):
        payload = dict(PASSING_CONTENT, offer="")
        c = controller_at_generation(FakeBackend(payload=payload))
        with pytest.raises(GenerationFailed, match="offer"):
            asyncio.run(c.generate())
        assert c.session.generated_content is None

    def test_warnings_recorded_on_generation(self):
        c = controller_at_generation(FakeBackend(payload=dict(FAILING_CONTENT)))
        asyncio.run(c.generate())
        assert len(c.session.quality_warnings) == 4

    def test_quota_blocks_before_backend_call(self):
        backend = FakeBackend()
        ledger = InMemoryUsageLedger(tier=Tier.FREE, used=2)
        c = controller_at_generation(backend, usage=ledger)

        with pytest.raises(QuotaExceeded) as exc_info:
            asyncio.run(c.generate())
        assert "Upgrade to Starter" in exc_info.value.upgrade_message
        assert backend.requests == []
        assert c.step is WorkflowStep.GENERATION
        assert not c.busy

    def test_consumption_reported(self):
        ledger = InMemoryUsageLedger(tier=Tier.FREE)
        c = controller_at_generation(FakeBackend(), usage=ledger)

        async def scenario():
            await c.generate()
            await c.flush_notifications()

        asyncio.run(scenario())
        assert ledger.used == 1

    def test_failed_generation_not_reported(self):
        ledger = InMemoryUsageLedger(tier=Tier.FREE)
        c = controller_at_generation(FakeBackend(error=GenerationFailed("nope")), usage=ledger)
        with pytest.raises(GenerationFailed):
            asyncio.run(c.generate())
        assert ledger.used == 0

    def test_report_failure_is_logged_not_raised(self, caplog):
        usage = FailingUsage(TierUsage(tier=Tier.PRO, used=0, limit=-1))
        c = controller_at_generation(FakeBackend(), usage=usage)

        async def scenario():
            await c.generate()
            await c.flush_notifications()

        with caplog.at_level(logging.WARNING, logger="vaultflow.workflow"):
            asyncio.run(scenario())
        assert c.step is WorkflowStep.REVIEW
        assert "Could not report consumed generation" in caplog.text

    def test_quota_snapshot(self):
        ledger = InMemoryUsageLedger(tier=Tier.STARTER, used=20)
        c = _controller(usage=ledger)
        status = asyncio.run(c.quota())
        assert status.near_limit
        assert status.remaining == "5"

    def test_quota_without_usage_service(self):
        assert asyncio.run(_controller().quota()) is None


class TestBusy:
    def test_transitions_disabled_while_pending(self):
        async def scenario():
            gate = asyncio.Event()
            backend = FakeBackend(gate=gate)
            c = controller_at_generation(backend)

            task = asyncio.create_task(c.generate())
            await backend.started.wait()

            assert c.busy
            assert not c.can_advance()
            assert not c.prev()
            assert not c.next()
            assert c.step is WorkflowStep.GENERATION
            with pytest.raises(GenerationInProgress):
                await c.generate()

            gate.set()
            await task
            assert not c.busy
            assert c.step is WorkflowStep.REVIEW
            assert len(backend.requests) == 1

        asyncio.run(scenario())

    def test_busy_during_quota_read(self):
        class SlowUsage:
            def __init__(self):
                self.reading = asyncio.Event()
                self.release = asyncio.Event()

            async def get_usage(self):
                self.reading.set()
                await self.release.wait()
                return TierUsage(tier=Tier.PRO, used=0, limit=-1)

            async def record_generation(self):
                return None

        async def scenario():
            usage = SlowUsage()
            c = controller_at_generation(FakeBackend(), usage=usage)
            task = asyncio.create_task(c.generate())
            await usage.reading.wait()

            assert c.busy
            assert not c.can_go_back()
            with pytest.raises(GenerationInProgress):
                await c.generate()

            usage.release.set()
            await task
            await c.flush_notifications()
            assert c.step is WorkflowStep.REVIEW

        asyncio.run(scenario())


class TestReviewEdits:
    def test_edit_and_save(self):
        c = _at_review()
        assert c.begin_edit("cta")
        assert c.session.edit_buffer == PASSING_CONTENT["cta"]
        c.update_edit("Sign up")
        assert c.save_edit()

        assert c.session.generated_content.cta == "Sign up"
        assert c.session.editing_section is None
        assert c.session.quality_warnings == [CTA_SCARCITY_WARNING]

    def test_one_edit_at_a_time(self):
        c = _at_review()
        assert c.begin_edit(Section.HOOK)
        assert not c.begin_edit(Section.STORY)
        assert c.session.editing_section is Section.HOOK

    def test_cancel_discards_buffer(self):
        c = _at_review()
        c.begin_edit("hook")
        c.update_edit("Different hook!")
        c.cancel_edit()
        assert c.session.generated_content.hook == PASSING_CONTENT["hook"]
        assert not c.save_edit()

    def test_leaving_review_discards_edit(self):
        c = _at_review()
        c.begin_edit("hook")
        c.update_edit("Unsaved!")
        assert c.next()
        assert c.session.editing_section is None
        assert c.session.generated_content.hook == PASSING_CONTENT["hook"]

    def test_edit_only_in_review(self, fake_backend):
        c = controller_at_generation(fake_backend)
        assert not c.begin_edit("hook")
        assert not c.update_edit("x")


class TestExport:
    def test_clean_copy_downloads(self):
        c = _at_export()
        assert c.can_download
        text = c.download_text()
        assert text.startswith("HOOK\n")
        assert "CTA\n" in text

    def test_warnings_block_download_only(self):
        c = _at_export(FakeBackend(payload=dict(FAILING_CONTENT)))
        assert not c.can_download
        assert c.download_text() is None
        assert c.copy_text().startswith("HOOK\n")
        assert "<html>" in c.preview_html()

    def test_fix_after_edit_offer_unblocks_download(self):
        payload = dict(PASSING_CONTENT, cta="Sign up")
        c = _at_export(FakeBackend(payload=payload))
        assert c.session.quality_warnings == [CTA_SCARCITY_WARNING]

        assert c.edit_offer()
        c.begin_edit("cta")
        c.update_edit("Join now - limited seats")
        c.save_edit()
        assert c.next()
        assert c.download_text() is not None

    def test_download_not_available_before_export(self):
        c = _at_review()
        assert c.download_text() is None


class TestGuidanceAndNextActions:
    def test_guidance_only_at_export(self):
        c = _at_review()
        assert not c.record_guidance(True)
        assert not c.skip_guidance()

    def test_actions_locked_until_guidance_done(self):
        c = _at_export()
        assert not c.next_actions_unlocked
        assert c.next_best_action(NextAction.AD_CAMPAIGN) is None

        for outcome in (True, True, False, True):
            assert c.record_guidance(outcome)
        assert c.next_actions_unlocked
        assert c.guidance.progress() == (3, 4)

    def test_skip_unlocks(self):
        c = _at_export()
        assert c.skip_guidance()
        ad = c.next_best_action("ad_campaign")
        assert ad.startswith("FACEBOOK AD CAMPAIGN - Fitness coaching")
        assert PASSING_CONTENT["hook"] in ad

    def test_email_sequence(self):
        c = _at_export()
        c.skip_guidance()
        emails = c.next_best_action(NextAction.EMAIL_SEQUENCE)
        assert emails.count("Subject:") == 5
        assert "Council: architect" in emails

    def test_actions_relock_outside_export(self):
        c = _at_export()
        c.skip_guidance()
        c.edit_offer()
        assert not c.next_actions_unlocked
