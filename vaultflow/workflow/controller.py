"""WorkflowController: the step state machine over one WorkflowSession.

Steps run Welcome -> Council -> Inputs -> Generation -> Review -> Export and
move one step at a time with ``next()`` / ``prev()``; ``edit_offer()`` is the
explicit Export -> Review edge. Guard failures are ordinary UI states, not
errors: ``next()`` simply returns False and the step stays put.

Generation is the only suspending operation. Quota is checked before the
collaborator is called, and after a success one consumed unit is reported
to the usage service without waiting for it.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Optional

from vaultflow.core.exceptions import (
    GenerationInProgress,
    UsageServiceError,
    ValidationBlocked,
    WorkflowError,
)
from vaultflow.core.models import (
    WORKFLOW_STEPS,
    FormData,
    GenerationRequest,
    Section,
    SectionMap,
    WorkflowStep,
)
from vaultflow.council.catalog import is_known
from vaultflow.export import formats
from vaultflow.generation.engine import GenerationEngine
from vaultflow.quality.gate import validate
from vaultflow.quota.tracker import (
    NEAR_LIMIT_PERCENT,
    QuotaStatus,
    ensure_can_generate,
    quota_status,
)
from vaultflow.usage.service import UsageService
from vaultflow.workflow.guidance import GuidanceCheckSubflow
from vaultflow.workflow.session import WorkflowSession, new_session

logger = logging.getLogger("vaultflow.workflow")


class NextAction(str, enum.Enum):
    AD_CAMPAIGN = "ad_campaign"
    EMAIL_SEQUENCE = "email_sequence"


class WorkflowController:
    """Owns one session and is the only writer to it.

    Injected dependencies:
        engine: Single-flight generation engine.
        usage: Account usage collaborator. ``None`` disables quota checks.
    """

    def __init__(
        self,
        engine: GenerationEngine,
        usage: Optional[UsageService] = None,
        session: Optional[WorkflowSession] = None,
        max_selections: int = 3,
        near_limit_percent: float = NEAR_LIMIT_PERCENT,
    ):
        self.engine = engine
        self.usage = usage
        self.session = session or new_session(max_selections=max_selections)
        self.near_limit_percent = near_limit_percent
        self._notifications: set[asyncio.Task] = set()
        self._generating = False

    @property
    def step(self) -> WorkflowStep:
        return self.session.step

    @property
    def busy(self) -> bool:
        """True while a generation (including its quota check) is pending."""
        return self._generating or self.engine.in_flight

    @property
    def guidance(self) -> GuidanceCheckSubflow:
        return self.session.guidance

    # -- navigation ---------------------------------------------------------

    def _index(self) -> int:
        return WORKFLOW_STEPS.index(self.session.step)

    def _guard_next(self) -> WorkflowStep:
        """Return the step ``next()`` would move to, or raise ValidationBlocked."""
        step = self.session.step
        if self.busy:
            raise ValidationBlocked(step.value, "generation in progress")
        if self._index() == len(WORKFLOW_STEPS) - 1:
            raise ValidationBlocked(step.value, "already at the last step")

        if step is WorkflowStep.COUNCIL_SELECTION and self.session.council_selection.is_empty:
            raise ValidationBlocked(step.value, "select at least one council member")
        if step is WorkflowStep.INPUT_COLLECTION:
            missing = self.session.form_data.missing_required()
            if missing:
                raise ValidationBlocked(step.value, f"missing required fields: {', '.join(missing)}")
        if step is WorkflowStep.GENERATION and self.session.generated_content is None:
            raise ValidationBlocked(step.value, "no generated content yet")

        return WORKFLOW_STEPS[self._index() + 1]

    def blocked_reason(self) -> Optional[str]:
        try:
            self._guard_next()
        except ValidationBlocked as e:
            return e.reason
        return None

    def can_advance(self) -> bool:
        return self.blocked_reason() is None

    def can_go_back(self) -> bool:
        return self._index() > 0 and not self.busy

    def allowed_transitions(self) -> list[WorkflowStep]:
        allowed = []
        if self.can_go_back():
            allowed.append(WORKFLOW_STEPS[self._index() - 1])
        if self.can_advance():
            allowed.append(WORKFLOW_STEPS[self._index() + 1])
        return allowed

    def next(self) -> bool:
        """Advance one step. Returns False without changing anything if a guard fails."""
        try:
            target = self._guard_next()
        except ValidationBlocked as e:
            logger.debug("Transition blocked: %s", e)
            return False
        self._enter(target)
        return True

    def prev(self) -> bool:
        if not self.can_go_back():
            return False
        self._enter(WORKFLOW_STEPS[self._index() - 1])
        return True

    def edit_offer(self) -> bool:
        """Export -> Review, to revise copy after the quality check."""
        if self.session.step is not WorkflowStep.EXPORT:
            return False
        self._enter(WorkflowStep.REVIEW)
        return True

    def _enter(self, target: WorkflowStep) -> None:
        previous = self.session.step
        if previous is WorkflowStep.REVIEW and self.session.editing_section is not None:
            logger.info("Discarding unsaved edit of '%s'", self.session.editing_section.value)
            self.cancel_edit()
        self.session.step = target
        if target is WorkflowStep.EXPORT:
            self.refresh_quality()
        logger.debug("Step %s -> %s", previous.value, target.value)

    # -- council ------------------------------------------------------------

    def toggle_council(self, member_id: str) -> bool:
        """Toggle a persona; returns whether the selection changed."""
        if not is_known(member_id):
            logger.debug("Ignoring unknown council member '%s'", member_id)
            return False
        before = self.session.council_selection
        after = before.toggle(member_id)
        self.session.council_selection = after
        return after is not before

    def clear_council(self) -> None:
        self.session.council_selection = self.session.council_selection.clear()

    # -- inputs -------------------------------------------------------------

    def update_form(self, **fields: str) -> None:
        """Set campaign fields. Unknown field names raise pydantic's ValidationError."""
        merged = {**self.session.form_data.model_dump(), **fields}
        self.session.form_data = FormData.model_validate(merged)

    # -- generation ---------------------------------------------------------

    async def quota(self) -> Optional[QuotaStatus]:
        if self.usage is None:
            return None
        usage = await self.usage.get_usage()
        return quota_status(usage, self.near_limit_percent)

    async def generate(self) -> SectionMap:
        """Run one generation from the Generation step and move on to Review.

        On any failure the session is left exactly as it was.

        Raises:
            WorkflowError: not at the Generation step.
            GenerationInProgress: a generation is already pending.
            QuotaExceeded: the tier has no generations left.
            GenerationFailed: the collaborator failed.
        """
        if self.session.step is not WorkflowStep.GENERATION:
            raise WorkflowError(
                f"Generation runs from the '{WorkflowStep.GENERATION.value}' step, "
                f"not '{self.session.step.value}'"
            )
        if self.busy:
            raise GenerationInProgress()

        self._generating = True
        try:
            if self.usage is not None:
                ensure_can_generate(await self.usage.get_usage())
            request = GenerationRequest.from_form(
                self.session.form_data, self.session.council_selection.as_list()
            )
            content = await self.engine.generate(request)
        finally:
            self._generating = False

        self.session.generated_content = content
        self.session.generations += 1
        self.session.quality_warnings = validate(content)
        self._report_consumption()
        self._enter(WorkflowStep.REVIEW)
        return content

    def _report_consumption(self) -> None:
        if self.usage is None:
            return
        task = asyncio.get_running_loop().create_task(self._send_consumption())
        self._notifications.add(task)
        task.add_done_callback(self._notifications.discard)

    async def _send_consumption(self) -> None:
        try:
            await self.usage.record_generation()
        except UsageServiceError as e:
            logger.warning("Could not report consumed generation: %s", e)

    async def flush_notifications(self) -> None:
        """Wait for outstanding usage reports."""
        if self._notifications:
            await asyncio.gather(*self._notifications)

    # -- review edits -------------------------------------------------------

    def begin_edit(self, section: Section | str) -> bool:
        content = self.session.generated_content
        if self.session.step is not WorkflowStep.REVIEW or content is None:
            return False
        if self.session.editing_section is not None:
            return False
        section = Section(section)
        self.session.editing_section = section
        self.session.edit_buffer = content.get(section)
        return True

    def update_edit(self, text: str) -> bool:
        if self.session.editing_section is None:
            return False
        self.session.edit_buffer = text
        return True

    def save_edit(self) -> bool:
        section = self.session.editing_section
        content = self.session.generated_content
        if section is None or content is None:
            return False
        self.session.generated_content = content.with_section(section, self.session.edit_buffer)
        self.session.editing_section = None
        self.session.edit_buffer = ""
        self.refresh_quality()
        logger.info("Saved edit to '%s'", section.value)
        return True

    def cancel_edit(self) -> None:
        self.session.editing_section = None
        self.session.edit_buffer = ""

    # -- export -------------------------------------------------------------

    def refresh_quality(self) -> list[str]:
        content = self.session.generated_content
        self.session.quality_warnings = validate(content) if content is not None else []
        return list(self.session.quality_warnings)

    @property
    def can_download(self) -> bool:
        return (
            self.session.step is WorkflowStep.EXPORT
            and self.session.generated_content is not None
            and not self.session.quality_warnings
        )

    def copy_text(self) -> Optional[str]:
        content = self.session.generated_content
        return formats.render_plain_text(content) if content is not None else None

    def preview_html(self) -> Optional[str]:
        content = self.session.generated_content
        return formats.render_preview_html(content) if content is not None else None

    def download_text(self) -> Optional[str]:
        """The offer as a downloadable text file, or None while the quality gate has warnings."""
        if not self.can_download:
            logger.warning(
                "Download blocked at step '%s' with %d quality warning(s)",
                self.session.step.value,
                len(self.session.quality_warnings),
            )
            return None
        return self.copy_text()

    # -- guidance / next best actions ---------------------------------------

    def record_guidance(self, valid: bool) -> bool:
        if self.session.step is not WorkflowStep.EXPORT:
            return False
        return self.session.guidance.record(valid)

    def skip_guidance(self) -> bool:
        if self.session.step is not WorkflowStep.EXPORT:
            return False
        return self.session.guidance.skip()

    @property
    def next_actions_unlocked(self) -> bool:
        return self.session.step is WorkflowStep.EXPORT and self.session.guidance.unlocked

    def next_best_action(self, action: NextAction | str) -> Optional[str]:
        """Render a Next Best Action, or None while guidance is still pending."""
        content = self.session.generated_content
        if not self.next_actions_unlocked or content is None:
            return None
        action = NextAction(action)
        if action is NextAction.AD_CAMPAIGN:
            return formats.render_ad_campaign(content, self.session.form_data)
        return formats.render_email_sequence(
            content, self.session.form_data, self.session.council_selection.as_list()
        )
