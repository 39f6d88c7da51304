"""
PlanningContext — a DialogContext with read/mutate access to a plan.

Rule evaluation only ever QUEUES change-lists here. They are applied together
by `apply_changes()`, which the planning dialog calls at one point only (the
start of plan consultation), so every rule in a turn sees the same plan.

Change application:
  newPlan            save the active plan (it resumes later), start a new one
  replacePlan        retire the active plan to history, start a new one
  endPlan            retire the active plan; change steps (if any) start a new
                     plan, otherwise the newest saved plan resumes
  doSteps            insert steps at the front
  doStepsBeforeTags  insert before the first step tagged with any change tag
  doStepsLater       append steps at the end
"""
from __future__ import annotations

from typing import Optional

import structlog

from dialogs.base import DialogSet
from dialogs.context import DialogContext
from planning.models import (
    Plan, PlanChangeList, PlanChangeType, PlanningState, PlanStatus, PlanStep,
)

logger = structlog.get_logger()

DEFAULT_PLAN_HISTORY_LIMIT = 10


class PlanningContext(DialogContext):
    """
    Shares the stack, turn and memory of the DialogContext it was created
    from; adds the PlanningState of the planning dialog that owns the stack
    entry.
    """

    def __init__(
        self,
        dc: DialogContext,
        state: PlanningState,
        history_limit: int = DEFAULT_PLAN_HISTORY_LIMIT,
    ):
        super().__init__(
            dc.dialogs, dc.context, dc.dialog_state,
            dc.user_state, dc.conversation_state, dc.parent,
        )
        self.state = state
        self.history_limit = history_limit

    @classmethod
    def create(
        cls,
        dc: DialogContext,
        state: PlanningState,
        history_limit: int = DEFAULT_PLAN_HISTORY_LIMIT,
    ) -> "PlanningContext":
        return cls(dc, state, history_limit)

    def create_for_step(self, dialogs: DialogSet) -> Optional[DialogContext]:
        """Child context over the current step's nested stack, if a step exists."""
        step = self.current_step
        if step is None:
            return None
        return DialogContext(
            dialogs, self.context, step,
            self.user_state, self.conversation_state, parent=self,
        )

    # ── Plan access ───────────────────────────────────────────

    @property
    def plan(self) -> Optional[Plan]:
        return self.state.plan

    @property
    def current_step(self) -> Optional[PlanStep]:
        return self.plan.current_step if self.plan else None

    @property
    def has_plans(self) -> bool:
        """True while any active, saved or historical plan exists."""
        return bool(self.state.plan or self.state.saved_plans or self.state.history)

    # ── Change queue ──────────────────────────────────────────

    def queue_changes(self, change: PlanChangeList) -> None:
        self.state.queue(change)
        logger.debug("plan_change_queued",
                     change_type=change.change_type.value,
                     steps=len(change.steps),
                     intents=change.intents_matched)

    async def apply_changes(self) -> bool:
        """Apply every queued change in order. Returns False when none were queued."""
        changes = self.state.take_changes()
        if not changes:
            return False

        for change in changes:
            steps = [s.model_copy(deep=True) for s in change.steps]
            change_type = change.change_type
            if change_type == PlanChangeType.NEW_PLAN:
                await self.new_plan(steps)
            elif change_type == PlanChangeType.REPLACE_PLAN:
                await self.replace_plan(steps)
            elif change_type == PlanChangeType.END_PLAN:
                await self.end_plan(steps)
            elif change_type == PlanChangeType.DO_STEPS:
                await self.do_steps(steps)
            elif change_type == PlanChangeType.DO_STEPS_BEFORE_TAGS:
                await self.do_steps_before_tags(change.tags, steps)
            elif change_type == PlanChangeType.DO_STEPS_LATER:
                await self.do_steps_later(steps)
            logger.info("plan_change_applied",
                        change_type=change_type.value,
                        steps=[s.dialog_id for s in steps],
                        plan_length=len(self.plan.steps) if self.plan else 0)
        return True

    # ── Plan mutations ────────────────────────────────────────

    async def new_plan(self, steps: list[PlanStep]) -> None:
        current = self.state.plan
        if current is not None and current.steps:
            current.status = PlanStatus.SAVED
            self.state.saved_plans.append(current)
            logger.info("plan_saved", saved_plans=len(self.state.saved_plans))
        self.state.plan = Plan(steps=steps)
        logger.info("plan_started", steps=len(steps))

    async def replace_plan(self, steps: list[PlanStep]) -> None:
        self._retire_plan(PlanStatus.REPLACED)
        self.state.plan = Plan(steps=steps)
        logger.info("plan_replaced", steps=len(steps))

    async def end_plan(self, steps: Optional[list[PlanStep]] = None) -> None:
        self._retire_plan(PlanStatus.ENDED)
        if steps:
            self.state.plan = Plan(steps=steps)
        else:
            self._resume_saved_plan()

    async def do_steps(self, steps: list[PlanStep]) -> None:
        plan = self._ensure_plan()
        plan.steps[0:0] = steps

    async def do_steps_before_tags(self, tags: list[str], steps: list[PlanStep]) -> None:
        plan = self._ensure_plan()
        wanted = set(tags)
        for i, existing in enumerate(plan.steps):
            if wanted.intersection(existing.tags):
                plan.steps[i:i] = steps
                return
        plan.steps.extend(steps)

    async def do_steps_later(self, steps: list[PlanStep]) -> None:
        plan = self._ensure_plan()
        plan.steps.extend(steps)

    async def end_step(self) -> None:
        """Pop the finished head step; an emptied plan is archived."""
        plan = self.state.plan
        if plan is None:
            return
        if plan.steps:
            finished = plan.steps.pop(0)
            logger.debug("plan_step_ended", dialog_id=finished.dialog_id, remaining=len(plan.steps))
        if not plan.steps:
            self._retire_plan(PlanStatus.COMPLETED)
            self._resume_saved_plan()

    # ── Helpers ───────────────────────────────────────────────

    def _ensure_plan(self) -> Plan:
        if self.state.plan is None:
            self.state.plan = Plan()
        return self.state.plan

    def _retire_plan(self, status: PlanStatus) -> None:
        plan = self.state.plan
        if plan is None:
            return
        plan.status = status
        self.state.history.append(plan)
        if self.history_limit >= 0:
            overflow = len(self.state.history) - self.history_limit
            if overflow > 0:
                del self.state.history[:overflow]
        self.state.plan = None
        logger.info("plan_ended", status=status.value, history=len(self.state.history))

    def _resume_saved_plan(self) -> None:
        if self.state.saved_plans:
            plan = self.state.saved_plans.pop()
            plan.status = PlanStatus.ACTIVE
            self.state.plan = plan
            logger.info("plan_resumed", steps=len(plan.steps))
