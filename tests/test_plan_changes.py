"""
Tests for plan change-lists and their application by the planning context.

Covers:
  - Queuing vs. applying (nothing changes until apply_changes)
  - newPlan / replacePlan / endPlan and saved-plan resumption
  - doSteps / doStepsLater / doStepsBeforeTags placement
  - end_step archiving and the bounded plan history
"""
import pytest

from planning.context import PlanningContext
from planning.models import (
    PlanChangeList, PlanChangeType, PlanningState, PlanStatus, PlanStep,
)


def step(dialog_id: str, *tags: str) -> PlanStep:
    return PlanStep(dialog_id=dialog_id, tags=list(tags))


def change(change_type: PlanChangeType, *dialog_ids: str, tags=None) -> PlanChangeList:
    return PlanChangeList(
        change_type=change_type,
        steps=[step(d) for d in dialog_ids],
        tags=tags or [],
    )


def plan_ids(planning: PlanningContext) -> list[str]:
    return [s.dialog_id for s in planning.plan.steps] if planning.plan else []


@pytest.fixture
def planning(dialog_context) -> PlanningContext:
    return PlanningContext.create(dialog_context, PlanningState())


# ──────────────────────────────────────────────────────────────
#  Queue / apply
# ──────────────────────────────────────────────────────────────

class TestQueueAndApply:
    @pytest.mark.asyncio
    async def test_apply_with_empty_queue_is_noop(self, planning):
        assert not await planning.apply_changes()
        assert planning.plan is None
        assert not planning.has_plans

    @pytest.mark.asyncio
    async def test_apply_with_empty_queue_keeps_existing_plan(self, planning):
        planning.queue_changes(change(PlanChangeType.NEW_PLAN, "a", "b"))
        await planning.apply_changes()
        before = planning.state.model_dump()

        assert not await planning.apply_changes()
        assert planning.state.model_dump() == before

    @pytest.mark.asyncio
    async def test_changes_wait_for_apply(self, planning):
        planning.queue_changes(change(PlanChangeType.NEW_PLAN, "a"))
        planning.queue_changes(change(PlanChangeType.DO_STEPS_LATER, "b"))
        assert planning.plan is None
        assert planning.state.pending_changes == 2

        assert await planning.apply_changes()
        assert plan_ids(planning) == ["a", "b"]
        assert planning.state.pending_changes == 0

    def test_queued_changes_are_not_serialized(self, planning):
        planning.queue_changes(change(PlanChangeType.NEW_PLAN, "a"))
        dumped = planning.state.model_dump(by_alias=True)
        assert set(dumped) == {"options", "plan", "savedPlans", "history", "result"}

    @pytest.mark.asyncio
    async def test_contexts_share_the_queue_through_state(self, dialog_context):
        state = PlanningState()
        PlanningContext.create(dialog_context, state).queue_changes(change(PlanChangeType.NEW_PLAN, "a"))
        other = PlanningContext.create(dialog_context, state)
        assert await other.apply_changes()
        assert plan_ids(other) == ["a"]

    @pytest.mark.asyncio
    async def test_applied_steps_are_copies(self, planning):
        proposal = change(PlanChangeType.NEW_PLAN, "a")
        planning.queue_changes(proposal)
        await planning.apply_changes()
        planning.plan.steps[0].dialog_stack.append({"id": "inner"})
        assert proposal.steps[0].dialog_stack == []


# ──────────────────────────────────────────────────────────────
#  Plan-level changes
# ──────────────────────────────────────────────────────────────

class TestPlanChanges:
    @pytest.mark.asyncio
    async def test_new_plan_saves_and_resumes_interrupted_plan(self, planning):
        await planning.new_plan([step("order"), step("confirm")])
        await planning.new_plan([step("help")])

        assert plan_ids(planning) == ["help"]
        assert len(planning.state.saved_plans) == 1
        assert planning.state.saved_plans[0].status == PlanStatus.SAVED

        await planning.end_step()
        assert plan_ids(planning) == ["order", "confirm"]
        assert planning.plan.status == PlanStatus.ACTIVE
        assert planning.state.saved_plans == []
        assert [p.status for p in planning.state.history] == [PlanStatus.COMPLETED]

    @pytest.mark.asyncio
    async def test_replace_plan_retires_current(self, planning):
        await planning.new_plan([step("order")])
        await planning.replace_plan([step("cancel")])
        assert plan_ids(planning) == ["cancel"]
        assert planning.state.saved_plans == []
        assert planning.state.history[-1].status == PlanStatus.REPLACED
        assert [s.dialog_id for s in planning.state.history[-1].steps] == ["order"]

    @pytest.mark.asyncio
    async def test_end_plan_with_steps_starts_new_plan(self, planning):
        await planning.new_plan([step("order")])
        await planning.end_plan([step("bye")])
        assert plan_ids(planning) == ["bye"]
        assert planning.state.history[-1].status == PlanStatus.ENDED

    @pytest.mark.asyncio
    async def test_end_plan_without_steps_resumes_saved(self, planning):
        await planning.new_plan([step("order")])
        await planning.new_plan([step("help")])
        await planning.end_plan()
        assert plan_ids(planning) == ["order"]

    @pytest.mark.asyncio
    async def test_end_plan_with_nothing_saved(self, planning):
        await planning.new_plan([step("order")])
        await planning.end_plan()
        assert planning.plan is None
        assert planning.has_plans

    @pytest.mark.asyncio
    async def test_new_plan_over_finished_plan_does_not_save(self, planning):
        await planning.do_steps([])
        await planning.new_plan([step("a")])
        assert planning.state.saved_plans == []


# ──────────────────────────────────────────────────────────────
#  Step-level changes
# ──────────────────────────────────────────────────────────────

class TestStepChanges:
    @pytest.mark.asyncio
    async def test_do_steps_inserts_at_front(self, planning):
        await planning.new_plan([step("a"), step("b")])
        await planning.do_steps([step("x"), step("y")])
        assert plan_ids(planning) == ["x", "y", "a", "b"]

    @pytest.mark.asyncio
    async def test_do_steps_later_appends(self, planning):
        await planning.new_plan([step("a")])
        await planning.do_steps_later([step("z")])
        assert plan_ids(planning) == ["a", "z"]

    @pytest.mark.asyncio
    async def test_do_steps_creates_plan_when_missing(self, planning):
        await planning.do_steps([step("a")])
        assert plan_ids(planning) == ["a"]

    @pytest.mark.asyncio
    async def test_do_steps_before_tags(self, planning):
        await planning.new_plan([step("a"), step("summary", "wrapup"), step("bye", "wrapup")])
        await planning.do_steps_before_tags(["wrapup"], [step("x")])
        assert plan_ids(planning) == ["a", "x", "summary", "bye"]

    @pytest.mark.asyncio
    async def test_do_steps_before_any_of_several_tags(self, planning):
        await planning.new_plan([step("a"), step("b", "late"), step("c", "early")])
        await planning.do_steps_before_tags(["early", "late"], [step("x")])
        assert plan_ids(planning) == ["a", "x", "b", "c"]

    @pytest.mark.asyncio
    async def test_do_steps_before_missing_tag_appends(self, planning):
        await planning.new_plan([step("a"), step("b")])
        await planning.do_steps_before_tags(["nothing"], [step("x")])
        assert plan_ids(planning) == ["a", "b", "x"]

    @pytest.mark.asyncio
    async def test_before_tags_change_through_queue(self, planning):
        planning.queue_changes(change(PlanChangeType.NEW_PLAN, "a"))
        planning.queue_changes(PlanChangeList(
            change_type=PlanChangeType.DO_STEPS_LATER, steps=[step("end", "final")]))
        planning.queue_changes(change(PlanChangeType.DO_STEPS_BEFORE_TAGS, "x", tags=["final"]))
        await planning.apply_changes()
        assert plan_ids(planning) == ["a", "x", "end"]


# ──────────────────────────────────────────────────────────────
#  end_step & history
# ──────────────────────────────────────────────────────────────

class TestEndStep:
    @pytest.mark.asyncio
    async def test_end_step_pops_head(self, planning):
        await planning.new_plan([step("a"), step("b")])
        await planning.end_step()
        assert plan_ids(planning) == ["b"]
        assert planning.current_step.dialog_id == "b"

    @pytest.mark.asyncio
    async def test_last_step_archives_plan(self, planning):
        await planning.new_plan([step("a")])
        await planning.end_step()
        assert planning.plan is None
        assert planning.current_step is None
        assert planning.state.history[-1].status == PlanStatus.COMPLETED
        assert planning.has_plans

    @pytest.mark.asyncio
    async def test_end_step_without_plan(self, planning):
        await planning.end_step()
        assert planning.plan is None
        assert planning.state.history == []

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, dialog_context):
        planning = PlanningContext.create(dialog_context, PlanningState(), history_limit=2)
        for name in ("a", "b", "c"):
            await planning.new_plan([step(name)])
            await planning.end_step()
        assert [p.steps for p in planning.state.history] == [[], []]
        assert len(planning.state.history) == 2

    @pytest.mark.asyncio
    async def test_replaced_plans_keep_their_steps_in_history(self, dialog_context):
        planning = PlanningContext.create(dialog_context, PlanningState(), history_limit=2)
        for name in ("a", "b", "c"):
            await planning.replace_plan([step(name)])
        assert [p.steps[0].dialog_id for p in planning.state.history] == ["a", "b"]
