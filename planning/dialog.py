"""
PlanningDialog — a dialog whose behaviour is a plan assembled by rules.

Lifecycle per stack entry:

  NotStarted ──begin──▶ Running ──step waits──▶ Waiting
                           ▲                       │
                           └──── next turn ◀───────┘
  Running ──plan exhausted──▶ Ended (result returned to the parent)

Each turn the dialog applies the change-lists its rules queued, then hands
the turn to the plan's current step. Steps run on their own nested stack
(stored on the PlanStep), so a step can be a prompt or a whole child dialog.
When a step finishes it is popped and the next one starts in the same turn.

Faults raised while beginning, consulting or continuing are not propagated:
they cancel every dialog on the stack with the `error` event and a
{"message", "stack"} payload, so the host always receives a turn result.

The class is also the turn driver: `on_turn()` loads state, runs the dialog
and saves whatever changed; `run()` does the same against an in-memory
adapter and returns the outgoing activities.
"""
from __future__ import annotations

import copy
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional, Union

import structlog

from config.settings import PlanningConfig
from database.storage_base import Storage
from dialogs.base import (
    Dialog, DialogConsultation, DialogConsultationDesire, DialogEvent, DialogEvents,
    DialogInstance, DialogReason, DialogSet, DialogState, DialogTurnResult,
    DialogTurnStatus,
)
from dialogs.context import DialogContext
from dialogs.turn import InMemoryAdapter, TurnContext
from models.schemas import Activity, StoredBotState
from planning.context import PlanningContext
from planning.evaluator import RuleEvaluator
from planning.models import PlanningEventNames, PlanningState
from planning.state import (
    DIALOGS_KEY, LAST_ACCESS_KEY, ConfigurationError, apply_expiry,
    format_timestamp, get_storage_keys, load_bot_state, save_bot_state,
)

if TYPE_CHECKING:
    from recognizers.base import Recognizer
    from rules.base import PlanningRule

logger = structlog.get_logger()


@dataclass
class BotTurnResult:
    turn_result: DialogTurnResult
    activities: Optional[list[Activity]] = None
    new_state: Optional[StoredBotState] = None     # only when the caller supplied state


def _error_payload(error: Exception) -> dict[str, str]:
    return {"message": str(error), "stack": traceback.format_exc()}


class PlanningDialog(Dialog):

    def __init__(
        self,
        dialog_id: str = "",
        config: Optional[PlanningConfig] = None,
        storage: Optional[Storage] = None,
        recognizer: Optional["Recognizer"] = None,
    ):
        super().__init__(dialog_id)
        config = config or PlanningConfig()
        self._dialogs = DialogSet()
        self._run_dialogs = DialogSet()     # root set used by on_turn()
        self._installed = False

        self.rules: list["PlanningRule"] = []
        self.storage = storage
        self.recognizer = recognizer
        self.expire_after: Optional[int] = config.expire_after_ms
        self.plan_history_limit = config.plan_history_limit
        self.save_etag = config.save_etag

        self._run_dialogs.add(self)

    def compute_id(self) -> str:
        return "planning"

    # ── Configuration ─────────────────────────────────────────

    def set_recognizer(self, recognizer: "Recognizer") -> "PlanningDialog":
        self.recognizer = recognizer
        return self

    def add_dialog(self, *dialogs: Dialog) -> "PlanningDialog":
        for dialog in dialogs:
            self._dialogs.add(dialog)
        return self

    def add_rule(self, *rules: "PlanningRule") -> "PlanningDialog":
        self.rules.extend(rules)
        if self._installed:
            for rule in rules:
                self._install_steps(rule)
        return self

    def find_dialog(self, dialog_id: str) -> Optional[Dialog]:
        return self._dialogs.find(dialog_id)

    def _install_dependencies(self) -> None:
        """Register every rule's steps as child dialogs, once per object."""
        if self._installed:
            return
        self._installed = True
        for rule in self.rules:
            self._install_steps(rule)
        logger.debug("planning_dependencies_installed", dialog_id=self.id, dialogs=len(self._dialogs))

    def _install_steps(self, rule: "PlanningRule") -> None:
        for step in rule.steps:
            self._dialogs.add(step)

    @staticmethod
    def _state_of(instance: DialogInstance) -> PlanningState:
        # Stack records loaded from storage hold plain dicts until first use
        if not isinstance(instance.state, PlanningState):
            instance.state = PlanningState.model_validate(instance.state or {})
        return instance.state

    def _planning_context(self, dc: DialogContext) -> PlanningContext:
        state = self._state_of(dc.active_dialog)
        return PlanningContext.create(dc, state, self.plan_history_limit)

    # ── Dialog overrides ──────────────────────────────────────

    async def begin_dialog(self, dc: DialogContext, options: Any = None) -> DialogTurnResult:
        try:
            self._install_dependencies()
            planning = self._planning_context(dc)
            state = planning.state

            state.options = options if options is not None else {}
            if isinstance(state.options, dict) and "value" in state.options:
                state.result = copy.deepcopy(state.options["value"])

            await self.evaluate_rules(
                planning, DialogEvent(name=PlanningEventNames.BEGIN_DIALOG, value=options))
            return await self.continue_plan(planning)
        except Exception as e:
            logger.error("planning_begin_failed", dialog_id=self.id, error=str(e), exc_info=True)
            return await dc.cancel_all_dialogs(DialogEvents.ERROR, _error_payload(e))

    async def consult_dialog(self, dc: DialogContext) -> DialogConsultation:
        try:
            self._install_dependencies()
            planning = self._planning_context(dc)

            consultation = await self.consult_plan(planning)
            if consultation.desire != DialogConsultationDesire.SHOULD_PROCESS:
                queued = await self.evaluate_rules(
                    planning, DialogEvent(name=PlanningEventNames.CONSULT_DIALOG))
                if queued:
                    return DialogConsultation(
                        desire=DialogConsultationDesire.SHOULD_PROCESS,
                        processor=lambda inner: self.continue_plan(planning),
                    )
            return DialogConsultation(
                desire=consultation.desire,
                processor=self._guarded(planning, consultation.processor),
            )
        except Exception as e:
            logger.error("planning_consult_failed", dialog_id=self.id, error=str(e), exc_info=True)
            payload = _error_payload(e)
            return DialogConsultation(
                desire=DialogConsultationDesire.SHOULD_PROCESS,
                processor=lambda inner: inner.cancel_all_dialogs(DialogEvents.ERROR, payload),
            )

    async def on_dialog_event(self, dc: DialogContext, event: DialogEvent) -> bool:
        """Offer the event to the rules. True means a change was queued."""
        self._install_dependencies()
        return await self.evaluate_rules(self._planning_context(dc), event)

    async def resume_dialog(self, dc: DialogContext, reason: DialogReason, result: Any = None) -> DialogTurnResult:
        # Something pushed above us ended; we are not the one waiting for input
        await self.reprompt_dialog(dc.context, dc.active_dialog)
        return self.end_of_turn()

    async def reprompt_dialog(self, context: TurnContext, instance: DialogInstance) -> None:
        self._install_dependencies()
        plan = self._state_of(instance).plan
        if plan is not None and plan.steps:
            step_dc = DialogContext(self._dialogs, context, plan.steps[0])
            await step_dc.reprompt_dialog()

    # ── Rules ─────────────────────────────────────────────────

    async def evaluate_rules(self, planning: PlanningContext, event: DialogEvent) -> bool:
        return await RuleEvaluator(self.rules, self.recognizer).evaluate(planning, event)

    # ── Plan execution ────────────────────────────────────────

    async def consult_plan(self, planning: PlanningContext) -> DialogConsultation:
        await planning.apply_changes()

        # Cancellation can remove us from the stack while a step runs
        instance_id = self._unique_instance_id(planning)

        step = planning.create_for_step(self._dialogs)
        consultation = await step.consult_dialog() if step is not None else None

        async def processor(dc: DialogContext) -> DialogTurnResult:
            if step is not None:
                head = step.dialog_state
                logger.debug("plan_step_running", dialog_id=head.dialog_id)
                if consultation is not None:
                    result = await consultation.processor(step)
                else:
                    result = DialogTurnResult(DialogTurnStatus.EMPTY)
                if result.status == DialogTurnStatus.EMPTY and not result.parent_ended:
                    result = await step.begin_dialog(head.dialog_id, head.options)

                if result.parent_ended or self._unique_instance_id(planning) != instance_id:
                    logger.info("plan_step_detached", dialog_id=head.dialog_id, status=result.status.value)
                    result.parent_ended = False
                    return result

                if result.status == DialogTurnStatus.WAITING:
                    return result

                # An intercepted cancellation may have queued steps; they apply on continue
                await planning.end_step()

                following = planning.current_step
                if following is not None and following.dialog_stack:
                    await self.reprompt_dialog(dc.context, dc.active_dialog)
                    return self.end_of_turn()
                return await self.continue_plan(planning)

            if planning.active_dialog is not None:
                return await self.on_end_of_plan(planning)
            return DialogTurnResult(DialogTurnStatus.EMPTY)

        desire = consultation.desire if consultation is not None else DialogConsultationDesire.CAN_PROCESS
        return DialogConsultation(desire=desire, processor=processor)

    async def continue_plan(self, planning: PlanningContext) -> DialogTurnResult:
        try:
            consultation = await self.consult_plan(planning)
            return await consultation.processor(planning)
        except Exception as e:
            logger.error("planning_continue_failed", dialog_id=self.id, error=str(e), exc_info=True)
            return await planning.cancel_all_dialogs(DialogEvents.ERROR, _error_payload(e))

    def _guarded(self, planning: PlanningContext, processor):
        """Wrap a processor the host stack will run so its faults cancel the stack."""
        async def guarded(dc: DialogContext) -> DialogTurnResult:
            try:
                return await processor(dc)
            except Exception as e:
                logger.error("planning_step_failed", dialog_id=self.id, error=str(e), exc_info=True)
                return await planning.cancel_all_dialogs(DialogEvents.ERROR, _error_payload(e))
        return guarded

    async def on_end_of_plan(self, planning: PlanningContext) -> DialogTurnResult:
        logger.info("plan_finished", dialog_id=self.id)
        return await planning.end_dialog(planning.state.result)

    @staticmethod
    def _unique_instance_id(dc: DialogContext) -> str:
        active = dc.active_dialog
        return f"{len(dc.stack)}:{active.id}" if active is not None else ""

    # ── Turn driver ───────────────────────────────────────────

    async def on_turn(self, context: TurnContext, state: Optional[StoredBotState] = None) -> BotTurnResult:
        """
        Run one turn. Without `state` the bot state is loaded from `storage`
        and the changed documents are saved afterwards; with `state` nothing
        touches storage and the updated state is returned instead.
        """
        keys = get_storage_keys(context.activity)
        logger.debug("turn_started",
                     activity_type=context.activity.type,
                     conversation_key=keys.conversation_state)

        save_state = False
        if state is None:
            if self.storage is None:
                raise ConfigurationError("Unable to load the bot's state: no storage assigned.")
            state = await load_bot_state(self.storage, keys)
            save_state = True

        new_state = state.model_copy(deep=True)

        now = datetime.now(timezone.utc)
        apply_expiry(new_state, self.expire_after, now)
        new_state.conversation_state[LAST_ACCESS_KEY] = format_timestamp(now)

        dialog_state = DialogState.model_validate(new_state.conversation_state.get(DIALOGS_KEY) or {})
        dc = DialogContext(
            self._run_dialogs, context, dialog_state,
            new_state.user_state, new_state.conversation_state,
        )

        result = await dc.continue_dialog()
        if result.status == DialogTurnStatus.EMPTY:
            result = await dc.begin_dialog(self.id)

        new_state.conversation_state[DIALOGS_KEY] = dialog_state.model_dump(by_alias=True, mode="json")
        logger.info("turn_completed", status=result.status.value,
                    depth=len(dialog_state.dialog_stack), responded=context.responded)

        if save_state:
            await save_bot_state(self.storage, keys, new_state, state, self.save_etag)
            return BotTurnResult(turn_result=result)
        return BotTurnResult(turn_result=result, new_state=new_state)

    async def run(
        self,
        activity: Union[Activity, dict[str, Any]],
        state: Optional[StoredBotState] = None,
    ) -> BotTurnResult:
        """Run a turn against an in-memory adapter and return what was sent."""
        adapter = InMemoryAdapter()
        context = TurnContext(adapter, activity)
        result = await self.on_turn(context, state)
        result.activities = adapter.activities
        return result
