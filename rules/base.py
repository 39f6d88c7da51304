"""
Planning Rule — maps a dialog event to zero or more plan change-lists.

A rule owns the steps it wants to run. When its trigger matches the event
(and its optional RuleCondition guards pass against turn memory) it proposes
a single PlanChangeList of `change_type` containing those steps. The rule
evaluator decides which proposals are actually queued.
"""
from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Any, Optional

import structlog
from pydantic import BaseModel

from dialogs.base import Dialog, DialogEvent
from models.schemas import RuleCondition
from planning.models import PlanChangeList, PlanChangeType, PlanStep
from utils.conditions import evaluate_conditions

if TYPE_CHECKING:
    from planning.context import PlanningContext

logger = structlog.get_logger()


class PlanningRule(abc.ABC):

    def __init__(
        self,
        steps: Optional[list[Dialog]] = None,
        change_type: PlanChangeType = PlanChangeType.DO_STEPS,
        conditions: Optional[list[RuleCondition]] = None,
        tags: Optional[list[str]] = None,
    ):
        self.steps: list[Dialog] = list(steps or [])
        self.change_type = change_type
        self.conditions: list[RuleCondition] = list(conditions or [])
        self.tags: list[str] = list(tags or [])     # targets for doStepsBeforeTags

    async def evaluate(self, planning: "PlanningContext", event: DialogEvent) -> list[PlanChangeList]:
        if not await self.on_is_triggered(planning, event):
            return []
        if self.conditions and not evaluate_conditions(self.conditions, self._memory(planning, event)):
            logger.debug("rule_conditions_failed", rule=repr(self), event_name=event.name)
            return []
        return [self.on_create_change_list(planning, event)]

    @abc.abstractmethod
    async def on_is_triggered(self, planning: "PlanningContext", event: DialogEvent) -> bool:
        ...

    def on_create_change_list(
        self,
        planning: "PlanningContext",
        event: DialogEvent,
        dialog_options: Any = None,
    ) -> PlanChangeList:
        return PlanChangeList(
            change_type=self.change_type,
            steps=[PlanStep(dialog_id=step.id, options=dialog_options) for step in self.steps],
            tags=self.tags,
        )

    @staticmethod
    def _memory(planning: "PlanningContext", event: DialogEvent) -> dict[str, Any]:
        value = event.value.model_dump() if isinstance(event.value, BaseModel) else event.value
        return {**planning.memory, "event": {"name": event.name, "value": value}}

    def __repr__(self):
        return f"<{type(self).__name__} steps={[s.id for s in self.steps]}>"
