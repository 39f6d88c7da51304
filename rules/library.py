"""
Rule library.

  EventRule    fires on one or more named dialog events
  IntentRule   fires on a recognized utterance carrying an intent (+ entities)
  FallbackRule fires when nothing else handled an utterance and no plan exists
  WelcomeRule  fires when someone other than the bot joins the conversation
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Union

from dialogs.base import Dialog, DialogEvent
from models.schemas import ActivityTypes, RecognizerResult, RuleCondition
from planning.models import PlanChangeList, PlanChangeType, PlanningEventNames
from rules.base import PlanningRule

if TYPE_CHECKING:
    from planning.context import PlanningContext


class EventRule(PlanningRule):

    def __init__(
        self,
        events: Union[str, list[str]],
        steps: Optional[list[Dialog]] = None,
        change_type: PlanChangeType = PlanChangeType.DO_STEPS,
        conditions: Optional[list[RuleCondition]] = None,
        tags: Optional[list[str]] = None,
    ):
        super().__init__(steps, change_type, conditions, tags)
        self.events: list[str] = [events] if isinstance(events, str) else list(events)

    async def on_is_triggered(self, planning: "PlanningContext", event: DialogEvent) -> bool:
        return event.name in self.events

    def __repr__(self):
        return f"<EventRule events={self.events}>"


class IntentRule(PlanningRule):
    """
    Matches `utteranceRecognized` when the recognizer reported `intent` with
    at least `min_score`, and every listed entity is present. The resulting
    change-list records the matched intent and entities for conflict
    resolution.
    """

    def __init__(
        self,
        intent: str,
        entities: Optional[list[str]] = None,
        steps: Optional[list[Dialog]] = None,
        change_type: PlanChangeType = PlanChangeType.DO_STEPS,
        conditions: Optional[list[RuleCondition]] = None,
        min_score: float = 0.0,
        tags: Optional[list[str]] = None,
    ):
        super().__init__(steps, change_type, conditions, tags)
        self.intent = intent
        self.entities: list[str] = list(entities or [])
        self.min_score = min_score

    async def on_is_triggered(self, planning: "PlanningContext", event: DialogEvent) -> bool:
        if event.name != PlanningEventNames.UTTERANCE_RECOGNIZED:
            return False
        recognized = event.value
        if not isinstance(recognized, RecognizerResult):
            return False
        score = recognized.intents.get(self.intent)
        if score is None or score.score < self.min_score:
            return False
        return all(name in recognized.entities for name in self.entities)

    def on_create_change_list(self, planning, event, dialog_options=None) -> PlanChangeList:
        change = super().on_create_change_list(planning, event, dialog_options)
        change.intents_matched = [self.intent]
        change.entities_matched = list(self.entities)
        change.recognizer_result = event.value
        return change

    def __repr__(self):
        return f"<IntentRule intent={self.intent} entities={self.entities}>"


class FallbackRule(EventRule):

    def __init__(
        self,
        steps: Optional[list[Dialog]] = None,
        change_type: PlanChangeType = PlanChangeType.NEW_PLAN,
        conditions: Optional[list[RuleCondition]] = None,
    ):
        super().__init__(PlanningEventNames.FALLBACK, steps, change_type, conditions)


class WelcomeRule(PlanningRule):

    def __init__(
        self,
        steps: Optional[list[Dialog]] = None,
        change_type: PlanChangeType = PlanChangeType.NEW_PLAN,
        conditions: Optional[list[RuleCondition]] = None,
    ):
        super().__init__(steps, change_type, conditions)

    async def on_is_triggered(self, planning: "PlanningContext", event: DialogEvent) -> bool:
        if event.name != PlanningEventNames.ACTIVITY_RECEIVED:
            return False
        activity = planning.context.activity
        if activity.type != ActivityTypes.CONVERSATION_UPDATE:
            return False
        bot_id = activity.recipient.id if activity.recipient else ""
        return any(member.id != bot_id for member in activity.members_added)
