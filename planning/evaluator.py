"""
Rule Evaluator — decides which rule proposals are queued for an event.

Dispatch policy:
  beginDialog / consultDialog  first match; unhandled → activityReceived
  activityReceived             first match; unhandled → message: recognize and
                               dispatch utteranceRecognized, event activity:
                               dispatch the activity's own event name
  utteranceRecognized          best matches; unhandled → fallback
  fallback                     first match, only while no plan exists
  anything else                first match

First match: rules run in registration order; the first rule returning any
change-list wins and only its first change-list is queued.

Best matches: every change-list from every rule competes. The best remaining
candidate (most intents, then most entities) is picked and every candidate
whose intents overlap it is dropped, until none remain. Winners keep their
discovery order; at most one newPlan/replacePlan survives, later ones are
demoted to doStepsLater so they append to the new plan.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import structlog

from dialogs.base import DialogEvent
from dialogs.turn import TurnContext
from models.schemas import ActivityTypes, IntentScore, RecognizerResult
from planning.context import PlanningContext
from planning.models import PlanChangeList, PlanChangeType, PlanningEventNames

if TYPE_CHECKING:
    from recognizers.base import Recognizer
    from rules.base import PlanningRule

logger = structlog.get_logger()

_PLAN_STARTING = (PlanChangeType.NEW_PLAN, PlanChangeType.REPLACE_PLAN)
_STEP_CHANGES = (
    PlanChangeType.DO_STEPS,
    PlanChangeType.DO_STEPS_BEFORE_TAGS,
    PlanChangeType.DO_STEPS_LATER,
)


class RuleEvaluator:

    def __init__(self, rules: list["PlanningRule"], recognizer: Optional["Recognizer"] = None):
        self.rules = rules
        self.recognizer = recognizer

    # ── Dispatch ──────────────────────────────────────────────

    async def evaluate(self, planning: PlanningContext, event: DialogEvent) -> bool:
        """Run the dispatch policy for `event`. Returns True if any change was queued."""
        name = event.name
        if name in (PlanningEventNames.BEGIN_DIALOG, PlanningEventNames.CONSULT_DIALOG):
            handled = await self.queue_first_match(planning, event)
            if not handled:
                handled = await self.evaluate(
                    planning, DialogEvent(name=PlanningEventNames.ACTIVITY_RECEIVED))

        elif name == PlanningEventNames.ACTIVITY_RECEIVED:
            handled = await self.queue_first_match(planning, event)
            if not handled:
                activity = planning.context.activity
                if activity.type == ActivityTypes.MESSAGE:
                    recognized = await self.recognize(planning.context)
                    handled = await self.evaluate(
                        planning,
                        DialogEvent(name=PlanningEventNames.UTTERANCE_RECOGNIZED, value=recognized),
                    )
                elif activity.type == ActivityTypes.EVENT and activity.name:
                    handled = await self.evaluate(
                        planning, DialogEvent(name=activity.name, value=activity.value))

        elif name == PlanningEventNames.UTTERANCE_RECOGNIZED:
            handled = await self.queue_best_matches(planning, event)
            if not handled:
                handled = await self.evaluate(
                    planning, DialogEvent(name=PlanningEventNames.FALLBACK, value=event.value))

        elif name == PlanningEventNames.FALLBACK:
            # A plan in progress absorbs unrecognized utterances
            handled = False
            if not planning.has_plans:
                handled = await self.queue_first_match(planning, event)

        else:
            handled = await self.queue_first_match(planning, event)

        logger.debug("rules_evaluated", event_name=name, handled=handled)
        return handled

    async def recognize(self, context: TurnContext) -> RecognizerResult:
        if self.recognizer is None:
            recognized = RecognizerResult(
                text=context.activity.text or "",
                intents={"None": IntentScore(score=0.0)},
                entities={},
            )
        else:
            recognized = await self.recognizer.recognize(context)
        context.turn_state["recognized"] = recognized.model_dump()
        return recognized

    # ── Queuing strategies ────────────────────────────────────

    async def queue_first_match(self, planning: PlanningContext, event: DialogEvent) -> bool:
        for rule in self.rules:
            changes = await rule.evaluate(planning, event)
            if changes:
                planning.queue_changes(changes[0])
                logger.info("rule_matched", rule=repr(rule), event_name=event.name)
                return True
        return False

    async def queue_best_matches(self, planning: PlanningContext, event: DialogEvent) -> bool:
        # Collect every proposal, remembering where it was discovered
        candidates: list[tuple[int, PlanChangeList]] = []
        for rule in self.rules:
            for change in await rule.evaluate(planning, event) or []:
                candidates.append((len(candidates), change))

        winners: list[tuple[int, PlanChangeList]] = []
        while candidates:
            best = self.find_best_change([c for _, c in candidates])
            position, chosen = candidates.pop(best)
            winners.append((position, chosen))
            candidates = [
                (pos, c) for pos, c in candidates
                if not self.intents_overlap(chosen, c)
            ]

        if not winners:
            return False

        winners.sort(key=lambda w: w[0])
        chosen = [change for _, change in winners]
        if len(chosen) == 1:
            planning.queue_changes(chosen[0])
            return True

        # Only one change may start or replace the plan
        for i, change in enumerate(chosen):
            if change.change_type in _PLAN_STARTING:
                planning.queue_changes(change)
                del chosen[i]
                break

        for change in chosen:
            if change.change_type in _STEP_CHANGES:
                planning.queue_changes(change)
            elif change.change_type in _PLAN_STARTING:
                planning.queue_changes(
                    change.model_copy(update={"change_type": PlanChangeType.DO_STEPS_LATER}))

        logger.info("best_matches_queued",
                    winners=len(winners),
                    intents=[c.intents_matched for _, c in winners])
        return True

    # ── Conflict resolution ───────────────────────────────────

    @staticmethod
    def find_best_change(changes: list[PlanChangeList]) -> int:
        """Index of the change covering the most intents, then the most entities."""
        top: Optional[PlanChangeList] = None
        top_index = -1
        for i, change in enumerate(changes):
            if top is None:
                better = True
            elif len(change.intents_matched) > len(top.intents_matched):
                better = True
            elif len(change.intents_matched) == len(top.intents_matched):
                better = len(change.entities_matched) > len(top.entities_matched)
            else:
                better = False
            if better:
                top = change
                top_index = i
        return top_index

    @staticmethod
    def intents_overlap(c1: PlanChangeList, c2: PlanChangeList) -> bool:
        """
        Two change-lists overlap when they share an intent, or when neither
        matched any intent. A zero-intent change never overlaps one that did
        match intents.
        """
        i1, i2 = c1.intents_matched, c2.intents_matched
        if i1 and i2:
            return bool(set(i1).intersection(i2))
        return len(i1) == len(i2)
