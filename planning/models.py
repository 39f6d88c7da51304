"""
Plan Models — the persisted plan of one planning dialog instance and the
change-lists that rules propose against it.

A Plan is a queue of PlanSteps; step 0 is the one currently running. Each
step carries its own nested dialog stack while it executes, so a step can be
a single prompt or a whole child dialog.

  PlanningState
    ├── options            caller options from begin_dialog
    ├── plan               active plan (None once ended)
    ├── savedPlans         plans interrupted by a newPlan, newest last
    ├── history            finished plans, oldest first (bounded)
    └── result             value returned to the parent when the plan ends

PlanChangeLists are ephemeral: rules create them, the planning context queues
them, and a single apply pass consumes them. They are never persisted.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from dialogs.base import DialogState
from models.schemas import RecognizerResult


class PlanningEventNames:
    BEGIN_DIALOG = "beginDialog"
    CONSULT_DIALOG = "consultDialog"
    ACTIVITY_RECEIVED = "activityReceived"
    UTTERANCE_RECOGNIZED = "utteranceRecognized"
    FALLBACK = "fallback"


class PlanChangeType(str, Enum):
    NEW_PLAN = "newPlan"
    DO_STEPS = "doSteps"
    DO_STEPS_BEFORE_TAGS = "doStepsBeforeTags"
    DO_STEPS_LATER = "doStepsLater"
    END_PLAN = "endPlan"
    REPLACE_PLAN = "replacePlan"


class PlanStatus(str, Enum):
    ACTIVE = "active"
    SAVED = "saved"             # interrupted by a newPlan, will resume
    COMPLETED = "completed"     # ran out of steps
    REPLACED = "replaced"       # discarded by replacePlan
    ENDED = "ended"             # discarded by endPlan


# ──────────────────────────────────────────────────────────────
#  Plan
# ──────────────────────────────────────────────────────────────

class PlanStep(DialogState):
    """One queued unit of work; `dialogStack` is populated while it runs."""
    dialog_id: str = Field(alias="dialogId")
    options: Any = None
    tags: list[str] = []


class Plan(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    status: PlanStatus = PlanStatus.ACTIVE
    steps: list[PlanStep] = []

    @property
    def ended(self) -> bool:
        return not self.steps

    @property
    def current_step(self) -> Optional[PlanStep]:
        return self.steps[0] if self.steps else None


class PlanningState(BaseModel):
    """Per-instance state of a planning dialog, stored on its stack record."""
    model_config = ConfigDict(populate_by_name=True)

    options: Any = Field(default_factory=dict)
    plan: Optional[Plan] = None
    saved_plans: list[Plan] = Field(default_factory=list, alias="savedPlans")
    history: list[Plan] = Field(default_factory=list)
    result: Any = None

    # Queued change-lists. Private attributes are never serialized.
    _changes: list[Any] = PrivateAttr(default_factory=list)

    def queue(self, change: "PlanChangeList") -> None:
        self._changes.append(change)

    def take_changes(self) -> list["PlanChangeList"]:
        changes, self._changes = self._changes, []
        return changes

    @property
    def pending_changes(self) -> int:
        return len(self._changes)


# ──────────────────────────────────────────────────────────────
#  Change-list
# ──────────────────────────────────────────────────────────────

class PlanChangeList(BaseModel):
    """
    A proposed mutation to the plan.

    `intents_matched` / `entities_matched` record why a rule proposed the
    change; they only drive conflict resolution between rules.
    """
    change_type: PlanChangeType
    steps: list[PlanStep] = []
    tags: list[str] = []
    intents_matched: list[str] = []
    entities_matched: list[str] = []
    recognizer_result: Optional[RecognizerResult] = None

    def __repr__(self):
        return (f"<PlanChangeList {self.change_type.value} steps={len(self.steps)} "
                f"intents={self.intents_matched}>")
