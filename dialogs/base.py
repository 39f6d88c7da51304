"""
Dialog primitives — the nested-dialog capability the planning core runs on.

Provides:
- DialogTurnStatus / DialogReason / DialogConsultationDesire enums
- DialogTurnResult / DialogConsultation / DialogEvent runtime records
- DialogInstance / DialogState: the persisted stack of dialog records
- Dialog: abstract capability (begin, consult, continue, resume, reprompt, events)
- DialogSet: id → dialog registry
"""
from __future__ import annotations

import abc
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from dialogs.context import DialogContext
    from dialogs.turn import TurnContext

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
#  ERRORS
# ══════════════════════════════════════════════════════════════

class DialogError(Exception):
    """Base exception for dialog stack operations."""


class DialogNotFoundError(DialogError):
    def __init__(self, dialog_id: str):
        self.dialog_id = dialog_id
        super().__init__(f"Dialog '{dialog_id}' not found in dialog set")


# ══════════════════════════════════════════════════════════════
#  TURN RESULTS & CONSULTATION
# ══════════════════════════════════════════════════════════════

class DialogTurnStatus(str, Enum):
    EMPTY = "empty"             # nothing on the stack handled the turn
    WAITING = "waiting"         # active dialog is waiting for input
    COMPLETE = "complete"       # last dialog on the stack ended
    CANCELLED = "cancelled"     # stack was cancelled


class DialogReason(str, Enum):
    BEGIN_CALLED = "beginCalled"
    CONTINUE_CALLED = "continueCalled"
    END_CALLED = "endCalled"
    REPLACE_CALLED = "replaceCalled"
    CANCEL_CALLED = "cancelCalled"


class DialogConsultationDesire(str, Enum):
    CAN_PROCESS = "canProcess"
    SHOULD_PROCESS = "shouldProcess"


class DialogEvents:
    CANCEL_DIALOG = "cancelDialog"
    ERROR = "error"


@dataclass
class DialogTurnResult:
    status: DialogTurnStatus
    result: Any = None
    parent_ended: bool = False


@dataclass
class DialogConsultation:
    """How much a dialog wants the turn, plus the callable that runs it."""
    desire: DialogConsultationDesire
    processor: Callable[["DialogContext"], Awaitable[DialogTurnResult]]


@dataclass
class DialogEvent:
    name: str
    value: Any = None
    bubble: bool = False


# ══════════════════════════════════════════════════════════════
#  PERSISTED STACK RECORDS
# ══════════════════════════════════════════════════════════════

class DialogInstance(BaseModel):
    """One record on a dialog stack. `state` is owned by the dialog named `id`."""
    id: str
    state: Any = Field(default_factory=dict)


class DialogState(BaseModel):
    """A dialog stack. The active dialog is the last element."""
    model_config = ConfigDict(populate_by_name=True)

    dialog_stack: list[DialogInstance] = Field(default_factory=list, alias="dialogStack")


# ══════════════════════════════════════════════════════════════
#  DIALOG
# ══════════════════════════════════════════════════════════════

class Dialog(abc.ABC):
    """
    Base class for everything that can sit on a dialog stack.

    Ids must be stable across processes because a persisted stack refers to
    its dialogs by id; subclasses derive them from their configuration.
    """

    def __init__(self, dialog_id: str = ""):
        self._id = dialog_id

    @property
    def id(self) -> str:
        if not self._id:
            self._id = self.compute_id()
        return self._id

    @id.setter
    def id(self, value: str):
        self._id = value

    def compute_id(self) -> str:
        return type(self).__name__

    @staticmethod
    def end_of_turn() -> DialogTurnResult:
        return DialogTurnResult(DialogTurnStatus.WAITING)

    @abc.abstractmethod
    async def begin_dialog(self, dc: "DialogContext", options: Any = None) -> DialogTurnResult:
        ...

    async def consult_dialog(self, dc: "DialogContext") -> DialogConsultation:
        return DialogConsultation(
            desire=DialogConsultationDesire.CAN_PROCESS,
            processor=lambda inner: self.continue_dialog(inner),
        )

    async def continue_dialog(self, dc: "DialogContext") -> DialogTurnResult:
        return await dc.end_dialog()

    async def resume_dialog(self, dc: "DialogContext", reason: DialogReason, result: Any = None) -> DialogTurnResult:
        return await dc.end_dialog(result)

    async def reprompt_dialog(self, context: "TurnContext", instance: DialogInstance) -> None:
        return None

    async def end_dialog(self, context: "TurnContext", instance: DialogInstance, reason: DialogReason) -> None:
        return None

    async def on_dialog_event(self, dc: "DialogContext", event: DialogEvent) -> bool:
        return False

    def __repr__(self):
        return f"<{type(self).__name__} id={self.id}>"


class DialogSet:
    """Registry of dialogs addressable by id."""

    def __init__(self):
        self._dialogs: dict[str, Dialog] = {}

    def add(self, dialog: Dialog) -> Dialog:
        existing = self._dialogs.get(dialog.id)
        if existing is dialog:
            return dialog
        if existing is not None:
            base_id = dialog.id
            n = 2
            while f"{base_id}{n}" in self._dialogs:
                n += 1
            dialog.id = f"{base_id}{n}"
            logger.debug("dialog_id_suffixed", original=base_id, dialog_id=dialog.id)
        self._dialogs[dialog.id] = dialog
        return dialog

    def find(self, dialog_id: str) -> Optional[Dialog]:
        return self._dialogs.get(dialog_id)

    def __contains__(self, dialog_id: str) -> bool:
        return dialog_id in self._dialogs

    def __len__(self) -> int:
        return len(self._dialogs)
