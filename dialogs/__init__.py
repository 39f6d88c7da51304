"""
Nested dialog stack primitives consumed by the planning core.

Quick start:
  from dialogs import DialogContext, DialogSet, TurnContext, InMemoryAdapter
  dc = DialogContext(dialogs, TurnContext(InMemoryAdapter(), activity), DialogState())
  result = await dc.continue_dialog()
"""
from dialogs.base import (
    Dialog, DialogSet, DialogInstance, DialogState,
    DialogTurnResult, DialogTurnStatus, DialogReason,
    DialogConsultation, DialogConsultationDesire,
    DialogEvent, DialogEvents, DialogError, DialogNotFoundError,
)
from dialogs.context import DialogContext
from dialogs.turn import TurnContext, BotAdapter, InMemoryAdapter
from dialogs.steps import SendActivity, TextInput, SetProperty, CodeStep, CancelAllDialogs

__all__ = [
    # Primitives
    "Dialog", "DialogSet", "DialogInstance", "DialogState",
    "DialogTurnResult", "DialogTurnStatus", "DialogReason",
    "DialogConsultation", "DialogConsultationDesire",
    "DialogEvent", "DialogEvents", "DialogError", "DialogNotFoundError",
    # Contexts
    "DialogContext", "TurnContext", "BotAdapter", "InMemoryAdapter",
    # Steps
    "SendActivity", "TextInput", "SetProperty", "CodeStep", "CancelAllDialogs",
]
