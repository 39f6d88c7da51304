"""
Step library — small dialogs that planning rules queue as plan steps.

  SendActivity      send a (templated) message and end
  TextInput         prompt, wait for a message, store the text in memory
  SetProperty       write a value into memory and end
  CodeStep          run an async callable
  CancelAllDialogs  raise a cancellation event from inside a plan

Text fields support {{path}} placeholders resolved against turn memory
(`user.*`, `conversation.*`, `turn.*`).
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

import structlog

from dialogs.base import (
    Dialog, DialogConsultation, DialogConsultationDesire, DialogEvents,
    DialogInstance, DialogTurnResult,
)
from dialogs.context import DialogContext
from dialogs.turn import TurnContext
from models.schemas import ActivityTypes
from utils.conditions import get_nested_value, interpolate, set_nested_value

logger = structlog.get_logger()


class SendActivity(Dialog):

    def __init__(self, text: str, dialog_id: str = ""):
        super().__init__(dialog_id)
        self.text = text

    def compute_id(self) -> str:
        return f"SendActivity[{self.text[:40]}]"

    async def begin_dialog(self, dc: DialogContext, options: Any = None) -> DialogTurnResult:
        await dc.context.send_activity(interpolate(self.text, dc.memory))
        return await dc.end_dialog()


class TextInput(Dialog):
    """
    Prompt for free text and store the reply under `property`.

    The prompt is skipped when the property already holds a value, unless
    `always_prompt` is set. Non-message activities leave the input waiting.
    """

    def __init__(
        self,
        property: str,
        prompt: str,
        retry_prompt: str = "",
        always_prompt: bool = False,
        dialog_id: str = "",
    ):
        super().__init__(dialog_id)
        self.property = property
        self.prompt = prompt
        self.retry_prompt = retry_prompt
        self.always_prompt = always_prompt

    def compute_id(self) -> str:
        return f"TextInput[{self.property}]"

    async def begin_dialog(self, dc: DialogContext, options: Any = None) -> DialogTurnResult:
        existing = get_nested_value(dc.memory, self.property)
        if existing and not self.always_prompt:
            return await dc.end_dialog(existing)

        prompt = interpolate(self.prompt, dc.memory)
        dc.active_dialog.state["prompt"] = prompt
        if self.retry_prompt:
            dc.active_dialog.state["retry_prompt"] = interpolate(self.retry_prompt, dc.memory)
        await dc.context.send_activity(prompt)
        return self.end_of_turn()

    async def consult_dialog(self, dc: DialogContext) -> DialogConsultation:
        return DialogConsultation(
            desire=DialogConsultationDesire.CAN_PROCESS,
            processor=lambda inner: self.continue_dialog(inner),
        )

    async def continue_dialog(self, dc: DialogContext) -> DialogTurnResult:
        activity = dc.context.activity
        if activity.type != ActivityTypes.MESSAGE:
            return self.end_of_turn()

        text = (activity.text or "").strip()
        if not text:
            state = dc.active_dialog.state
            await dc.context.send_activity(state.get("retry_prompt") or state.get("prompt", ""))
            return self.end_of_turn()

        set_nested_value(dc.memory, self.property, text)
        logger.debug("text_input_captured", property=self.property)
        return await dc.end_dialog(text)

    async def reprompt_dialog(self, context: TurnContext, instance: DialogInstance) -> None:
        prompt = instance.state.get("prompt") if isinstance(instance.state, dict) else None
        if prompt:
            await context.send_activity(prompt)


class SetProperty(Dialog):

    def __init__(self, property: str, value: Any, dialog_id: str = ""):
        super().__init__(dialog_id)
        self.property = property
        self.value = value

    def compute_id(self) -> str:
        return f"SetProperty[{self.property}]"

    async def begin_dialog(self, dc: DialogContext, options: Any = None) -> DialogTurnResult:
        set_nested_value(dc.memory, self.property, self.value)
        return await dc.end_dialog()


class CodeStep(Dialog):
    """
    Run `handler(dc, options)`. A returned DialogTurnResult is passed through
    as-is (the handler drove the stack itself); any other value ends the step
    with that value as its result.
    """

    def __init__(
        self,
        handler: Callable[[DialogContext, Any], Awaitable[Any]],
        dialog_id: str = "",
    ):
        super().__init__(dialog_id)
        self.handler = handler

    def compute_id(self) -> str:
        return f"CodeStep[{getattr(self.handler, '__name__', 'handler')}]"

    async def begin_dialog(self, dc: DialogContext, options: Any = None) -> DialogTurnResult:
        result = await self.handler(dc, options)
        if isinstance(result, DialogTurnResult):
            return result
        return await dc.end_dialog(result)


class CancelAllDialogs(Dialog):

    def __init__(
        self,
        event_name: str = DialogEvents.CANCEL_DIALOG,
        event_value: Optional[Any] = None,
        dialog_id: str = "",
    ):
        super().__init__(dialog_id)
        self.event_name = event_name
        self.event_value = event_value

    def compute_id(self) -> str:
        return f"CancelAllDialogs[{self.event_name}]"

    async def begin_dialog(self, dc: DialogContext, options: Any = None) -> DialogTurnResult:
        return await dc.cancel_all_dialogs(self.event_name, self.event_value)
