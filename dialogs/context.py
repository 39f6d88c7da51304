"""
DialogContext — drives one dialog stack for the current turn.

A context owns a view over a single DialogState (the stack), the turn, and the
user/conversation memory dicts. Contexts nest: a container dialog builds a
child context over its own inner stack with `parent` pointing back at itself,
which lets events and cancellation travel up the chain.

Stack layout: the active dialog is the LAST DialogInstance in the list, so the
depth of the stack plus the active id identifies the current entry.
"""
from __future__ import annotations

from typing import Any, Optional

import structlog

from dialogs.base import (
    Dialog, DialogConsultation, DialogEvent, DialogEvents, DialogInstance,
    DialogNotFoundError, DialogReason, DialogSet, DialogState,
    DialogTurnResult, DialogTurnStatus,
)
from dialogs.turn import TurnContext

logger = structlog.get_logger()


class DialogContext:

    def __init__(
        self,
        dialogs: DialogSet,
        context: TurnContext,
        state: DialogState,
        user_state: Optional[dict[str, Any]] = None,
        conversation_state: Optional[dict[str, Any]] = None,
        parent: Optional["DialogContext"] = None,
    ):
        self.dialogs = dialogs
        self.context = context
        self.dialog_state = state
        self.user_state = user_state if user_state is not None else {}
        self.conversation_state = conversation_state if conversation_state is not None else {}
        self.parent = parent

    # ── Stack access ──────────────────────────────────────────

    @property
    def stack(self) -> list[DialogInstance]:
        return self.dialog_state.dialog_stack

    @property
    def active_dialog(self) -> Optional[DialogInstance]:
        return self.stack[-1] if self.stack else None

    @property
    def memory(self) -> dict[str, Any]:
        """Memory scopes visible to steps and rule conditions."""
        return {
            "user": self.user_state,
            "conversation": self.conversation_state,
            "turn": self.context.turn_state,
        }

    def find_dialog(self, dialog_id: str) -> Optional[Dialog]:
        return self.dialogs.find(dialog_id)

    def _require(self, dialog_id: str) -> Dialog:
        dialog = self.find_dialog(dialog_id)
        if dialog is None:
            raise DialogNotFoundError(dialog_id)
        return dialog

    # ── Lifecycle ─────────────────────────────────────────────

    async def begin_dialog(self, dialog_id: str, options: Any = None) -> DialogTurnResult:
        dialog = self._require(dialog_id)
        self.stack.append(DialogInstance(id=dialog_id, state={}))
        logger.debug("dialog_begin", dialog_id=dialog_id, depth=len(self.stack))
        return await dialog.begin_dialog(self, options)

    async def consult_dialog(self) -> Optional[DialogConsultation]:
        instance = self.active_dialog
        if instance is None:
            return None
        return await self._require(instance.id).consult_dialog(self)

    async def continue_dialog(self) -> DialogTurnResult:
        consultation = await self.consult_dialog()
        if consultation is None:
            return DialogTurnResult(DialogTurnStatus.EMPTY)
        return await consultation.processor(self)

    async def end_dialog(self, result: Any = None) -> DialogTurnResult:
        if self.stack:
            await self._end_active_dialog(DialogReason.END_CALLED)

        # Resume the parent dialog on this stack, if any
        instance = self.active_dialog
        if instance is not None:
            dialog = self._require(instance.id)
            return await dialog.resume_dialog(self, DialogReason.END_CALLED, result)
        return DialogTurnResult(DialogTurnStatus.COMPLETE, result)

    async def reprompt_dialog(self) -> None:
        instance = self.active_dialog
        if instance is not None:
            await self._require(instance.id).reprompt_dialog(self.context, instance)

    # ── Events & cancellation ─────────────────────────────────

    async def emit_event(self, name: str, value: Any = None, bubble: bool = True) -> bool:
        """
        Offer an event to the active dialog, then (if bubbling) to each
        ancestor context. Returns True once some dialog handled it.
        """
        event = DialogEvent(name=name, value=value, bubble=bubble)
        instance = self.active_dialog
        if instance is not None:
            dialog = self.find_dialog(instance.id)
            if dialog is not None and await dialog.on_dialog_event(self, event):
                return True
        if bubble and self.parent is not None:
            return await self.parent.emit_event(name, value, bubble)
        return False

    async def cancel_all_dialogs(
        self,
        event_name: str = DialogEvents.CANCEL_DIALOG,
        event_value: Any = None,
    ) -> DialogTurnResult:
        """
        Unwind this stack and every ancestor stack.

        Before each dialog other than the caller is ended it receives
        `event_name` and may intercept it, which stops the unwind. The result
        has `parent_ended` set when a dialog in an ancestor stack was ended.
        """
        if not self.stack and self.parent is None:
            return DialogTurnResult(DialogTurnStatus.EMPTY)

        dc: Optional[DialogContext] = self
        notify = False
        parent_ended = False
        while dc is not None:
            if dc.stack:
                if notify and await dc.emit_event(event_name, event_value, bubble=False):
                    logger.info("cancellation_intercepted",
                                event_name=event_name,
                                dialog_id=dc.active_dialog.id)
                    break
                await dc._end_active_dialog(DialogReason.CANCEL_CALLED)
                if dc is not self:
                    parent_ended = True
            else:
                dc = dc.parent
            notify = True

        logger.info("dialogs_cancelled", event_name=event_name, parent_ended=parent_ended)
        return DialogTurnResult(DialogTurnStatus.CANCELLED, event_value, parent_ended=parent_ended)

    async def _end_active_dialog(self, reason: DialogReason) -> None:
        instance = self.stack[-1]
        dialog = self.find_dialog(instance.id)
        if dialog is not None:
            await dialog.end_dialog(self.context, instance, reason)
        self.stack.pop()
