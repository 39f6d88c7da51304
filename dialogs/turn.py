"""
Turn context and adapters.

A TurnContext wraps the incoming Activity for one turn and routes outgoing
activities to a BotAdapter. The InMemoryAdapter records everything sent so a
bot can be driven without any channel transport (tests, console scripts).
"""
from __future__ import annotations

import abc
from typing import Any, Union

import structlog

from models.schemas import Activity, ActivityTypes

logger = structlog.get_logger()


class BotAdapter(abc.ABC):
    """Delivers outgoing activities for a turn."""

    @abc.abstractmethod
    async def send_activities(self, context: "TurnContext", activities: list[Activity]) -> list[str]:
        ...


class InMemoryAdapter(BotAdapter):
    """Collects outgoing activities instead of delivering them."""

    def __init__(self):
        self.activities: list[Activity] = []

    async def send_activities(self, context: "TurnContext", activities: list[Activity]) -> list[str]:
        self.activities.extend(activities)
        return [a.id for a in activities]

    @property
    def texts(self) -> list[str]:
        return [a.text for a in self.activities if a.type == ActivityTypes.MESSAGE]


class TurnContext:
    """Per-turn view of the incoming activity plus a scratch `turn_state` dict."""

    def __init__(self, adapter: BotAdapter, activity: Union[Activity, dict[str, Any]]):
        if isinstance(activity, dict):
            activity = Activity.model_validate(activity)
        self.adapter = adapter
        self.activity = activity
        self.turn_state: dict[str, Any] = {}
        self.responded = False

    async def send_activity(self, activity_or_text: Union[Activity, str]) -> str:
        if isinstance(activity_or_text, str):
            outgoing = self.activity.create_reply(activity_or_text)
        else:
            outgoing = activity_or_text
        ids = await self.adapter.send_activities(self, [outgoing])
        self.responded = True
        logger.debug("activity_sent", activity_type=outgoing.type, text=outgoing.text[:80])
        return ids[0] if ids else ""
