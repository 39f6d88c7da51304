"""Recognizer interface — maps the turn's utterance to intents and entities."""
from __future__ import annotations

import abc

from dialogs.turn import TurnContext
from models.schemas import RecognizerResult


class Recognizer(abc.ABC):

    @abc.abstractmethod
    async def recognize(self, context: TurnContext) -> RecognizerResult:
        ...
