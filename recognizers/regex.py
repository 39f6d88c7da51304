"""
RegexRecognizer — pattern-based intent and entity recognition.

Intents:  every intent whose pattern matches the utterance scores 1.0.
          When none match the result carries {"None": 0.0}.
Entities: every named pattern contributes the list of its matches
          (the first capture group when the pattern has one).

Usage:
    recognizer = RegexRecognizer(
        intents={"greeting": r"\\b(hi|hello)\\b", "cancel": r"\\bcancel\\b"},
        entities={"number": r"\\d+"},
    )
"""
from __future__ import annotations

import re
from typing import Optional

import structlog

from dialogs.turn import TurnContext
from models.schemas import IntentScore, RecognizerResult
from recognizers.base import Recognizer

logger = structlog.get_logger()

NONE_INTENT = "None"


class RegexRecognizer(Recognizer):

    def __init__(
        self,
        intents: Optional[dict[str, str]] = None,
        entities: Optional[dict[str, str]] = None,
        flags: int = re.IGNORECASE,
    ):
        self._intents = {name: re.compile(p, flags) for name, p in (intents or {}).items()}
        self._entities = {name: re.compile(p, flags) for name, p in (entities or {}).items()}

    async def recognize(self, context: TurnContext) -> RecognizerResult:
        return self.recognize_text(context.activity.text or "")

    def recognize_text(self, text: str) -> RecognizerResult:
        intents = {
            name: IntentScore(score=1.0)
            for name, pattern in self._intents.items()
            if pattern.search(text)
        }
        if not intents:
            intents = {NONE_INTENT: IntentScore(score=0.0)}

        entities: dict[str, list[str]] = {}
        for name, pattern in self._entities.items():
            found = [
                m.group(1) if m.groups() else m.group(0)
                for m in pattern.finditer(text)
            ]
            if found:
                entities[name] = found

        logger.debug("utterance_recognized",
                     intents=list(intents),
                     entities=list(entities))
        return RecognizerResult(text=text, intents=intents, entities=entities)
