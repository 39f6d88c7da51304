"""Recognizers: turn an utterance into intents and entities."""
from recognizers.base import Recognizer
from recognizers.regex import RegexRecognizer, NONE_INTENT

__all__ = ["Recognizer", "RegexRecognizer", "NONE_INTENT"]
