"""
Tests for pattern-based intent and entity recognition.
"""
import pytest

from dialogs import InMemoryAdapter, TurnContext
from recognizers import NONE_INTENT, RegexRecognizer
from conftest import make_activity


@pytest.fixture
def recognizer() -> RegexRecognizer:
    return RegexRecognizer(
        intents={"greeting": r"\b(hi|hello)\b", "order": r"\border\b"},
        entities={"number": r"\d+", "size": r"\b(small|large)\b"},
    )


class TestIntents:
    def test_single_intent(self, recognizer):
        result = recognizer.recognize_text("hello there")
        assert set(result.intents) == {"greeting"}
        assert result.intents["greeting"].score == 1.0
        assert result.top_intent() == "greeting"

    def test_several_intents(self, recognizer):
        result = recognizer.recognize_text("Hi, I want to order")
        assert set(result.intents) == {"greeting", "order"}

    def test_case_insensitive_by_default(self, recognizer):
        assert "greeting" in recognizer.recognize_text("HELLO").intents

    def test_no_match_yields_none_intent(self, recognizer):
        result = recognizer.recognize_text("what's the time")
        assert set(result.intents) == {NONE_INTENT}
        assert result.intents[NONE_INTENT].score == 0.0

    def test_empty_recognizer(self):
        result = RegexRecognizer().recognize_text("anything")
        assert result.top_intent() == NONE_INTENT
        assert result.entities == {}


class TestEntities:
    def test_all_matches_collected(self, recognizer):
        result = recognizer.recognize_text("order 2 small and 3 large")
        assert result.entities["number"] == ["2", "3"]

    def test_first_group_used_when_present(self, recognizer):
        result = recognizer.recognize_text("a LARGE one")
        assert result.entities["size"] == ["LARGE"]

    def test_unmatched_entities_omitted(self, recognizer):
        assert recognizer.recognize_text("hello").entities == {}


class TestRecognizeTurn:
    @pytest.mark.asyncio
    async def test_recognizes_activity_text(self, recognizer):
        context = TurnContext(InMemoryAdapter(), make_activity("order 5"))
        result = await recognizer.recognize(context)
        assert result.text == "order 5"
        assert set(result.intents) == {"order"}
        assert result.entities == {"number": ["5"]}

    @pytest.mark.asyncio
    async def test_non_message_has_no_text(self, recognizer):
        context = TurnContext(InMemoryAdapter(), make_activity(type="event", name="ping"))
        result = await recognizer.recognize(context)
        assert result.text == ""
        assert set(result.intents) == {NONE_INTENT}
