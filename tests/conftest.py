"""Shared test fixtures for the dialog planning engine."""
import pytest
from typing import Any

from database.storage_factory import reset_storage
from database.storage_memory import MemoryStorage
from dialogs.base import DialogSet, DialogState
from dialogs.context import DialogContext
from dialogs.turn import InMemoryAdapter, TurnContext
from models.schemas import Activity, ActivityTypes


def make_activity(
    text: str = "",
    type: str = ActivityTypes.MESSAGE,
    user_id: str = "user-1",
    conversation_id: str = "conv-1",
    **extra: Any,
) -> Activity:
    """A channel activity in its camelCase wire shape."""
    data = {
        "type": type,
        "text": text,
        "channelId": "test",
        "from": {"id": user_id, "role": "user"},
        "recipient": {"id": "bot", "role": "bot"},
        "conversation": {"id": conversation_id},
    }
    data.update(extra)
    return Activity.model_validate(data)


@pytest.fixture
def activity_factory():
    return make_activity


@pytest.fixture
def adapter() -> InMemoryAdapter:
    return InMemoryAdapter()


@pytest.fixture
def turn_context(adapter) -> TurnContext:
    return TurnContext(adapter, make_activity("hi"))


@pytest.fixture
def dialog_context(turn_context) -> DialogContext:
    """A root DialogContext over an empty stack and empty memory."""
    return DialogContext(DialogSet(), turn_context, DialogState(), {}, {})


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture(autouse=True)
def _reset_storage_singleton():
    yield
    reset_storage()
