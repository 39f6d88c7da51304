"""
Core data models for the planning bot.
These are the universal types shared across all modules: activities,
recognizer output, rule guards and the persisted bot-state envelope.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ──────────────────────────────────────────────────────────────
#  Activities — what arrives from (and goes back to) a channel
# ──────────────────────────────────────────────────────────────

class ActivityTypes:
    MESSAGE = "message"
    EVENT = "event"
    CONVERSATION_UPDATE = "conversationUpdate"
    TYPING = "typing"
    END_OF_CONVERSATION = "endOfConversation"


class ChannelAccount(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    name: str = ""
    role: str = ""                                # "user" | "bot"


class ConversationAccount(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    name: str = ""
    is_group: bool = Field(default=False, alias="isGroup")


class Activity(BaseModel):
    """
    A single conversational event. Accepts the camelCase wire shape
    (`channelId`, `from`, `membersAdded`, …) as well as field names.
    """
    model_config = ConfigDict(populate_by_name=True)

    type: str = ActivityTypes.MESSAGE
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    channel_id: str = Field(default="test", alias="channelId")
    from_property: Optional[ChannelAccount] = Field(default=None, alias="from")
    recipient: Optional[ChannelAccount] = None
    conversation: Optional[ConversationAccount] = None
    text: str = ""
    name: str = ""                                # event name for type == "event"
    value: Any = None
    members_added: list[ChannelAccount] = Field(default_factory=list, alias="membersAdded")
    members_removed: list[ChannelAccount] = Field(default_factory=list, alias="membersRemoved")
    reply_to_id: str = Field(default="", alias="replyToId")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def create_reply(self, text: str = "") -> "Activity":
        """Build an outgoing message addressed back to the sender."""
        return Activity(
            type=ActivityTypes.MESSAGE,
            channel_id=self.channel_id,
            from_property=self.recipient,
            recipient=self.from_property,
            conversation=self.conversation,
            reply_to_id=self.id,
            text=text,
        )


# ──────────────────────────────────────────────────────────────
#  Recognizer output
# ──────────────────────────────────────────────────────────────

class IntentScore(BaseModel):
    score: float = 0.0


class RecognizerResult(BaseModel):
    text: str = ""
    intents: dict[str, IntentScore] = {}
    entities: dict[str, Any] = {}

    def top_intent(self) -> Optional[str]:
        if not self.intents:
            return None
        return max(self.intents.items(), key=lambda kv: kv[1].score)[0]


# ──────────────────────────────────────────────────────────────
#  Rule Condition — optional guard on a planning rule
# ──────────────────────────────────────────────────────────────

class RuleCondition(BaseModel):
    field: str
    operator: str           # eq | neq | gt | gte | lt | lte | in | contains | regex | exists | not_exists
    value: Any = None


# ──────────────────────────────────────────────────────────────
#  Persisted bot state
# ──────────────────────────────────────────────────────────────

class StoredBotState(BaseModel):
    """
    The outer persisted envelope for one turn.

    Both sub-documents are plain JSON dicts so they can be compared by value
    and written straight to storage:

      userState:         {eTag, ...user memory}
      conversationState: {eTag, _dialogs: {dialogStack: [...]}, _lastAccess, ...}
    """
    model_config = ConfigDict(populate_by_name=True)

    user_state: dict[str, Any] = Field(default_factory=dict, alias="userState")
    conversation_state: dict[str, Any] = Field(default_factory=dict, alias="conversationState")


class BotStateStorageKeys(BaseModel):
    user_state: str
    conversation_state: str
