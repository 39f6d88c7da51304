"""
Bot state loading and saving for the turn driver.

Persisted layout (two documents per turn):
  {channel}/users/{user}                  userState          {eTag, ...}
  {channel}/conversations/{conversation}  conversationState  {eTag, _dialogs, _lastAccess, ...}

The state is read at most once and written at most once per turn. A document
is only written when it differs from the pre-turn snapshot.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import structlog

from database.storage_base import Storage
from models.schemas import Activity, ActivityTypes, BotStateStorageKeys, StoredBotState

logger = structlog.get_logger()

LAST_ACCESS_KEY = "_lastAccess"
DIALOGS_KEY = "_dialogs"


class PlanningError(Exception):
    """Base exception for the planning engine."""


class ConfigurationError(PlanningError):
    """A required collaborator or identifier is missing. Raised before any state is touched."""


def get_storage_keys(activity: Activity) -> BotStateStorageKeys:
    """
    Resolve the user and conversation document keys for an activity.

    A conversationUpdate may arrive without a usable sender; the user is then
    taken from the members that joined or left, ignoring the bot itself.
    """
    channel_id = activity.channel_id
    user_id = activity.from_property.id if activity.from_property and activity.from_property.id else None
    conversation_id = activity.conversation.id if activity.conversation and activity.conversation.id else None

    if activity.type == ActivityTypes.CONVERSATION_UPDATE:
        bot_id = activity.recipient.id if activity.recipient else None
        members = activity.members_added or activity.members_removed or []
        users = [m for m in members if m.id != bot_id]
        found = [u for u in users if u.id == user_id] if user_id else []
        if not found and users:
            user_id = users[0].id

    if not user_id:
        raise ConfigurationError("Unable to load the bot's state: the user's id couldn't be found.")
    if not conversation_id:
        raise ConfigurationError("Unable to load the bot's state: the conversation's id couldn't be found.")

    return BotStateStorageKeys(
        user_state=f"{channel_id}/users/{user_id}",
        conversation_state=f"{channel_id}/conversations/{conversation_id}",
    )


async def load_bot_state(storage: Storage, keys: BotStateStorageKeys) -> StoredBotState:
    data = await storage.read([keys.user_state, keys.conversation_state])
    return StoredBotState(
        user_state=data.get(keys.user_state) or {},
        conversation_state=data.get(keys.conversation_state) or {},
    )


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def apply_expiry(state: StoredBotState, expire_after_ms: Optional[int], now: datetime) -> bool:
    """
    Reset the conversation document to just its eTag when it has been idle for
    at least `expire_after_ms`. Returns True when the reset happened.
    """
    if expire_after_ms is None:
        return False
    last_access = state.conversation_state.get(LAST_ACCESS_KEY)
    if not last_access:
        return False

    try:
        last = _parse_timestamp(last_access)
    except (TypeError, ValueError):
        logger.warning("last_access_unreadable", value=repr(last_access))
        return False

    elapsed_ms = (now - last).total_seconds() * 1000
    if elapsed_ms < expire_after_ms:
        return False

    reset = {}
    if "eTag" in state.conversation_state:
        reset["eTag"] = state.conversation_state["eTag"]
    state.conversation_state = reset
    logger.info("conversation_expired", elapsed_ms=int(elapsed_ms), expire_after_ms=expire_after_ms)
    return True


async def save_bot_state(
    storage: Storage,
    keys: BotStateStorageKeys,
    new_state: StoredBotState,
    old_state: Optional[StoredBotState] = None,
    e_tag: Optional[str] = None,
) -> bool:
    """
    Write the documents of `new_state` that differ from `old_state` (all of
    them when there is no snapshot). `e_tag`, when given, is stamped on every
    written document. Returns whether anything was written.
    """
    changes: dict[str, dict] = {}
    if old_state is None or new_state.user_state != old_state.user_state:
        changes[keys.user_state] = new_state.user_state
    if old_state is None or new_state.conversation_state != old_state.conversation_state:
        changes[keys.conversation_state] = new_state.conversation_state

    if not changes:
        logger.debug("bot_state_unchanged")
        return False

    if e_tag:
        for doc in changes.values():
            doc["eTag"] = e_tag
    await storage.write(changes)
    logger.debug("bot_state_saved", keys=list(changes))
    return True
