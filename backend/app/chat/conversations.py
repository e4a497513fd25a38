"""Conversation and message CRUD operations for the chat service.

Conversations have no table of their own: every row of ``ai_messages``
carries a ``conversation_id`` and conversation metadata (title, last
message, count) is derived by scanning messages. Messages are append-only.

All functions take the supabase-py ``Client`` and run its synchronous calls
in a worker thread. Failures raise ``PersistenceError`` whose message is the
user-facing error text.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError
from supabase import Client

from app.exceptions import PersistenceError

logger = logging.getLogger(__name__)

MESSAGES_TABLE = "ai_messages"
CONTEXT_TABLES = {
    "trend": "trends",
    "utility": "utilities",
    "prototype": "prototypes",
}
TITLE_PREVIEW_CHARS = 50
VERSION_DESCRIPTION_CHARS = 50
FIRST_REVISION_VERSION = 2  # v1 lives on the utilities row itself


async def _run(error_message: str, build_query):
    try:
        return await asyncio.to_thread(lambda: build_query().execute())
    except APIError as e:
        logger.error(f"{error_message}: {e.message}")
        raise PersistenceError(error_message) from e


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


async def load_context_info(
    db: Client, user_id: str, context_type: Optional[str], context_id: Optional[str]
) -> Optional[Dict[str, Any]]:
    """Row the conversation is about, or None for general chats.

    Only rows owned by ``user_id`` are returned. Context is best effort: a
    missing, foreign or unreadable row degrades to a general conversation.
    """
    table = CONTEXT_TABLES.get(context_type or "")
    if not table or not context_id:
        return None
    try:
        response = await _run(
            f"Failed to load {context_type} context",
            lambda: db.table(table)
            .select("*")
            .eq("id", context_id)
            .eq("user_id", user_id)
            .limit(1),
        )
    except PersistenceError:
        return None
    rows = response.data or []
    return rows[0] if rows else None


async def get_conversation_context(
    db: Client, user_id: str, conversation_id: str
) -> Optional[Dict[str, Any]]:
    """``context_type``/``context_id`` of the conversation, or None if the
    user owns no message in it."""
    response = await _run(
        "Conversation not found",
        lambda: db.table(MESSAGES_TABLE)
        .select("context_type, context_id")
        .eq("conversation_id", conversation_id)
        .eq("user_id", user_id)
        .limit(1),
    )
    rows = response.data or []
    return rows[0] if rows else None


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


async def get_conversation_history(
    db: Client, user_id: str, conversation_id: str
) -> List[Dict[str, Any]]:
    """All turns of a conversation, oldest first."""
    response = await _run(
        "Failed to get conversation history",
        lambda: db.table(MESSAGES_TABLE)
        .select("content, message_type, created_at")
        .eq("conversation_id", conversation_id)
        .eq("user_id", user_id)
        .order("created_at", desc=False),
    )
    return response.data or []


async def store_message(
    db: Client,
    conversation_id: str,
    user_id: str,
    content: str,
    message_type: str,
    context_type: Optional[str] = None,
    context_id: Optional[str] = None,
    has_code: bool = False,
    utility_version_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Append one turn to a conversation."""
    row = {
        "conversation_id": conversation_id,
        "user_id": user_id,
        "context_type": context_type or "general",
        "context_id": context_id or None,
        "content": content,
        "message_type": message_type,
        "has_code": has_code,
        "utility_version_id": utility_version_id,
    }
    error_message = "Failed to add message" if message_type == "user" else "Failed to add AI response"
    response = await _run(error_message, lambda: db.table(MESSAGES_TABLE).insert(row))
    return (response.data or [row])[0]


async def get_messages(db: Client, user_id: str, conversation_id: str) -> List[Dict[str, Any]]:
    response = await _run(
        "Failed to get messages",
        lambda: db.table(MESSAGES_TABLE)
        .select("id, content, message_type, created_at, has_code, utility_version_id")
        .eq("conversation_id", conversation_id)
        .eq("user_id", user_id)
        .order("created_at", desc=False),
    )
    messages = response.data or []
    for message in messages:
        message["has_code"] = bool(message.get("has_code"))
    return messages


async def delete_conversation(db: Client, user_id: str, conversation_id: str) -> None:
    await _run(
        "Failed to delete conversation",
        lambda: db.table(MESSAGES_TABLE)
        .delete()
        .eq("conversation_id", conversation_id)
        .eq("user_id", user_id),
    )
    logger.info(f"Deleted conversation {conversation_id} for user {user_id}")


# ---------------------------------------------------------------------------
# Conversation listing
# ---------------------------------------------------------------------------


def group_conversations(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Fold messages (newest first) into one summary per conversation."""
    conversations: Dict[str, Dict[str, Any]] = {}
    for message in messages:
        conversation_id = message["conversation_id"]
        summary = conversations.get(conversation_id)
        if summary is None:
            content = message.get("content") or ""
            title = content[:TITLE_PREVIEW_CHARS]
            if len(content) > TITLE_PREVIEW_CHARS:
                title += "..."
            conversations[conversation_id] = {
                "id": conversation_id,
                "context_type": message.get("context_type"),
                "context_id": message.get("context_id"),
                "title": title,
                "lastMessage": content,
                "timestamp": message.get("created_at"),
                "messageCount": 1,
            }
        else:
            summary["messageCount"] += 1
    return list(conversations.values())


async def list_conversations(db: Client, user_id: str) -> List[Dict[str, Any]]:
    response = await _run(
        "Failed to get conversations",
        lambda: db.table(MESSAGES_TABLE)
        .select("conversation_id, context_type, context_id, content, created_at")
        .eq("user_id", user_id)
        .order("created_at", desc=True),
    )
    return group_conversations(response.data or [])


# ---------------------------------------------------------------------------
# Utility versions
# ---------------------------------------------------------------------------


async def save_utility_version(
    db: Client, user_id: str, utility_id: str, code: str, user_message: str
) -> str:
    """Store revised utility code as a new version and make it current.

    Returns the id of the new ``utility_versions`` row.
    """
    next_version = await _run(
        "Failed to get next version number",
        lambda: db.rpc("get_next_version_number", {"utility_uuid": utility_id}),
    )
    version_number = max(next_version.data or 1, FIRST_REVISION_VERSION)

    inserted = await _run(
        "Failed to save code version",
        lambda: db.table("utility_versions").insert(
            {
                "utility_id": utility_id,
                "user_id": user_id,
                "version_number": version_number,
                "version_description": f"AI revision: {user_message[:VERSION_DESCRIPTION_CHARS]}...",
                "generated_code": code,
            }
        ),
    )
    if not inserted.data:
        raise PersistenceError("Failed to save code version")
    version_id = inserted.data[0]["id"]

    await _run(
        "Failed to update utility",
        lambda: db.table("utilities")
        .update({"generated_code": code, "updated_at": datetime.now(timezone.utc).isoformat()})
        .eq("id", utility_id)
        .eq("user_id", user_id),
    )
    logger.info(f"Saved utility {utility_id} revision as version {version_number} ({version_id})")
    return version_id
