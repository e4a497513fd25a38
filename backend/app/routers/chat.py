"""Chat (Ask Yve) router.

A single action-dispatched endpoint, ``POST /api/ai-chat/trends``. The body
carries an ``action`` plus the fields that action needs.
"""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from supabase import Client

from app.chat import delete_conversation, get_messages, list_conversations
from app.chat_service import ChatService, ChatTurn
from app.deps import get_current_user, get_gemini_client, get_supabase
from app.exceptions import ConversationNotFoundError, PersistenceError
from app.gemini_provider import GeminiClient
from app.models.chat import (
    ConversationRequest,
    CreateChatRequest,
    MessageStatus,
    SendMessageRequest,
)
from app.security import rate_limit_chat

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/ai-chat", tags=["chat"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def _failed_turn(turn: ChatTurn) -> JSONResponse:
    return _error(502, turn.error, status=turn.status.value, conversationId=turn.conversation_id)


# ---------------------------------------------------------------------------
# Action handlers
# ---------------------------------------------------------------------------


async def _create_chat(service: ChatService, user_id: str, body: Dict[str, Any]):
    turn = await service.create_chat(user_id, CreateChatRequest.model_validate(body))
    if turn.status == MessageStatus.FAILED:
        return _failed_turn(turn)
    return {"conversationId": turn.conversation_id, "response": turn.response, "success": True}


async def _send_message(service: ChatService, user_id: str, body: Dict[str, Any]):
    turn = await service.send_message(user_id, SendMessageRequest.model_validate(body))
    if turn.status == MessageStatus.FAILED:
        return _failed_turn(turn)
    return {"response": turn.response, "success": True}


async def _get_conversations(service: ChatService, user_id: str, body: Dict[str, Any]):
    return {"conversations": await list_conversations(service.db, user_id)}


async def _get_messages(service: ChatService, user_id: str, body: Dict[str, Any]):
    request = ConversationRequest.model_validate(body)
    return {"messages": await get_messages(service.db, user_id, request.conversation_id)}


async def _delete_conversation(service: ChatService, user_id: str, body: Dict[str, Any]):
    request = ConversationRequest.model_validate(body)
    await delete_conversation(service.db, user_id, request.conversation_id)
    return {"success": True}


ACTIONS = {
    "create_chat": _create_chat,
    "send_message": _send_message,
    "get_conversations": _get_conversations,
    "get_messages": _get_messages,
    "delete_conversation": _delete_conversation,
}


# ============================================================================
# Endpoint
# ============================================================================


@router.post("/trends")
@rate_limit_chat()
async def trends_chat(
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: Client = Depends(get_supabase),
    gemini: Optional[GeminiClient] = Depends(get_gemini_client),
):
    """Dispatch one chat action for the authenticated user."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = {}
    if not isinstance(body, dict):
        body = {}

    handler = ACTIONS.get(body.get("action"))
    if handler is None:
        return _error(400, "Invalid action")

    user_id = current_user["id"]
    service = ChatService(db, gemini)
    try:
        return await handler(service, user_id, body)
    except ValidationError as e:
        return _error(400, "Invalid request", details=e.errors(include_url=False, include_context=False))
    except ConversationNotFoundError:
        return _error(404, "Conversation not found")
    except PersistenceError as e:
        return _error(500, str(e))
    except Exception as e:
        logger.exception(f"Chat action {body.get('action')!r} failed for {user_id}: {e}")
        return _error(500, "Internal server error")
