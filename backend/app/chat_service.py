"""Chat Service orchestrator for the Yve innovation assistant.

Thin orchestrator that delegates to focused modules in ``app.chat``:

- ``chat.prompts``        -- persona and trend/utility/prototype context
- ``chat.conversations``  -- message CRUD over ``ai_messages``
- ``chat.code_blocks``    -- code fence detection in replies

Each user turn moves through ``pending -> sent -> thinking`` and ends in
``completed`` or ``failed``. A failed turn keeps the user's message but
writes no bot row; the client shows the fixed error text and may resend.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from supabase import Client

from app.chat.code_blocks import extract_code_blocks, find_python_block
from app.chat.conversations import (
    get_conversation_context,
    get_conversation_history,
    load_context_info,
    save_utility_version,
    store_message,
)
from app.chat.prompts import build_system_prompt
from app.exceptions import (
    ChatGenerationError,
    ConversationNotFoundError,
    GeminiResponseError,
    PersistenceError,
    UpstreamAPIError,
)
from app.gemini_provider import GeminiClient, model_turn, user_turn
from app.models.chat import CreateChatRequest, MessageStatus, SendMessageRequest

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

CHAT_TEMPERATURE = 0.7
CHAT_TOP_P = 0.9
CHAT_MAX_OUTPUT_TOKENS = 1000

MISSING_KEY_MESSAGE = (
    "I can't process your request right now. Please try again later or contact "
    "support if the issue persists."
)
UPSTREAM_ERROR_MESSAGE = (
    "I apologize, but I'm having trouble generating a response right now. "
    "Please try again in a moment."
)
EMPTY_RESPONSE_MESSAGE = (
    "I'm sorry, I couldn't generate a proper response. Please try rephrasing your question."
)
GENERIC_ERROR_MESSAGE = (
    "I encountered an error while processing your request. Please try again."
)

_ALLOWED_TRANSITIONS = {
    MessageStatus.PENDING: {MessageStatus.SENT, MessageStatus.FAILED},
    MessageStatus.SENT: {MessageStatus.THINKING, MessageStatus.FAILED},
    MessageStatus.THINKING: {MessageStatus.COMPLETED, MessageStatus.FAILED},
    MessageStatus.COMPLETED: set(),
    MessageStatus.FAILED: set(),
}


# ---------------------------------------------------------------------------
# Turn state
# ---------------------------------------------------------------------------


@dataclass
class ChatTurn:
    """One user message and the assistant's answer to it."""

    conversation_id: str
    user_message: str
    status: MessageStatus = MessageStatus.PENDING
    response: Optional[str] = None
    has_code: bool = False
    utility_version_id: Optional[str] = None
    error: Optional[str] = None

    def advance(self, status: MessageStatus) -> None:
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(f"Invalid chat turn transition: {self.status.value} -> {status.value}")
        self.status = status

    def fail(self, message: str) -> None:
        self.error = message
        self.advance(MessageStatus.FAILED)


def build_turns(
    system_prompt: str, history: List[Dict[str, Any]], user_message: str
) -> List[Dict[str, Any]]:
    """System prompt as the first user turn, then history, then the new turn."""
    contents = [user_turn(system_prompt)]
    for message in history:
        content = message.get("content") or ""
        if message.get("message_type") == "user":
            contents.append(user_turn(content))
        else:
            contents.append(model_turn(content))
    contents.append(user_turn(user_message))
    return contents


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ChatService:
    def __init__(self, db: Client, gemini: Optional[GeminiClient]):
        self.db = db
        self.gemini = gemini

    async def generate_reply(
        self,
        user_message: str,
        context_type: Optional[str] = None,
        context_info: Optional[Dict[str, Any]] = None,
        history: Optional[List[Dict[str, Any]]] = None,
    ) -> str:
        """Ask Gemini for the next assistant turn.

        Raises:
            ChatGenerationError: carrying the fixed user-facing message
        """
        if self.gemini is None:
            logger.error("GEMINI_API_KEY not configured for chat")
            raise ChatGenerationError(MISSING_KEY_MESSAGE)

        history = history or []
        contents = build_turns(build_system_prompt(context_type, context_info), history, user_message)
        logger.info(
            f"Generating chat reply: context={context_type or 'general'} "
            f"history={len(history)} turns={len(contents)}"
        )

        try:
            text = await self.gemini.generate_content(
                contents,
                temperature=CHAT_TEMPERATURE,
                top_p=CHAT_TOP_P,
                max_output_tokens=CHAT_MAX_OUTPUT_TOKENS,
            )
        except UpstreamAPIError as e:
            raise ChatGenerationError(UPSTREAM_ERROR_MESSAGE, e) from e
        except GeminiResponseError as e:
            raise ChatGenerationError(EMPTY_RESPONSE_MESSAGE, e) from e
        except httpx.HTTPError as e:
            logger.error(f"Chat transport failure: {type(e).__name__}: {e}")
            raise ChatGenerationError(GENERIC_ERROR_MESSAGE, e) from e

        if not text.strip():
            raise ChatGenerationError(EMPTY_RESPONSE_MESSAGE)
        return text

    async def create_chat(self, user_id: str, request: CreateChatRequest) -> ChatTurn:
        """Start a conversation with its first user message."""
        conversation_id = str(uuid.uuid4())
        context_info = await load_context_info(
            self.db, user_id, request.context_type, request.context_id
        )
        turn = ChatTurn(conversation_id=conversation_id, user_message=request.first_message)

        await store_message(
            self.db,
            conversation_id=conversation_id,
            user_id=user_id,
            content=request.first_message,
            message_type="user",
            context_type=request.context_type,
            context_id=request.context_id,
        )
        turn.advance(MessageStatus.SENT)
        return await self._complete_turn(
            turn, user_id, request.context_type, request.context_id, context_info, history=[]
        )

    async def send_message(self, user_id: str, request: SendMessageRequest) -> ChatTurn:
        """Continue an existing conversation.

        Raises:
            ConversationNotFoundError: the user has no message in it
        """
        context = await get_conversation_context(self.db, user_id, request.conversation_id)
        if context is None:
            raise ConversationNotFoundError(request.conversation_id)

        history = await get_conversation_history(self.db, user_id, request.conversation_id)
        context_type = context.get("context_type")
        context_id = context.get("context_id")
        context_info = await load_context_info(self.db, user_id, context_type, context_id)
        turn = ChatTurn(conversation_id=request.conversation_id, user_message=request.message)

        await store_message(
            self.db,
            conversation_id=request.conversation_id,
            user_id=user_id,
            content=request.message,
            message_type="user",
            context_type=context_type,
            context_id=context_id,
        )
        turn.advance(MessageStatus.SENT)
        return await self._complete_turn(
            turn, user_id, context_type, context_id, context_info, history
        )

    async def _complete_turn(
        self,
        turn: ChatTurn,
        user_id: str,
        context_type: Optional[str],
        context_id: Optional[str],
        context_info: Optional[Dict[str, Any]],
        history: List[Dict[str, Any]],
    ) -> ChatTurn:
        turn.advance(MessageStatus.THINKING)
        try:
            reply = await self.generate_reply(turn.user_message, context_type, context_info, history)
        except ChatGenerationError as e:
            logger.error(f"Chat turn failed in {turn.conversation_id}: {e.cause or e}")
            turn.fail(e.user_message)
            return turn

        blocks = extract_code_blocks(reply)
        turn.has_code = bool(blocks)
        python_block = find_python_block(blocks)
        if context_type == "utility" and context_info and python_block is not None:
            try:
                turn.utility_version_id = await save_utility_version(
                    self.db, user_id, context_info["id"], python_block.code, turn.user_message
                )
            except PersistenceError as e:
                logger.error(f"Could not save utility revision: {e}")

        await store_message(
            self.db,
            conversation_id=turn.conversation_id,
            user_id=user_id,
            content=reply,
            message_type="bot",
            context_type=context_type,
            context_id=context_id,
            has_code=turn.has_code,
            utility_version_id=turn.utility_version_id,
        )
        turn.response = reply
        turn.advance(MessageStatus.COMPLETED)
        return turn
