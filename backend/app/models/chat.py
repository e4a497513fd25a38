"""
Chat Models for the AI Chat Endpoint

This module provides Pydantic models for ``POST /api/ai-chat/trends``,
an action-dispatched endpoint covering conversation creation, messaging,
listing and deletion.

Supports:
- CreateChatRequest / SendMessageRequest: bodies of the two write actions
- ConversationRequest: bodies that only carry a conversation id
- MessageStatus: lifecycle of a single chat turn
"""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field


ContextType = Literal["trend", "utility", "prototype", "general"]


class MessageStatus(str, Enum):
    """Per-turn lifecycle: pending -> sent -> thinking -> completed | failed."""

    PENDING = "pending"
    SENT = "sent"
    THINKING = "thinking"
    COMPLETED = "completed"
    FAILED = "failed"


class CreateChatRequest(BaseModel):
    """Start a conversation, optionally bound to a trend/utility/prototype."""

    context_type: Optional[ContextType] = Field(
        None, description="Entity type the conversation is about"
    )
    context_id: Optional[str] = Field(None, description="UUID of the context entity")
    first_message: str = Field(..., min_length=1, max_length=8000)


class SendMessageRequest(BaseModel):
    conversation_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=8000)


class ConversationRequest(BaseModel):
    conversation_id: str = Field(..., min_length=1)
