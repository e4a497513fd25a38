"""Chat service package.

Modular components for the Yve assistant:

- prompts: persona and context-specific system prompt builder
- conversations: message CRUD over ``ai_messages`` and utility versioning
- code_blocks: fenced/bare code detection in assistant replies
"""

from app.chat.code_blocks import (
    CodeBlock,
    extract_code_blocks,
    find_python_block,
    remove_code_blocks,
)
from app.chat.conversations import (
    delete_conversation,
    get_conversation_context,
    get_conversation_history,
    get_messages,
    group_conversations,
    list_conversations,
    load_context_info,
    save_utility_version,
    store_message,
)
from app.chat.prompts import build_system_prompt

__all__ = [
    # Code blocks
    "CodeBlock",
    "extract_code_blocks",
    "find_python_block",
    "remove_code_blocks",
    # Conversations
    "delete_conversation",
    "get_conversation_context",
    "get_conversation_history",
    "get_messages",
    "group_conversations",
    "list_conversations",
    "load_context_info",
    "save_utility_version",
    "store_message",
    # Prompts
    "build_system_prompt",
]
