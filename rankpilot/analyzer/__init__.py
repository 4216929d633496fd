"""
AI Chat Assistant

Claude with tool access to the user's own SEO data.

Example Usage:
    from rankpilot.analyzer import ChatAssistant, ToolExecutor

    assistant = ChatAssistant.from_settings(get_settings())
    response = await assistant.chat(messages, ToolExecutor(db, user, page_analyzer))
    print(response.message)
"""

from .client import (
    ChatAssistant,
    ChatError,
    ChatNotConfiguredError,
    ChatResponse,
    TokenUsage,
    block_to_param,
    extract_text,
)
from .tools import TOOLS, ToolAccessError, ToolExecutor, project_to_dict
from .history import (
    HISTORY_LIMIT,
    message_text,
    save_chat_turn,
    get_chat_history,
    chat_message_to_dict,
)

__all__ = [
    "ChatAssistant",
    "ChatError",
    "ChatNotConfiguredError",
    "ChatResponse",
    "TokenUsage",
    "block_to_param",
    "extract_text",
    "TOOLS",
    "ToolAccessError",
    "ToolExecutor",
    "project_to_dict",
    "HISTORY_LIMIT",
    "message_text",
    "save_chat_turn",
    "get_chat_history",
    "chat_message_to_dict",
]
