"""
Chat history persistence.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from rankpilot.database.models import ChatMessage, ChatRole

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50


def message_text(content: Any) -> str:
    """Plain text of a message whose content is a string or a list of blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            block.get("text", "") for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        return "\n".join(part for part in parts if part)
    return str(content or "")


def save_chat_turn(
    db: Session,
    user_id: UUID,
    user_content: Any,
    assistant_content: str,
    function_calls: Optional[List[Dict[str, Any]]] = None,
) -> bool:
    """
    Store the user's last message and the assistant's reply.

    Failures are logged and swallowed; losing history never fails a chat.
    """
    try:
        db.add(ChatMessage(user_id=user_id, role=ChatRole.USER, content=message_text(user_content)))
        db.add(ChatMessage(
            user_id=user_id,
            role=ChatRole.ASSISTANT,
            content=assistant_content,
            function_calls=function_calls or None,
        ))
        db.commit()
        return True
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to save chat history (non-critical): {e}")
        return False


def get_chat_history(db: Session, user_id: UUID, limit: int = HISTORY_LIMIT) -> List[ChatMessage]:
    """Most recent messages, oldest first."""
    recent = (
        db.query(ChatMessage)
        .filter(ChatMessage.user_id == user_id)
        .order_by(ChatMessage.created_at.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(recent))


def chat_message_to_dict(message: ChatMessage) -> Dict[str, Any]:
    return {
        "id": str(message.id),
        "role": message.role.value,
        "content": message.content,
        "function_calls": message.function_calls,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }
