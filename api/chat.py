"""
API Endpoints for the AI Chat Assistant
"""

import logging
from typing import Any, Dict, List, Literal, Union

from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_chat_assistant, get_page_analyzer
from rankpilot.analyzer import (
    HISTORY_LIMIT,
    ChatAssistant,
    ChatError,
    ToolExecutor,
    chat_message_to_dict,
    get_chat_history,
    save_chat_turn,
)
from rankpilot.auth.dependencies import get_current_user
from rankpilot.auth.models import User
from rankpilot.database.repository import record_api_usage
from rankpilot.database.session import get_db
from rankpilot.pages import PageAnalyzer

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/chat",
    tags=["Chat"],
    dependencies=[Depends(get_current_user)],
)


class ChatMessageIn(BaseModel):
    role: Literal["user", "assistant"]
    content: Union[str, List[Dict[str, Any]]]


class ChatRequest(BaseModel):
    messages: List[ChatMessageIn] = Field(..., min_length=1)


@router.post("")
async def chat(
    request: ChatRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    assistant: ChatAssistant = Depends(get_chat_assistant),
    page_analyzer: PageAnalyzer = Depends(get_page_analyzer),
):
    """
    One chat turn. Claude may call the SEO tools (scoped to the current
    user's projects) any number of rounds before answering.
    """
    messages = [message.model_dump() for message in request.messages]
    logger.info(f"Chat request from {current_user.email} with {len(messages)} messages")

    executor = ToolExecutor(db, current_user, page_analyzer=page_analyzer)

    try:
        response = await assistant.chat(messages, executor)
    except ChatError as e:
        raise HTTPException(status_code=500, detail={"error": "Failed to process chat", "details": str(e)})

    save_chat_turn(
        db,
        current_user.id,
        messages[-1]["content"],
        response.message,
        function_calls=response.tool_calls,
    )

    record_api_usage(
        db,
        current_user.id,
        api_name="anthropic",
        endpoint="chat",
        credits_used=1,
        cost=response.usage.estimated_cost,
        request_data={
            "model": assistant.model,
            "input_tokens": response.usage.input_tokens,
            "output_tokens": response.usage.output_tokens,
            "tool_rounds": response.tool_rounds,
        },
    )
    db.commit()

    return response.to_dict()


@router.get("/history")
async def chat_history(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    limit: int = Query(HISTORY_LIMIT, ge=1, le=200),
):
    """The user's most recent chat messages, oldest first."""
    messages = get_chat_history(db, current_user.id, limit=limit)
    return {"messages": [chat_message_to_dict(m) for m in messages]}
