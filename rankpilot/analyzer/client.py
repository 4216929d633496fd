"""
Claude Chat Assistant

Runs a conversation against the Anthropic Messages API with tool use:

1. Send the conversation plus tool schemas
2. While Claude stops with "tool_use": run every requested tool
   concurrently, append the assistant turn and one user turn of
   tool_result blocks, call again
3. Return the text of the final turn

The loop is bounded by max_tool_rounds; hitting the bound returns whatever
text the last turn carried.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import anthropic

from .tools import TOOLS, ToolExecutor

logger = logging.getLogger(__name__)


class ChatNotConfiguredError(Exception):
    """ANTHROPIC_API_KEY is missing."""
    pass


class ChatError(Exception):
    """The Anthropic API rejected or failed a request."""
    pass


@dataclass
class TokenUsage:
    """Track token usage for cost calculation."""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def estimated_cost(self) -> float:
        """Estimate cost based on Claude Sonnet pricing."""
        # $3/1M input, $15/1M output
        input_cost = (self.input_tokens / 1_000_000) * 3.0
        output_cost = (self.output_tokens / 1_000_000) * 15.0
        return input_cost + output_cost

    def add(self, usage: Any) -> None:
        if usage is None:
            return
        self.input_tokens += getattr(usage, "input_tokens", 0) or 0
        self.output_tokens += getattr(usage, "output_tokens", 0) or 0

    def to_dict(self) -> Dict[str, int]:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}


@dataclass
class ChatResponse:
    """Outcome of one chat request."""
    message: str
    usage: TokenUsage
    stop_reason: Optional[str] = None
    tool_rounds: int = 0
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "usage": self.usage.to_dict()}


def block_to_param(block: Any) -> Dict[str, Any]:
    """Response content block -> request content block."""
    block_type = getattr(block, "type", None)
    if block_type == "text":
        return {"type": "text", "text": block.text}
    if block_type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    if hasattr(block, "model_dump"):
        return block.model_dump()
    return dict(block)


def extract_text(content: List[Any]) -> str:
    """First text block of a turn, as the chat reply."""
    for block in content or []:
        if getattr(block, "type", None) == "text":
            return block.text
    return ""


class ChatAssistant:
    """
    Tool-using chat over AsyncAnthropic.

    Usage:
        assistant = ChatAssistant.from_settings(settings)
        response = await assistant.chat(messages, ToolExecutor(db, user))
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "claude-sonnet-4-5-20250929",
        max_tokens: int = 4096,
        max_tool_rounds: int = 8,
        system: Optional[str] = None,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        if not api_key and client is None:
            raise ChatNotConfiguredError(
                "AI Chat is not configured. Please add ANTHROPIC_API_KEY to your environment variables."
            )

        self.model = model
        self.max_tokens = max_tokens
        self.max_tool_rounds = max_tool_rounds
        self.system = system
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key)

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "ChatAssistant":
        return cls(
            api_key=settings.ANTHROPIC_API_KEY,
            model=settings.CLAUDE_MODEL,
            max_tokens=settings.CHAT_MAX_TOKENS,
            max_tool_rounds=settings.CHAT_MAX_TOOL_ROUNDS,
            **kwargs,
        )

    async def _create(self, messages: List[Dict[str, Any]]):
        kwargs = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "tools": TOOLS,
            "messages": messages,
        }
        if self.system:
            kwargs["system"] = self.system

        try:
            return await self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise ChatError(f"Anthropic API failed: {e}") from e

    async def chat(self, messages: List[Dict[str, Any]], executor: ToolExecutor) -> ChatResponse:
        """
        Run the conversation to a text answer.

        Raises:
            ChatError: Anthropic API failure
        """
        conversation = list(messages)
        usage = TokenUsage()
        tool_calls: List[Dict[str, Any]] = []

        logger.info(f"Calling Claude ({self.model}) with {len(conversation)} messages")
        response = await self._create(conversation)
        usage.add(response.usage)

        rounds = 0
        while response.stop_reason == "tool_use":
            tool_uses = [block for block in response.content if getattr(block, "type", None) == "tool_use"]
            if not tool_uses:
                break

            if rounds >= self.max_tool_rounds:
                logger.warning(f"Stopping chat after {rounds} tool rounds")
                break
            rounds += 1

            results = await asyncio.gather(
                *(executor.execute(tool_use.name, tool_use.input) for tool_use in tool_uses)
            )

            tool_results = []
            for tool_use, result in zip(tool_uses, results):
                tool_calls.append({"name": tool_use.name, "input": tool_use.input})
                tool_results.append({
                    "type": "tool_result",
                    "tool_use_id": tool_use.id,
                    "content": json.dumps(result, default=str),
                })

            logger.info(f"Tool round {rounds}: {', '.join(tool_use.name for tool_use in tool_uses)}")

            conversation.append({
                "role": "assistant",
                "content": [block_to_param(block) for block in response.content],
            })
            conversation.append({"role": "user", "content": tool_results})

            response = await self._create(conversation)
            usage.add(response.usage)

        logger.info(
            f"Chat complete: {usage.input_tokens} in, {usage.output_tokens} out, "
            f"${usage.estimated_cost:.4f}"
        )

        return ChatResponse(
            message=extract_text(response.content),
            usage=usage,
            stop_reason=response.stop_reason,
            tool_rounds=rounds,
            tool_calls=tool_calls,
        )
