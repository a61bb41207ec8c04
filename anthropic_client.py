"""Anthropic Messages-API backend for the conversation loop."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Sequence
from json import JSONDecodeError
from typing import Any

import anthropic

from errors import MalformedResponse, UpstreamUnavailable
from llm_client import SYSTEM_PROMPT
from models import (
    AssistantText,
    ConversationTurn,
    ModelReply,
    ToolCallRequest,
    ToolDescriptor,
    ToolResult,
    UserMessage,
)

LOGGER = logging.getLogger(__name__)


class AnthropicResponder:
    """Ask a Claude model for the next step of the conversation."""

    def __init__(
        self,
        model: str | None = None,
        max_tokens: int = 2048,
        client: anthropic.Anthropic | None = None,
        system: str = SYSTEM_PROMPT,
    ) -> None:
        if client is None:
            api_key = os.getenv("ANTHROPIC_API_KEY")
            if not api_key:
                raise RuntimeError("ANTHROPIC_API_KEY environment variable is required")
            client = anthropic.Anthropic(api_key=api_key)
        self.client = client
        self.model = model or os.getenv("CLAUDE_MODEL", "claude-sonnet-4-5")
        self.max_tokens = max_tokens
        self.system = system

    def respond(
        self, history: Sequence[ConversationTurn], tools: Sequence[ToolDescriptor]
    ) -> ModelReply:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": self.system,
            "messages": to_messages(history),
        }
        if tools:
            kwargs["tools"] = to_anthropic_tools(tools)
            kwargs["tool_choice"] = {"type": "auto", "disable_parallel_tool_use": True}

        LOGGER.debug("Calling Claude model=%s max_tokens=%s", self.model, self.max_tokens)
        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APIResponseValidationError as exc:
            raise MalformedResponse(f"Claude response failed validation: {exc}") from exc
        except anthropic.APIError as exc:
            raise UpstreamUnavailable(f"Claude request failed: {exc}") from exc

        return parse_content_blocks(getattr(response, "content", None))


def to_anthropic_tools(tools: Sequence[ToolDescriptor]) -> list[dict[str, Any]]:
    return [
        {"name": tool.name, "description": tool.description, "input_schema": tool.input_schema()}
        for tool in tools
    ]


def to_messages(history: Sequence[ConversationTurn]) -> list[dict[str, Any]]:
    """Map conversation turns onto Messages-API messages.

    A "system" role never appears here; it goes through the dedicated
    ``system=`` parameter.
    """
    messages: list[dict[str, Any]] = []
    for turn in history:
        if isinstance(turn, UserMessage):
            messages.append({"role": "user", "content": turn.text})
        elif isinstance(turn, AssistantText):
            messages.append({"role": "assistant", "content": turn.text})
        elif isinstance(turn, ToolCallRequest):
            messages.append(
                {
                    "role": "assistant",
                    "content": [
                        {
                            "type": "tool_use",
                            "id": turn.call_id,
                            "name": turn.name,
                            "input": _arguments_as_input(turn.arguments),
                        }
                    ],
                }
            )
        elif isinstance(turn, ToolResult):
            messages.append(
                {
                    "role": "user",
                    "content": [{"type": "tool_result", "tool_use_id": turn.call_id, "content": turn.output}],
                }
            )
        else:
            raise TypeError(f"Unsupported conversation turn: {turn!r}")
    return messages


def parse_content_blocks(content: Any) -> ModelReply:
    """A tool_use block wins over text; otherwise the text blocks are joined."""
    if not content:
        raise MalformedResponse("Claude response contained no content blocks")

    tool_uses = [block for block in content if getattr(block, "type", None) == "tool_use"]
    if tool_uses:
        if len(tool_uses) > 1:
            LOGGER.debug("Ignoring %s extra tool_use blocks in model output", len(tool_uses) - 1)
        block = tool_uses[0]
        return ToolCallRequest(
            call_id=block.id,
            name=block.name,
            arguments=json.dumps(block.input or {}),
        )

    texts = [block.text for block in content if getattr(block, "type", None) == "text"]
    if not texts:
        raise MalformedResponse(
            f"Claude response had no text or tool_use block: {[getattr(b, 'type', None) for b in content]}"
        )
    return AssistantText(text="\n\n".join(texts).strip())


def _arguments_as_input(arguments: str) -> dict[str, Any]:
    try:
        parsed = json.loads(arguments) if arguments else {}
    except JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}
