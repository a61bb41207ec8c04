"""OpenAI Responses-API backend for the conversation loop."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import Any

from openai import APIError, APIResponseValidationError, OpenAI

from errors import MalformedResponse, UpstreamUnavailable
from models import (
    AssistantText,
    ConversationTurn,
    ModelReply,
    ToolCallRequest,
    ToolDescriptor,
    ToolResult,
    UserMessage,
)

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4.1")

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a research assistant that helps users find academic papers on arXiv.
Use search_papers to find papers on a topic; it returns arXiv ids and caches the details.
Use extract_info with an arXiv id to read a cached paper's title, authors, date, summary and PDF link.
If a tool reports an error, explain the problem to the user in plain language."""


class OpenAIResponder:
    """Ask an OpenAI model for the next step of the conversation."""

    def __init__(
        self,
        model: str = OPENAI_MODEL,
        client: OpenAI | None = None,
        instructions: str = SYSTEM_PROMPT,
    ) -> None:
        if client is None:
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise RuntimeError("OPENAI_API_KEY environment variable is required")
            client = OpenAI(api_key=api_key)
        self.client = client
        self.model = model
        self.instructions = instructions

    def respond(
        self, history: Sequence[ConversationTurn], tools: Sequence[ToolDescriptor]
    ) -> ModelReply:
        """Submit the transcript and tool catalog; return text or one tool call.

        Raises:
            UpstreamUnavailable: The API could not be reached or returned an error.
            MalformedResponse: The response had no message or function call.
        """
        kwargs: dict[str, Any] = {
            "model": self.model,
            "instructions": self.instructions,
            "input": to_response_input(history),
        }
        if tools:
            kwargs["tools"] = to_openai_tools(tools)
            kwargs["parallel_tool_calls"] = False

        LOGGER.debug("Calling OpenAI model=%s turns=%s tools=%s", self.model, len(history), len(tools))
        try:
            response = self.client.responses.create(**kwargs)
        except APIResponseValidationError as exc:
            raise MalformedResponse(f"OpenAI response failed validation: {exc}") from exc
        except APIError as exc:
            raise UpstreamUnavailable(f"OpenAI request failed: {exc}") from exc

        return parse_response_output(getattr(response, "output", None))


def to_openai_tools(tools: Sequence[ToolDescriptor]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.input_schema(),
            "strict": False,
        }
        for tool in tools
    ]


def to_response_input(history: Sequence[ConversationTurn]) -> list[dict[str, Any]]:
    """Map conversation turns onto Responses-API input items."""
    items: list[dict[str, Any]] = []
    for turn in history:
        if isinstance(turn, UserMessage):
            items.append({"role": "user", "content": turn.text})
        elif isinstance(turn, AssistantText):
            items.append({"role": "assistant", "content": turn.text})
        elif isinstance(turn, ToolCallRequest):
            items.append(
                {
                    "type": "function_call",
                    "call_id": turn.call_id,
                    "name": turn.name,
                    "arguments": turn.arguments,
                }
            )
        elif isinstance(turn, ToolResult):
            items.append({"type": "function_call_output", "call_id": turn.call_id, "output": turn.output})
        else:
            raise TypeError(f"Unsupported conversation turn: {turn!r}")
    return items


def parse_response_output(output: Any) -> ModelReply:
    """Pick the model's next action out of a Responses-API output list.

    A function call wins over text; only the first function call is used
    (parallel calls are disabled in the request). Reasoning items are ignored.
    """
    if not output:
        raise MalformedResponse("OpenAI response contained no output items")

    calls = [item for item in output if getattr(item, "type", None) == "function_call"]
    if calls:
        if len(calls) > 1:
            LOGGER.debug("Ignoring %s extra function calls in model output", len(calls) - 1)
        call = calls[0]
        call_id = getattr(call, "call_id", None)
        name = getattr(call, "name", None)
        if not call_id or not name:
            raise MalformedResponse("OpenAI function call is missing call_id or name")
        return ToolCallRequest(call_id=call_id, name=name, arguments=getattr(call, "arguments", "") or "")

    for item in output:
        if getattr(item, "type", None) != "message":
            continue
        texts = [
            getattr(part, "text", "")
            for part in getattr(item, "content", None) or []
            if getattr(part, "type", None) == "output_text"
        ]
        return AssistantText(text="".join(texts).strip())

    raise MalformedResponse(
        f"OpenAI response had no message or function call: {[getattr(i, 'type', None) for i in output]}"
    )
