from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence

import pytest

from conversation import ConversationLoop
from errors import ToolLoopExceeded, UpstreamUnavailable
from models import (
    AssistantText,
    ConversationTurn,
    ModelReply,
    PromptInfo,
    ResourceInfo,
    ToolCallRequest,
    ToolDescriptor,
    ToolResult,
    UserMessage,
)
from tool_catalog import ToolCatalog


class ScriptedResponder:
    """Returns queued replies in order and records the history it was shown."""

    def __init__(self, replies: list[ModelReply | Exception]) -> None:
        self.replies = list(replies)
        self.seen: list[list[ConversationTurn]] = []
        self.tools_seen: list[list[str]] = []

    def respond(self, history: Sequence[ConversationTurn], tools: Sequence[ToolDescriptor]) -> ModelReply:
        self.seen.append(list(history))
        self.tools_seen.append([tool.name for tool in tools])
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class LoopingResponder:
    def __init__(self) -> None:
        self.calls = 0

    def respond(self, history: Sequence[ConversationTurn], tools: Sequence[ToolDescriptor]) -> ModelReply:
        self.calls += 1
        return ToolCallRequest(f"call_{self.calls}", "search_papers", '{"topic": "loops"}')


class EchoHost:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []

    async def list_tools(self) -> list[ToolDescriptor]:
        return [ToolDescriptor("search_papers", "Search"), ToolDescriptor("extract_info", "Lookup")]

    async def call_tool(self, name: str, arguments: dict) -> list[str]:
        self.calls.append((name, arguments))
        return ["2401.00001v1", "2401.00002v1"]

    async def list_prompts(self) -> list[PromptInfo]:
        return []

    async def get_prompt(self, name: str, arguments: dict[str, str]) -> str:
        raise KeyError(name)

    async def list_resources(self) -> list[ResourceInfo]:
        return []

    async def read_resource(self, uri: str) -> str:
        raise KeyError(uri)


@pytest.fixture
def host() -> EchoHost:
    return EchoHost()


@pytest.fixture
def catalog(host: EchoHost) -> ToolCatalog:
    catalog = ToolCatalog([host])
    asyncio.run(catalog.refresh())
    return catalog


def test_text_reply_ends_turn_without_tools(catalog: ToolCatalog, host: EchoHost) -> None:
    responder = ScriptedResponder([AssistantText("Hello!")])
    loop = ConversationLoop(responder, catalog)

    assert asyncio.run(loop.process_query("hi")) == "Hello!"
    assert loop.history == [UserMessage("hi"), AssistantText("Hello!")]
    assert host.calls == []
    assert responder.tools_seen == [["search_papers", "extract_info"]]


def test_tool_call_result_is_paired_by_call_id(catalog: ToolCatalog, host: EchoHost) -> None:
    call = ToolCallRequest("call_abc", "search_papers", '{"topic": "quantum computing", "max_results": 2}')
    responder = ScriptedResponder([call, AssistantText("Found two papers.")])
    loop = ConversationLoop(responder, catalog)

    answer = asyncio.run(loop.process_query("Search for 2 papers on quantum computing"))

    assert answer == "Found two papers."
    assert host.calls == [("search_papers", {"topic": "quantum computing", "max_results": 2})]
    user, request, result, final = loop.history
    assert user == UserMessage("Search for 2 papers on quantum computing")
    assert request == call
    assert isinstance(result, ToolResult)
    assert result.call_id == "call_abc"
    assert json.loads(result.output) == ["2401.00001v1", "2401.00002v1"]
    assert final == AssistantText("Found two papers.")
    # The second model call sees the tool call and its result.
    assert responder.seen[1][-2:] == [request, result]


def test_failing_tool_call_is_fed_back_as_error(catalog: ToolCatalog) -> None:
    responder = ScriptedResponder(
        [ToolCallRequest("c1", "delete_papers", "{}"), AssistantText("That tool does not exist.")]
    )
    loop = ConversationLoop(responder, catalog)

    assert asyncio.run(loop.process_query("delete everything")) == "That tool does not exist."
    tool_result = loop.history[2]
    assert isinstance(tool_result, ToolResult)
    assert json.loads(tool_result.output)["error_type"] == "UnknownTool"


def test_tool_loop_is_bounded(catalog: ToolCatalog, host: EchoHost) -> None:
    responder = LoopingResponder()
    loop = ConversationLoop(responder, catalog, max_tool_rounds=3)

    with pytest.raises(ToolLoopExceeded):
        asyncio.run(loop.process_query("loop forever"))

    assert len(host.calls) == 3
    assert responder.calls == 4


def test_history_persists_across_turns_and_resets(catalog: ToolCatalog) -> None:
    responder = ScriptedResponder([AssistantText("one"), AssistantText("two")])
    loop = ConversationLoop(responder, catalog)

    asyncio.run(loop.process_query("first"))
    asyncio.run(loop.process_query("second"))

    assert responder.seen[1][:2] == [UserMessage("first"), AssistantText("one")]
    loop.reset()
    assert loop.history == []


def test_model_failure_propagates(catalog: ToolCatalog) -> None:
    loop = ConversationLoop(ScriptedResponder([UpstreamUnavailable("model endpoint down")]), catalog)

    with pytest.raises(UpstreamUnavailable):
        asyncio.run(loop.process_query("hi"))


def test_max_tool_rounds_must_be_positive(catalog: ToolCatalog) -> None:
    with pytest.raises(ValueError):
        ConversationLoop(ScriptedResponder([]), catalog, max_tool_rounds=0)
