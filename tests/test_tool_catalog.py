from __future__ import annotations

import asyncio
import json
from datetime import date
from typing import Any

import pytest

from errors import MalformedToolCall, TransportDisconnected, UnknownTool, UpstreamUnavailable
from models import PaperNotFound, PaperRecord, PromptInfo, ResourceInfo, ToolCallRequest, ToolDescriptor
from tool_catalog import ToolCatalog, error_payload, parse_tool_arguments, serialize_tool_result


class FakeHost:
    """In-memory tool host; ``results`` maps tool name to a value or an exception."""

    def __init__(
        self,
        tools: list[str],
        results: dict[str, Any] | None = None,
        prompts: list[str] | None = None,
        resources: dict[str, str] | None = None,
        async_calls: bool = True,
    ) -> None:
        self.tools = tools
        self.results = results or {}
        self.prompts = prompts or []
        self.resources = resources or {}
        self.async_calls = async_calls
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def list_tools(self) -> list[ToolDescriptor]:
        return [ToolDescriptor(name=name, description=f"{name} tool") for name in self.tools]

    def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        self.calls.append((name, arguments))
        if self.async_calls:
            return self._call_async(name)
        return self._result(name)

    async def _call_async(self, name: str) -> Any:
        return self._result(name)

    def _result(self, name: str) -> Any:
        result = self.results.get(name)
        if isinstance(result, Exception):
            raise result
        return result

    async def list_prompts(self) -> list[PromptInfo]:
        return [PromptInfo(name=name) for name in self.prompts]

    async def get_prompt(self, name: str, arguments: dict[str, str]) -> str:
        return f"{name}:{arguments}"

    async def list_resources(self) -> list[ResourceInfo]:
        return [ResourceInfo(uri=uri) for uri in self.resources]

    async def read_resource(self, uri: str) -> str:
        return self.resources.get(uri, f"dynamic {uri}")


def _catalog(*hosts: FakeHost) -> ToolCatalog:
    catalog = ToolCatalog(list(hosts))
    asyncio.run(catalog.refresh())
    return catalog


def test_refresh_keeps_first_host_for_duplicate_names() -> None:
    first = FakeHost(["search_papers"], {"search_papers": "first"})
    second = FakeHost(["search_papers", "extract_info"], {"search_papers": "second"})
    catalog = _catalog(first, second)

    assert [tool.name for tool in catalog.descriptors] == ["search_papers", "extract_info"]
    assert asyncio.run(catalog.invoke("search_papers", {})) == "first"
    assert second.calls == []


def test_invoke_unknown_tool_raises() -> None:
    catalog = _catalog(FakeHost(["search_papers"]))
    with pytest.raises(UnknownTool, match="frobnicate"):
        asyncio.run(catalog.invoke("frobnicate", {}))


def test_invoke_accepts_synchronous_host_results() -> None:
    host = FakeHost(["search_papers"], {"search_papers": ["2401.1", "2401.2"]}, async_calls=False)
    catalog = _catalog(host)

    assert asyncio.run(catalog.invoke("search_papers", {"topic": "x"})) == '["2401.1", "2401.2"]'
    assert host.calls == [("search_papers", {"topic": "x"})]


def test_dispatch_echoes_call_id_and_parses_arguments() -> None:
    host = FakeHost(["search_papers"], {"search_papers": ["a"]})
    catalog = _catalog(host)

    result = asyncio.run(
        catalog.dispatch(ToolCallRequest("call_7", "search_papers", '{"topic": "llm", "max_results": 2}'))
    )

    assert result.call_id == "call_7"
    assert json.loads(result.output) == ["a"]
    assert host.calls == [("search_papers", {"topic": "llm", "max_results": 2})]


@pytest.mark.parametrize(
    "call, error_type",
    [
        (ToolCallRequest("c1", "missing_tool", "{}"), "UnknownTool"),
        (ToolCallRequest("c2", "search_papers", "[1, 2]"), "MalformedToolCall"),
        (ToolCallRequest("c3", "search_papers", "{not json"), "MalformedToolCall"),
    ],
)
def test_dispatch_turns_bad_calls_into_error_results(call: ToolCallRequest, error_type: str) -> None:
    catalog = _catalog(FakeHost(["search_papers"]))

    result = asyncio.run(catalog.dispatch(call))

    assert result.call_id == call.call_id
    assert json.loads(result.output)["error_type"] == error_type


def test_dispatch_turns_tool_failures_into_error_results() -> None:
    host = FakeHost(["search_papers"], {"search_papers": UpstreamUnavailable("arXiv request failed")})
    catalog = _catalog(host)

    result = asyncio.run(catalog.dispatch(ToolCallRequest("c1", "search_papers", '{"topic": "x"}')))

    assert json.loads(result.output) == {"error": "arXiv request failed", "error_type": "UpstreamUnavailable"}


def test_dispatch_propagates_transport_disconnect() -> None:
    host = FakeHost(["search_papers"], {"search_papers": TransportDisconnected("server gone")})
    catalog = _catalog(host)

    with pytest.raises(TransportDisconnected):
        asyncio.run(catalog.dispatch(ToolCallRequest("c1", "search_papers", "{}")))


def test_prompts_route_to_advertising_host() -> None:
    catalog = _catalog(FakeHost(["a"]), FakeHost(["b"], prompts=["generate_search_prompt"]))

    assert [prompt.name for prompt in asyncio.run(catalog.list_prompts())] == ["generate_search_prompt"]
    assert asyncio.run(catalog.get_prompt("generate_search_prompt", {"topic": "x"})).startswith(
        "generate_search_prompt:"
    )
    with pytest.raises(KeyError):
        asyncio.run(catalog.get_prompt("unknown", {}))


def test_read_resource_exact_match_then_scheme_fallback() -> None:
    host = FakeHost([], resources={"papers://folders": "# Available Topics"})
    catalog = _catalog(host)

    assert asyncio.run(catalog.read_resource("papers://folders")) == "# Available Topics"
    assert asyncio.run(catalog.read_resource("papers://robotics")) == "dynamic papers://robotics"
    with pytest.raises(KeyError):
        asyncio.run(catalog.read_resource("other://thing"))


def test_parse_tool_arguments() -> None:
    assert parse_tool_arguments("") == {}
    assert parse_tool_arguments("  ") == {}
    assert parse_tool_arguments('{"paper_id": "2401.1"}') == {"paper_id": "2401.1"}
    with pytest.raises(MalformedToolCall):
        parse_tool_arguments('"just a string"')


def test_serialize_tool_result_shapes() -> None:
    record = PaperRecord(
        paper_id="2401.1",
        title="T",
        summary="S",
        authors=("A",),
        published=date(2024, 1, 15),
        pdf_url="http://arxiv.org/pdf/2401.1",
    )

    assert serialize_tool_result("plain text") == "plain text"
    assert json.loads(serialize_tool_result(record)) == {
        "paper_id": "2401.1",
        "title": "T",
        "authors": ["A"],
        "summary": "S",
        "pdf_url": "http://arxiv.org/pdf/2401.1",
        "published": "2024-01-15",
    }
    assert json.loads(serialize_tool_result(PaperNotFound("x"))) == {
        "paper_id": "x",
        "error": "There's no saved information related to paper x.",
    }


def test_error_payload_names_exception_type() -> None:
    assert json.loads(error_payload(ValueError("bad"))) == {"error": "bad", "error_type": "ValueError"}
