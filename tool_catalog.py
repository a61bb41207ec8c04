"""Uniform tool surface over local and remote tool hosts."""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Sequence
from json import JSONDecodeError
from typing import Any, Protocol

from errors import MalformedToolCall, PaperChatError, TransportDisconnected, UnknownTool
from models import PaperRecord, PromptInfo, ResourceInfo, ToolCallRequest, ToolDescriptor, ToolResult

LOGGER = logging.getLogger(__name__)


class ToolHost(Protocol):
    """Anything that can advertise and run tools, prompts and resources."""

    async def list_tools(self) -> list[ToolDescriptor]:
        ...

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        ...

    async def list_prompts(self) -> list[PromptInfo]:
        ...

    async def get_prompt(self, name: str, arguments: dict[str, str]) -> str:
        ...

    async def list_resources(self) -> list[ResourceInfo]:
        ...

    async def read_resource(self, uri: str) -> str:
        ...


class ToolCatalog:
    """Tool catalog shown to the model, dispatching calls to the owning host.

    The tool list is discovered once by ``refresh()`` and cached; tools do not
    change during a conversation.
    """

    def __init__(self, hosts: Sequence[ToolHost]) -> None:
        self.hosts = list(hosts)
        self._tools: dict[str, tuple[ToolDescriptor, ToolHost]] = {}
        self._prompt_hosts: dict[str, ToolHost] = {}

    async def refresh(self) -> list[ToolDescriptor]:
        tools: dict[str, tuple[ToolDescriptor, ToolHost]] = {}
        prompt_hosts: dict[str, ToolHost] = {}
        for host in self.hosts:
            for descriptor in await host.list_tools():
                if descriptor.name in tools:
                    LOGGER.warning("Ignoring duplicate tool name=%s from %r", descriptor.name, host)
                    continue
                tools[descriptor.name] = (descriptor, host)
            for prompt in await host.list_prompts():
                prompt_hosts.setdefault(prompt.name, host)

        self._tools = tools
        self._prompt_hosts = prompt_hosts
        LOGGER.info("Tool catalog loaded: %s", [name for name in tools])
        return self.descriptors

    @property
    def descriptors(self) -> list[ToolDescriptor]:
        return [descriptor for descriptor, _ in self._tools.values()]

    async def invoke(self, name: str, arguments: dict[str, Any]) -> str:
        """Run one tool and return its result as transcript text.

        Raises:
            UnknownTool: ``name`` is not in the catalog.
        """
        entry = self._tools.get(name)
        if entry is None:
            raise UnknownTool(name)
        _, host = entry

        LOGGER.info("Calling tool name=%s arguments=%s", name, arguments)
        result = host.call_tool(name, arguments)
        if inspect.isawaitable(result):
            result = await result
        return serialize_tool_result(result)

    async def dispatch(self, call: ToolCallRequest) -> ToolResult:
        """Execute a model tool call, turning tool failures into an error result.

        Only a lost transport escapes; anything else becomes a payload the model
        can explain to the user.
        """
        try:
            arguments = parse_tool_arguments(call.arguments)
            output = await self.invoke(call.name, arguments)
        except TransportDisconnected:
            raise
        except (PaperChatError, ValueError, OSError) as exc:
            LOGGER.warning("Tool call name=%s call_id=%s failed: %s", call.name, call.call_id, exc)
            output = error_payload(exc)
        return ToolResult(call_id=call.call_id, output=output)

    async def list_prompts(self) -> list[PromptInfo]:
        prompts: list[PromptInfo] = []
        for host in self.hosts:
            prompts.extend(await host.list_prompts())
        return prompts

    async def get_prompt(self, name: str, arguments: dict[str, str]) -> str:
        host = self._prompt_hosts.get(name)
        if host is None:
            raise KeyError(f"Prompt {name} not found.")
        return await host.get_prompt(name, arguments)

    async def list_resources(self) -> list[ResourceInfo]:
        resources: list[ResourceInfo] = []
        for host in self.hosts:
            resources.extend(await host.list_resources())
        return resources

    async def read_resource(self, uri: str) -> str:
        """Read ``uri`` from the host advertising it, else the first host serving its scheme."""
        scheme = uri.split("://", 1)[0] + "://" if "://" in uri else ""
        fallback: ToolHost | None = None
        for host in self.hosts:
            advertised = [resource.uri for resource in await host.list_resources()]
            if uri in advertised:
                return await host.read_resource(uri)
            if fallback is None and scheme and any(item.startswith(scheme) for item in advertised):
                fallback = host
        if fallback is None:
            raise KeyError(f"Resource {uri} not found.")
        return await fallback.read_resource(uri)


def parse_tool_arguments(raw: str) -> dict[str, Any]:
    """Decode model-supplied tool arguments, which must be a JSON object."""
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except JSONDecodeError as exc:
        raise MalformedToolCall(f"Tool arguments are not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise MalformedToolCall("Tool arguments must be a JSON object")
    return parsed


def serialize_tool_result(result: Any) -> str:
    """Strings pass through; everything else becomes canonical JSON text."""
    if isinstance(result, str):
        return result
    if isinstance(result, PaperRecord):
        payload: Any = {"paper_id": result.paper_id, **result.to_dict()}
    elif hasattr(result, "to_dict"):
        payload = result.to_dict()
    else:
        payload = result
    return json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)


def error_payload(exc: Exception) -> str:
    return json.dumps(
        {"error": str(exc), "error_type": type(exc).__name__},
        sort_keys=True,
        ensure_ascii=False,
    )
