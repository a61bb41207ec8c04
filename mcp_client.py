"""Remote tool host: tools, prompts and resources served over MCP stdio."""

from __future__ import annotations

import json
import logging
import os
import sys
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Any

import anyio
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.shared.exceptions import McpError
from mcp.types import CONNECTION_CLOSED

from errors import RemoteToolError, TransportDisconnected, UnknownTool, UpstreamUnavailable
from models import PromptInfo, ResourceInfo, ToolDescriptor
from tool_catalog import error_payload

BUNDLED_SERVER_PATH = Path(__file__).resolve().with_name("mcp_server.py")

LOGGER = logging.getLogger(__name__)

_DISCONNECT_ERRORS = (anyio.ClosedResourceError, anyio.BrokenResourceError, anyio.EndOfStream)


def load_server_config(path: str | Path) -> dict[str, dict[str, Any]]:
    """Read ``{"mcpServers": {name: {command, args, env, cwd}}}``.

    Without a config file the bundled paper server is launched with the
    current interpreter.
    """
    config_path = Path(path)
    if not config_path.exists():
        LOGGER.info("No MCP config at %s; launching bundled server %s", config_path, BUNDLED_SERVER_PATH)
        return {"research": {"command": sys.executable, "args": [str(BUNDLED_SERVER_PATH)]}}

    data = json.loads(config_path.read_text(encoding="utf-8"))
    servers = data.get("mcpServers") if isinstance(data, dict) else None
    if not isinstance(servers, dict) or not servers:
        raise ValueError(f"{config_path} must define a non-empty 'mcpServers' object")
    for name, server in servers.items():
        if not isinstance(server, dict) or not server.get("command"):
            raise ValueError(f"MCP server {name!r} in {config_path} needs a 'command'")
    return servers


class McpToolHost:
    """Connects to one or more MCP servers and exposes their tools by name.

    Use as an async context manager; the server subprocesses live until exit.
    """

    def __init__(self, servers: dict[str, dict[str, Any]]) -> None:
        self.servers = servers
        self.exit_stack = AsyncExitStack()
        self._tools: list[ToolDescriptor] = []
        self._tool_sessions: dict[str, ClientSession] = {}
        self._prompts: list[PromptInfo] = []
        self._prompt_sessions: dict[str, ClientSession] = {}
        self._resources: list[ResourceInfo] = []
        self._resource_sessions: dict[str, ClientSession] = {}

    async def __aenter__(self) -> McpToolHost:
        try:
            await self.connect()
        except BaseException:
            await self.aclose()
            raise
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def connect(self) -> None:
        for name, server in self.servers.items():
            await self._connect_server(name, server)

    async def aclose(self) -> None:
        await self.exit_stack.aclose()

    async def _connect_server(self, server_name: str, server: dict[str, Any]) -> None:
        env = {**os.environ, **{str(k): str(v) for k, v in (server.get("env") or {}).items()}}
        params = StdioServerParameters(
            command=server["command"],
            args=list(server.get("args", [])),
            env=env,
            cwd=server.get("cwd"),
        )
        read, write = await self.exit_stack.enter_async_context(stdio_client(params))
        session = await self.exit_stack.enter_async_context(ClientSession(read, write))
        await session.initialize()

        tools_response = await session.list_tools()
        for tool in tools_response.tools:
            if tool.name in self._tool_sessions:
                LOGGER.warning("Tool %s from %s shadows an earlier server; ignoring", tool.name, server_name)
                continue
            self._tool_sessions[tool.name] = session
            self._tools.append(
                ToolDescriptor(name=tool.name, description=tool.description or "", schema=tool.inputSchema)
            )
        LOGGER.info("Connected to %s with tools: %s", server_name, [t.name for t in tools_response.tools])

        try:
            prompts_response = await session.list_prompts()
            for prompt in prompts_response.prompts:
                self._prompt_sessions.setdefault(prompt.name, session)
                self._prompts.append(
                    PromptInfo(
                        name=prompt.name,
                        description=prompt.description or "",
                        arguments=[arg.name for arg in prompt.arguments or []],
                    )
                )
        except McpError as exc:
            LOGGER.info("Server %s provides no prompts: %s", server_name, exc)

        try:
            resources_response = await session.list_resources()
            for resource in resources_response.resources:
                uri = str(resource.uri)
                self._resource_sessions.setdefault(uri, session)
                self._resources.append(
                    ResourceInfo(uri=uri, name=resource.name, description=resource.description or "")
                )
            templates_response = await session.list_resource_templates()
            for template in templates_response.resourceTemplates:
                self._resource_sessions.setdefault(template.uriTemplate, session)
                self._resources.append(
                    ResourceInfo(
                        uri=template.uriTemplate,
                        name=template.name,
                        description=template.description or "",
                    )
                )
        except McpError as exc:
            LOGGER.info("Server %s provides no resources: %s", server_name, exc)

    async def list_tools(self) -> list[ToolDescriptor]:
        return list(self._tools)

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        session = self._tool_sessions.get(name)
        if session is None:
            raise UnknownTool(name)
        try:
            result = await session.call_tool(name, arguments=arguments)
        except _DISCONNECT_ERRORS as exc:
            raise TransportDisconnected(f"Lost connection to the server hosting {name}") from exc
        except McpError as exc:
            if _connection_closed(exc):
                raise TransportDisconnected(f"Lost connection to the server hosting {name}") from exc
            raise UpstreamUnavailable(f"Tool {name} failed on the server: {exc}") from exc

        text = "\n".join(
            block.text for block in result.content if getattr(block, "type", None) == "text"
        )
        if result.isError:
            return error_payload(RemoteToolError(text or f"Tool {name} failed"))
        return text

    async def list_prompts(self) -> list[PromptInfo]:
        return list(self._prompts)

    async def get_prompt(self, name: str, arguments: dict[str, str]) -> str:
        session = self._prompt_sessions.get(name)
        if session is None:
            raise KeyError(f"Prompt {name} not found.")
        try:
            response = await session.get_prompt(name, arguments=arguments)
        except _DISCONNECT_ERRORS as exc:
            raise TransportDisconnected(f"Lost connection to the server hosting prompt {name}") from exc
        except McpError as exc:
            if _connection_closed(exc):
                raise TransportDisconnected(f"Lost connection to the server hosting prompt {name}") from exc
            raise UpstreamUnavailable(f"Prompt {name} failed on the server: {exc}") from exc
        if not response.messages:
            raise ValueError(f"Prompt {name} returned no messages")
        content = response.messages[0].content
        return getattr(content, "text", None) or str(content)

    async def list_resources(self) -> list[ResourceInfo]:
        return list(self._resources)

    async def read_resource(self, uri: str) -> str:
        session = self._resource_sessions.get(uri) or self._session_for_scheme(uri)
        if session is None:
            raise KeyError(f"Resource {uri} not found.")
        try:
            response = await session.read_resource(uri)
        except _DISCONNECT_ERRORS as exc:
            raise TransportDisconnected(f"Lost connection to the server hosting {uri}") from exc
        except McpError as exc:
            if _connection_closed(exc):
                raise TransportDisconnected(f"Lost connection to the server hosting {uri}") from exc
            raise UpstreamUnavailable(f"Reading {uri} failed on the server: {exc}") from exc
        if not response.contents:
            return ""
        return "\n".join(getattr(item, "text", "") for item in response.contents)

    def _session_for_scheme(self, uri: str) -> ClientSession | None:
        if "://" not in uri:
            return None
        scheme = uri.split("://", 1)[0] + "://"
        for known_uri, session in self._resource_sessions.items():
            if known_uri.startswith(scheme):
                return session
        return None


def _connection_closed(exc: McpError) -> bool:
    # A server that exits mid-request fails the pending call with this code.
    return getattr(exc.error, "code", None) == CONNECTION_CLOSED
