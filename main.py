"""CLI entrypoint for the arXiv paper chat client."""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack

from dotenv import load_dotenv

from anthropic_client import AnthropicResponder
from arxiv_feed import ArxivSearchGateway
from chatbot import ChatBot
from config import ChatConfig
from conversation import ConversationLoop, Responder
from llm_client import OpenAIResponder
from mcp_client import McpToolHost, load_server_config
from paper_store import PaperStore
from paper_tools import LocalToolHost
from tool_catalog import ToolCatalog, ToolHost


def build_responder(config: ChatConfig) -> Responder:
    """Create the model backend selected by PAPER_CHAT_LLM_PROVIDER."""
    if config.llm_provider == "anthropic":
        return AnthropicResponder(model=config.claude_model, max_tokens=config.max_tokens)

    return OpenAIResponder(model=config.openai_model)


async def open_tool_host(config: ChatConfig, stack: AsyncExitStack) -> ToolHost:
    """Local tools run in-process; "mcp" mode starts the configured servers."""
    if config.tool_mode == "mcp":
        servers = load_server_config(config.mcp_servers_config)
        return await stack.enter_async_context(McpToolHost(servers))

    store = PaperStore(config.paper_dir)
    gateway = ArxivSearchGateway(store, api_url=config.arxiv_api_url, timeout=config.arxiv_timeout_seconds)
    return LocalToolHost(store, gateway)


async def run_chat(config: ChatConfig) -> None:
    responder = build_responder(config)

    async with AsyncExitStack() as stack:
        host = await open_tool_host(config, stack)
        catalog = ToolCatalog([host])
        tools = await catalog.refresh()
        logging.info(
            "Chat ready: provider=%s tool_mode=%s tools=%s",
            config.llm_provider,
            config.tool_mode,
            [tool.name for tool in tools],
        )

        conversation = ConversationLoop(responder, catalog, max_tool_rounds=config.max_tool_rounds)
        await ChatBot(conversation, catalog).run()


def main() -> None:
    """Load .env, configure logging and run the interactive chat."""
    load_dotenv()
    config = ChatConfig.from_env()
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(message)s")

    try:
        asyncio.run(run_chat(config))
    except KeyboardInterrupt:
        logging.info("Interrupted by user")


if __name__ == "__main__":
    main()
