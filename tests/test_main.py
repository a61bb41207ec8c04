import asyncio
from contextlib import AsyncExitStack
from pathlib import Path
from unittest.mock import patch

from config import ChatConfig
from main import build_responder, open_tool_host
from paper_tools import LocalToolHost


def test_build_responder_selects_provider() -> None:
    with patch("main.AnthropicResponder") as mock_anthropic, patch("main.OpenAIResponder") as mock_openai:
        build_responder(ChatConfig(llm_provider="anthropic", claude_model="claude-test", max_tokens=100))
        build_responder(ChatConfig(openai_model="gpt-test"))

    mock_anthropic.assert_called_once_with(model="claude-test", max_tokens=100)
    mock_openai.assert_called_once_with(model="gpt-test")


def test_open_tool_host_local_mode(tmp_path: Path) -> None:
    config = ChatConfig(paper_dir=str(tmp_path / "papers"))

    async def _open():
        async with AsyncExitStack() as stack:
            return await open_tool_host(config, stack)

    host = asyncio.run(_open())

    assert isinstance(host, LocalToolHost)
    assert host.store.base_dir == tmp_path / "papers"
