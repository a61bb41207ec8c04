"""Environment-driven settings for the paper chat client."""

from __future__ import annotations

import os
from dataclasses import dataclass

LLM_PROVIDERS = ("openai", "anthropic")
TOOL_MODES = ("local", "mcp")

_DEFAULT_MAX_TOOL_ROUNDS = 5


@dataclass(frozen=True, slots=True)
class ChatConfig:
    """Runtime configuration, normally read once from the environment."""

    llm_provider: str = "openai"
    tool_mode: str = "local"
    openai_model: str = "gpt-4.1"
    claude_model: str = "claude-sonnet-4-5"
    max_tokens: int = 2048
    paper_dir: str = "papers"
    mcp_servers_config: str = "mcp_servers.json"
    max_tool_rounds: int = _DEFAULT_MAX_TOOL_ROUNDS
    arxiv_api_url: str = "http://export.arxiv.org/api/query"
    arxiv_timeout_seconds: float = 30.0
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if self.llm_provider not in LLM_PROVIDERS:
            raise ValueError(
                f"PAPER_CHAT_LLM_PROVIDER must be one of {LLM_PROVIDERS}, got {self.llm_provider!r}"
            )
        if self.tool_mode not in TOOL_MODES:
            raise ValueError(f"PAPER_CHAT_TOOL_MODE must be one of {TOOL_MODES}, got {self.tool_mode!r}")
        if self.max_tool_rounds < 1:
            raise ValueError("PAPER_CHAT_MAX_TOOL_ROUNDS must be >= 1")
        if self.max_tokens < 1:
            raise ValueError("PAPER_CHAT_MAX_TOKENS must be >= 1")

    @classmethod
    def from_env(cls) -> ChatConfig:
        """Build a config from environment variables (call after ``load_dotenv``)."""
        return cls(
            llm_provider=os.getenv("PAPER_CHAT_LLM_PROVIDER", "openai").strip().lower(),
            tool_mode=os.getenv("PAPER_CHAT_TOOL_MODE", "local").strip().lower(),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4.1"),
            claude_model=os.getenv("CLAUDE_MODEL", "claude-sonnet-4-5"),
            max_tokens=int(os.getenv("PAPER_CHAT_MAX_TOKENS", "2048")),
            paper_dir=os.getenv("PAPER_DIR", "papers"),
            mcp_servers_config=os.getenv("MCP_SERVERS_CONFIG", "mcp_servers.json"),
            max_tool_rounds=int(
                os.getenv("PAPER_CHAT_MAX_TOOL_ROUNDS", str(_DEFAULT_MAX_TOOL_ROUNDS))
            ),
            arxiv_api_url=os.getenv("ARXIV_API_URL", "http://export.arxiv.org/api/query"),
            arxiv_timeout_seconds=float(os.getenv("ARXIV_TIMEOUT_SECONDS", "30")),
            log_level=os.getenv("LOG_LEVEL", "WARNING").upper(),
        )
