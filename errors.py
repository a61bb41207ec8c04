"""Error taxonomy for the paper chat client.

A missing paper is not an error: lookups return ``models.PaperNotFound``.
"""

from __future__ import annotations


class PaperChatError(RuntimeError):
    """Base class for all failures raised by the chat client."""


class UpstreamUnavailable(PaperChatError):
    """The paper search API or the model endpoint is unreachable or erroring."""


class MalformedResponse(PaperChatError):
    """An upstream payload (feed or model response) could not be interpreted."""


class UnknownTool(PaperChatError):
    """The model asked for a tool that is not in the catalog."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class MalformedToolCall(PaperChatError):
    """Tool-call arguments were not a JSON object."""


class ToolLoopExceeded(PaperChatError):
    """The model kept requesting tools past the per-turn bound."""

    def __init__(self, max_rounds: int) -> None:
        super().__init__(
            f"Model requested more than {max_rounds} tool calls without answering"
        )
        self.max_rounds = max_rounds


class TransportDisconnected(PaperChatError):
    """The tool-protocol server went away mid-conversation."""


class RemoteToolError(PaperChatError):
    """A tool running on a remote server reported a failure."""
