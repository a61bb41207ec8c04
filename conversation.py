"""Conversation loop: model call, tool dispatch, resubmit until the model answers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Protocol

from errors import ToolLoopExceeded
from models import (
    AssistantText,
    ConversationTurn,
    ModelReply,
    ToolCallRequest,
    ToolDescriptor,
    UserMessage,
)
from tool_catalog import ToolCatalog

DEFAULT_MAX_TOOL_ROUNDS = 5

LOGGER = logging.getLogger(__name__)


class Responder(Protocol):
    """A model backend: given the transcript and tools, return the next action."""

    def respond(
        self, history: Sequence[ConversationTurn], tools: Sequence[ToolDescriptor]
    ) -> ModelReply:
        ...


class ConversationLoop:
    """Owns the transcript for one process run and drives each user turn.

    Per turn: append the utterance, ask the model, and while it asks for a
    tool, run it through the catalog, record call and result under the same
    call id, and ask again. The turn ends on the first text reply. More than
    ``max_tool_rounds`` tool calls in one turn raises ``ToolLoopExceeded``.
    """

    def __init__(
        self,
        responder: Responder,
        catalog: ToolCatalog,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
    ) -> None:
        if max_tool_rounds < 1:
            raise ValueError("max_tool_rounds must be >= 1")
        self.responder = responder
        self.catalog = catalog
        self.max_tool_rounds = max_tool_rounds
        self.history: list[ConversationTurn] = []

    def reset(self) -> None:
        self.history.clear()

    async def process_query(self, query: str) -> str:
        """Run one user turn to completion and return the model's answer.

        Raises:
            UpstreamUnavailable / MalformedResponse: The model call failed.
            TransportDisconnected: The remote tool host went away.
            ToolLoopExceeded: The model never settled on a text answer.
        """
        self.history.append(UserMessage(query))
        rounds = 0

        while True:
            reply = await self._ask_model()

            if isinstance(reply, AssistantText):
                self.history.append(reply)
                LOGGER.info("Turn complete after %s tool calls", rounds)
                return reply.text

            if not isinstance(reply, ToolCallRequest):
                raise TypeError(f"Responder returned unsupported reply: {reply!r}")

            rounds += 1
            if rounds > self.max_tool_rounds:
                LOGGER.warning(
                    "Stopping turn: tool call %s exceeds max_tool_rounds=%s (last tool=%s)",
                    rounds,
                    self.max_tool_rounds,
                    reply.name,
                )
                raise ToolLoopExceeded(self.max_tool_rounds)

            result = await self.catalog.dispatch(reply)
            self.history.append(reply)
            self.history.append(result)

    async def _ask_model(self) -> ModelReply:
        # SDK clients block; keep the event loop (and the stdio transport) free.
        return await asyncio.to_thread(
            self.responder.respond, list(self.history), self.catalog.descriptors
        )
