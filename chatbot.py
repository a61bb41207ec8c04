"""Interactive line-based chat surface."""

from __future__ import annotations

import logging
import shlex
from collections.abc import Callable

from conversation import ConversationLoop
from errors import PaperChatError
from paper_store import normalize_topic
from paper_tools import FOLDERS_URI, RESOURCE_SCHEME
from tool_catalog import ToolCatalog

EXIT_COMMAND = "quit"

LOGGER = logging.getLogger(__name__)

BANNER = """Type your queries or 'quit' to exit.
Example commands:
  - Search for 3 papers on "quantum computing"
  - Info on paper 2304.12345
  - @folders to list saved topics, @<topic> to read one
  - /tools, /prompts, /resources, /prompt <name> key=value ..., /reset"""


class ChatBot:
    """Reads one line at a time and routes it to a command or the conversation loop."""

    def __init__(
        self,
        conversation: ConversationLoop,
        catalog: ToolCatalog,
        read_line: Callable[[str], str] = input,
        write: Callable[[str], None] = print,
    ) -> None:
        self.conversation = conversation
        self.catalog = catalog
        self.read_line = read_line
        self.write = write

    async def run(self) -> None:
        self.write(BANNER)
        while True:
            try:
                line = self.read_line("\nQuery: ")
            except EOFError:
                break
            if not await self.handle_line(line):
                break
        LOGGER.info("Chat loop finished")

    async def handle_line(self, line: str) -> bool:
        """Process one input line; return False when the user asked to quit."""
        query = line.strip()
        if not query:
            return True
        if query.lower() == EXIT_COMMAND:
            return False

        try:
            if query.startswith("@"):
                await self._handle_at_command(query[1:].strip())
            elif query.startswith("/"):
                await self._handle_slash_command(query)
            else:
                self.write(await self.conversation.process_query(query))
        except PaperChatError as exc:
            LOGGER.warning("Turn failed: %s", exc)
            self.write(f"Error: {exc}")
        except (KeyError, ValueError) as exc:
            self.write(f"Error: {exc.args[0] if exc.args else exc}")
        return True

    async def _handle_at_command(self, target: str) -> None:
        lowered = target.lower()
        if lowered in ("folders", "folder"):
            self.write(await self.catalog.read_resource(FOLDERS_URI))
        elif lowered in ("tools", "tool"):
            self._write_tools()
        elif lowered in ("resources", "resource"):
            await self._write_resources()
        else:
            self.write(await self.catalog.read_resource(f"{RESOURCE_SCHEME}{normalize_topic(target)}"))

    async def _handle_slash_command(self, query: str) -> None:
        parts = shlex.split(query)
        command = parts[0].lower()
        if command == "/tools":
            self._write_tools()
        elif command == "/prompts":
            await self._write_prompts()
        elif command == "/resources":
            await self._write_resources()
        elif command == "/reset":
            self.conversation.reset()
            self.write("Conversation history cleared.")
        elif command == "/prompt":
            if len(parts) < 2:
                self.write("Usage: /prompt <name> <arg1=value1> ...")
                return
            arguments = dict(arg.split("=", 1) for arg in parts[2:] if "=" in arg)
            prompt_text = await self.catalog.get_prompt(parts[1], arguments)
            self.write(await self.conversation.process_query(prompt_text))
        else:
            self.write(f"Unknown command: {command}")

    def _write_tools(self) -> None:
        descriptors = self.catalog.descriptors
        if not descriptors:
            self.write("No tools found.")
            return
        lines = ["Available tools:"]
        for tool in descriptors:
            schema = tool.input_schema()
            required = set(schema.get("required", []))
            lines.append(f"  {tool.name}: {tool.description}")
            for name, prop in schema.get("properties", {}).items():
                marker = "required" if name in required else "optional"
                lines.append(f"    - {name}: {prop.get('type', 'unknown')} ({marker})")
        self.write("\n".join(lines))

    async def _write_prompts(self) -> None:
        prompts = await self.catalog.list_prompts()
        if not prompts:
            self.write("No prompts found.")
            return
        lines = ["Available prompts:"]
        for prompt in prompts:
            lines.append(f"  {prompt.name}: {prompt.description}")
            if prompt.arguments:
                lines.append(f"    arguments: {', '.join(prompt.arguments)}")
        self.write("\n".join(lines))

    async def _write_resources(self) -> None:
        resources = await self.catalog.list_resources()
        if not resources:
            self.write("No resources found.")
            return
        lines = ["Available resources:"]
        lines.extend(f"  {resource.uri}" for resource in resources)
        self.write("\n".join(lines))
