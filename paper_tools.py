"""In-process paper tools: search, lookup, topic resources and the search prompt."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

from arxiv_feed import DEFAULT_MAX_RESULTS, ArxivSearchGateway
from errors import MalformedToolCall, UnknownTool
from models import (
    PaperNotFound,
    PaperRecord,
    PromptInfo,
    ResourceInfo,
    ToolDescriptor,
    ToolParameter,
)
from paper_store import PARTITION_READ_ERRORS, PaperStore

RESOURCE_SCHEME = "papers://"
FOLDERS_URI = "papers://folders"
SEARCH_PROMPT_NAME = "generate_search_prompt"
_SUMMARY_PREVIEW_CHARS = 500

LOGGER = logging.getLogger(__name__)


class ToolKind(str, Enum):
    """The fixed set of tools this client implements locally."""

    SEARCH_PAPERS = "search_papers"
    EXTRACT_INFO = "extract_info"


LOCAL_TOOL_DESCRIPTORS: dict[ToolKind, ToolDescriptor] = {
    ToolKind.SEARCH_PAPERS: ToolDescriptor(
        name=ToolKind.SEARCH_PAPERS.value,
        description="Search for papers on arXiv based on a topic and store their information.",
        parameters=(
            ToolParameter("topic", "string", "The topic to search for"),
            ToolParameter(
                "max_results",
                "integer",
                "Maximum number of results to retrieve",
                required=False,
                default=DEFAULT_MAX_RESULTS,
            ),
        ),
    ),
    ToolKind.EXTRACT_INFO: ToolDescriptor(
        name=ToolKind.EXTRACT_INFO.value,
        description="Search for information about a specific paper across all topic directories.",
        parameters=(ToolParameter("paper_id", "string", "The ID of the paper to look for"),),
    ),
}

SEARCH_PROMPT = PromptInfo(
    name=SEARCH_PROMPT_NAME,
    description="Generate a prompt to find and discuss academic papers on a specific topic.",
    arguments=["topic", "num_papers"],
)


def lookup_paper(store: PaperStore, paper_id: str) -> PaperRecord | PaperNotFound:
    """Return the cached record for ``paper_id`` or a not-found result."""
    record = store.find_by_id(paper_id)
    if record is None:
        LOGGER.info("No cached paper for paper_id=%s", paper_id)
        return PaperNotFound(paper_id)
    return record


def render_topics_markdown(store: PaperStore) -> str:
    lines = ["# Available Topics", ""]
    topics = store.list_topics()
    if topics:
        lines.extend(f"- {topic}" for topic in topics)
        lines.extend(["", "Use @<topic> to read the papers in that folder."])
    else:
        lines.append("No topics found.")
    return "\n".join(lines)


def render_topic_markdown(store: PaperStore, topic: str) -> str:
    """Markdown digest of one topic partition."""
    try:
        records = store.read_partition(topic)
    except PARTITION_READ_ERRORS as exc:
        LOGGER.warning("Cannot render topic=%s: %s", topic, exc)
        records = None
    if records is None:
        return f"# No papers for {topic}"

    parts = [f"# Papers on {topic.replace('_', ' ').title()}\n\n", f"Total papers: {len(records)}\n\n"]
    for paper_id, record in records.items():
        summary = record.summary
        if len(summary) > _SUMMARY_PREVIEW_CHARS:
            summary = summary[:_SUMMARY_PREVIEW_CHARS] + "…"
        parts.append(
            f"## {record.title}\n"
            f"- **ID**: {paper_id}\n"
            f"- **Authors**: {', '.join(record.authors)}\n"
            f"- **Published**: {record.published.isoformat()}\n"
            f"- **PDF**: [link]({record.pdf_url})\n\n"
            f"### Summary\n{summary}\n\n---\n\n"
        )
    return "".join(parts)


def build_search_prompt(topic: str, num_papers: int = DEFAULT_MAX_RESULTS) -> str:
    return (
        f"Search for {num_papers} academic papers about '{topic}' using the search_papers tool. "
        "Follow these instructions:\n"
        f"1. First, search for papers using search_papers(topic='{topic}', max_results={num_papers})\n"
        "2. For each paper found, extract and organize the following information:\n"
        "   - Paper title\n"
        "   - Authors\n"
        "   - Publication date\n"
        "   - Brief summary of the key findings\n"
        "   - Main contributions or innovations\n"
        "   - Methodologies used\n"
        f"   - Relevance to the topic '{topic}'\n"
        "3. Provide a comprehensive summary that includes:\n"
        f"   - Overview of the current state of research in '{topic}'\n"
        "   - Common themes and trends across the papers\n"
        "   - Key research gaps or areas for future investigation\n"
        "   - Most impactful or influential papers in this area\n"
        "4. Organize your findings in a clear, structured format with headings and "
        "bullet points for easy readability.\n\n"
        "Please present both detailed information about each paper and a high-level "
        f"synthesis of the research landscape in {topic}."
    )


def resource_topic(uri: str) -> str:
    """Extract the topic key from a ``papers://<topic>`` URI."""
    if not uri.startswith(RESOURCE_SCHEME):
        raise ValueError(f"Unsupported resource URI: {uri}")
    return uri[len(RESOURCE_SCHEME):].strip("/")


class LocalToolHost:
    """Serves the paper tools, topic resources and search prompt in-process."""

    def __init__(self, store: PaperStore, gateway: ArxivSearchGateway) -> None:
        self.store = store
        self.gateway = gateway
        self._handlers = {
            ToolKind.SEARCH_PAPERS: self._search_papers,
            ToolKind.EXTRACT_INFO: self._extract_info,
        }

    async def list_tools(self) -> list[ToolDescriptor]:
        return [LOCAL_TOOL_DESCRIPTORS[kind] for kind in ToolKind]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        try:
            kind = ToolKind(name)
        except ValueError:
            raise UnknownTool(name) from None
        handler = self._handlers[kind]
        # Search blocks on HTTP and disk; run it off the event loop.
        return await asyncio.to_thread(handler, arguments)

    async def list_prompts(self) -> list[PromptInfo]:
        return [SEARCH_PROMPT]

    async def get_prompt(self, name: str, arguments: dict[str, str]) -> str:
        if name != SEARCH_PROMPT_NAME:
            raise KeyError(f"Prompt {name} not found.")
        topic = arguments.get("topic", "").strip()
        if not topic:
            raise ValueError("Prompt argument 'topic' is required")
        num_papers = int(arguments.get("num_papers", DEFAULT_MAX_RESULTS))
        return build_search_prompt(topic, num_papers)

    async def list_resources(self) -> list[ResourceInfo]:
        resources = [ResourceInfo(uri=FOLDERS_URI, name="topics", description="List available topic folders")]
        for topic in self.store.list_topics():
            resources.append(
                ResourceInfo(uri=f"{RESOURCE_SCHEME}{topic}", name=topic, description=f"Papers on {topic}")
            )
        return resources

    async def read_resource(self, uri: str) -> str:
        if uri == FOLDERS_URI:
            return render_topics_markdown(self.store)
        return render_topic_markdown(self.store, resource_topic(uri))

    def _search_papers(self, arguments: dict[str, Any]) -> list[str]:
        topic = _require_str(arguments, "topic")
        max_results = _coerce_int(arguments.get("max_results", DEFAULT_MAX_RESULTS), "max_results")
        return self.gateway.search(topic, max_results)

    def _extract_info(self, arguments: dict[str, Any]) -> PaperRecord | PaperNotFound:
        return lookup_paper(self.store, _require_str(arguments, "paper_id"))


def _require_str(arguments: dict[str, Any], key: str) -> str:
    value = arguments.get(key)
    if not isinstance(value, str) or not value.strip():
        raise MalformedToolCall(f"Argument '{key}' must be a non-empty string")
    return value.strip()


def _coerce_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise MalformedToolCall(f"Argument '{key}' must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise MalformedToolCall(f"Argument '{key}' must be an integer, got {value!r}")

