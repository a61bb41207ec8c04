"""Shared typed models for the paper chat client."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Union


@dataclass(frozen=True, slots=True)
class PaperRecord:
    """Normalized paper metadata as cached in a topic partition."""

    paper_id: str
    title: str
    summary: str
    authors: tuple[str, ...]
    published: date
    pdf_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        """On-disk / tool-result shape; the id is the key of the owning mapping."""
        return {
            "title": self.title,
            "authors": list(self.authors),
            "summary": self.summary,
            "pdf_url": self.pdf_url,
            "published": self.published.isoformat(),
        }

    @classmethod
    def from_dict(cls, paper_id: str, data: dict[str, Any]) -> PaperRecord:
        if not paper_id:
            raise ValueError("paper_id must be non-empty")
        authors = data.get("authors") or []
        if not isinstance(authors, list):
            raise ValueError(f"authors must be a list for paper_id={paper_id}")
        return cls(
            paper_id=paper_id,
            title=str(data.get("title", "")),
            summary=str(data.get("summary", "")),
            authors=tuple(str(name) for name in authors),
            published=date.fromisoformat(str(data["published"])[:10]),
            pdf_url=str(data.get("pdf_url") or ""),
        )


@dataclass(frozen=True, slots=True)
class PaperNotFound:
    """Expected lookup outcome when no partition holds the requested id."""

    paper_id: str

    @property
    def message(self) -> str:
        return f"There's no saved information related to paper {self.paper_id}."

    def to_dict(self) -> dict[str, Any]:
        return {"paper_id": self.paper_id, "error": self.message}


@dataclass(frozen=True, slots=True)
class ToolParameter:
    name: str
    type: str
    description: str = ""
    required: bool = True
    default: Any = None


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    """A callable tool as advertised to the model.

    Local tools declare ``parameters``; remotely discovered tools carry the
    JSON schema the tool host reported in ``schema`` instead.
    """

    name: str
    description: str
    parameters: tuple[ToolParameter, ...] = ()
    schema: dict[str, Any] | None = None

    def input_schema(self) -> dict[str, Any]:
        if self.schema is not None:
            return self.schema

        properties: dict[str, Any] = {}
        required: list[str] = []
        for param in self.parameters:
            prop: dict[str, Any] = {"type": param.type}
            if param.description:
                prop["description"] = param.description
            if param.default is not None:
                prop["default"] = param.default
            properties[param.name] = prop
            if param.required:
                required.append(param.name)
        return {"type": "object", "properties": properties, "required": required}


# --- Conversation turns ---


@dataclass(frozen=True, slots=True)
class UserMessage:
    text: str


@dataclass(frozen=True, slots=True)
class AssistantText:
    text: str


@dataclass(frozen=True, slots=True)
class ToolCallRequest:
    """A model's request to run a tool; ``arguments`` is the raw JSON text."""

    call_id: str
    name: str
    arguments: str


@dataclass(frozen=True, slots=True)
class ToolResult:
    call_id: str
    output: str


ConversationTurn = Union[UserMessage, AssistantText, ToolCallRequest, ToolResult]
ModelReply = Union[AssistantText, ToolCallRequest]


@dataclass(slots=True)
class PromptInfo:
    """Prompt template advertised by a tool host."""

    name: str
    description: str = ""
    arguments: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ResourceInfo:
    """Readable resource advertised by a tool host."""

    uri: str
    name: str = ""
    description: str = ""
