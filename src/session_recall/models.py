"""Canonical data models."""

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


def exchange_id(archive_path: str, line_start: int, line_end: int) -> str:
    """Stable ID for an exchange, derived from its position in the archive."""
    key = f"{archive_path}:{line_start}-{line_end}"
    return hashlib.sha256(key.encode()).hexdigest()[:16]


@dataclass
class ConversationFile:
    """A source transcript discovered under one of the provider layouts."""

    source_provider: str  # claude_code, pi
    project_name: str  # Raw directory name, e.g. "--Users-a-b--"
    path: Path
    modified_at: float
    size_bytes: int


@dataclass
class ArchivedFile:
    """The archive copy of a ConversationFile."""

    archive_path: Path
    normalized_project: str


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation made by the assistant."""

    tool_name: str
    tool_id: str | None = None
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Exchange:
    """One user turn plus every assistant turn that answered it."""

    id: str
    project: str
    timestamp: str  # ISO 8601, empty when the transcript carries none
    user_message: str
    assistant_message: str
    tool_calls: tuple[ToolCall, ...]
    archive_path: str
    line_start: int
    line_end: int
    # Reasoning segments, kept for bookkeeping and never rendered or indexed
    thinking: tuple[str, ...] = ()

    @property
    def content(self) -> str:
        """Text that is embedded and keyword-indexed for this exchange."""
        if not self.assistant_message:
            return self.user_message
        return f"{self.user_message}\n\n{self.assistant_message}"


@dataclass
class IndexEntry:
    """A persisted search document derived from one Exchange."""

    id: str
    archive_path: str
    project: str
    timestamp: str
    ts: int  # Unix timestamp (seconds), used for date filtering
    line_start: int
    line_end: int
    content: str
    tool_names: list[str]
    embedding: list[float]
    generation: int

    @classmethod
    def from_exchange(
        cls,
        exchange: Exchange,
        ts: int,
        embedding: list[float],
        generation: int,
    ) -> "IndexEntry":
        return cls(
            id=exchange.id,
            archive_path=exchange.archive_path,
            project=exchange.project,
            timestamp=exchange.timestamp,
            ts=ts,
            line_start=exchange.line_start,
            line_end=exchange.line_end,
            content=exchange.content,
            tool_names=[call.tool_name for call in exchange.tool_calls],
            embedding=embedding,
            generation=generation,
        )

    def to_typesense_doc(self) -> dict:
        """Convert to Typesense document format."""
        return {
            "id": self.id,
            "archive_path": self.archive_path,
            "project": self.project,
            "timestamp": self.timestamp,
            "ts": self.ts,
            "line_start": self.line_start,
            "line_end": self.line_end,
            "content": self.content,
            "tool_names": self.tool_names,
            "embedding": self.embedding,
            "generation": self.generation,
        }


@dataclass
class SearchResult:
    """A ranked search hit pointing at a line range in the archive."""

    project: str
    timestamp: str
    archive_path: str
    line_start: int
    line_end: int
    snippet: str
    score: float
    ts: int = 0
    matched_modes: tuple[str, ...] = ()

    @property
    def key(self) -> tuple[str, int, int]:
        return (self.archive_path, self.line_start, self.line_end)


@dataclass
class ConceptMatch:
    """Best match for one concept inside a multi-concept result."""

    concept: str
    line_start: int
    line_end: int
    snippet: str
    score: float


@dataclass
class MultiConceptResult:
    """A conversation that matched every concept of a multi-concept query."""

    project: str
    timestamp: str
    archive_path: str
    line_start: int
    line_end: int
    snippet: str
    score: float
    ts: int = 0
    concept_matches: list[ConceptMatch] = field(default_factory=list)
