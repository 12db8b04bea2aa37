"""Parser for assistant conversation transcripts.

Transcripts are JSONL files; each line is classified on its own, so a
file may mix both supported layouts:

Schema A (claude_code):
- type: "user" or "assistant" (other types such as "summary" or
  "queue-operation" are skipped)
- message.content: string or array of blocks ("text", "tool_use",
  "tool_result", "thinking")
- timestamp: ISO 8601 timestamp

Schema B (pi):
- type: "message" wraps message.role of "user", "assistant" or "toolResult";
  any other type ("session", "model_change", ...) is skipped
- message.content: string or array of segments ("text", "toolCall",
  "thinking", "image")
- timestamp: ISO 8601 timestamp on the envelope, epoch millis on the message

A new exchange opens at every user record and absorbs the assistant and
tool-result records that follow it until the next user record.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from session_recall.archive.sources import normalize_project_name
from session_recall.errors import SourceReadError
from session_recall.models import Exchange, ToolCall, exchange_id


@dataclass(frozen=True)
class UserRecord:
    line: int
    timestamp: str
    text: str


@dataclass(frozen=True)
class AssistantRecord:
    line: int
    timestamp: str
    texts: tuple[str, ...]
    tool_calls: tuple[ToolCall, ...]
    thinking: tuple[str, ...]


@dataclass(frozen=True)
class ToolResultRecord:
    line: int


@dataclass(frozen=True)
class SkippedRecord:
    line: int
    reason: str


TranscriptRecord = UserRecord | AssistantRecord | ToolResultRecord | SkippedRecord


@dataclass
class ParsedConversation:
    """Exchanges of one transcript plus the raw text they came from."""

    project: str
    exchanges: list[Exchange]
    raw_text: str


@dataclass
class _ContentParts:
    texts: list[str] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    thinking: list[str] = field(default_factory=list)
    tool_results: int = 0


@dataclass
class _ExchangeBuilder:
    opening: UserRecord
    line_end: int
    texts: list[str] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    thinking: list[str] = field(default_factory=list)

    def add_assistant(self, record: AssistantRecord) -> None:
        self.texts.extend(record.texts)
        self.tool_calls.extend(record.tool_calls)
        self.thinking.extend(record.thinking)
        self.line_end = record.line

    def build(self, archive_path: str, project: str) -> Exchange:
        line_start = self.opening.line
        return Exchange(
            id=exchange_id(archive_path, line_start, self.line_end),
            project=project,
            timestamp=self.opening.timestamp,
            user_message=self.opening.text,
            assistant_message="\n\n".join(self.texts),
            tool_calls=tuple(self.tool_calls),
            archive_path=archive_path,
            line_start=line_start,
            line_end=self.line_end,
            thinking=tuple(self.thinking),
        )


def _tool_call_from_block(block: dict[str, Any]) -> ToolCall:
    # Schema A uses "input", schema B uses "arguments"
    arguments = block.get("input", block.get("arguments"))
    if arguments is None:
        arguments = {}
    elif not isinstance(arguments, dict):
        arguments = {"arguments": arguments}
    return ToolCall(
        tool_name=block.get("name") or "unknown",
        tool_id=block.get("id"),
        input=arguments,
    )


def _split_content(content: Any) -> _ContentParts:
    """Split message content into text, tool calls, and reasoning."""
    parts = _ContentParts()

    if isinstance(content, str):
        if content.strip():
            parts.texts.append(content)
        return parts

    if not isinstance(content, list):
        return parts

    for block in content:
        if isinstance(block, str):
            if block.strip():
                parts.texts.append(block)
            continue
        if not isinstance(block, dict):
            continue

        block_type = block.get("type")
        if block_type == "text":
            text = block.get("text") or ""
            if text.strip():
                parts.texts.append(text)
        elif block_type in ("tool_use", "toolCall"):
            parts.tool_calls.append(_tool_call_from_block(block))
        elif block_type == "thinking":
            thinking = block.get("thinking") or ""
            if thinking:
                parts.thinking.append(thinking)
        elif block_type == "tool_result":
            parts.tool_results += 1

    return parts


def _envelope_timestamp(entry: dict[str, Any], message: dict[str, Any]) -> str:
    timestamp = entry.get("timestamp")
    if isinstance(timestamp, str):
        return timestamp

    # Schema B messages also carry epoch milliseconds
    millis = message.get("timestamp")
    if isinstance(millis, (int, float)) and not isinstance(millis, bool):
        dt = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
        return dt.isoformat().replace("+00:00", "Z")
    return ""


def _role_record(role: str, message: dict[str, Any], timestamp: str, line: int) -> TranscriptRecord:
    if role == "toolResult":
        return ToolResultRecord(line=line)

    parts = _split_content(message.get("content"))

    if role == "user":
        if not parts.texts:
            # Schema A returns tool output inside user-typed records
            if parts.tool_results:
                return ToolResultRecord(line=line)
            return SkippedRecord(line=line, reason="empty_user")
        return UserRecord(line=line, timestamp=timestamp, text="\n".join(parts.texts))

    if role == "assistant":
        return AssistantRecord(
            line=line,
            timestamp=timestamp,
            texts=tuple(parts.texts),
            tool_calls=tuple(parts.tool_calls),
            thinking=tuple(parts.thinking),
        )

    return SkippedRecord(line=line, reason=f"role:{role}")


def classify_record(entry: Any, line: int) -> TranscriptRecord:
    """Classify one decoded transcript line.

    Args:
        entry: Decoded JSON value of the line
        line: 1-indexed line number in the transcript

    Returns:
        The record variant the line represents
    """
    if not isinstance(entry, dict):
        return SkippedRecord(line=line, reason="not_object")

    entry_type = entry.get("type")
    message = entry.get("message")
    if not isinstance(message, dict):
        message = {}

    if entry_type in ("user", "assistant"):
        role = message.get("role") or entry_type
        return _role_record(role, message, _envelope_timestamp(entry, message), line)

    if entry_type == "message":
        role = message.get("role")
        if not isinstance(role, str):
            return SkippedRecord(line=line, reason="missing_role")
        return _role_record(role, message, _envelope_timestamp(entry, message), line)

    return SkippedRecord(line=line, reason=f"type:{entry_type}")


def iter_records(
    text: str,
    start_line: int | None = None,
    end_line: int | None = None,
):
    """Yield classified records for the lines inside [start_line, end_line].

    Blank and malformed lines are skipped.
    """
    for line_number, line in enumerate(text.split("\n"), start=1):
        if start_line is not None and line_number < start_line:
            continue
        if end_line is not None and line_number > end_line:
            break

        line = line.strip()
        if not line:
            continue

        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            # Skip malformed lines
            continue

        yield classify_record(entry, line_number)


def fold_exchanges(records, archive_path: str, project: str) -> list[Exchange]:
    """Group classified records into exchanges."""
    exchanges: list[Exchange] = []
    current: _ExchangeBuilder | None = None

    for record in records:
        if isinstance(record, UserRecord):
            if current is not None:
                exchanges.append(current.build(archive_path, project))
            current = _ExchangeBuilder(opening=record, line_end=record.line)
        elif current is None or isinstance(record, SkippedRecord):
            continue
        elif isinstance(record, AssistantRecord):
            current.add_assistant(record)
        elif isinstance(record, ToolResultRecord):
            current.line_end = record.line

    if current is not None:
        exchanges.append(current.build(archive_path, project))

    return exchanges


def parse_timestamp(timestamp_str: str | None) -> int | None:
    """Parse an ISO 8601 timestamp to Unix seconds.

    Args:
        timestamp_str: ISO 8601 timestamp string (e.g., "2026-01-26T00:38:34.590Z")

    Returns:
        Unix timestamp in seconds, or None if absent or unparsable
    """
    if not timestamp_str:
        return None

    try:
        # Handle ISO 8601 with optional microseconds and Z suffix
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"
        dt = datetime.fromisoformat(timestamp_str)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp())
    except (ValueError, AttributeError):
        return None


def project_from_path(path: Path) -> str:
    """Project name from the archive directory naming convention."""
    return normalize_project_name(path.parent.name)


def parse_transcript(
    data: bytes | str,
    archive_path: str | Path,
    project: str | None = None,
    start_line: int | None = None,
    end_line: int | None = None,
) -> list[Exchange]:
    """Parse transcript content into exchanges.

    Args:
        data: Raw JSONL content
        archive_path: Path the content was read from (recorded on exchanges)
        project: Project name (derived from archive_path when omitted)
        start_line: First line to consider (1-indexed, inclusive)
        end_line: Last line to consider (1-indexed, inclusive)

    Returns:
        Exchanges in transcript order; empty if none were found
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    if project is None:
        project = project_from_path(Path(archive_path))

    records = iter_records(data, start_line, end_line)
    return fold_exchanges(records, str(archive_path), project)


def parse_conversation_file(path: Path) -> ParsedConversation:
    """Read and parse an archived transcript.

    Raises:
        SourceReadError: If the file cannot be read
    """
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise SourceReadError(str(path), str(e)) from e

    text = raw.decode("utf-8", errors="replace")
    project = project_from_path(path)
    return ParsedConversation(
        project=project,
        exchanges=parse_transcript(text, path, project),
        raw_text=text,
    )
