"""Render archived conversations as markdown.

Reads the transcript itself rather than the index, so excluded
conversations and not-yet-indexed files are readable too.
"""

import json
from pathlib import Path

from session_recall.errors import InputValidationError, PathResolutionError
from session_recall.models import Exchange, ToolCall
from session_recall.processor.parser import parse_conversation_file, parse_transcript

NO_CONTENT_IN_RANGE = "No conversation content found in the specified range."

TOOL_INPUT_PREVIEW = 300


def resolve_archive_path(path: str | Path, archive_root: Path) -> Path:
    """Resolve a requested path and confine it to the archive.

    A leading "@" is stripped and relative paths are taken relative to
    the archive root.

    Raises:
        PathResolutionError: If the path escapes the archive or does not exist
    """
    raw = str(path).strip()
    if raw.startswith("@"):
        raw = raw[1:]

    root = archive_root.expanduser().resolve()
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute():
        candidate = root / candidate
    resolved = candidate.resolve()

    if not resolved.is_relative_to(root):
        raise PathResolutionError(raw, "Path is outside the conversation archive")
    if not resolved.is_file():
        raise PathResolutionError(raw, "File not found")
    return resolved


def _format_tool_call(call: ToolCall) -> str:
    if not call.input:
        return f"- `{call.tool_name}`"
    rendered = json.dumps(call.input, ensure_ascii=False, sort_keys=True)
    if len(rendered) > TOOL_INPUT_PREVIEW:
        rendered = rendered[:TOOL_INPUT_PREVIEW] + "..."
    return f"- `{call.tool_name}`: `{rendered}`"


def format_exchange(number: int, exchange: Exchange) -> str:
    """Render one exchange as a markdown section."""
    heading = f"## Exchange {number} (lines {exchange.line_start}-{exchange.line_end})"
    if exchange.timestamp:
        heading += f" {exchange.timestamp}"

    parts = [heading, "", "**User:**", "", exchange.user_message.strip(), ""]
    if exchange.assistant_message:
        parts.extend(["**Assistant:**", "", exchange.assistant_message.strip(), ""])
    if exchange.tool_calls:
        parts.append("**Tool calls:**")
        parts.append("")
        parts.extend(_format_tool_call(call) for call in exchange.tool_calls)
        parts.append("")
    return "\n".join(parts)


def format_conversation(project: str, exchanges: list[Exchange]) -> str:
    """Render exchanges as a markdown document; empty string if none."""
    if not exchanges:
        return ""
    sections = [f"# Conversation: {project or 'unknown project'}", ""]
    for number, exchange in enumerate(exchanges, start=1):
        sections.append(format_exchange(number, exchange))
    return "\n".join(sections).rstrip() + "\n"


def read_conversation(
    path: str | Path,
    archive_root: Path,
    start_line: int | None = None,
    end_line: int | None = None,
) -> str:
    """Render an archived conversation, optionally limited to a line range.

    Only lines inside [start_line, end_line] are parsed, so every rendered
    exchange lies entirely within the requested range.

    Args:
        path: Archive path of the transcript
        archive_root: Root of the unified archive
        start_line: First line (1-indexed, inclusive)
        end_line: Last line (1-indexed, inclusive)

    Returns:
        Markdown text, or NO_CONTENT_IN_RANGE when the range holds no exchanges

    Raises:
        PathResolutionError: For paths outside the archive or missing files
        InputValidationError: For an invalid line range
    """
    for name, value in (("start_line", start_line), ("end_line", end_line)):
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 1):
            raise InputValidationError(f"{name} must be a positive integer", field=name)
    if start_line is not None and end_line is not None and end_line < start_line:
        raise InputValidationError("end_line must not be before start_line", field="end_line")

    resolved = resolve_archive_path(path, archive_root)
    parsed = parse_conversation_file(resolved)

    if start_line is None and end_line is None:
        exchanges = parsed.exchanges
    else:
        exchanges = parse_transcript(
            parsed.raw_text,
            resolved,
            parsed.project,
            start_line=start_line,
            end_line=end_line,
        )

    markdown = format_conversation(parsed.project, exchanges)
    return markdown or NO_CONTENT_IN_RANGE
