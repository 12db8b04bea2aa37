"""Plain-text rendering of search results and output truncation."""

from dataclasses import dataclass

from session_recall.models import MultiConceptResult, SearchResult

DEFAULT_MAX_LINES = 2000
DEFAULT_MAX_BYTES = 50 * 1024


@dataclass
class Truncation:
    content: str
    truncated: bool
    total_lines: int
    output_lines: int
    total_bytes: int
    output_bytes: int


def format_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes}B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f}KB"
    return f"{num_bytes / (1024 * 1024):.1f}MB"


def truncate_head(text: str, max_lines: int = DEFAULT_MAX_LINES, max_bytes: int = DEFAULT_MAX_BYTES) -> Truncation:
    """Keep the leading lines of text that fit both limits.

    Only whole lines are kept.
    """
    lines = text.split("\n")
    total_bytes = len(text.encode("utf-8"))

    kept: list[str] = []
    used = 0
    for line in lines[:max_lines]:
        size = len(line.encode("utf-8")) + (1 if kept else 0)
        if used + size > max_bytes:
            break
        kept.append(line)
        used += size

    content = "\n".join(kept)
    return Truncation(
        content=content,
        truncated=len(kept) < len(lines),
        total_lines=len(lines),
        output_lines=len(kept),
        total_bytes=total_bytes,
        output_bytes=len(content.encode("utf-8")),
    )


def _date(result: SearchResult | MultiConceptResult) -> str:
    return result.timestamp[:10] if result.timestamp else "unknown date"


def format_results(results: list[SearchResult]) -> str:
    if not results:
        return "No relevant conversations found."

    lines = [f"Found {len(results)} relevant conversation(s):", ""]
    for number, result in enumerate(results, start=1):
        modes = "+".join(result.matched_modes)
        lines.append(f"{number}. [{result.project}, {_date(result)}] score={result.score:.2f} ({modes})")
        lines.append(f"   {result.snippet}")
        lines.append(f"   {result.archive_path}:{result.line_start}-{result.line_end}")
        lines.append("")
    return "\n".join(lines).rstrip()


def format_multi_concept_results(results: list[MultiConceptResult], concepts: list[str]) -> str:
    quoted = ", ".join(f'"{c}"' for c in concepts)
    if not results:
        return f"No conversations matched all concepts: {quoted}"

    lines = [f"Found {len(results)} conversation(s) matching all of {quoted}:", ""]
    for number, result in enumerate(results, start=1):
        lines.append(f"{number}. [{result.project}, {_date(result)}] score={result.score:.2f}")
        for match in result.concept_matches:
            lines.append(f"   - {match.concept} (lines {match.line_start}-{match.line_end}): {match.snippet}")
        lines.append(f"   {result.archive_path}")
        lines.append("")
    return "\n".join(lines).rstrip()
