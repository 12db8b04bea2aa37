"""Source discovery for assistant conversation transcripts.

Two provider layouts are supported:

- claude_code: ~/.claude/projects/<project>/<session-id>.jsonl
  where <project> is the working directory with "/" replaced by "-"
  (e.g. "-Users-alice-code-app").
- pi: ~/.pi/agent/sessions/--<project>--/<iso-timestamp>_<session-id>.jsonl
  where the project directory is additionally wrapped in "--".
"""

import re
from pathlib import Path

from session_recall.config import SourceConfig, expand_path
from session_recall.logging import get_logger
from session_recall.models import ArchivedFile, ConversationFile

logger = get_logger("sources")

PI_FILENAME_RE = re.compile(
    r"_([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})\.jsonl$",
    re.IGNORECASE,
)


def normalize_project_name(name: str) -> str:
    """Strip the "--name--" wrapping used by the pi layout.

    Names without the wrapping (including claude_code's "-Users-a-b")
    are returned unchanged, so normalizing twice is a no-op for any
    name that was not double-wrapped. A name made only of dashes
    normalizes to "".
    """
    if name and set(name) == {"-"}:
        return ""
    if len(name) > 4 and name.startswith("--") and name.endswith("--"):
        return name[2:-2]
    return name


def normalize_session_filename(filename: str) -> str:
    """Reduce a pi "<timestamp>_<uuid>.jsonl" filename to "<uuid>.jsonl"."""
    match = PI_FILENAME_RE.search(filename)
    if match:
        return f"{match.group(1)}.jsonl"
    return filename


def map_to_archive(conversation: ConversationFile, archive_root: Path) -> ArchivedFile:
    """Map a source transcript to its location in the unified archive.

    Creates path structure: archive/<normalized_project>/<normalized_filename>
    """
    project = normalize_project_name(conversation.project_name)
    filename = normalize_session_filename(conversation.path.name)
    return ArchivedFile(
        archive_path=archive_root / project / filename,
        normalized_project=project,
    )


def discover_provider_files(provider: str, base_paths: list[Path]) -> list[ConversationFile]:
    """Discover transcript files for one provider.

    Only direct children of each project directory are collected:
    <base>/<project>/*.jsonl. Missing base directories are ignored.

    Args:
        provider: Provider identifier (e.g. 'claude_code', 'pi')
        base_paths: Directories holding one subdirectory per project

    Returns:
        ConversationFile records sorted by path
    """
    files: list[ConversationFile] = []

    for base_path in base_paths:
        if not base_path.is_dir():
            continue

        for path in sorted(base_path.glob("*/*.jsonl")):
            if path.name.startswith("."):
                continue
            try:
                stat = path.stat()
            except OSError as e:
                logger.warning("Cannot stat source file: provider=%s path=%s error=%s", provider, path, e)
                continue

            files.append(
                ConversationFile(
                    source_provider=provider,
                    project_name=path.parent.name,
                    path=path,
                    modified_at=stat.st_mtime,
                    size_bytes=stat.st_size,
                )
            )

    return files


def discover_sources(sources: dict[str, SourceConfig]) -> list[ConversationFile]:
    """Discover transcript files across all enabled provider layouts.

    Args:
        sources: Provider name to SourceConfig mapping

    Returns:
        All discovered ConversationFile records
    """
    discovered: list[ConversationFile] = []
    counts: dict[str, int] = {}

    for provider, source_config in sources.items():
        if not source_config.enabled:
            continue
        base_paths = [expand_path(p) for p in source_config.paths]
        files = discover_provider_files(provider, base_paths)
        counts[provider] = len(files)
        discovered.extend(files)

    logger.debug(
        "Discovered sources: %s total=%d",
        " ".join(f"{name}={count}" for name, count in counts.items()),
        len(discovered),
    )

    return discovered
