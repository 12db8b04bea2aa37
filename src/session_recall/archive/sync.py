"""Archive sync: copy new and changed transcripts into the unified archive."""

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from session_recall.archive.copier import copy_atomic, needs_sync
from session_recall.archive.sources import discover_sources, map_to_archive
from session_recall.config import ArchiveConfig
from session_recall.errors import ConcurrentWriteConflict, SourceReadError
from session_recall.logging import get_logger
from session_recall.models import ConversationFile

logger = get_logger("sync")

_background_executor: ThreadPoolExecutor | None = None


@dataclass
class SyncReport:
    """Aggregate outcome of one sync run."""

    files_copied: int = 0
    files_skipped: int = 0
    errors: list[str] = field(default_factory=list)
    copied_paths: list[Path] = field(default_factory=list)


def sync_file(
    conversation: ConversationFile,
    archive_root: Path,
    stale_seconds: int = 600,
) -> Path | None:
    """Copy a single transcript into the archive if it changed.

    Args:
        conversation: Discovered source transcript
        archive_root: Root of the unified archive
        stale_seconds: Age after which an abandoned partial copy is replaced

    Returns:
        Archive path if the file was copied, None if it was up to date

    Raises:
        SourceReadError: If the source cannot be read or copied
        ConcurrentWriteConflict: If another sync is copying the same file
    """
    archived = map_to_archive(conversation, archive_root)
    dest_path = archived.archive_path

    try:
        sync_needed, reason = needs_sync(conversation.path, dest_path)
        if not sync_needed:
            return None
        copy_atomic(conversation.path, dest_path, stale_seconds)
    except ConcurrentWriteConflict:
        raise
    except OSError as e:
        raise SourceReadError(str(conversation.path), str(e)) from e

    logger.info(
        "Synced file: provider=%s project=%s path=%s reason=%s",
        conversation.source_provider,
        archived.normalized_project,
        conversation.path.name,
        reason,
    )
    return dest_path


def run_sync(config: ArchiveConfig) -> SyncReport:
    """Run one sync pass over every configured provider layout.

    A failure on one file is logged and recorded in the report; the
    remaining files are still processed.

    Args:
        config: Archive configuration (sources and archive root)

    Returns:
        SyncReport with copy/skip counts and per-file errors
    """
    report = SyncReport()
    archive_root = config.archive_path

    for conversation in discover_sources(config.sources):
        try:
            copied = sync_file(conversation, archive_root, config.partial_stale_seconds)
        except ConcurrentWriteConflict:
            logger.debug("Copy already in progress elsewhere: path=%s", conversation.path)
            report.files_skipped += 1
            continue
        except SourceReadError as e:
            logger.warning("Skipping unreadable source: %s", e.message)
            report.errors.append(e.message)
            continue

        if copied is None:
            report.files_skipped += 1
        else:
            report.files_copied += 1
            report.copied_paths.append(copied)

    if report.files_copied or report.errors:
        logger.info(
            "Sync complete: copied=%d skipped=%d errors=%d",
            report.files_copied,
            report.files_skipped,
            len(report.errors),
        )
    else:
        logger.debug("Sync complete: no changes detected")

    return report


def sync_in_background(config: ArchiveConfig) -> "Future[SyncReport]":
    """Start a sync on a worker thread.

    The returned future carries the SyncReport or the exception that
    stopped the run; callers that only want best-effort behaviour may
    ignore it.
    """
    global _background_executor
    if _background_executor is None:
        _background_executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="session-recall-sync"
        )
    return _background_executor.submit(run_sync, config)
