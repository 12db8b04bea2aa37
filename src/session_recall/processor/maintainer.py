"""Index maintenance: keep the search index in step with the archive.

The archive is the source of truth. Every function here can be re-run
at any time; a file whose indexing did not complete keeps a stale marker
and is picked up again by the next pass.
"""

import os
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from session_recall.errors import EmbeddingCapabilityError, InputValidationError, SourceReadError
from session_recall.logging import get_logger
from session_recall.models import IndexEntry
from session_recall.processor.embeddings import Embedder
from session_recall.processor.exclusion import exclusion_reason
from session_recall.processor.indexer import TypesenseIndex
from session_recall.processor.parser import parse_conversation_file, parse_timestamp
from session_recall.processor.state import IndexState

logger = get_logger("maintainer")

MAINTENANCE_MODES = ("cleanup", "verify", "repair")

# Claims older than this are assumed to belong to a crashed run
CLAIM_LEASE_SECONDS = 600


@dataclass
class FileIndexResult:
    """Outcome of indexing one archived file."""

    path: str
    status: str  # indexed, excluded, unchanged, conflict, error
    exchanges: int = 0
    deleted: int = 0
    error: str | None = None


@dataclass
class IndexReport:
    """Aggregate outcome of an indexing pass."""

    files_checked: int = 0
    files_indexed: int = 0
    files_excluded: int = 0
    exchanges_indexed: int = 0
    conflicts: int = 0
    errors: list[str] = field(default_factory=list)

    def add(self, result: FileIndexResult) -> None:
        self.files_checked += 1
        if result.status == "indexed":
            self.files_indexed += 1
            self.exchanges_indexed += result.exchanges
        elif result.status == "excluded":
            self.files_excluded += 1
        elif result.status == "conflict":
            self.conflicts += 1
        elif result.status == "error":
            self.errors.append(f"{result.path}: {result.error}")


@dataclass
class VerifyReport:
    """Inconsistencies between the archive, the index, and index state."""

    orphaned_paths: list[str] = field(default_factory=list)
    missing_state: list[str] = field(default_factory=list)
    stale: list[str] = field(default_factory=list)
    missing_entries: list[str] = field(default_factory=list)
    excluded_with_entries: list[str] = field(default_factory=list)
    dangling_state: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (
            self.orphaned_paths
            or self.missing_state
            or self.stale
            or self.missing_entries
            or self.excluded_with_entries
            or self.dangling_state
        )


@dataclass
class RepairReport:
    """What a repair pass changed."""

    verify: VerifyReport
    orphaned_entries_removed: int = 0
    dangling_state_removed: int = 0
    reindex: IndexReport = field(default_factory=IndexReport)


def discover_archive_files(archive_root: Path) -> list[Path]:
    """List archived transcripts (archive/<project>/<file>.jsonl)."""
    if not archive_root.is_dir():
        return []
    return sorted(p for p in archive_root.glob("*/*.jsonl") if not p.name.startswith("."))


def file_signature(path: Path) -> tuple[int, int]:
    """Modification marker of a file: (whole-second mtime, size)."""
    stat = path.stat()
    return int(stat.st_mtime), stat.st_size


def new_owner_id() -> str:
    return f"{os.getpid()}-{uuid.uuid4().hex[:8]}"


def index_file(
    path: Path,
    state: IndexState,
    index: TypesenseIndex,
    embedder: Embedder,
    force: bool = False,
    owner: str | None = None,
) -> FileIndexResult:
    """Parse, screen, embed, and index one archived transcript.

    All embeddings are computed before anything is written, so an
    embedding failure leaves the index untouched and the marker stale.

    Args:
        path: Archived transcript path
        state: IndexState database
        index: TypesenseIndex to write to
        embedder: Shared embedding handle
        force: Re-index even when the marker is current
        owner: Claim owner identifier (generated when omitted)

    Returns:
        FileIndexResult describing what happened
    """
    key = str(path)
    owner = owner or new_owner_id()

    try:
        mtime, size = file_signature(path)
    except OSError as e:
        logger.warning("Cannot stat archived file: path=%s error=%s", path, e)
        return FileIndexResult(path=key, status="error", error=str(e))

    if not force and not state.is_stale(key, mtime, size):
        return FileIndexResult(path=key, status="unchanged")

    if not state.claim(key, owner, CLAIM_LEASE_SECONDS):
        logger.debug("File is being indexed by another run: path=%s", path)
        return FileIndexResult(path=key, status="conflict")

    try:
        parsed = parse_conversation_file(path)
        now = int(time.time())

        reason = exclusion_reason(parsed.exchanges, parsed.raw_text)
        if reason is not None:
            deleted = index.delete_file_entries(key)
            state.update_file_state(
                key,
                mtime=mtime,
                size=size,
                excluded=True,
                exchange_count=0,
                last_indexed=now,
            )
            logger.info("Excluded from index: path=%s reason=%s removed=%d", path, reason, deleted)
            return FileIndexResult(path=key, status="excluded", deleted=deleted)

        exchanges = [e for e in parsed.exchanges if e.content.strip()]
        vectors = embedder.embed_batch([e.content for e in exchanges])

        generation = time.time_ns()
        entries = [
            IndexEntry.from_exchange(
                exchange,
                ts=parse_timestamp(exchange.timestamp) or mtime,
                embedding=vector,
                generation=generation,
            )
            for exchange, vector in zip(exchanges, vectors)
        ]

        counts = index.upsert_entries(entries)
        if counts["failed"]:
            return FileIndexResult(
                path=key,
                status="error",
                exchanges=counts["success"],
                error=f"{counts['failed']} entries failed to index",
            )

        # Entries from earlier passes whose range changed (a growing last exchange)
        deleted = index.delete_file_entries(key, before_generation=generation)

        state.update_file_state(
            key,
            mtime=mtime,
            size=size,
            excluded=False,
            exchange_count=len(entries),
            last_indexed=now,
        )
        logger.info("Indexed file: path=%s exchanges=%d replaced=%d", path, len(entries), deleted)
        return FileIndexResult(path=key, status="indexed", exchanges=len(entries), deleted=deleted)

    except (SourceReadError, EmbeddingCapabilityError) as e:
        logger.warning("Indexing deferred: path=%s error=%s", path, e.message)
        return FileIndexResult(path=key, status="error", error=e.message)
    except Exception as e:
        logger.exception("Error indexing file: path=%s", path)
        return FileIndexResult(path=key, status="error", error=str(e))
    finally:
        state.release(key, owner)


def run_index_cycle(
    archive_root: Path,
    state: IndexState,
    index: TypesenseIndex,
    embedder: Embedder,
    paths: list[Path] | None = None,
    force_paths: set[str] | None = None,
) -> IndexReport:
    """Index every archived file whose marker is stale or absent.

    Args:
        archive_root: Root of the unified archive
        state: IndexState database
        index: TypesenseIndex to write to
        embedder: Shared embedding handle
        paths: Restrict the pass to these files (defaults to the whole archive)
        force_paths: Files to re-index even if their marker is current

    Returns:
        IndexReport with aggregate counts
    """
    report = IndexReport()
    owner = new_owner_id()
    force_paths = force_paths or set()

    if paths is None:
        paths = discover_archive_files(archive_root)

    for path in paths:
        result = index_file(path, state, index, embedder, force=str(path) in force_paths, owner=owner)
        report.add(result)

    if report.files_indexed or report.files_excluded or report.errors:
        logger.info(
            "Index pass complete: checked=%d indexed=%d excluded=%d exchanges=%d conflicts=%d errors=%d",
            report.files_checked,
            report.files_indexed,
            report.files_excluded,
            report.exchanges_indexed,
            report.conflicts,
            len(report.errors),
        )
    else:
        logger.debug("Index pass complete: no changes detected")

    return report


def verify_index(archive_root: Path, state: IndexState, index: TypesenseIndex) -> VerifyReport:
    """Compare the archive against the index and index state."""
    report = VerifyReport()

    archive_files = {str(p): p for p in discover_archive_files(archive_root)}
    indexed_counts = index.list_archive_paths()
    states = {s.path: s for s in state.list_files()}

    for path in sorted(indexed_counts):
        if path not in archive_files:
            report.orphaned_paths.append(path)

    for key, path in archive_files.items():
        file_state = states.get(key)
        if file_state is None:
            report.missing_state.append(key)
            continue
        try:
            mtime, size = file_signature(path)
        except OSError:
            continue
        if not file_state.matches(mtime, size):
            report.stale.append(key)
        elif file_state.excluded and indexed_counts.get(key):
            report.excluded_with_entries.append(key)
        elif not file_state.excluded and file_state.exchange_count and not indexed_counts.get(key):
            report.missing_entries.append(key)

    for key in states:
        if key not in archive_files:
            report.dangling_state.append(key)

    logger.info(
        "Verify complete: orphaned=%d missing_state=%d stale=%d missing_entries=%d "
        "excluded_with_entries=%d dangling_state=%d",
        len(report.orphaned_paths),
        len(report.missing_state),
        len(report.stale),
        len(report.missing_entries),
        len(report.excluded_with_entries),
        len(report.dangling_state),
    )
    return report


def repair_index(
    archive_root: Path,
    state: IndexState,
    index: TypesenseIndex,
    embedder: Embedder,
) -> RepairReport:
    """Fix everything verify_index reports."""
    verify = verify_index(archive_root, state, index)
    report = RepairReport(verify=verify)

    for path in verify.orphaned_paths + verify.excluded_with_entries:
        removed = index.delete_file_entries(path)
        if path in verify.orphaned_paths:
            report.orphaned_entries_removed += removed

    for path in verify.dangling_state:
        state.delete_file_state(path)
        report.dangling_state_removed += 1

    to_reindex = verify.missing_state + verify.stale + verify.missing_entries
    if to_reindex:
        report.reindex = run_index_cycle(
            archive_root,
            state,
            index,
            embedder,
            paths=[Path(p) for p in sorted(set(to_reindex))],
            force_paths=set(verify.missing_entries),
        )

    return report


def run_maintenance(
    mode: str,
    archive_root: Path,
    state: IndexState,
    index: TypesenseIndex,
    embedder: Embedder,
) -> IndexReport | VerifyReport | RepairReport:
    """Dispatch one of the maintenance modes: cleanup, verify, repair."""
    if mode == "cleanup":
        return run_index_cycle(archive_root, state, index, embedder)
    if mode == "verify":
        return verify_index(archive_root, state, index)
    if mode == "repair":
        return repair_index(archive_root, state, index, embedder)
    raise InputValidationError(
        f"Unknown maintenance mode {mode!r}; expected one of {', '.join(MAINTENANCE_MODES)}",
        field="mode",
    )
