"""File copying utilities for the archive sync.

Copies are written to a hidden sibling ".<name>.partial" file and renamed
into place, so readers never observe a half-written transcript. The partial
file doubles as the in-progress marker that concurrent syncs check.
"""

import os
import shutil
import time
from pathlib import Path

from session_recall.errors import ConcurrentWriteConflict
from session_recall.logging import get_logger

logger = get_logger("copier")

COPY_CHUNK_SIZE = 1024 * 1024


def partial_path_for(dest_path: Path) -> Path:
    """Path of the in-progress copy for a destination file."""
    return dest_path.with_name(f".{dest_path.name}.partial")


def needs_sync(source_path: Path, dest_path: Path) -> tuple[bool, str]:
    """Check if a source file needs to be copied into the archive.

    Transcripts are append-only, so comparing size and whole-second
    modification time against the archived copy is enough to detect growth.

    Args:
        source_path: Path to source file
        dest_path: Path of the archived copy

    Returns:
        Tuple of (needs_sync, reason)
    """
    if not source_path.exists():
        return False, "file_not_found"

    if not dest_path.exists():
        return True, "new_file"

    source_stat = source_path.stat()
    dest_stat = dest_path.stat()

    if source_stat.st_size != dest_stat.st_size:
        return True, "size_changed"
    if int(source_stat.st_mtime) != int(dest_stat.st_mtime):
        return True, "mtime_changed"

    return False, "up_to_date"


def _claim_partial(partial_path: Path, stale_seconds: int):
    """Exclusively create the partial file, clearing an abandoned one once."""
    try:
        return open(partial_path, "xb")
    except FileExistsError:
        try:
            age = time.time() - partial_path.stat().st_mtime
        except FileNotFoundError:
            # The other writer finished between our open and stat
            age = stale_seconds
        if age < stale_seconds:
            raise ConcurrentWriteConflict(str(partial_path))

    logger.warning("Removing abandoned partial copy: path=%s", partial_path)
    partial_path.unlink(missing_ok=True)
    try:
        return open(partial_path, "xb")
    except FileExistsError:
        raise ConcurrentWriteConflict(str(partial_path))


def copy_atomic(source_path: Path, dest_path: Path, stale_seconds: int = 600) -> int:
    """Copy a file into place via write-to-temporary then rename.

    Creates parent directories if needed. The modification time of the
    source is preserved on the copy so later syncs can compare against it.

    Args:
        source_path: Source transcript path
        dest_path: Destination path in the archive
        stale_seconds: Age after which another writer's partial file is
            considered abandoned

    Returns:
        Number of bytes copied

    Raises:
        ConcurrentWriteConflict: If another sync is copying the same file
            or has already brought the copy up to date
        OSError: If the source cannot be read or the archive written
    """
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    partial_path = partial_path_for(dest_path)

    dst = _claim_partial(partial_path, stale_seconds)

    # Another sync may have finished this copy between our check and the claim
    if needs_sync(source_path, dest_path) == (False, "up_to_date"):
        dst.close()
        partial_path.unlink(missing_ok=True)
        raise ConcurrentWriteConflict(str(dest_path))

    try:
        with dst, open(source_path, "rb") as src:
            shutil.copyfileobj(src, dst, COPY_CHUNK_SIZE)
            dst.flush()
            os.fsync(dst.fileno())
        shutil.copystat(source_path, partial_path)
        bytes_copied = partial_path.stat().st_size
        os.replace(partial_path, dest_path)
    except BaseException:
        partial_path.unlink(missing_ok=True)
        raise

    logger.debug(
        "Atomic copy: source=%s dest=%s bytes=%d",
        source_path.name,
        dest_path,
        bytes_copied,
    )
    return bytes_copied
