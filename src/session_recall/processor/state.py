"""Index state tracking with SQLite persistence."""

import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Self


@dataclass
class IndexedFileState:
    """State information for an indexed archive file."""

    path: str
    mtime: int | None = None
    size: int | None = None
    excluded: bool = False
    exchange_count: int = 0
    last_indexed: int | None = None

    def matches(self, mtime: int, size: int) -> bool:
        """Whether the recorded marker equals the file's current signature."""
        return self.mtime == mtime and self.size == size


class IndexState:
    """Manages index state persistence in SQLite database.

    Tracks, per archived file, the modification marker it was last
    indexed at and whether it was excluded. Also holds short-lived
    per-file claims so two overlapping indexing runs never write the
    same file's entries at once.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize index state with database path.

        Args:
            db_path: Path to SQLite database file. Parent directories
                     will be created if they don't exist.
        """
        self._db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, timeout=30)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self.ensure_schema()

    def ensure_schema(self) -> None:
        """Create the state tables if they don't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS indexed_files (
                path TEXT PRIMARY KEY,
                mtime INTEGER,
                size INTEGER,
                excluded INTEGER DEFAULT 0,
                exchange_count INTEGER DEFAULT 0,
                last_indexed INTEGER
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS index_claims (
                path TEXT PRIMARY KEY,
                owner TEXT NOT NULL,
                claimed_at REAL NOT NULL
            )
        """)
        self._conn.commit()

    @staticmethod
    def _row_to_state(row: sqlite3.Row) -> IndexedFileState:
        return IndexedFileState(
            path=row["path"],
            mtime=row["mtime"],
            size=row["size"],
            excluded=bool(row["excluded"]),
            exchange_count=row["exchange_count"] or 0,
            last_indexed=row["last_indexed"],
        )

    def get_file_state(self, path: str) -> IndexedFileState | None:
        """Get the state of a specific archived file.

        Args:
            path: Archive file path

        Returns:
            IndexedFileState if found, None otherwise
        """
        cursor = self._conn.execute(
            """
            SELECT path, mtime, size, excluded, exchange_count, last_indexed
            FROM indexed_files
            WHERE path = ?
            """,
            (path,),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_state(row)

    def is_stale(self, path: str, mtime: int, size: int) -> bool:
        """Check if a file needs (re)indexing.

        Args:
            path: Archive file path
            mtime: Current modification time (whole seconds)
            size: Current size in bytes

        Returns:
            True if the file has no state or its marker differs
        """
        state = self.get_file_state(path)
        return state is None or not state.matches(mtime, size)

    def update_file_state(self, path: str, **attrs: int | bool | None) -> None:
        """Update or insert file state.

        Args:
            path: Archive file path
            **attrs: Attributes to update (mtime, size, excluded,
                     exchange_count, last_indexed)
        """
        valid_attrs = {"mtime", "size", "excluded", "exchange_count", "last_indexed"}
        invalid = set(attrs.keys()) - valid_attrs
        if invalid:
            raise ValueError(f"Invalid attributes: {invalid}")

        if "excluded" in attrs:
            attrs["excluded"] = int(bool(attrs["excluded"]))

        existing = self.get_file_state(path)

        if existing is None:
            self._conn.execute(
                """
                INSERT INTO indexed_files (path, mtime, size, excluded, exchange_count, last_indexed)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    path,
                    attrs.get("mtime"),
                    attrs.get("size"),
                    attrs.get("excluded", 0),
                    attrs.get("exchange_count", 0),
                    attrs.get("last_indexed"),
                ),
            )
        else:
            if not attrs:
                return  # Nothing to update

            set_clauses = []
            values = []
            for key, value in attrs.items():
                set_clauses.append(f"{key} = ?")
                values.append(value)

            values.append(path)
            self._conn.execute(
                f"""
                UPDATE indexed_files
                SET {', '.join(set_clauses)}
                WHERE path = ?
                """,
                values,
            )

        self._conn.commit()

    def delete_file_state(self, path: str) -> None:
        """Forget a file, e.g. after its archive copy disappeared."""
        self._conn.execute("DELETE FROM indexed_files WHERE path = ?", (path,))
        self._conn.commit()

    def list_files(self) -> list[IndexedFileState]:
        """List all tracked files.

        Returns:
            List of IndexedFileState objects
        """
        cursor = self._conn.execute(
            """
            SELECT path, mtime, size, excluded, exchange_count, last_indexed
            FROM indexed_files
            ORDER BY path
            """
        )
        return [self._row_to_state(row) for row in cursor]

    def claim(self, path: str, owner: str, lease_seconds: int = 600) -> bool:
        """Take the exclusive indexing claim for a file.

        A claim older than lease_seconds is treated as abandoned by a
        crashed run and may be taken over.

        Args:
            path: Archive file path
            owner: Identifier of the claiming run
            lease_seconds: Age after which an existing claim expires

        Returns:
            True if the claim was acquired
        """
        now = time.time()
        cursor = self._conn.execute(
            """
            INSERT INTO index_claims (path, owner, claimed_at)
            VALUES (?, ?, ?)
            ON CONFLICT(path) DO UPDATE
                SET owner = excluded.owner, claimed_at = excluded.claimed_at
                WHERE index_claims.claimed_at < ?
            """,
            (path, owner, now, now - lease_seconds),
        )
        self._conn.commit()
        return cursor.rowcount == 1

    def release(self, path: str, owner: str) -> None:
        """Release a claim held by owner."""
        self._conn.execute(
            "DELETE FROM index_claims WHERE path = ? AND owner = ?",
            (path, owner),
        )
        self._conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> Self:
        """Enter context manager."""
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        """Exit context manager, closing database connection."""
        self.close()
