"""Boundary operations exposed to hosting layers (CLI, tool servers)."""

from concurrent.futures import Future
from pathlib import Path

from session_recall.archive.sync import SyncReport, run_sync, sync_in_background
from session_recall.config import Config
from session_recall.errors import InputValidationError
from session_recall.processor.embeddings import Embedder
from session_recall.processor.indexer import TypesenseIndex
from session_recall.processor.maintainer import MAINTENANCE_MODES, run_maintenance
from session_recall.processor.state import IndexState
from session_recall.reader import read_conversation
from session_recall.search.engine import SearchEngine, SearchResponse
from session_recall.search.filters import SearchOptions


class SessionRecall:
    """Sync, index, search, and read the conversation archive.

    The embedder and index handles are created on first use and shared
    by indexing and search for the lifetime of this object.
    """

    def __init__(
        self,
        config: Config,
        embedder: Embedder | None = None,
        index: TypesenseIndex | None = None,
    ) -> None:
        self._config = config
        self._embedder = embedder
        self._index = index
        self._index_ready = False

    @property
    def config(self) -> Config:
        return self._config

    @property
    def embedder(self) -> Embedder:
        if self._embedder is None:
            self._embedder = Embedder(self._config.embedding)
        return self._embedder

    @property
    def index(self) -> TypesenseIndex:
        if self._index is None:
            self._index = TypesenseIndex(self._config.typesense, self._config.embedding.dimensions)
        if not self._index_ready:
            self._index.ensure_collection()
            self._index_ready = True
        return self._index

    def sync(self) -> SyncReport:
        return run_sync(self._config.archive)

    def sync_in_background(self) -> "Future[SyncReport]":
        return sync_in_background(self._config.archive)

    def search(
        self,
        query: str | list[str],
        mode: str = "both",
        limit: int = 10,
        after: str | None = None,
        before: str | None = None,
    ) -> SearchResponse:
        """Search the index with one query string or a list of 2-5 concepts."""
        options = SearchOptions(mode=mode, limit=limit, after=after, before=before)
        engine = SearchEngine(self.index, self.embedder, self._config.search)
        if isinstance(query, (list, tuple)):
            return engine.search_multi(list(query), options)
        return engine.search(query, options)

    def read_conversation(
        self,
        path: str | Path,
        start_line: int | None = None,
        end_line: int | None = None,
    ) -> str:
        return read_conversation(path, self._config.archive.archive_path, start_line, end_line)

    def index_maintenance(self, mode: str = "cleanup"):
        """Run cleanup, verify, or repair and return its report."""
        if mode not in MAINTENANCE_MODES:
            raise InputValidationError(
                f"Unknown maintenance mode {mode!r}; expected one of {', '.join(MAINTENANCE_MODES)}",
                field="mode",
            )
        with IndexState(self._config.archive.state_db) as state:
            return run_maintenance(
                mode,
                self._config.archive.archive_path,
                state,
                self.index,
                self.embedder,
            )
