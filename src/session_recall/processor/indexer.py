"""Typesense index for session-recall exchanges.

One collection holds both structures the search engine needs: the
``content`` field is keyword-indexed and the ``embedding`` field holds
the exchange vector for nearest-neighbour queries.
"""

import json
from dataclasses import dataclass
from typing import Any

import typesense
from typesense.exceptions import ObjectNotFound

from session_recall.config import TypesenseConfig
from session_recall.logging import get_logger
from session_recall.models import IndexEntry

logger = get_logger("indexer")

MAX_PER_PAGE = 250


def build_exchanges_schema(name: str, dimensions: int) -> dict[str, Any]:
    """Collection schema for exchange documents."""
    return {
        "name": name,
        "fields": [
            {"name": "id", "type": "string"},
            {"name": "archive_path", "type": "string", "facet": True},
            {"name": "project", "type": "string", "facet": True},
            {"name": "timestamp", "type": "string", "index": False, "optional": True},
            {"name": "ts", "type": "int64", "sort": True},
            {"name": "line_start", "type": "int32"},
            {"name": "line_end", "type": "int32"},
            {"name": "content", "type": "string"},
            {"name": "tool_names", "type": "string[]", "facet": True, "optional": True},
            {"name": "generation", "type": "int64"},
            {
                "name": "embedding",
                "type": "float[]",
                "num_dim": dimensions,
                "vec_dist": "cosine",
            },
        ],
        "default_sorting_field": "ts",
    }


@dataclass
class IndexHit:
    """A document returned by one of the index queries."""

    document: dict[str, Any]
    score: float


def quote_filter_value(value: str) -> str:
    """Quote a string for use in a filter_by expression."""
    return f"`{value}`"


def build_filter(
    start_ts: int | None = None,
    end_ts: int | None = None,
    archive_path: str | None = None,
) -> str | None:
    """Build a filter_by expression.

    start_ts is inclusive and end_ts exclusive.
    """
    parts = []
    if archive_path is not None:
        parts.append(f"archive_path:={quote_filter_value(archive_path)}")
    if start_ts is not None:
        parts.append(f"ts:>={start_ts}")
    if end_ts is not None:
        parts.append(f"ts:<{end_ts}")
    return " && ".join(parts) if parts else None


class TypesenseIndex:
    """Maintains and queries the exchanges collection in Typesense."""

    def __init__(self, config: TypesenseConfig, dimensions: int) -> None:
        """Initialize index with Typesense configuration.

        Args:
            config: TypesenseConfig with connection details
            dimensions: Embedding vector size
        """
        self._config = config
        self._dimensions = dimensions
        self._collection = config.collection
        self._client = typesense.Client({
            "nodes": [{
                "host": config.host,
                "port": str(config.port),
                "protocol": config.protocol,
            }],
            "api_key": config.api_key,
            "connection_timeout_seconds": 5,
        })

    @property
    def client(self) -> typesense.Client:
        """Access the underlying Typesense client."""
        return self._client

    @property
    def collection_name(self) -> str:
        return self._collection

    def ensure_collection(self) -> None:
        """Create the exchanges collection if it doesn't exist."""
        try:
            self._client.collections[self._collection].retrieve()
            logger.debug("Collection already exists: collection=%s", self._collection)
        except ObjectNotFound:
            self._client.collections.create(
                build_exchanges_schema(self._collection, self._dimensions)
            )
            logger.info("Created collection: collection=%s", self._collection)

    def upsert_entries(self, entries: list[IndexEntry]) -> dict[str, int]:
        """Index entries into Typesense.

        Uses upsert semantics keyed on the entry ID, so re-indexing the
        same line range replaces the previous document.

        Args:
            entries: IndexEntry objects to index

        Returns:
            Dict with counts: {"success": N, "failed": M}
        """
        if not entries:
            return {"success": 0, "failed": 0}

        documents = [entry.to_typesense_doc() for entry in entries]

        results = self._client.collections[self._collection].documents.import_(
            documents,
            {"action": "upsert"},
        )

        success = 0
        failed = 0
        for result in results:
            if result.get("success", False):
                success += 1
            else:
                failed += 1
                logger.debug("Failed to index entry: error=%s", result.get("error", "unknown"))

        if failed > 0:
            logger.warning("Some entries failed to index: success=%d failed=%d", success, failed)

        return {"success": success, "failed": failed}

    def delete_file_entries(self, archive_path: str, before_generation: int | None = None) -> int:
        """Delete the entries of one archived file.

        Args:
            archive_path: Archive path the entries were derived from
            before_generation: Only delete entries written by older passes

        Returns:
            Number of deleted documents
        """
        filter_by = build_filter(archive_path=archive_path)
        if before_generation is not None:
            filter_by += f" && generation:<{before_generation}"

        try:
            result = self._client.collections[self._collection].documents.delete(
                {"filter_by": filter_by}
            )
        except ObjectNotFound:
            return 0

        deleted = int(result.get("num_deleted", 0))
        if deleted:
            logger.debug("Deleted entries: path=%s count=%d", archive_path, deleted)
        return deleted

    def text_search(
        self,
        query: str,
        limit: int,
        start_ts: int | None = None,
        end_ts: int | None = None,
    ) -> list[IndexHit]:
        """Exact keyword search over exchange content.

        Typo tolerance, prefix matching, and token dropping are disabled
        so every query term has to appear in the content.
        """
        search_params: dict[str, Any] = {
            "q": query,
            "query_by": "content",
            "per_page": min(limit, MAX_PER_PAGE),
            "num_typos": 0,
            "prefix": "false",
            "drop_tokens_threshold": 0,
            "sort_by": "_text_match:desc,ts:desc",
            "exclude_fields": "embedding",
            "highlight_fields": "none",
        }
        filter_by = build_filter(start_ts, end_ts)
        if filter_by:
            search_params["filter_by"] = filter_by

        results = self._client.collections[self._collection].documents.search(search_params)
        return [
            IndexHit(document=hit["document"], score=float(hit.get("text_match", 0)))
            for hit in results.get("hits", [])
        ]

    def vector_search(
        self,
        vector: list[float],
        limit: int,
        start_ts: int | None = None,
        end_ts: int | None = None,
    ) -> list[IndexHit]:
        """Nearest-neighbour search over exchange embeddings.

        Goes through multi_search so the query vector travels in the
        request body. Scores are cosine similarities (1 - distance).
        """
        k = min(limit, MAX_PER_PAGE)
        vector_literal = ",".join(f"{x:.6f}" for x in vector)
        search: dict[str, Any] = {
            "collection": self._collection,
            "q": "*",
            "vector_query": f"embedding:([{vector_literal}], k:{k})",
            "per_page": k,
            "exclude_fields": "embedding",
        }
        filter_by = build_filter(start_ts, end_ts)
        if filter_by:
            search["filter_by"] = filter_by

        response = self._client.multi_search.perform({"searches": [search]}, {})
        result = response["results"][0]
        if "error" in result:
            raise RuntimeError(f"Vector search failed: {result['error']}")

        return [
            IndexHit(
                document=hit["document"],
                score=1.0 - float(hit.get("vector_distance", 1.0)),
            )
            for hit in result.get("hits", [])
        ]

    def list_archive_paths(self) -> dict[str, int]:
        """Count indexed entries per archive path.

        Returns:
            Mapping of archive path to number of entries
        """
        try:
            exported = self._client.collections[self._collection].documents.export(
                {"include_fields": "archive_path"}
            )
        except ObjectNotFound:
            return {}

        counts: dict[str, int] = {}
        for line in exported.splitlines():
            if not line.strip():
                continue
            path = json.loads(line).get("archive_path")
            if path:
                counts[path] = counts.get(path, 0) + 1
        return counts
