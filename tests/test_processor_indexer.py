"""Tests for the Typesense index."""

import json
from unittest.mock import MagicMock, patch

import pytest
from typesense.exceptions import ObjectNotFound

from session_recall.config import TypesenseConfig
from session_recall.models import IndexEntry
from session_recall.processor.indexer import (
    TypesenseIndex,
    build_exchanges_schema,
    build_filter,
)


@pytest.fixture
def config() -> TypesenseConfig:
    """Provide a test TypesenseConfig."""
    return TypesenseConfig(
        host="localhost",
        port=8108,
        protocol="http",
        api_key="test-api-key",
    )


@pytest.fixture
def mock_client() -> MagicMock:
    """Provide a mock Typesense client."""
    return MagicMock()


@pytest.fixture
def index(config: TypesenseConfig, mock_client: MagicMock) -> TypesenseIndex:
    """Provide a TypesenseIndex with mocked client."""
    with patch("session_recall.processor.indexer.typesense.Client", return_value=mock_client):
        return TypesenseIndex(config, dimensions=3)


def make_entry(entry_id: str = "abc", line_start: int = 1) -> IndexEntry:
    return IndexEntry(
        id=entry_id,
        archive_path="/archive/app/s.jsonl",
        project="app",
        timestamp="2025-09-01T10:00:00Z",
        ts=1756720800,
        line_start=line_start,
        line_end=line_start + 1,
        content="question\n\nanswer",
        tool_names=["Read"],
        embedding=[0.1, 0.2, 0.3],
        generation=42,
    )


class TestTypesenseIndexInit:
    """Tests for TypesenseIndex initialization."""

    def test_creates_client_with_config(self, config: TypesenseConfig) -> None:
        """TypesenseIndex should create client with correct config."""
        with patch("session_recall.processor.indexer.typesense.Client") as mock_client_class:
            TypesenseIndex(config, dimensions=3)

            mock_client_class.assert_called_once_with({
                "nodes": [{
                    "host": "localhost",
                    "port": "8108",
                    "protocol": "http",
                }],
                "api_key": "test-api-key",
                "connection_timeout_seconds": 5,
            })

    def test_client_property(self, index: TypesenseIndex, mock_client: MagicMock) -> None:
        assert index.client is mock_client
        assert index.collection_name == "exchanges"


class TestSchema:
    """Tests for the exchanges collection schema."""

    def test_embedding_field_dimensions(self) -> None:
        schema = build_exchanges_schema("exchanges", 384)
        fields = {f["name"]: f for f in schema["fields"]}

        assert fields["embedding"]["num_dim"] == 384
        assert fields["embedding"]["vec_dist"] == "cosine"
        assert fields["ts"]["type"] == "int64"
        assert schema["default_sorting_field"] == "ts"


class TestEnsureCollection:
    """Tests for ensure_collection method."""

    def test_creates_collection_when_missing(self, index: TypesenseIndex, mock_client: MagicMock) -> None:
        mock_client.collections.__getitem__.return_value.retrieve.side_effect = ObjectNotFound("exchanges")

        index.ensure_collection()

        mock_client.collections.create.assert_called_once_with(build_exchanges_schema("exchanges", 3))

    def test_no_create_when_collection_exists(self, index: TypesenseIndex, mock_client: MagicMock) -> None:
        mock_client.collections.__getitem__.return_value.retrieve.return_value = {"name": "exchanges"}

        index.ensure_collection()

        mock_client.collections.create.assert_not_called()


class TestUpsertEntries:
    """Tests for upsert_entries method."""

    def test_upserts_documents(self, index: TypesenseIndex, mock_client: MagicMock) -> None:
        documents = mock_client.collections.__getitem__.return_value.documents
        documents.import_.return_value = [{"success": True}, {"success": True}]

        result = index.upsert_entries([make_entry("a", 1), make_entry("b", 3)])

        assert result == {"success": 2, "failed": 0}
        sent, params = documents.import_.call_args[0]
        assert params == {"action": "upsert"}
        assert [d["id"] for d in sent] == ["a", "b"]
        assert sent[0]["embedding"] == [0.1, 0.2, 0.3]
        assert sent[0]["generation"] == 42

    def test_counts_failures(self, index: TypesenseIndex, mock_client: MagicMock) -> None:
        documents = mock_client.collections.__getitem__.return_value.documents
        documents.import_.return_value = [{"success": True}, {"success": False, "error": "bad"}]

        result = index.upsert_entries([make_entry("a", 1), make_entry("b", 3)])

        assert result == {"success": 1, "failed": 1}

    def test_empty_list(self, index: TypesenseIndex, mock_client: MagicMock) -> None:
        assert index.upsert_entries([]) == {"success": 0, "failed": 0}
        mock_client.collections.__getitem__.return_value.documents.import_.assert_not_called()


class TestDeleteFileEntries:
    """Tests for delete_file_entries method."""

    def test_deletes_by_archive_path(self, index: TypesenseIndex, mock_client: MagicMock) -> None:
        documents = mock_client.collections.__getitem__.return_value.documents
        documents.delete.return_value = {"num_deleted": 4}

        assert index.delete_file_entries("/archive/app/s.jsonl") == 4
        documents.delete.assert_called_once_with({"filter_by": "archive_path:=`/archive/app/s.jsonl`"})

    def test_deletes_older_generations(self, index: TypesenseIndex, mock_client: MagicMock) -> None:
        documents = mock_client.collections.__getitem__.return_value.documents
        documents.delete.return_value = {"num_deleted": 1}

        index.delete_file_entries("/archive/app/s.jsonl", before_generation=99)

        documents.delete.assert_called_once_with(
            {"filter_by": "archive_path:=`/archive/app/s.jsonl` && generation:<99"}
        )

    def test_missing_collection_deletes_nothing(self, index: TypesenseIndex, mock_client: MagicMock) -> None:
        documents = mock_client.collections.__getitem__.return_value.documents
        documents.delete.side_effect = ObjectNotFound("exchanges")

        assert index.delete_file_entries("/archive/app/s.jsonl") == 0


class TestTextSearch:
    """Tests for text_search method."""

    def test_exact_match_parameters(self, index: TypesenseIndex, mock_client: MagicMock) -> None:
        """Text search should disable typo tolerance and apply date bounds."""
        documents = mock_client.collections.__getitem__.return_value.documents
        documents.search.return_value = {
            "hits": [{"document": {"id": "a"}, "text_match": 578730123365187705}],
        }

        hits = index.text_search("login bug", 10, start_ts=100, end_ts=200)

        params = documents.search.call_args[0][0]
        assert params["q"] == "login bug"
        assert params["query_by"] == "content"
        assert params["num_typos"] == 0
        assert params["prefix"] == "false"
        assert params["filter_by"] == "ts:>=100 && ts:<200"
        assert hits[0].document == {"id": "a"}
        assert hits[0].score == float(578730123365187705)

    def test_no_filter_without_dates(self, index: TypesenseIndex, mock_client: MagicMock) -> None:
        documents = mock_client.collections.__getitem__.return_value.documents
        documents.search.return_value = {"hits": []}

        assert index.text_search("query", 5) == []
        assert "filter_by" not in documents.search.call_args[0][0]


class TestVectorSearch:
    """Tests for vector_search method."""

    def test_converts_distance_to_similarity(self, index: TypesenseIndex, mock_client: MagicMock) -> None:
        mock_client.multi_search.perform.return_value = {
            "results": [{"hits": [{"document": {"id": "a"}, "vector_distance": 0.25}]}],
        }

        hits = index.vector_search([0.5, 0.5, 0.0], 10, end_ts=300)

        assert hits[0].score == pytest.approx(0.75)
        search = mock_client.multi_search.perform.call_args[0][0]["searches"][0]
        assert search["collection"] == "exchanges"
        assert search["vector_query"] == "embedding:([0.500000,0.500000,0.000000], k:10)"
        assert search["filter_by"] == "ts:<300"

    def test_error_result_raises(self, index: TypesenseIndex, mock_client: MagicMock) -> None:
        mock_client.multi_search.perform.return_value = {"results": [{"error": "bad vector", "code": 400}]}

        with pytest.raises(RuntimeError, match="bad vector"):
            index.vector_search([0.1, 0.2, 0.3], 10)


class TestListArchivePaths:
    """Tests for list_archive_paths method."""

    def test_counts_entries_per_path(self, index: TypesenseIndex, mock_client: MagicMock) -> None:
        documents = mock_client.collections.__getitem__.return_value.documents
        documents.export.return_value = "\n".join(
            json.dumps({"archive_path": p}) for p in ["/a.jsonl", "/b.jsonl", "/a.jsonl"]
        )

        assert index.list_archive_paths() == {"/a.jsonl": 2, "/b.jsonl": 1}


class TestBuildFilter:
    """Tests for build_filter function."""

    def test_no_bounds(self) -> None:
        assert build_filter() is None

    def test_all_parts(self) -> None:
        assert build_filter(1, 2, "/a.jsonl") == "archive_path:=`/a.jsonl` && ts:>=1 && ts:<2"
