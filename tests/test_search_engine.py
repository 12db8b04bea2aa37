"""Tests for the search engine."""

from unittest.mock import MagicMock

import pytest

from session_recall.config import SearchConfig
from session_recall.errors import EmbeddingCapabilityError, InputValidationError
from session_recall.models import SearchResult
from session_recall.processor.indexer import IndexHit
from session_recall.search.engine import (
    SearchEngine,
    make_snippet,
    merge_hybrid,
    normalize_scores,
)
from session_recall.search.filters import SearchOptions

AUG_15 = 1755216000
SEP_15 = 1757894400


def doc(path: str, line_start: int, content: str = "", ts: int = SEP_15) -> dict:
    return {
        "id": f"{path}:{line_start}",
        "archive_path": path,
        "project": "app",
        "timestamp": "2025-09-15T10:00:00Z",
        "ts": ts,
        "line_start": line_start,
        "line_end": line_start + 1,
        "content": content,
    }


def result(path: str, line_start: int, score: float, ts: int = 0) -> SearchResult:
    return SearchResult(
        project="app",
        timestamp="",
        archive_path=path,
        line_start=line_start,
        line_end=line_start + 1,
        snippet="",
        score=score,
        ts=ts,
    )


@pytest.fixture
def index() -> MagicMock:
    mock = MagicMock()
    mock.text_search.return_value = []
    mock.vector_search.return_value = []
    return mock


@pytest.fixture
def embedder() -> MagicMock:
    mock = MagicMock()
    mock.embed.return_value = [0.1, 0.2, 0.3]
    return mock


@pytest.fixture
def engine(index: MagicMock, embedder: MagicMock) -> SearchEngine:
    return SearchEngine(index, embedder, SearchConfig())


class TestNormalizeScores:
    """Tests for normalize_scores function."""

    def test_min_max(self) -> None:
        normalized = normalize_scores([result("/a", 1, 10.0), result("/a", 3, 5.0), result("/a", 5, 0.0)])

        assert normalized == {("/a", 1, 2): 1.0, ("/a", 3, 4): 0.5, ("/a", 5, 6): 0.0}

    def test_single_score_maps_to_one(self) -> None:
        assert normalize_scores([result("/a", 1, 0.3)]) == {("/a", 1, 2): 1.0}


class TestMergeHybrid:
    """Tests for merge_hybrid function."""

    def test_both_mode_hits_outrank_single_mode(self) -> None:
        """An entry found by both modes should rank at or above single-mode entries."""
        text = [result("/a", 1, 100.0), result("/b", 1, 80.0), result("/d", 1, 0.0)]
        vector = [result("/c", 1, 0.9), result("/b", 1, 0.8), result("/e", 1, 0.1)]

        merged = merge_hybrid(text, vector)

        assert merged[0].archive_path == "/b"
        assert merged[0].matched_modes == ("text", "vector")
        assert 2.0 <= merged[0].score <= 3.0
        assert all(1.0 <= r.score <= 2.0 for r in merged[1:])

    def test_deduplicates_on_location(self) -> None:
        merged = merge_hybrid([result("/a", 1, 1.0)], [result("/a", 1, 0.8)])

        assert len(merged) == 1

    def test_ties_go_to_newer_entry(self) -> None:
        merged = merge_hybrid([result("/old", 1, 1.0, ts=100), result("/new", 1, 1.0, ts=200)], [])

        assert [r.archive_path for r in merged] == ["/new", "/old"]


class TestMakeSnippet:
    """Tests for make_snippet function."""

    def test_short_text_returned_whole(self) -> None:
        assert make_snippet("short   text\nhere", "text") == "short text here"

    def test_window_centres_on_terms(self) -> None:
        text = "filler " * 100 + "the migration failed on the users table " + "filler " * 100

        snippet = make_snippet(text, "migration users", length=80)

        assert "migration" in snippet
        assert snippet.startswith("...")
        assert snippet.endswith("...")


class TestSearch:
    """Tests for single-concept search."""

    def test_text_mode(self, engine: SearchEngine, index: MagicMock, embedder: MagicMock) -> None:
        index.text_search.return_value = [
            IndexHit(doc("/a.jsonl", 1, "login bug fixed"), 200.0),
            IndexHit(doc("/b.jsonl", 1, "another login bug"), 100.0),
        ]

        response = engine.search("login bug", SearchOptions(mode="text"))

        assert response.mode == "text"
        assert [r.archive_path for r in response.results] == ["/a.jsonl", "/b.jsonl"]
        assert response.results[0].score == 1.0
        embedder.embed.assert_not_called()

    def test_vector_mode_drops_low_similarity(self, engine: SearchEngine, index: MagicMock) -> None:
        index.vector_search.return_value = [
            IndexHit(doc("/a.jsonl", 1), 0.8),
            IndexHit(doc("/b.jsonl", 1), 0.1),
        ]

        response = engine.search("authentication", SearchOptions(mode="vector"))

        assert [r.archive_path for r in response.results] == ["/a.jsonl"]
        assert response.results[0].matched_modes == ("vector",)

    def test_both_mode_merges(self, engine: SearchEngine, index: MagicMock) -> None:
        index.text_search.return_value = [IndexHit(doc("/a.jsonl", 1), 10.0)]
        index.vector_search.return_value = [
            IndexHit(doc("/b.jsonl", 1), 0.9),
            IndexHit(doc("/a.jsonl", 1), 0.5),
        ]

        response = engine.search("authentication")

        assert response.mode == "both"
        assert response.results[0].archive_path == "/a.jsonl"
        assert response.results[0].matched_modes == ("text", "vector")

    def test_limit_applied(self, engine: SearchEngine, index: MagicMock) -> None:
        index.text_search.return_value = [IndexHit(doc(f"/{i}.jsonl", 1), float(i)) for i in range(20)]

        response = engine.search("query", SearchOptions(mode="text", limit=5))

        assert len(response.results) == 5

    def test_date_bounds_passed_to_index(self, engine: SearchEngine, index: MagicMock) -> None:
        """after is inclusive and before exclusive, as UTC day starts."""
        engine.search("deploy", SearchOptions(mode="text", after="2025-08-15", before="2025-09-15"))

        _, _, start_ts, end_ts = index.text_search.call_args[0]
        assert start_ts == AUG_15
        assert end_ts == SEP_15

    def test_embedding_failure_degrades_to_text(self, engine: SearchEngine, index: MagicMock, embedder: MagicMock) -> None:
        """A missing embedding model should fall back to text search with a warning."""
        embedder.embed.side_effect = EmbeddingCapabilityError("model missing")
        index.text_search.return_value = [IndexHit(doc("/a.jsonl", 1), 5.0)]

        response = engine.search("authentication")

        assert response.mode == "text"
        assert len(response.results) == 1
        assert len(response.warnings) == 1
        assert "model missing" in response.warnings[0]

    def test_short_query_rejected(self, engine: SearchEngine, index: MagicMock) -> None:
        with pytest.raises(InputValidationError):
            engine.search("a")

        index.text_search.assert_not_called()

    def test_invalid_limit_rejected(self, engine: SearchEngine) -> None:
        with pytest.raises(InputValidationError):
            engine.search("query", SearchOptions(limit=51))


class TestSearchMulti:
    """Tests for multi-concept search."""

    def test_only_conversations_matching_every_concept(self, engine: SearchEngine, index: MagicMock) -> None:
        """A conversation must match all concepts to be returned."""
        hits = {
            "authentication": [
                IndexHit(doc("/both.jsonl", 1, "authentication token"), 10.0),
                IndexHit(doc("/auth-only.jsonl", 1, "authentication"), 8.0),
            ],
            "error handling": [
                IndexHit(doc("/both.jsonl", 5, "error handling retry"), 7.0),
                IndexHit(doc("/errors-only.jsonl", 1, "error handling"), 9.0),
            ],
        }
        index.text_search.side_effect = lambda query, *args: hits[query]
        index.vector_search.return_value = []

        response = engine.search_multi(["authentication", "error handling"])

        assert [r.archive_path for r in response.results] == ["/both.jsonl"]
        matches = response.results[0].concept_matches
        assert [m.concept for m in matches] == ["authentication", "error handling"]
        assert (matches[1].line_start, matches[1].line_end) == (5, 6)
        assert response.results[0].score == pytest.approx(sum(m.score for m in matches))

    def test_ranked_by_summed_concept_scores(self, engine: SearchEngine, index: MagicMock) -> None:
        index.text_search.side_effect = lambda query, *args: [
            IndexHit(doc("/strong.jsonl", 1), 10.0),
            IndexHit(doc("/weak.jsonl", 1), 1.0),
        ]

        response = engine.search_multi(["alpha", "beta"])

        assert [r.archive_path for r in response.results] == ["/strong.jsonl", "/weak.jsonl"]

    def test_rejects_single_concept(self, engine: SearchEngine) -> None:
        with pytest.raises(InputValidationError):
            engine.search_multi(["only one"])

    def test_no_common_conversation(self, engine: SearchEngine, index: MagicMock) -> None:
        index.text_search.side_effect = lambda query, *args: [IndexHit(doc(f"/{query}.jsonl", 1), 1.0)]

        response = engine.search_multi(["alpha", "beta"])

        assert response.results == []
