"""Search over indexed exchanges.

Single-concept queries run in one of three modes:

- text: exact keyword match ranked by Typesense's text_match score
- vector: cosine similarity between the query embedding and exchange embeddings
- both: the two result lists merged on (archive_path, line_start, line_end)

In "both" mode each list's scores are min-max normalized to [0, 1] and an
entry scores ``modes_matched + mean(normalized scores)``. An entry found by
both modes therefore lands in [2, 3] and always outranks one found by a
single mode, which lands in [1, 2]. Remaining ties go to the newer entry.

Multi-concept queries run a "both" search per concept and keep only the
conversations (archive paths) that matched every concept, scored by the
sum of each concept's best match.
"""

from dataclasses import dataclass, field

from session_recall.config import SearchConfig
from session_recall.errors import EmbeddingCapabilityError
from session_recall.logging import get_logger
from session_recall.models import ConceptMatch, MultiConceptResult, SearchResult
from session_recall.processor.embeddings import Embedder
from session_recall.processor.indexer import MAX_PER_PAGE, IndexHit, TypesenseIndex
from session_recall.search.filters import (
    DateRange,
    SearchOptions,
    validate_concepts,
    validate_options,
    validate_query,
)

logger = get_logger("search")

SNIPPET_SCAN_LIMIT = 50000


@dataclass
class SearchResponse:
    """Ranked results plus any degradation warnings."""

    results: list = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    mode: str = "both"


def make_snippet(text: str, query: str, length: int = 200) -> str:
    """Create snippet using sliding-window term-density scoring."""
    terms = [t for t in query.lower().split() if len(t) >= 2]
    text = " ".join(text.split())

    if not terms or len(text) <= length:
        return text[:length] + ("..." if len(text) > length else "")

    # Cap text to avoid O(n) scans on very long exchanges
    text_lower = text[:SNIPPET_SCAN_LIMIT].lower()

    best_score = 0
    best_start = 0
    step = max(1, length // 4)
    for start in range(0, max(1, len(text_lower) - length + step), step):
        window = text_lower[start:start + length]
        score = sum(window.count(term) for term in terms)
        if score > best_score:
            best_score = score
            best_start = start

    end = min(len(text), best_start + length)
    snippet = text[best_start:end]
    if best_start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet = snippet + "..."
    return snippet


def normalize_scores(results: list[SearchResult]) -> dict[tuple[str, int, int], float]:
    """Min-max normalize scores to [0, 1]; a single distinct score maps to 1.0."""
    if not results:
        return {}
    high = max(r.score for r in results)
    low = min(r.score for r in results)
    spread = high - low

    normalized: dict[tuple[str, int, int], float] = {}
    for r in results:
        value = 1.0 if spread == 0 else (r.score - low) / spread
        normalized[r.key] = max(value, normalized.get(r.key, 0.0))
    return normalized


def rank_key(result: SearchResult | MultiConceptResult) -> tuple:
    """Sort key: score desc, then newest first, then position."""
    return (-result.score, -result.ts, result.archive_path, result.line_start)


def merge_hybrid(
    text_results: list[SearchResult],
    vector_results: list[SearchResult],
) -> list[SearchResult]:
    """Merge text and vector results into one hybrid ranking."""
    merged: dict[tuple[str, int, int], SearchResult] = {}
    scores: dict[tuple[str, int, int], list[float]] = {}
    modes: dict[tuple[str, int, int], list[str]] = {}

    for mode, results in (("text", text_results), ("vector", vector_results)):
        normalized = normalize_scores(results)
        for result in results:
            key = result.key
            if mode in modes.get(key, []):
                continue
            merged.setdefault(key, result)
            scores.setdefault(key, []).append(normalized[key])
            modes.setdefault(key, []).append(mode)

    ranked = []
    for key, result in merged.items():
        key_scores = scores[key]
        ranked.append(
            SearchResult(
                project=result.project,
                timestamp=result.timestamp,
                archive_path=result.archive_path,
                line_start=result.line_start,
                line_end=result.line_end,
                snippet=result.snippet,
                score=len(key_scores) + sum(key_scores) / len(key_scores),
                ts=result.ts,
                matched_modes=tuple(modes[key]),
            )
        )

    ranked.sort(key=rank_key)
    return ranked


class SearchEngine:
    """Runs single- and multi-concept searches against the index."""

    def __init__(self, index: TypesenseIndex, embedder: Embedder, config: SearchConfig) -> None:
        self._index = index
        self._embedder = embedder
        self._config = config

    def _candidate_limit(self, limit: int, factor: int = 3) -> int:
        return min(max(limit * factor, self._config.candidate_pool), MAX_PER_PAGE)

    def _to_result(self, hit: IndexHit, query: str, mode: str) -> SearchResult:
        doc = hit.document
        return SearchResult(
            project=doc.get("project", ""),
            timestamp=doc.get("timestamp", ""),
            archive_path=doc["archive_path"],
            line_start=int(doc["line_start"]),
            line_end=int(doc["line_end"]),
            snippet=make_snippet(doc.get("content", ""), query, self._config.snippet_length),
            score=hit.score,
            ts=int(doc.get("ts", 0)),
            matched_modes=(mode,),
        )

    def _text_results(self, query: str, limit: int, dates: DateRange) -> list[SearchResult]:
        hits = self._index.text_search(query, limit, dates.start_ts, dates.end_ts)
        results = [self._to_result(hit, query, "text") for hit in hits]
        results.sort(key=rank_key)
        return results

    def _vector_results(self, query: str, limit: int, dates: DateRange) -> list[SearchResult]:
        vector = self._embedder.embed(query)
        hits = self._index.vector_search(vector, limit, dates.start_ts, dates.end_ts)
        results = [
            self._to_result(hit, query, "vector")
            for hit in hits
            if hit.score >= self._config.min_similarity
        ]
        results.sort(key=rank_key)
        return results

    def _ranked(
        self,
        query: str,
        mode: str,
        candidates: int,
        dates: DateRange,
        warnings: list[str],
    ) -> tuple[list[SearchResult], str]:
        """Run one concept; returns the ranking and the mode actually used."""
        if mode == "text":
            results = self._text_results(query, candidates, dates)
            normalized = normalize_scores(results)
            for r in results:
                r.score = normalized[r.key]
            return results, "text"

        try:
            vector_results = self._vector_results(query, candidates, dates)
        except EmbeddingCapabilityError as e:
            warning = f"Semantic search unavailable, showing text matches only: {e.message}"
            if warning not in warnings:
                warnings.append(warning)
            logger.warning("Falling back to text search: query=%r error=%s", query, e.message)
            return self._ranked(query, "text", candidates, dates, warnings)

        if mode == "vector":
            return vector_results, "vector"

        text_results = self._text_results(query, candidates, dates)
        return merge_hybrid(text_results, vector_results), "both"

    def search(self, query: str, options: SearchOptions | None = None) -> SearchResponse:
        """Single-concept search.

        Raises:
            InputValidationError: For a short query, bad mode, limit, or date
        """
        options = options or SearchOptions()
        query = validate_query(query)
        dates = validate_options(options)

        warnings: list[str] = []
        results, mode_used = self._ranked(
            query, options.mode, self._candidate_limit(options.limit), dates, warnings
        )

        logger.debug(
            "Search: query=%r mode=%s used=%s candidates=%d returned=%d",
            query,
            options.mode,
            mode_used,
            len(results),
            min(len(results), options.limit),
        )
        return SearchResponse(results=results[:options.limit], warnings=warnings, mode=mode_used)

    def search_multi(self, concepts: list[str], options: SearchOptions | None = None) -> SearchResponse:
        """Multi-concept AND search; options.mode is ignored.

        Raises:
            InputValidationError: For bad concepts, limit, or date
        """
        options = options or SearchOptions()
        concepts = validate_concepts(concepts)
        dates = validate_options(SearchOptions(mode="both", limit=options.limit,
                                               after=options.after, before=options.before))

        warnings: list[str] = []
        candidates = self._candidate_limit(options.limit, factor=5)
        best_per_concept: list[dict[str, SearchResult]] = []
        modes_used = set()

        for concept in concepts:
            ranked, mode_used = self._ranked(concept, "both", candidates, dates, warnings)
            modes_used.add(mode_used)
            best: dict[str, SearchResult] = {}
            for result in ranked:
                # Ranking is sorted, so the first hit per conversation is its best
                best.setdefault(result.archive_path, result)
            best_per_concept.append(best)

        common = set(best_per_concept[0])
        for best in best_per_concept[1:]:
            common &= set(best)

        results: list[MultiConceptResult] = []
        for archive_path in common:
            matches = []
            for concept, best in zip(concepts, best_per_concept):
                hit = best[archive_path]
                matches.append(
                    ConceptMatch(
                        concept=concept,
                        line_start=hit.line_start,
                        line_end=hit.line_end,
                        snippet=hit.snippet,
                        score=hit.score,
                    )
                )

            top = max(
                (best[archive_path] for best in best_per_concept),
                key=lambda r: (r.score, r.ts),
            )
            results.append(
                MultiConceptResult(
                    project=top.project,
                    timestamp=top.timestamp,
                    archive_path=archive_path,
                    line_start=top.line_start,
                    line_end=top.line_end,
                    snippet=top.snippet,
                    score=sum(m.score for m in matches),
                    ts=max(best[archive_path].ts for best in best_per_concept),
                    concept_matches=matches,
                )
            )

        results.sort(key=rank_key)
        logger.debug(
            "Multi-concept search: concepts=%d qualifying=%d returned=%d",
            len(concepts),
            len(results),
            min(len(results), options.limit),
        )
        mode = "both" if modes_used == {"both"} else "text"
        return SearchResponse(results=results[:options.limit], warnings=warnings, mode=mode)
