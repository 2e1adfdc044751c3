"""Relevance-ranked full-text search across all record kinds.

This module provides:
- parse_search_terms: Splits a query into terms, keeping quoted phrases whole
- score_record: Field-weighted term-frequency score
- extract_snippet: Bounded excerpt around the strongest content match
- SearchRanker: Runs the search and returns one ranked list

Scoring, per query term (case-insensitive occurrence counts):
- Title:            3.0 per occurrence
- Topics/keywords:  2.0 per occurrence
- Content:          1.0 per occurrence
- Exact phrase bonus: +1.0 when a multi-term query appears verbatim in
  the title or content

More occurrences of the same terms never lower a score. Results sort by
score, then recency, then id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .errors import InvalidParameterError
from .models import Record, RecordKind
from .protocol import RecordStore

logger = logging.getLogger(__name__)


TITLE_WEIGHT = 3.0
TOPIC_WEIGHT = 2.0
CONTENT_WEIGHT = 1.0
PHRASE_BONUS = 1.0
DEFAULT_SNIPPET_RADIUS = 60


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass
class SearchHit:
    """A scored search result."""

    kind: RecordKind
    id: str
    title: str
    score: float
    snippet: str
    recency: tuple[str, str] = ("", "")

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "kind": self.kind.value,
            "id": self.id,
            "title": self.title,
            "score": self.score,
            "snippet": self.snippet,
        }


@dataclass
class SearchResponse:
    """Ranked hits for a query."""

    query: str
    hits: list[SearchHit] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.hits)

    def to_dict(self) -> dict:
        """Serialize as ``{"count", "results", "query"}``."""
        return {
            "count": self.count,
            "results": [hit.to_dict() for hit in self.hits],
            "query": self.query,
        }


# ---------------------------------------------------------------------------
# Query parsing
# ---------------------------------------------------------------------------


def parse_search_terms(query: str) -> list[str]:
    """Split a query into lowercase terms.

    - "auth bug" -> ["auth", "bug"]
    - '"auth bug"' -> ["auth bug"] (quoted phrase kept whole)
    - 'fix "auth bug"' -> ["fix", "auth bug"]

    Duplicates are dropped; an unclosed quote is treated as a regular word.
    """
    tokens: list[str] = []
    current: list[str] = []
    in_quote = False

    for char in query:
        if char == '"':
            if in_quote:
                phrase = "".join(current)
                if phrase.strip():
                    tokens.append(phrase)
                current = []
            in_quote = not in_quote
        elif char.isspace() and not in_quote:
            if current:
                tokens.append("".join(current))
                current = []
        else:
            current.append(char)

    if current:
        tokens.append("".join(current))

    terms: list[str] = []
    for token in tokens:
        term = " ".join(token.lower().split())
        if term and term not in terms:
            terms.append(term)
    return terms


# ---------------------------------------------------------------------------
# Scoring and snippets
# ---------------------------------------------------------------------------


def score_record(record: Record, terms: list[str], phrase: str) -> float:
    """Calculate the relevance score of a record.

    Args:
        record: The record to score.
        terms: Lowercase query terms.
        phrase: The whole normalized query, for the exact phrase bonus.

    Returns:
        Relevance score (0.0 when nothing matches).
    """
    title = record.title.lower()
    topics = [t.lower() for t in record.topics]
    content = (record.content or "").lower()

    score = 0.0
    for term in terms:
        score += TITLE_WEIGHT * title.count(term)
        score += TOPIC_WEIGHT * sum(t.count(term) for t in topics)
        score += CONTENT_WEIGHT * content.count(term)

    if score > 0 and len(terms) > 1 and (phrase in title or phrase in content):
        score += PHRASE_BONUS

    return score


def extract_snippet(
    content: str | None,
    terms: list[str],
    fallback: str = "",
    radius: int = DEFAULT_SNIPPET_RADIUS,
) -> str:
    """Excerpt the content around its strongest term match.

    The strongest term is the one occurring most often in the content;
    ties go to the earliest occurrence. The excerpt spans ``radius``
    characters either side of that term's first occurrence, whitespace
    collapsed, with "..." marking cut-off text.

    Args:
        content: Full body text.
        terms: Lowercase query terms.
        fallback: Text used when there is no content (usually the title).
        radius: Characters kept on each side of the match.

    Returns:
        The snippet.
    """
    if not content:
        return fallback

    lowered = content.lower()
    best: tuple[int, int, str] | None = None  # (-count, position, term)
    for term in terms:
        position = lowered.find(term)
        if position < 0:
            continue
        candidate = (-lowered.count(term), position, term)
        if best is None or candidate < best:
            best = candidate

    if best is None:
        start, end = 0, min(len(content), 2 * radius)
    else:
        _, position, term = best
        start = max(0, position - radius)
        end = min(len(content), position + len(term) + radius)

    excerpt = " ".join(content[start:end].split())
    if start > 0:
        excerpt = "..." + excerpt
    if end < len(content):
        excerpt = excerpt + "..."
    return excerpt


# ---------------------------------------------------------------------------
# SearchRanker
# ---------------------------------------------------------------------------


class SearchRanker:
    """Searches sessions, plans and patterns together and ranks the hits."""

    def __init__(self, store: RecordStore, snippet_radius: int = DEFAULT_SNIPPET_RADIUS) -> None:
        self.store = store
        self.snippet_radius = snippet_radius

    async def search_context(self, query: str, limit: int | None = None) -> SearchResponse:
        """Full-text search across every record kind.

        Args:
            query: Search terms; quoted phrases are matched whole.
            limit: Maximum number of results (None for all).

        Returns:
            SearchResponse sorted by descending score, ties by recency.

        Raises:
            InvalidParameterError: If the query is empty or limit is not positive.
        """
        if not isinstance(query, str) or not query.strip():
            raise InvalidParameterError("query", "search query must be a non-empty string")
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 1):
            raise InvalidParameterError("limit", f"must be a positive integer, got {limit!r}")

        terms = parse_search_terms(query)
        if not terms:
            raise InvalidParameterError("query", "search query has no terms")
        phrase = " ".join(" ".join(terms).split())

        candidates = await self.store.search_candidates(terms)

        hits: list[SearchHit] = []
        for record in candidates:
            score = score_record(record, terms, phrase)
            if score <= 0:
                continue
            hits.append(
                SearchHit(
                    kind=record.kind,
                    id=record.id,
                    title=record.title,
                    score=score,
                    snippet=extract_snippet(
                        record.content, terms, fallback=record.title, radius=self.snippet_radius
                    ),
                    recency=record.recency,
                )
            )

        hits.sort(key=lambda h: (h.score, h.recency, h.id), reverse=True)
        if limit is not None:
            hits = hits[:limit]

        logger.debug(f"search_context {query!r}: {len(hits)} hits from {len(candidates)} candidates")
        return SearchResponse(query=query, hits=hits)
