"""
Tidings Hybrid Search Engine
----------------------------
Ranks stored records for a question by fusing three signals:

1. Keyword relevance  (fraction of filter keywords found in title + body)
2. Vector similarity  (cosine between hash embeddings, cached per record)
3. Window affinity    (inside / near the planned time window)

    final = 0.5 * keyword + 0.4 * vector + 0.1 * recency

Candidates come from the BM25 index (``limit * 3``) and from a structured
window/source query on the record store (``limit * 4``). Lexical search is
best-effort: any failure there simply contributes no candidates.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Sequence

import numpy as np

from tidings.core.types import ContextItem, QueryFilter, Record
from tidings.errors import InvalidQueryError
from tidings.retrieval.embedding import HashEmbedder, cosine_similarity
from tidings.retrieval.keywords import build_match_expression, extract_keywords
from tidings.store.record_store import RecordStore
from tidings.store.vector_store import EmbeddingCache

logger = logging.getLogger("Tidings.Search")

KEYWORD_WEIGHT = 0.5
VECTOR_WEIGHT = 0.4
RECENCY_WEIGHT = 0.1

LEXICAL_FANOUT = 3
STRUCTURED_FANOUT = 4

DAY_SECONDS = 86400.0

# (max distance from the nearest window edge, score), checked in order
RECENCY_BUCKETS = [
    (DAY_SECONDS, 0.45),
    (3 * DAY_SECONDS, 0.35),
    (7 * DAY_SECONDS, 0.2),
]
IN_WINDOW_SCORE = 0.6
FAR_SCORE = 0.05
NO_WINDOW_SCORE = 0.2


def keyword_relevance(record: Record, keywords: Sequence[str], index: int) -> float:
    """
    0.2 with no keywords; ``0.5 + 0.5 * matched_ratio`` when any keyword
    matches; otherwise a floor decaying with candidate order
    (``max(0.1, 0.5 - 0.05 * index)``).
    """
    if not keywords:
        return 0.2
    haystack = f"{record.title} {record.body}".lower()
    matches = sum(1 for k in keywords if k.lower() in haystack)
    if matches == 0:
        return max(0.1, 0.5 - index * 0.05)
    return min(1.0, 0.5 + (matches / len(keywords)) * 0.5)


def recency_score(timestamp: float, query_filter: QueryFilter) -> float:
    if not query_filter.has_window:
        return NO_WINDOW_SCORE
    start, end = query_filter.start, query_filter.end
    if start <= timestamp <= end:
        return IN_WINDOW_SCORE
    distance = min(abs(timestamp - start), abs(timestamp - end))
    for limit, score in RECENCY_BUCKETS:
        if distance < limit:
            return score
    return FAR_SCORE


def _record_text(record: Record) -> str:
    return "\n".join(part for part in (record.title, record.body) if part).strip()


class HybridSearchEngine:
    """Lexical + structured candidate retrieval with weighted score fusion."""

    def __init__(
        self,
        store: RecordStore,
        cache: EmbeddingCache,
        embedder: Optional[HashEmbedder] = None,
    ):
        self.store = store
        self.cache = cache
        self.embedder = embedder or HashEmbedder(cache.embedding_dims)

    async def search(
        self,
        question: str,
        query_filter: Optional[QueryFilter] = None,
        limit: int = 5,
    ) -> List[ContextItem]:
        """
        Rank records for ``question`` under ``query_filter``.

        Raises:
            InvalidQueryError: if ``limit`` is not positive.
        """
        if limit <= 0:
            raise InvalidQueryError(f"limit must be positive, got {limit}")
        query_filter = query_filter or QueryFilter()
        started = time.time()
        question = (question or "").strip()
        keywords = list(query_filter.keywords) or extract_keywords(question)

        lexical, structured = await asyncio.gather(
            asyncio.to_thread(self._lexical_candidates, question, keywords, limit * LEXICAL_FANOUT),
            asyncio.to_thread(
                self.store.query_records,
                query_filter.start,
                query_filter.end,
                query_filter.source,
                limit * STRUCTURED_FANOUT,
            ),
        )

        candidates: Dict[str, Record] = {}
        for record in [*lexical, *structured]:
            candidates.setdefault(record.id, record)
        if not candidates:
            logger.debug("No candidates for %r", question)
            return []

        ordered = list(candidates.values())
        query_vector = self.embedder.embed(question)
        vectors = await self._vectors_for(ordered)

        scored = []
        for index, record in enumerate(ordered):
            kw = keyword_relevance(record, keywords, index)
            vec = cosine_similarity(query_vector, vectors[record.id])
            rec = recency_score(record.created_at, query_filter)
            final = KEYWORD_WEIGHT * kw + VECTOR_WEIGHT * vec + RECENCY_WEIGHT * rec
            scored.append((final, record))

        # sorted() is stable: equal scores keep candidate order
        ranked = sorted(scored, key=lambda pair: pair[0], reverse=True)[:limit]
        results = [
            ContextItem(
                id=record.id,
                title=record.title,
                body=record.body,
                source=record.source,
                timestamp=record.created_at,
                score=score,
                position=position,
            )
            for position, (score, record) in enumerate(ranked, start=1)
        ]
        logger.debug(
            "Hybrid search: %d lexical + %d structured → %d results in %.3fs",
            len(lexical), len(structured), len(results), time.time() - started,
        )
        return results

    def _lexical_candidates(self, question: str, keywords: List[str], limit: int) -> List[Record]:
        if not question:
            return []
        expression = build_match_expression(keywords)
        if not expression:
            return []
        try:
            return self.store.search_text(expression, limit=limit)
        except Exception as e:
            logger.warning("Lexical search failed: %s", e)
            return []

    async def _vectors_for(self, records: List[Record]) -> Dict[str, np.ndarray]:
        """Cached vectors, computing and caching any that are missing."""
        ids = [r.id for r in records]
        try:
            cached = await asyncio.to_thread(self.cache.get, ids)
        except Exception as e:
            logger.warning("Embedding cache read failed: %s", e)
            cached = {}

        vectors: Dict[str, np.ndarray] = {}
        for record in records:
            if record.id in cached:
                vectors[record.id] = np.asarray(cached[record.id], dtype=np.float32)
                continue
            vector = self.embedder.embed(_record_text(record))
            vectors[record.id] = vector
            try:
                await asyncio.to_thread(self.cache.put, record.id, vector.tolist())
            except Exception as e:
                logger.warning("Embedding cache write failed for %s: %s", record.id, e)
        return vectors
