"""Retriever for course content.

Handles:
- Query embedding and vector ranking
- Keyword-overlap ranking when vector search is not meaningful
- Degrading backend failures to an empty result list
- Formatting results into a bounded prompt context
"""
import re
from typing import Iterable, List, Optional

import structlog

from courserag import config
from courserag.errors import EmbeddingServiceError, RetrievalServiceError
from courserag.rag.embeddings import EmbeddingGateway
from courserag.rag.models import RetrievalResult, ScoredPoint
from courserag.rag.vector_store import VectorStore

logger = structlog.get_logger()

# Prompt context used when retrieval produced nothing
NO_CONTEXT_MESSAGE = "No relevant content found in the knowledge base."

CONTEXT_SEPARATOR = "\n\n---\n\n"
STRATEGIES = ("auto", "vector", "keyword")

_TERM_PATTERN = re.compile(r"\w+")


def tokenize_query(query: str) -> List[str]:
    """Distinct lowercase terms longer than two characters, in query order."""
    terms: List[str] = []
    for term in _TERM_PATTERN.findall(query.lower()):
        if len(term) > 2 and term not in terms:
            terms.append(term)
    return terms


def count_matches(terms: Iterable[str], point: ScoredPoint) -> int:
    """Number of terms found in the point's content, module or source."""
    payload = point.payload or {}
    fields = [
        str(payload.get("content") or "").lower(),
        str(payload.get("module") or "").lower(),
        str(payload.get("source") or "").lower(),
    ]
    return sum(1 for term in terms if any(term in field for field in fields))


def rank_by_keywords(query: str, points: List[ScoredPoint], top_k: int) -> List[RetrievalResult]:
    """Rank points by query-term overlap.

    Points without content or without any matching term are dropped. Ties
    keep the order the points were given in.
    """
    terms = tokenize_query(query)
    if not terms:
        return []

    scored = []
    for point in points:
        if not (point.payload or {}).get("content"):
            continue
        matches = count_matches(terms, point)
        if matches > 0:
            scored.append((matches, point))

    # sorted() is stable, so scroll order breaks ties
    scored = sorted(scored, key=lambda item: item[0], reverse=True)[:top_k]

    return [
        RetrievalResult(
            id=point.id,
            content=point.payload.get("content", ""),
            source=point.payload.get("source", ""),
            score=float(matches),
            rank=rank,
            group_tag=point.payload.get("module", ""),
        )
        for rank, (matches, point) in enumerate(scored, 1)
    ]


def format_context(results: List[RetrievalResult], max_chars: int = None) -> str:
    """Join results into prompt context, capped at ``max_chars``.

    Args:
        results: Ranked retrieval results
        max_chars: Maximum total characters (default from config)

    Returns:
        Context string, or NO_CONTEXT_MESSAGE when there are no results
    """
    if not results:
        return NO_CONTEXT_MESSAGE

    max_chars = max_chars or config.MAX_CONTEXT_CHARS
    parts: List[str] = []
    total_chars = 0

    for result in results:
        block = f"Source: {result.source}\nContent: {result.content.strip()}"
        cost = len(block) + (len(CONTEXT_SEPARATOR) if parts else 0)

        if total_chars + cost > max_chars:
            remaining = max_chars - total_chars - (len(CONTEXT_SEPARATOR) if parts else 0)
            # Only add a truncated block if there is meaningful space
            if remaining > 200:
                parts.append(block[: remaining - 3] + "...")
            break

        parts.append(block)
        total_chars += cost

    context = CONTEXT_SEPARATOR.join(parts)

    logger.debug("context_formatted", num_chunks=len(parts), total_chars=len(context))

    return context


class Retriever:
    """Turns a natural-language query into ranked supporting passages."""

    def __init__(
        self,
        embedder: EmbeddingGateway,
        vector_store: VectorStore,
        collection: str = None,
        top_k: int = None,
        strategy: str = None,
        keyword_scan_limit: int = None,
    ):
        """Initialize the retriever.

        Args:
            embedder: Embedding gateway used for query vectors
            vector_store: Vector store gateway
            collection: Collection name (default from config)
            top_k: Default number of results (default from config)
            strategy: ``auto``, ``vector`` or ``keyword`` (default from config)
            keyword_scan_limit: Max points scanned by keyword ranking (default from config)
        """
        self.embedder = embedder
        self.vector_store = vector_store
        self.collection = collection or config.QDRANT_COLLECTION
        self.top_k = top_k or config.RETRIEVAL_TOP_K
        self.strategy = strategy or config.RETRIEVAL_STRATEGY
        self.keyword_scan_limit = keyword_scan_limit or config.KEYWORD_SCAN_LIMIT

        if self.strategy not in STRATEGIES:
            raise ValueError(f"Unknown retrieval strategy {self.strategy!r}; use one of {STRATEGIES}")

        logger.info(
            "retriever_initialized",
            collection=self.collection,
            top_k=self.top_k,
            strategy=self.active_strategy,
        )

    @property
    def active_strategy(self) -> str:
        """The ranking strategy actually used for queries."""
        if self.strategy != "auto":
            return self.strategy
        if self.embedder.semantic and self.vector_store.supports_vector_search:
            return "vector"
        return "keyword"

    async def vector_search(self, query: str, top_k: int) -> List[RetrievalResult]:
        """Embed the query and map store hits in backend order."""
        query_vector = await self.embedder.embed_query(query)
        hits = await self.vector_store.query(self.collection, query_vector, top_k)

        return [
            RetrievalResult(
                id=hit.id,
                content=hit.payload.get("content", ""),
                source=hit.payload.get("source", ""),
                score=hit.score,
                rank=rank,
                group_tag=hit.payload.get("module", ""),
            )
            for rank, hit in enumerate(hits[:top_k], 1)
        ]

    async def keyword_search(self, query: str, top_k: int) -> List[RetrievalResult]:
        """Scroll candidate points and rank them by term overlap."""
        points = await self.vector_store.scroll_all(self.collection, self.keyword_scan_limit)
        return rank_by_keywords(query, points, top_k)

    async def retrieve(self, query: str, top_k: Optional[int] = None) -> List[RetrievalResult]:
        """Retrieve ranked passages for a query.

        Backend failures are logged and yield an empty list; callers treat
        that as "context unavailable".

        Args:
            query: User query text
            top_k: Number of results to return (overrides default)

        Returns:
            List of RetrievalResult objects, best first
        """
        if not query or not query.strip():
            logger.warning("empty_query_provided")
            return []

        top_k = top_k or self.top_k
        strategy = self.active_strategy

        logger.info("retrieval_started", query_length=len(query), top_k=top_k, strategy=strategy)

        try:
            if strategy == "vector":
                results = await self.vector_search(query, top_k)
            else:
                results = await self.keyword_search(query, top_k)

        except (EmbeddingServiceError, RetrievalServiceError) as e:
            logger.error(
                "retrieval_failed",
                error=str(e),
                error_type=type(e).__name__,
                retryable=e.retryable,
                query_preview=query[:100],
            )
            return []

        logger.info(
            "retrieval_completed",
            query_length=len(query),
            results_returned=len(results),
            top_score=results[0].score if results else None,
        )

        return results
