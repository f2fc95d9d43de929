"""Vector store gateway interface and backend selection."""
from abc import ABC, abstractmethod
from typing import List, Sequence

import structlog

from courserag import config
from courserag.rag.models import IndexedPoint, ScoredPoint

logger = structlog.get_logger()

DISTANCE_METRICS = ("Cosine", "Dot", "Euclid")


class VectorStore(ABC):
    """Collection management, upsert and similarity query over a vector DB."""

    supports_vector_search: bool = True

    @abstractmethod
    async def collection_exists(self, name: str) -> bool:
        """Whether the collection exists, without creating it."""

    @abstractmethod
    async def ensure_collection(
        self, name: str, dimension: int, distance: str = "Cosine"
    ) -> None:
        """Create the collection if absent. Already existing is success."""

    @abstractmethod
    async def upsert_batch(self, name: str, points: Sequence[IndexedPoint]) -> None:
        """Insert or overwrite points by id."""

    @abstractmethod
    async def query(self, name: str, vector: List[float], top_k: int) -> List[ScoredPoint]:
        """Return up to ``top_k`` nearest points, best first."""

    @abstractmethod
    async def scroll_all(self, name: str, limit: int) -> List[ScoredPoint]:
        """Return up to ``limit`` points in storage order, without scoring."""

    async def flush(self, name: str) -> None:
        """Persist pending writes for a collection. No-op for remote stores."""


def validate_distance(distance: str) -> str:
    if distance not in DISTANCE_METRICS:
        raise ValueError(f"Unsupported distance metric {distance!r}; use one of {DISTANCE_METRICS}")
    return distance


def build_vector_store() -> VectorStore:
    """Use Qdrant when a URL is configured, otherwise the in-process FAISS store."""
    if config.QDRANT_URL:
        from courserag.rag.store_qdrant import QdrantVectorStore

        logger.info("vector_store_selected", backend="qdrant", url=config.QDRANT_URL)
        return QdrantVectorStore()

    from courserag.rag.store_faiss import FAISSVectorStore

    logger.warning(
        "vector_store_selected",
        backend="faiss",
        persisted=config.FAISS_INDEX_DIR is not None,
        note="QDRANT_URL not set; using in-process index",
    )
    return FAISSVectorStore(index_dir=config.FAISS_INDEX_DIR)
