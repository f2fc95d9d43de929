"""In-process FAISS vector store.

Used when no external vector database is configured. Handles:
- Idempotent collection creation
- Upsert by point id (re-upsert replaces vector and payload)
- Similarity search and unscored scrolling
- Optional persistence of each collection to disk
"""
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import faiss
import numpy as np
import structlog

from courserag.errors import RetrievalServiceError
from courserag.rag.models import IndexedPoint, ScoredPoint
from courserag.rag.vector_store import VectorStore, validate_distance

logger = structlog.get_logger()


@dataclass
class _Collection:
    """One FAISS index plus the payloads and id mapping that go with it."""

    name: str
    dimension: int
    distance: str
    index: faiss.Index
    payloads: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    point_ids: Dict[str, int] = field(default_factory=dict)
    next_id: int = 0

    @property
    def keys(self) -> Dict[int, str]:
        return {internal: point_id for point_id, internal in self.point_ids.items()}


def _new_index(dimension: int, distance: str) -> faiss.Index:
    if distance == "Euclid":
        base = faiss.IndexFlatL2(dimension)
    else:
        # Cosine uses inner product over L2-normalised vectors
        base = faiss.IndexFlatIP(dimension)
    return faiss.IndexIDMap2(base)


class FAISSVectorStore(VectorStore):
    """FAISS-backed implementation of the vector store gateway."""

    def __init__(self, index_dir: Optional[Path] = None):
        """Initialize the FAISS vector store.

        Args:
            index_dir: Directory to persist collections to (in-memory only if None)
        """
        self.index_dir = Path(index_dir) if index_dir else None
        self.collections: Dict[str, _Collection] = {}

        logger.info(
            "faiss_store_initialized",
            index_dir=str(self.index_dir) if self.index_dir else None,
        )

    def _paths(self, name: str):
        return self.index_dir / f"{name}.index", self.index_dir / f"{name}.json"

    def _prepare(self, collection: _Collection, vectors: np.ndarray) -> np.ndarray:
        if vectors.ndim != 2 or vectors.shape[1] != collection.dimension:
            raise RetrievalServiceError(
                f"Vector dimension mismatch for {collection.name}: expected "
                f"{collection.dimension}, got {vectors.shape[-1] if vectors.ndim else 0}"
            )
        vectors = np.ascontiguousarray(vectors, dtype=np.float32)
        if collection.distance == "Cosine":
            faiss.normalize_L2(vectors)
        return vectors

    def _get(self, name: str) -> _Collection:
        collection = self.collections.get(name)
        if collection is None:
            raise RetrievalServiceError(f"Collection not found: {name}")
        return collection

    def _load(self, name: str) -> Optional[_Collection]:
        if self.index_dir is None:
            return None

        index_path, metadata_path = self._paths(name)
        if not (index_path.exists() and metadata_path.exists()):
            return None

        try:
            with open(metadata_path, "r") as f:
                metadata = json.load(f)
            index = faiss.read_index(str(index_path))
        except Exception as e:
            raise RetrievalServiceError(f"Failed to load FAISS collection {name}: {e}") from e

        collection = _Collection(
            name=name,
            dimension=metadata["dimension"],
            distance=metadata["distance"],
            index=index,
            payloads={int(k): v for k, v in metadata["payloads"]},
            point_ids=dict(metadata["point_ids"]),
            next_id=metadata["next_id"],
        )

        logger.info(
            "faiss_collection_loaded",
            collection=name,
            vector_count=collection.index.ntotal,
        )
        return collection

    def save(self, name: str) -> None:
        """Write a collection's index and payloads to ``index_dir``."""
        if self.index_dir is None:
            return

        collection = self._get(name)
        self.index_dir.mkdir(parents=True, exist_ok=True)
        index_path, metadata_path = self._paths(name)

        try:
            faiss.write_index(collection.index, str(index_path))
            with open(metadata_path, "w") as f:
                json.dump(
                    {
                        "dimension": collection.dimension,
                        "distance": collection.distance,
                        # list of pairs keeps storage order through JSON
                        "payloads": list(collection.payloads.items()),
                        "point_ids": collection.point_ids,
                        "next_id": collection.next_id,
                    },
                    f,
                )
        except Exception as e:
            raise RetrievalServiceError(f"Failed to save FAISS collection {name}: {e}") from e

        logger.debug("faiss_collection_saved", collection=name, vector_count=collection.index.ntotal)

    async def collection_exists(self, name: str) -> bool:
        if name not in self.collections:
            collection = self._load(name)
            if collection is None:
                return False
            self.collections[name] = collection
        return True

    async def ensure_collection(
        self, name: str, dimension: int, distance: str = "Cosine"
    ) -> None:
        validate_distance(distance)

        collection = self.collections.get(name) or self._load(name)
        if collection is not None:
            if collection.dimension != dimension:
                raise RetrievalServiceError(
                    f"Collection {name} has dimension {collection.dimension}, "
                    f"requested {dimension}. Rebuild the index."
                )
            self.collections[name] = collection
            logger.debug("collection_exists", collection=name)
            return

        self.collections[name] = _Collection(
            name=name,
            dimension=dimension,
            distance=distance,
            index=_new_index(dimension, distance),
        )

        logger.info("collection_created", collection=name, dimension=dimension, distance=distance)

    async def upsert_batch(self, name: str, points: Sequence[IndexedPoint]) -> None:
        if not points:
            return

        collection = self._get(name)
        vectors = self._prepare(collection, np.array([p.vector for p in points], dtype=np.float32))

        internal_ids = []
        for point in points:
            internal = collection.point_ids.get(point.id)
            if internal is None:
                internal = collection.next_id
                collection.next_id += 1
                collection.point_ids[point.id] = internal
            else:
                collection.index.remove_ids(np.array([internal], dtype=np.int64))
            internal_ids.append(internal)

        # A batch repeating an id keeps the last occurrence
        latest: Dict[int, int] = {}
        for position, internal in enumerate(internal_ids):
            latest[internal] = position
        positions = sorted(latest.values())

        collection.index.add_with_ids(
            vectors[positions], np.array([internal_ids[p] for p in positions], dtype=np.int64)
        )
        for position in positions:
            collection.payloads[internal_ids[position]] = dict(points[position].payload)

        logger.info(
            "vectors_upserted",
            collection=name,
            count=len(positions),
            total_vectors=collection.index.ntotal,
        )

    async def flush(self, name: str) -> None:
        """Save the collection once a run of upserts is done."""
        self.save(name)

    async def query(self, name: str, vector: List[float], top_k: int) -> List[ScoredPoint]:
        collection = self._get(name)
        query_vector = self._prepare(collection, np.array([vector], dtype=np.float32))

        top_k = min(top_k, collection.index.ntotal)
        if top_k <= 0:
            return []

        scores, indices = collection.index.search(query_vector, top_k)
        keys = collection.keys

        results = []
        for internal, raw in zip(indices[0].tolist(), scores[0].tolist()):
            if internal == -1:
                continue
            score = 1.0 / (1.0 + float(np.sqrt(max(raw, 0.0)))) if collection.distance == "Euclid" else float(raw)
            results.append(
                ScoredPoint(id=keys[internal], score=score, payload=collection.payloads[internal])
            )

        logger.debug("vector_search_completed", collection=name, top_k=top_k, results_found=len(results))
        return results

    async def scroll_all(self, name: str, limit: int) -> List[ScoredPoint]:
        collection = self._get(name)
        keys = collection.keys
        return [
            ScoredPoint(id=keys[internal], score=0.0, payload=payload)
            for internal, payload in list(collection.payloads.items())[:limit]
        ]

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store."""
        return {
            name: {
                "vector_count": collection.index.ntotal,
                "dimension": collection.dimension,
                "distance": collection.distance,
            }
            for name, collection in self.collections.items()
        }
