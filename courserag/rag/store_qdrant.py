"""Qdrant vector store over its REST API.

Endpoints used:
- ``GET/PUT /collections/{name}`` for idempotent collection creation
- ``PUT /collections/{name}/points?wait=true`` for upserts
- ``POST /collections/{name}/points/search`` for similarity queries
- ``POST /collections/{name}/points/scroll`` for paginated unscored reads
"""
from typing import Any, Dict, List, Optional, Sequence

import httpx
import structlog

from courserag import config
from courserag.errors import RetrievalServiceError
from courserag.http_client import is_transient, request_with_retry
from courserag.rag.models import IndexedPoint, ScoredPoint
from courserag.rag.vector_store import VectorStore, validate_distance

logger = structlog.get_logger()

SCROLL_PAGE_SIZE = 64


class QdrantVectorStore(VectorStore):
    """Vector store gateway backed by a Qdrant server."""

    def __init__(
        self,
        url: str = None,
        api_key: str = None,
        timeout: float = None,
        retry_attempts: int = None,
        retry_wait: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = (url or config.QDRANT_URL or "").rstrip("/")
        self.api_key = api_key if api_key is not None else config.QDRANT_API_KEY
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_wait = retry_wait
        self.transport = transport

        if not self.url:
            raise ValueError("Qdrant URL is required")

    def _headers(self) -> Dict[str, str]:
        return {"api-key": self.api_key} if self.api_key else {}

    async def _request(self, method: str, path: str, operation: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await request_with_retry(
                method,
                f"{self.url}{path}",
                service=f"qdrant_{operation}",
                timeout=self.timeout,
                attempts=self.retry_attempts,
                initial_wait=self.retry_wait,
                max_wait=self.retry_wait,
                transport=self.transport,
                headers=self._headers(),
                **kwargs,
            )
            return response.json()
        except httpx.HTTPError as e:
            logger.error(
                "qdrant_request_failed",
                operation=operation,
                path=path,
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise RetrievalServiceError(
                f"Vector store {operation} failed: {e}", retryable=is_transient(e)
            ) from e

    async def collection_exists(self, name: str) -> bool:
        try:
            await request_with_retry(
                "GET",
                f"{self.url}/collections/{name}",
                service="qdrant_get_collection",
                timeout=self.timeout,
                attempts=self.retry_attempts,
                initial_wait=self.retry_wait,
                max_wait=self.retry_wait,
                transport=self.transport,
                headers=self._headers(),
            )
            return True
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return False
            raise RetrievalServiceError(
                f"Vector store get_collection failed: {e}", retryable=is_transient(e)
            ) from e
        except httpx.HTTPError as e:
            raise RetrievalServiceError(
                f"Vector store get_collection failed: {e}", retryable=is_transient(e)
            ) from e

    async def ensure_collection(
        self, name: str, dimension: int, distance: str = "Cosine"
    ) -> None:
        validate_distance(distance)

        if await self.collection_exists(name):
            logger.debug("collection_exists", collection=name)
            return

        body = {
            "vectors": {"size": dimension, "distance": distance},
            "hnsw_config": {"ef_construct": 100, "m": 16},
            "optimizers_config": {"full_scan_threshold": 10000},
            "quantization_config": {
                "scalar": {"type": "int8", "quantile": 0.99, "always_ram": True}
            },
        }

        try:
            await request_with_retry(
                "PUT",
                f"{self.url}/collections/{name}",
                service="qdrant_create_collection",
                timeout=self.timeout,
                attempts=self.retry_attempts,
                initial_wait=self.retry_wait,
                max_wait=self.retry_wait,
                transport=self.transport,
                headers=self._headers(),
                json=body,
            )
        except httpx.HTTPStatusError as e:
            # Lost a creation race: someone else created it first
            if e.response.status_code == 409 or "already exists" in e.response.text.lower():
                logger.info("collection_already_exists", collection=name)
                return
            raise RetrievalServiceError(
                f"Vector store create_collection failed: {e}", retryable=is_transient(e)
            ) from e
        except httpx.HTTPError as e:
            raise RetrievalServiceError(
                f"Vector store create_collection failed: {e}", retryable=is_transient(e)
            ) from e

        logger.info("collection_created", collection=name, dimension=dimension, distance=distance)

    async def upsert_batch(self, name: str, points: Sequence[IndexedPoint]) -> None:
        if not points:
            return

        await self._request(
            "PUT",
            f"/collections/{name}/points",
            "upsert",
            params={"wait": "true"},
            json={
                "points": [
                    {"id": p.id, "vector": list(p.vector), "payload": p.payload}
                    for p in points
                ]
            },
        )

        logger.info("vectors_upserted", collection=name, count=len(points))

    async def query(self, name: str, vector: List[float], top_k: int) -> List[ScoredPoint]:
        data = await self._request(
            "POST",
            f"/collections/{name}/points/search",
            "search",
            json={"vector": list(vector), "limit": top_k, "with_payload": True},
        )

        hits = data.get("result") or []
        results = [
            ScoredPoint(id=str(hit["id"]), score=float(hit.get("score", 0.0)), payload=hit.get("payload") or {})
            for hit in hits
        ]

        logger.debug("vector_search_completed", collection=name, top_k=top_k, results_found=len(results))
        return results

    async def scroll_all(self, name: str, limit: int) -> List[ScoredPoint]:
        points: List[ScoredPoint] = []
        offset = None

        while len(points) < limit:
            body: Dict[str, Any] = {
                "limit": min(SCROLL_PAGE_SIZE, limit - len(points)),
                "with_payload": True,
                "with_vector": False,
            }
            if offset is not None:
                body["offset"] = offset

            data = await self._request("POST", f"/collections/{name}/points/scroll", "scroll", json=body)
            result = data.get("result") or {}

            for point in result.get("points") or []:
                points.append(ScoredPoint(id=str(point["id"]), score=0.0, payload=point.get("payload") or {}))

            offset = result.get("next_page_offset")
            if offset is None:
                break

        logger.debug("scroll_completed", collection=name, points=len(points))
        return points[:limit]
