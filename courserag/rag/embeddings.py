"""Embedding gateways.

Two implementations share the :class:`EmbeddingGateway` interface:

- :class:`CohereEmbeddingGateway` calls the Cohere embed API.
- :class:`PseudoEmbeddingGateway` derives a reproducible vector from the
  characters of the text. It is NOT semantically meaningful and only keeps
  the pipeline exercised when no embedding service is configured; its
  ``semantic`` flag is False so callers can tell it apart.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx
import numpy as np
import structlog

from courserag import config
from courserag.errors import EmbeddingServiceError
from courserag.http_client import is_transient, request_with_retry

logger = structlog.get_logger()

SEARCH_DOCUMENT = "search_document"
SEARCH_QUERY = "search_query"


class EmbeddingGateway(ABC):
    """Turns texts into fixed-dimension vectors."""

    dimension: int
    semantic: bool = True

    @abstractmethod
    async def embed(
        self, texts: List[str], input_type: str = SEARCH_DOCUMENT
    ) -> List[List[float]]:
        """Embed texts, one vector per input, all of length ``dimension``."""

    async def embed_query(self, text: str) -> List[float]:
        vectors = await self.embed([text], input_type=SEARCH_QUERY)
        return vectors[0]


class CohereEmbeddingGateway(EmbeddingGateway):
    """Service-backed embeddings via the Cohere ``/v1/embed`` endpoint."""

    semantic = True

    def __init__(
        self,
        api_key: str = None,
        model: str = None,
        dimension: int = None,
        base_url: str = None,
        batch_size: int = None,
        timeout: float = None,
        retry_attempts: int = None,
        retry_wait: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or config.COHERE_API_KEY
        self.model = model or config.EMBEDDING_MODEL
        self.dimension = dimension or config.VECTOR_DIMENSION
        self.base_url = (base_url or config.COHERE_BASE_URL).rstrip("/")
        self.batch_size = batch_size or config.EMBED_BATCH_SIZE
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_wait = retry_wait
        self.transport = transport

        if not self.api_key:
            raise ValueError("Cohere API key is required for service-backed embeddings")

    async def _embed_batch(self, texts: List[str], input_type: str) -> List[List[float]]:
        try:
            response = await request_with_retry(
                "POST",
                f"{self.base_url}/v1/embed",
                service="cohere_embed",
                timeout=self.timeout,
                attempts=self.retry_attempts,
                initial_wait=self.retry_wait,
                max_wait=self.retry_wait,
                transport=self.transport,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"texts": texts, "model": self.model, "input_type": input_type},
            )
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(
                "embedding_request_failed",
                model=self.model,
                batch_size=len(texts),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise EmbeddingServiceError(
                f"Embedding service request failed: {e}", retryable=is_transient(e)
            ) from e
        except ValueError as e:
            raise EmbeddingServiceError(f"Embedding service returned invalid JSON: {e}") from e

        embeddings = data.get("embeddings")
        if isinstance(embeddings, dict):
            # embedding_types responses are keyed by type
            embeddings = embeddings.get("float")

        if not isinstance(embeddings, list) or len(embeddings) != len(texts):
            raise EmbeddingServiceError(
                f"Expected {len(texts)} embeddings, got "
                f"{len(embeddings) if isinstance(embeddings, list) else 'none'}"
            )

        for vector in embeddings:
            if len(vector) != self.dimension:
                raise EmbeddingServiceError(
                    f"Embedding dimension mismatch: expected {self.dimension}, got {len(vector)}"
                )

        return embeddings

    async def embed(
        self, texts: List[str], input_type: str = SEARCH_DOCUMENT
    ) -> List[List[float]]:
        """Generate embeddings in sequential batches.

        Args:
            texts: Texts to embed
            input_type: ``search_document`` for indexing, ``search_query`` for queries

        Returns:
            List of embedding vectors

        Raises:
            EmbeddingServiceError: On network/API failure or malformed response
        """
        if not texts:
            return []

        embeddings: List[List[float]] = []
        for i in range(0, len(texts), self.batch_size):
            batch = texts[i : i + self.batch_size]
            embeddings.extend(await self._embed_batch(batch, input_type))

            logger.debug(
                "embeddings_batch_generated",
                batch_size=len(batch),
                total_so_far=len(embeddings),
            )

        return embeddings


class PseudoEmbeddingGateway(EmbeddingGateway):
    """Deterministic character-fold vectors. Not semantically meaningful."""

    semantic = False

    # Fold each code point into vector[i % dimension] modulo a prime, then
    # centre on zero.
    FOLD_MULTIPLIER = 31
    FOLD_MODULUS = 1009

    def __init__(self, dimension: int = None, normalize: bool = True):
        self.dimension = dimension or config.VECTOR_DIMENSION
        self.normalize = normalize

    def embed_text(self, text: str) -> List[float]:
        folded = [0] * self.dimension
        for i, char in enumerate(text or ""):
            idx = i % self.dimension
            folded[idx] = (folded[idx] * self.FOLD_MULTIPLIER + ord(char)) % self.FOLD_MODULUS

        vector = np.asarray(folded, dtype=np.float64)
        if text:
            vector = vector / (self.FOLD_MODULUS / 2.0) - 1.0

        if self.normalize:
            norm = np.linalg.norm(vector)
            if norm > 0:
                vector = vector / norm

        return vector.tolist()

    async def embed(
        self, texts: List[str], input_type: str = SEARCH_DOCUMENT
    ) -> List[List[float]]:
        return [self.embed_text(text) for text in texts]


def build_embedding_gateway() -> EmbeddingGateway:
    """Pick the service-backed gateway when a key is configured."""
    if config.COHERE_API_KEY:
        logger.info("embedding_gateway_selected", backend="cohere", model=config.EMBEDDING_MODEL)
        return CohereEmbeddingGateway()

    logger.warning(
        "embedding_gateway_selected",
        backend="pseudo",
        note="COHERE_API_KEY not set; vectors are not semantically meaningful",
    )
    return PseudoEmbeddingGateway()
