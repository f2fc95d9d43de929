"""Data types flowing through ingestion and retrieval."""
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Document:
    """A source document read from disk or fetched from the web.

    Identity is ``source_ref``.
    """

    id: str
    content: str
    source_ref: str
    group_tag: str
    title: Optional[str] = None


@dataclass
class Chunk:
    """A bounded-length slice of a document, in document order."""

    text: str
    ordinal: int
    parent_document_id: str


def point_id_for(source_ref: str, ordinal: int) -> str:
    """Deterministic point id so re-ingestion overwrites instead of duplicating."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{source_ref}#{ordinal}"))


@dataclass(frozen=True)
class IndexedPoint:
    """A vector plus payload as stored in the vector store."""

    id: str
    vector: List[float]
    payload: Dict[str, Any]

    @classmethod
    def from_chunk(
        cls, chunk: Chunk, document: Document, vector: List[float]
    ) -> "IndexedPoint":
        payload = {
            "content": chunk.text,
            "source": document.source_ref,
            "module": document.group_tag,
            "original_id": document.id,
            "chunk_index": chunk.ordinal,
        }
        if document.title:
            payload["title"] = document.title
        return cls(
            id=point_id_for(document.source_ref, chunk.ordinal),
            vector=vector,
            payload=payload,
        )


@dataclass
class ScoredPoint:
    """A vector store hit."""

    id: str
    score: float
    payload: Dict[str, Any]


@dataclass
class RetrievalResult:
    """A ranked passage returned for a query."""

    id: str
    content: str
    source: str
    score: float
    rank: int
    group_tag: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "source": self.source,
            "score": self.score,
            "rank": self.rank,
        }


@dataclass
class RAGAnswer:
    """Answer produced by the orchestrator."""

    response: str
    sources: List[str]
    retrieved_count: int
    fallback_context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "response": self.response,
            "sources": self.sources,
            "retrieved_docs_count": self.retrieved_count,
        }
        if self.fallback_context is not None:
            data["fallback_context"] = self.fallback_context
        return data


@dataclass
class IngestStats:
    documents_processed: int = 0
    documents_failed: int = 0
    chunks_indexed: int = 0
    batches_failed: int = 0
    failed_sources: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documentsProcessed": self.documents_processed,
            "documentsFailed": self.documents_failed,
            "chunksIndexed": self.chunks_indexed,
            "batchesFailed": self.batches_failed,
        }
