"""Service handles shared by the HTTP app and the scripts."""
from dataclasses import dataclass

import structlog

from courserag.llm_client import GenerationClient
from courserag.profiles.store import ProfileStore
from courserag.rag.embeddings import EmbeddingGateway, build_embedding_gateway
from courserag.rag.ingest import IngestPipeline
from courserag.rag.orchestrator import RAGOrchestrator
from courserag.rag.retriever import Retriever
from courserag.rag.vector_store import VectorStore, build_vector_store

logger = structlog.get_logger()


@dataclass
class Services:
    embedder: EmbeddingGateway
    vector_store: VectorStore
    retriever: Retriever
    generator: GenerationClient
    orchestrator: RAGOrchestrator
    profiles: ProfileStore

    def ingest_pipeline(self, **kwargs) -> IngestPipeline:
        """New ingestion pipeline writing to the retriever's collection."""
        return IngestPipeline(
            self.embedder,
            self.vector_store,
            collection=self.retriever.collection,
            **kwargs,
        )


def build_services(
    embedder: EmbeddingGateway = None,
    vector_store: VectorStore = None,
    generator: GenerationClient = None,
    profiles: ProfileStore = None,
    **retriever_kwargs,
) -> Services:
    """Build every service from config, overriding any handle passed in.

    Args:
        embedder: Embedding gateway (default: chosen from config)
        vector_store: Vector store (default: chosen from config)
        generator: Generation client (default from config)
        profiles: Profile store (default from config, not yet connected)
        **retriever_kwargs: Extra Retriever arguments (collection, top_k, strategy, ...)

    Returns:
        Services bundle
    """
    embedder = embedder or build_embedding_gateway()
    vector_store = vector_store or build_vector_store()
    generator = generator or GenerationClient()
    profiles = profiles or ProfileStore()

    retriever = Retriever(embedder, vector_store, **retriever_kwargs)
    orchestrator = RAGOrchestrator(retriever, generator, top_k=retriever.top_k)

    if not generator.configured:
        logger.warning("generation_not_configured", note="answers will fall back to retrieved passages")

    return Services(
        embedder=embedder,
        vector_store=vector_store,
        retriever=retriever,
        generator=generator,
        orchestrator=orchestrator,
        profiles=profiles,
    )
