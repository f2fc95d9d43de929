"""Ingest pipeline for indexing course content.

Orchestrates:
- Document discovery (local module directories or a crawled sitemap)
- Text chunking
- Embedding generation
- Batched vector upserts
"""
import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

import httpx
import structlog

from courserag import config
from courserag.errors import EmbeddingServiceError, RetrievalServiceError
from courserag.http_client import request_with_retry
from courserag.rag.chunker import TextChunker
from courserag.rag.embeddings import SEARCH_DOCUMENT, EmbeddingGateway
from courserag.rag.html_text import extract_text
from courserag.rag.md_parser import discover_course_files, read_course_document
from courserag.rag.models import Document, IndexedPoint, IngestStats
from courserag.rag.sitemap import fetch_sitemap_urls, filter_content_urls
from courserag.rag.vector_store import VectorStore

logger = structlog.get_logger()

WEB_CONTENT_TAG = "web_content"


@dataclass(frozen=True)
class DirectorySource:
    """A docs tree of ``<path>/<module>/*.md`` files."""

    path: Path
    modules: Optional[List[str]] = None


@dataclass(frozen=True)
class SitemapSource:
    """A sitemap (or sitemap index) to crawl."""

    url: str
    max_urls: Optional[int] = None
    same_host_only: bool = True


SourceDescriptor = Union[DirectorySource, SitemapSource]


class IngestPipeline:
    """Pipeline for ingesting course content into the vector store."""

    def __init__(
        self,
        embedder: EmbeddingGateway,
        vector_store: VectorStore,
        collection: str = None,
        dimension: int = None,
        distance: str = None,
        chunk_size: int = None,
        batch_size: int = None,
        request_delay: float = None,
        max_page_chars: int = None,
        allow_pseudo_embeddings: bool = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            embedder: Embedding gateway for chunk vectors
            vector_store: Vector store gateway
            collection: Collection name (default from config)
            dimension: Collection dimension (default: the embedder's)
            distance: Distance metric (default from config)
            chunk_size: Maximum chunk length in characters (default from config)
            batch_size: Points per upsert request (default from config)
            request_delay: Seconds to wait between fetched URLs (default from config)
            max_page_chars: Cap on extracted page text (default from config)
            allow_pseudo_embeddings: Permit indexing non-semantic vectors (default from config)
            transport: Optional httpx transport for sitemap/page fetches (used by tests)
        """
        self.embedder = embedder
        self.vector_store = vector_store
        self.collection = collection or config.QDRANT_COLLECTION
        self.dimension = dimension or embedder.dimension
        self.distance = distance or config.VECTOR_DISTANCE
        self.chunker = TextChunker(max_length=chunk_size)
        self.batch_size = batch_size or config.UPSERT_BATCH_SIZE
        self.request_delay = config.INGEST_DELAY_SECONDS if request_delay is None else request_delay
        self.max_page_chars = max_page_chars or config.MAX_PAGE_CHARS
        self.allow_pseudo_embeddings = (
            config.ALLOW_PSEUDO_EMBEDDINGS if allow_pseudo_embeddings is None else allow_pseudo_embeddings
        )
        self.transport = transport

        self.stats = IngestStats()

        logger.info(
            "ingest_pipeline_initialized",
            collection=self.collection,
            dimension=self.dimension,
            chunk_size=self.chunker.max_length,
            batch_size=self.batch_size,
            semantic_embeddings=embedder.semantic,
        )

    async def prepare(self) -> None:
        """Check the embedder and make sure the collection exists.

        Raises:
            EmbeddingServiceError: If only pseudo embeddings are available and
                they are not allowed
            RetrievalServiceError: If the collection cannot be created
        """
        if not self.embedder.semantic and not self.allow_pseudo_embeddings:
            raise EmbeddingServiceError(
                "No embedding service configured and pseudo embeddings are not "
                "allowed for ingestion (set COHERE_API_KEY or ALLOW_PSEUDO_EMBEDDINGS)"
            )
        if not self.embedder.semantic:
            logger.warning("ingesting_with_pseudo_embeddings", collection=self.collection)

        await self.vector_store.ensure_collection(self.collection, self.dimension, self.distance)

    async def index_document(self, document: Document) -> int:
        """Chunk, embed and upsert one document.

        Upsert batches that fail are logged and skipped.

        Args:
            document: Document to index

        Returns:
            Number of chunks written to the vector store

        Raises:
            EmbeddingServiceError: If embedding fails
            RetrievalServiceError: If every upsert batch failed
        """
        chunks = self.chunker.chunk_document(document)

        if not chunks:
            logger.warning("no_chunks_created", document_id=document.id)
            return 0

        vectors = await self.embedder.embed([c.text for c in chunks], input_type=SEARCH_DOCUMENT)
        points = [IndexedPoint.from_chunk(c, document, v) for c, v in zip(chunks, vectors)]

        indexed = 0
        total_batches = (len(points) + self.batch_size - 1) // self.batch_size
        for batch_number, i in enumerate(range(0, len(points), self.batch_size), 1):
            batch = points[i : i + self.batch_size]
            try:
                await self.vector_store.upsert_batch(self.collection, batch)
            except RetrievalServiceError as e:
                self.stats.batches_failed += 1
                logger.error(
                    "upsert_batch_failed",
                    document_id=document.id,
                    batch=batch_number,
                    total_batches=total_batches,
                    error=str(e),
                )
                continue
            indexed += len(batch)

        self.stats.chunks_indexed += indexed

        if indexed == 0:
            raise RetrievalServiceError(f"No chunks of {document.id} were stored")

        logger.info(
            "document_indexed",
            document_id=document.id,
            chunks_indexed=indexed,
            **self.chunker.get_chunk_stats(chunks),
        )

        return indexed

    async def _index_safely(self, document: Document) -> None:
        try:
            await self.index_document(document)
        except (EmbeddingServiceError, RetrievalServiceError) as e:
            self.stats.documents_failed += 1
            self.stats.failed_sources.append(document.source_ref)
            logger.error("document_ingestion_failed", document_id=document.id, error=str(e))
            return
        self.stats.documents_processed += 1

    async def ingest_directory(
        self,
        source: DirectorySource,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> IngestStats:
        """Ingest every markdown file of the selected course modules.

        Raises:
            FileNotFoundError: If the docs directory doesn't exist
        """
        files = discover_course_files(Path(source.path), source.modules)

        for idx, (module, path) in enumerate(files, 1):
            if progress_callback:
                progress_callback(idx, len(files), str(path))

            try:
                document = read_course_document(path, module)
            except (OSError, UnicodeDecodeError) as e:
                self.stats.documents_failed += 1
                self.stats.failed_sources.append(str(path))
                logger.error("file_read_failed", path=str(path), error=str(e))
                continue

            await self._index_safely(document)

        return self.stats

    async def fetch_page(self, url: str) -> Document:
        """Fetch a page and turn its visible content into a Document."""
        response = await request_with_retry(
            "GET",
            url,
            service="page_fetch",
            transport=self.transport,
            headers={"User-Agent": config.USER_AGENT},
        )
        content = extract_text(response.text, max_chars=self.max_page_chars)
        return Document(id=url, content=content, source_ref=url, group_tag=WEB_CONTENT_TAG)

    async def ingest_sitemap(
        self,
        source: SitemapSource,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> IngestStats:
        """Crawl a sitemap and ingest each content page.

        Per-URL failures are logged and skipped.

        Raises:
            httpx.HTTPError: If the sitemap itself cannot be fetched
            ValueError: If the sitemap cannot be parsed
        """
        urls = await fetch_sitemap_urls(source.url, transport=self.transport)
        urls = filter_content_urls(urls, source.url, same_host_only=source.same_host_only)
        urls = urls[: source.max_urls or config.SITEMAP_MAX_URLS]

        logger.info("sitemap_ingestion_started", sitemap=source.url, urls=len(urls))

        for idx, url in enumerate(urls, 1):
            if progress_callback:
                progress_callback(idx, len(urls), url)

            try:
                document = await self.fetch_page(url)
            except Exception as e:
                # Fetch or extraction problems only cost this URL
                self.stats.documents_failed += 1
                self.stats.failed_sources.append(url)
                logger.error("page_fetch_failed", url=url, error=str(e), error_type=type(e).__name__)
            else:
                if document.content.strip():
                    await self._index_safely(document)
                else:
                    self.stats.documents_failed += 1
                    self.stats.failed_sources.append(url)
                    logger.warning("no_content_extracted", url=url)

            # Respect rate limits between fetched URLs
            if idx < len(urls) and self.request_delay > 0:
                await asyncio.sleep(self.request_delay)

        return self.stats

    async def ingest(
        self,
        source: SourceDescriptor,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> IngestStats:
        """Ingest a source descriptor.

        Args:
            source: DirectorySource or SitemapSource
            progress_callback: Optional callback(current, total, item)

        Returns:
            IngestStats for this run
        """
        self.stats = IngestStats()

        logger.info("ingest_started", source=type(source).__name__)

        await self.prepare()

        try:
            if isinstance(source, DirectorySource):
                await self.ingest_directory(source, progress_callback)
            elif isinstance(source, SitemapSource):
                await self.ingest_sitemap(source, progress_callback)
            else:
                raise TypeError(f"Unsupported source descriptor: {type(source).__name__}")
        finally:
            # Persist whatever was written, once per run
            await self.vector_store.flush(self.collection)

        logger.info("ingest_completed", **self.stats.to_dict())

        return self.stats
