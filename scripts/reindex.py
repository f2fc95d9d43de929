#!/usr/bin/env python
"""Index course content for the RAG pipeline.

Usage:
    python scripts/reindex.py                         # Index local course docs
    python scripts/reindex.py --sitemap URL           # Crawl and index a sitemap
    python scripts/reindex.py --verbose               # Show detailed progress
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from courserag import config
from courserag.errors import CourseRagError
from courserag.rag.embeddings import build_embedding_gateway
from courserag.rag.ingest import DirectorySource, IngestPipeline, SitemapSource
from courserag.rag.vector_store import build_vector_store
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int, item: str):
        """Update progress."""
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        name = item.rstrip("/").rsplit("/", 1)[-1]
        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {name[:30]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()  # New line for verbose mode

    def finish(self, stats: dict, collection: str):
        """Finish progress reporting."""
        print("\n")  # New line after progress bar
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print(f"  Indexing Complete!")
        print(f"{'=' * 60}\n")
        print(f"  📁 Documents processed: {stats['documentsProcessed']}")
        print(f"  ❌ Documents failed:    {stats['documentsFailed']}")
        print(f"  🧮 Chunks indexed:      {stats['chunksIndexed']}")
        print(f"  ⚠️  Batches failed:      {stats['batchesFailed']}")
        print(f"  ⏱️  Time elapsed:        {elapsed_seconds:.1f}s")

        if stats["chunksIndexed"] > 0 and elapsed_seconds > 0:
            rate = stats["chunksIndexed"] / elapsed_seconds
            print(f"  ⚡ Indexing rate:       {rate:.1f} chunks/sec")

        print(f"\n{'=' * 60}\n")

        if stats["documentsFailed"] > 0 or stats["batchesFailed"] > 0:
            print("⚠️  Warning: some documents or batches failed to index.")
            print("   Check logs for details.\n")

        if stats["documentsProcessed"] > 0:
            print(f"✅ Collection ready: {collection}\n")


async def main():
    """Main entry point for reindex script."""
    parser = argparse.ArgumentParser(
        description="Index course content for RAG pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/reindex.py                                   # Local course docs
  python scripts/reindex.py --modules module1-ros2            # Selected modules only
  python scripts/reindex.py --sitemap https://site/sitemap.xml --max-urls 20
        """,
    )

    parser.add_argument(
        "--sitemap",
        default=None,
        help="Sitemap URL to crawl instead of the local docs directory",
    )

    parser.add_argument(
        "--max-urls",
        type=int,
        default=None,
        help=f"Maximum pages to index from the sitemap (default: {config.SITEMAP_MAX_URLS})",
    )

    parser.add_argument(
        "--docs-dir",
        type=Path,
        default=None,
        help=f"Docs directory (default: {config.DOCS_DIR})",
    )

    parser.add_argument(
        "--modules",
        nargs="*",
        default=None,
        help="Module directories to index (default: all)",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show verbose progress output",
    )

    args = parser.parse_args()

    progress = ProgressReporter(verbose=args.verbose)

    if args.sitemap:
        source = SitemapSource(url=args.sitemap, max_urls=args.max_urls)
        label = args.sitemap
    else:
        source = DirectorySource(
            path=args.docs_dir or config.DOCS_DIR,
            modules=args.modules or config.DOC_MODULES or None,
        )
        label = str(source.path)

    try:
        # Display configuration
        print("\n📋 Configuration:")
        print(f"   Source:           {label}")
        print(f"   Collection:       {config.QDRANT_COLLECTION}")
        print(f"   Vector store:     {config.QDRANT_URL or 'in-process FAISS'}")
        print(f"   Embedding model:  {config.EMBEDDING_MODEL if config.COHERE_API_KEY else 'pseudo'}")
        print(f"   Chunk size:       {config.CHUNK_SIZE} chars")
        print(f"   Batch size:       {config.UPSERT_BATCH_SIZE} points")

        progress.start("Indexing Course Content")

        vector_store = build_vector_store()
        pipeline = IngestPipeline(build_embedding_gateway(), vector_store)

        def on_progress(current, total, item):
            progress.update(current, total, item)

        stats = await pipeline.ingest(source, progress_callback=on_progress)

        progress.finish(stats.to_dict(), pipeline.collection)

        # Exit with error code if there were failures
        if stats.documents_failed > 0 or stats.batches_failed > 0:
            sys.exit(1)

    except KeyboardInterrupt:
        print("\n\n⚠️  Indexing cancelled by user.\n")
        sys.exit(1)

    except (FileNotFoundError, CourseRagError) as e:
        print(f"\n❌ Error: {e}\n")
        sys.exit(1)

    except Exception as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("reindex_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
