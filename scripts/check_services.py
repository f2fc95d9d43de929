#!/usr/bin/env python
"""Check every configured collaborator: vector store, embeddings, generation, MongoDB and sitemap."""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx

from courserag import config
from courserag.errors import CourseRagError
from courserag.llm_client import GenerationClient
from courserag.profiles.store import ProfileStore
from courserag.rag.embeddings import build_embedding_gateway
from courserag.rag.sitemap import fetch_sitemap_urls, filter_content_urls
from courserag.rag.store_faiss import FAISSVectorStore
from courserag.rag.vector_store import build_vector_store

# Color codes for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"

def print_success(msg):
    print(f"{GREEN}✓{RESET} {msg}")

def print_error(msg):
    print(f"{RED}✗{RESET} {msg}")

def print_info(msg):
    print(f"{BLUE}ℹ{RESET} {msg}")

def print_warning(msg):
    print(f"{YELLOW}⚠{RESET} {msg}")

def print_section(title):
    print(f"\n{BLUE}{'='*60}{RESET}")
    print(f"{BLUE}{title:^60}{RESET}")
    print(f"{BLUE}{'='*60}{RESET}\n")


async def check_vector_store(errors, warnings):
    print_section("1. Vector Store")

    store = build_vector_store()
    print_info(f"Backend: {type(store).__name__}")
    print_info(f"Collection: {config.QDRANT_COLLECTION} ({config.VECTOR_DIMENSION}d, {config.VECTOR_DISTANCE})")

    if not config.QDRANT_URL:
        print_warning("QDRANT_URL not set - using in-process FAISS index")
        warnings.append("No external vector store")

    try:
        if not await store.collection_exists(config.QDRANT_COLLECTION):
            print_warning("Collection does not exist yet - run scripts/reindex.py")
            warnings.append("Missing collection")
            return

        points = await store.scroll_all(config.QDRANT_COLLECTION, 5)
        print_success(f"Collection reachable ({len(points)} sample point(s))")
        if not points:
            print_warning("Collection is empty - run scripts/reindex.py")
            warnings.append("Empty collection")
    except CourseRagError as e:
        print_error(f"Vector store check failed: {e}")
        errors.append("Vector store unavailable")
        return

    if isinstance(store, FAISSVectorStore):
        stats = store.get_stats().get(config.QDRANT_COLLECTION, {})
        print_info(f"FAISS vectors: {stats.get('vector_count', 0)} ({stats.get('distance')})")


async def check_embeddings(errors, warnings):
    print_section("2. Embedding Service")

    embedder = build_embedding_gateway()
    if not embedder.semantic:
        print_warning("COHERE_API_KEY not set - pseudo embeddings only")
        warnings.append("Pseudo embeddings")

    try:
        vector = await embedder.embed_query("test")
        print_success(f"Embedding API working (dimension: {len(vector)})")
    except CourseRagError as e:
        print_error(f"Embedding check failed: {e}")
        errors.append("Embedding service unavailable")


async def check_generation(errors, warnings):
    print_section("3. Generation Service")

    client = GenerationClient()
    print_info(f"Model: {client.model}")
    if not client.configured:
        print_warning("OPENROUTER_API_KEY not set - answers fall back to retrieved passages")
        warnings.append("Generation not configured")
        return

    try:
        text = await client.chat([{"role": "user", "content": "Reply with OK."}])
        print_success(f"Generation API working ({text[:40]!r})")
    except CourseRagError as e:
        print_error(f"Generation check failed: {e}")
        errors.append("Generation service unavailable")


async def check_profile_store(errors, warnings):
    print_section("4. Profile Store")

    store = ProfileStore()
    if await store.connect():
        print_success(f"MongoDB reachable (database: {store.database_name})")
        await store.close()
    else:
        print_warning("MongoDB unavailable - user endpoints run in mock mode")
        warnings.append("Profile store in mock mode")


async def check_sitemap(sitemap_url, errors, warnings):
    print_section("5. Sitemap")

    if not sitemap_url:
        print_info("No sitemap configured (SITEMAP_URL or --sitemap)")
        return

    try:
        urls = await fetch_sitemap_urls(sitemap_url)
    except (httpx.HTTPError, ValueError) as e:
        print_error(f"Sitemap check failed: {e}")
        errors.append("Sitemap unavailable")
        return

    content_urls = filter_content_urls(urls, sitemap_url)
    print_success(f"Found {len(urls)} URL(s), {len(content_urls)} content page(s)")
    for url in content_urls[:10]:
        print(f"    - {url}")
    if len(content_urls) > 10:
        print(f"    ... and {len(content_urls) - 10} more")


async def main():
    parser = argparse.ArgumentParser(description="Check configured services")
    parser.add_argument("--sitemap", default=config.SITEMAP_URL, help="Sitemap URL to preview")
    args = parser.parse_args()

    print_section("Course RAG Assistant - Service Check")

    errors = []
    warnings = []

    await check_vector_store(errors, warnings)
    await check_embeddings(errors, warnings)
    await check_generation(errors, warnings)
    await check_profile_store(errors, warnings)
    await check_sitemap(args.sitemap, errors, warnings)

    print_section("Summary")

    if not errors:
        print_success("All checks passed! ✨")
    else:
        print_error(f"Found {len(errors)} error(s):")
        for i, error in enumerate(errors, 1):
            print(f"  {i}. {error}")

    if warnings:
        print_warning(f"\nFound {len(warnings)} warning(s):")
        for i, warning in enumerate(warnings, 1):
            print(f"  {i}. {warning}")

    print()
    return errors, warnings

if __name__ == "__main__":
    errors, warnings = asyncio.run(main())
    sys.exit(1 if errors else 0)
