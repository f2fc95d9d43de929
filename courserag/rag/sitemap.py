"""Sitemap fetching, parsing and URL filtering."""
import xml.etree.ElementTree as ET
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import httpx
import structlog

from courserag import config
from courserag.http_client import request_with_retry

logger = structlog.get_logger()

MAX_SITEMAP_DEPTH = 2
EXCLUDED_SUFFIXES = (".xml", ".json", ".pdf")
EXCLUDED_SEGMENTS = {"tag", "tags", "category", "categories"}


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_sitemap(xml_text: str) -> Tuple[List[str], List[str]]:
    """Parse a sitemap document.

    Args:
        xml_text: Sitemap XML

    Returns:
        Tuple of (page_urls, nested_sitemap_urls); one of them is empty

    Raises:
        ValueError: If the XML is malformed or not a sitemap
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise ValueError(f"Invalid sitemap XML: {e}") from e

    kind = _local_name(root.tag)
    if kind not in ("urlset", "sitemapindex"):
        raise ValueError(f"Not a sitemap document: <{kind}>")

    locations = []
    for entry in root:
        for child in entry:
            if _local_name(child.tag) == "loc" and child.text and child.text.strip():
                locations.append(child.text.strip())

    if kind == "sitemapindex":
        return [], locations
    return locations, []


def filter_content_urls(
    urls: List[str], seed_url: Optional[str] = None, same_host_only: bool = True
) -> List[str]:
    """Deduplicate URLs and drop non-content ones.

    Args:
        urls: Candidate URLs in sitemap order
        seed_url: The sitemap URL the crawl started from
        same_host_only: Keep only URLs on the seed's host

    Returns:
        Content URLs, first occurrence order preserved
    """
    seed_host = urlparse(seed_url).hostname if seed_url else None

    kept = []
    seen = set()
    for url in urls:
        if url in seen:
            continue
        seen.add(url)

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            continue
        if same_host_only and seed_host and parsed.hostname != seed_host:
            continue

        lowered = url.lower()
        if lowered.endswith(EXCLUDED_SUFFIXES):
            continue
        if "sitemap" in lowered:
            continue
        if EXCLUDED_SEGMENTS.intersection(parsed.path.lower().split("/")):
            continue

        kept.append(url)

    logger.info("content_urls_filtered", candidates=len(urls), kept=len(kept))
    return kept


async def fetch_sitemap_urls(
    sitemap_url: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    depth: int = 0,
) -> List[str]:
    """Fetch a sitemap and return its page URLs, expanding sitemap indexes.

    Args:
        sitemap_url: URL of a sitemap or sitemap index
        transport: Optional httpx transport (used by tests)
        depth: Current nesting level

    Returns:
        Page URLs in sitemap order (unfiltered)

    Raises:
        httpx.HTTPError: If the top-level sitemap cannot be fetched
        ValueError: If the top-level sitemap cannot be parsed
    """
    logger.info("fetching_sitemap", url=sitemap_url, depth=depth)

    response = await request_with_retry(
        "GET",
        sitemap_url,
        service="sitemap",
        transport=transport,
        headers={"User-Agent": config.USER_AGENT},
    )
    pages, nested = parse_sitemap(response.text)

    if nested:
        if depth >= MAX_SITEMAP_DEPTH:
            logger.warning("sitemap_depth_exceeded", url=sitemap_url, skipped=len(nested))
            return pages

        logger.info("sitemap_index_found", url=sitemap_url, nested=len(nested))
        for child_url in nested:
            try:
                pages.extend(await fetch_sitemap_urls(child_url, transport=transport, depth=depth + 1))
            except (httpx.HTTPError, ValueError) as e:
                logger.error("nested_sitemap_failed", url=child_url, error=str(e))

    logger.info("sitemap_urls_found", url=sitemap_url, count=len(pages))
    return pages
