"""Reader for course markdown files.

Strips YAML front matter and turns each file into a :class:`Document`
tagged with the course module it belongs to.
"""
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog
import yaml

from courserag.rag.models import Document

logger = structlog.get_logger()

MARKDOWN_SUFFIXES = (".md", ".mdx")

# YAML front matter (must be at start of file)
FRONTMATTER_PATTERN = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)


def parse_frontmatter(content: str) -> Tuple[Dict[str, Any], str]:
    """Extract YAML front matter from markdown content.

    Args:
        content: Full markdown content

    Returns:
        Tuple of (frontmatter_dict, content_without_frontmatter)
    """
    match = FRONTMATTER_PATTERN.match(content)

    if not match:
        return {}, content

    yaml_content = match.group(1)
    try:
        frontmatter = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        logger.warning(
            "frontmatter_parse_error",
            error=str(e),
            yaml_preview=yaml_content[:100],
        )
        frontmatter = None

    if not isinstance(frontmatter, dict):
        frontmatter = {}

    return frontmatter, content[match.end() :]


def read_course_document(file_path: Path, module: str) -> Document:
    """Read one markdown file as a Document.

    Args:
        file_path: Path to the markdown file
        module: Name of the module directory it lives in

    Returns:
        Document with front matter removed

    Raises:
        FileNotFoundError: If file doesn't exist
        UnicodeDecodeError: If file encoding is invalid
    """
    content = file_path.read_text(encoding="utf-8")
    frontmatter, body = parse_frontmatter(content)

    title = frontmatter.get("title") or frontmatter.get("sidebar_label")

    logger.debug(
        "markdown_parsed",
        path=str(file_path),
        has_frontmatter=bool(frontmatter),
        content_length=len(body),
    )

    return Document(
        id=f"{module}/{file_path.name}",
        content=body,
        source_ref=f"/docs/{module}/{file_path.name}",
        group_tag=module,
        title=str(title) if title else None,
    )


def discover_course_files(docs_dir: Path, modules: Optional[List[str]] = None) -> List[Tuple[str, Path]]:
    """List ``(module, path)`` pairs for markdown files under each module.

    Args:
        docs_dir: Root docs directory
        modules: Module directory names; every subdirectory when empty

    Returns:
        Pairs sorted by module then file name

    Raises:
        FileNotFoundError: If the docs directory doesn't exist
    """
    if not docs_dir.is_dir():
        raise FileNotFoundError(f"Docs directory not found: {docs_dir}")

    if not modules:
        modules = sorted(p.name for p in docs_dir.iterdir() if p.is_dir())

    found = []
    for module in modules:
        module_dir = docs_dir / module
        if not module_dir.is_dir():
            logger.warning("module_directory_missing", module=module, path=str(module_dir))
            continue
        for path in sorted(module_dir.iterdir()):
            if path.is_file() and path.suffix in MARKDOWN_SUFFIXES:
                found.append((module, path))

    logger.info("course_files_discovered", count=len(found), modules=modules, docs_dir=str(docs_dir))

    return found
