"""Visible-text extraction from fetched HTML pages.

Parses the page with BeautifulSoup (lxml parser, which closes ``<li>``,
``<p>``, ``<td>`` and friends implicitly), drops non-content regions
(scripts, styles, navigation, header, footer), then takes the text of the
most specific content container available, falling back to the body.
"""
import re

from bs4 import BeautifulSoup, NavigableString, Tag

from courserag import config

SKIPPED_TAGS = ["head", "title", "script", "style", "noscript", "template", "svg", "nav", "header", "footer"]
SKIPPED_CLASSES = ".nav, .navbar, .header, .footer"
BLOCK_TAGS = [
    "address", "article", "aside", "blockquote", "dd", "div", "dl", "dt",
    "figcaption", "figure", "h1", "h2", "h3", "h4", "h5", "h6", "li",
    "main", "ol", "p", "pre", "section", "table", "tr", "ul",
]

# Most specific first
CONTENT_CONTAINERS = [
    ".markdown",
    "article",
    ".docs-content",
    ".post-content",
    "main",
    ".content",
    ".main",
]

_SPACES = re.compile(r"[ \t\r\f\v\xa0]+")
_LINE_SPACES = re.compile(r" *\n *")
_BLANK_LINES = re.compile(r"\n{3,}")


def _normalize(text: str) -> str:
    text = _SPACES.sub(" ", text)
    text = _LINE_SPACES.sub("\n", text)
    text = _BLANK_LINES.sub("\n\n", text)
    return text.strip()


def _drop_chrome(soup: BeautifulSoup) -> None:
    for element in soup.find_all(SKIPPED_TAGS) + soup.select(SKIPPED_CLASSES):
        # Nested chrome goes with its already-removed parent
        if not element.decomposed:
            element.decompose()


def _find_container(soup: BeautifulSoup) -> Tag:
    for selector in CONTENT_CONTAINERS:
        for element in soup.select(selector):
            if element.get_text(strip=True):
                return element
    return soup.body or soup


def _block_text(container: Tag) -> str:
    # Source line breaks are plain whitespace; only block edges and <br> break lines
    for string in container.find_all(string=True):
        if type(string) is NavigableString and "\n" in string:
            string.replace_with(string.replace("\n", " "))
    for br in container.find_all("br"):
        br.replace_with("\n")
    for block in container.find_all(BLOCK_TAGS):
        block.insert(0, "\n\n")
        block.append("\n\n")
    return _normalize(container.get_text())


def extract_text(html: str, max_chars: int = None) -> str:
    """Extract visible content text from an HTML page.

    Args:
        html: Page HTML
        max_chars: Cap on the returned text length (default from config)

    Returns:
        Text with block boundaries kept as blank lines, possibly empty
    """
    max_chars = max_chars or config.MAX_PAGE_CHARS

    soup = BeautifulSoup(html or "", "lxml")
    _drop_chrome(soup)

    text = _block_text(_find_container(soup))
    return text[:max_chars].rstrip()
