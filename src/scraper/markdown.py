"""Render scraped HTML as Markdown for the extractors.

Used by the transports that fetch raw HTML (plain requests and the
Playwright browser), so every transport feeds the extractors the same
Markdown dialect the Firecrawl API produces: links as [text](url), bold as
**text**, headings as #, list items as "- ".
"""

import logging
import re
from typing import List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import NavigableString, PreformattedString, Tag

logger = logging.getLogger(__name__)

SKIPPED_TAGS = {"script", "style", "noscript", "template", "svg", "head", "iframe", "form", "button"}
CHROME_TAGS = {"nav", "header", "footer", "aside"}
BLOCK_TAGS = {
    "p", "div", "section", "article", "main", "ul", "ol", "table", "tr",
    "figure", "figcaption", "details", "summary", "dl", "dd", "dt",
}
HEADING_TAGS = {"h1": 1, "h2": 2, "h3": 3, "h4": 4, "h5": 5, "h6": 6}

_SPACES = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES = re.compile(r"\n{3,}")


def _absolute(href: Optional[str], base_url: Optional[str]) -> Optional[str]:
    if not href:
        return None
    href = href.strip()
    if href.startswith(("javascript:", "mailto:", "#")):
        return None
    return urljoin(base_url, href) if base_url else href


class MarkdownRenderer:
    """Recursive BeautifulSoup tree walker producing Markdown."""

    def __init__(self, base_url: Optional[str] = None, only_main_content: bool = True):
        self.base_url = base_url
        self.only_main_content = only_main_content

    def render(self, node) -> str:
        if isinstance(node, PreformattedString):
            return ""
        if isinstance(node, NavigableString):
            return _SPACES.sub(" ", str(node).replace("\n", " "))
        if not isinstance(node, Tag):
            return ""

        name = node.name
        if name in SKIPPED_TAGS:
            return ""
        if self.only_main_content and name in CHROME_TAGS:
            return ""

        if name in HEADING_TAGS:
            text = self.inline(node)
            return f"\n\n{'#' * HEADING_TAGS[name]} {text}\n\n" if text else ""
        if name == "a":
            return self._link(node)
        if name in ("strong", "b"):
            text = self.inline(node)
            return f"**{text}**" if text else ""
        if name in ("em", "i"):
            text = self.inline(node)
            return f"*{text}*" if text else ""
        if name == "code" and node.parent is not None and node.parent.name != "pre":
            return f"`{node.get_text()}`"
        if name == "pre":
            return f"\n\n```\n{node.get_text().strip(chr(10))}\n```\n\n"
        if name == "br":
            return "\n"
        if name == "hr":
            return "\n\n---\n\n"
        if name == "img":
            alt = (node.get("alt") or "").strip()
            src = _absolute(node.get("src"), self.base_url)
            return f"![{alt}]({src})" if src else ""
        if name == "li":
            text = self.children(node).strip()
            return f"\n- {text}\n" if text else ""
        if name == "blockquote":
            text = self.children(node).strip()
            quoted = "\n".join(f"> {line}" if line.strip() else ">" for line in text.split("\n"))
            return f"\n\n{quoted}\n\n"
        if name in ("td", "th"):
            return self.children(node) + " "
        if name in BLOCK_TAGS:
            return f"\n\n{self.children(node)}\n\n"
        return self.children(node)

    def children(self, node: Tag) -> str:
        return "".join(self.render(child) for child in node.children)

    def inline(self, node: Tag) -> str:
        """Render children on a single line."""
        return " ".join(self.children(node).split())

    def _link(self, node: Tag) -> str:
        text = self.inline(node)
        href = _absolute(node.get("href"), self.base_url)
        if not text:
            return ""
        if not href:
            return text
        return f"[{text}]({href})"


def _tidy(markdown: str) -> str:
    lines = [line.strip() for line in markdown.split("\n")]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip() + "\n"


def extract_links(soup: BeautifulSoup, base_url: Optional[str] = None) -> List[str]:
    """Absolute http(s) link targets in document order, without duplicates."""
    links: List[str] = []
    seen = set()
    for anchor in soup.find_all("a", href=True):
        href = _absolute(anchor["href"], base_url)
        if href and href.startswith(("http://", "https://")) and href not in seen:
            seen.add(href)
            links.append(href)
    return links


def render_html(
    html: str,
    base_url: Optional[str] = None,
    only_main_content: bool = True,
) -> Tuple[str, List[str]]:
    """Convert an HTML document to Markdown and collect its links.

    Args:
        html: Raw HTML
        base_url: URL the document was fetched from, for resolving relative links
        only_main_content: Drop nav, header, footer and aside elements

    Returns:
        (markdown, links)
    """
    soup = BeautifulSoup(html or "", "lxml")
    root = soup.body or soup
    markdown = _tidy(MarkdownRenderer(base_url, only_main_content).render(root))
    links = extract_links(soup, base_url)
    logger.debug("Rendered %d chars of HTML to %d chars of Markdown", len(html or ""), len(markdown))
    return markdown, links


def html_to_markdown(html: str, base_url: Optional[str] = None) -> str:
    """Convert an HTML document to Markdown."""
    return render_html(html, base_url)[0]
