# HTML page handling for the crawler: content/title selection, HTML to
# Markdown conversion (code blocks kept fenced) and link discovery.

import re, urllib.parse
from dataclasses import dataclass, field
from typing import List, Optional

from bs4 import BeautifulSoup, Tag
from markdownify import ATX, markdownify

DEFAULT_TITLE_SELECTOR = "h1, title"

# Tried in order; the first selector matching anything wins
DEFAULT_CONTENT_SELECTORS = [
    "main",
    "article",
    "[role=main]",
    ".content",
    ".documentation",
    ".markdown-body",
    "#content",
]

SKIP_TAGS = ["script", "style", "noscript", "template", "iframe", "svg"]

MARKDOWN_OPTIONS = {
    "heading_style": ATX,
    "bullets": "-",
    "escape_underscores": False,
    "escape_asterisks": False,
}

@dataclass
class ParsedPage:
    title: str
    markdown: str
    description: str = ""
    links: List[str] = field(default_factory=list)

def _text(node) -> str:
    return re.sub(r"\s+", " ", node.get_text(" ")).strip()

def _code_language(pre: Tag) -> str:
    code = pre.find("code")
    classes = list(pre.get("class") or []) + list((code.get("class") if code else None) or [])
    for cls in classes:
        for prefix in ("language-", "lang-"):
            if cls.startswith(prefix):
                return cls[len(prefix):]
    return ""

def _unwrap_code_tables(fragment: BeautifulSoup):
    """Turn tables holding <pre> blocks into one paragraph per cell.

    Markdown table cells are single-line, so a fenced block cannot live in one.
    """
    for table in fragment.find_all("table"):
        if table.find("pre") is None:
            continue
        layout = fragment.new_tag("div")
        for cell in table.find_all(["th", "td"]):
            block = fragment.new_tag("p")
            for child in list(cell.contents):
                block.append(child)
            layout.append(block)
        table.replace_with(layout)

def html_to_markdown(element) -> str:
    """Convert an HTML element (or fragment string) to Markdown."""
    fragment = BeautifulSoup(str(element), "html.parser")
    for tag in fragment.find_all(SKIP_TAGS):
        tag.decompose()
    _unwrap_code_tables(fragment)

    md = markdownify(str(fragment), code_language_callback=_code_language, **MARKDOWN_OPTIONS)
    return re.sub(r"\n{3,}", "\n\n", md).strip()

def select_content(soup: BeautifulSoup, content_selector: Optional[str] = None):
    """First element matched by the configured selector or the default list."""
    selectors = [content_selector] if content_selector else DEFAULT_CONTENT_SELECTORS
    for selector in selectors:
        element = soup.select_one(selector)
        if element is not None:
            return element
    return None

def select_title(soup: BeautifulSoup, title_selector: Optional[str], url: str) -> str:
    element = soup.select_one(title_selector or DEFAULT_TITLE_SELECTOR)
    if element is not None:
        title = _text(element)
        if title:
            return title
    parsed = urllib.parse.urlparse(url)
    segments = [s for s in parsed.path.split("/") if s]
    if segments:
        return urllib.parse.unquote(segments[-1])
    return parsed.netloc or "Untitled"

def discover_links(page_url: str, soup: BeautifulSoup) -> List[str]:
    """All hyperlink targets, resolved against the page URL, de-duplicated in order."""
    seen = set(); res = []
    for a in soup.select("a[href]"):
        href = a["href"].strip()
        if not href:
            continue
        try:
            absolute = urllib.parse.urljoin(page_url, href)
        except ValueError:
            continue
        if absolute not in seen:
            seen.add(absolute); res.append(absolute)
    return res

def parse_page(html: str, url: str, content_selector: Optional[str] = None,
               title_selector: Optional[str] = None) -> Optional[ParsedPage]:
    """Extract title, Markdown body, description and links from a page.

    Returns None when no content selector matches; such a page is a dead end.
    """
    soup = BeautifulSoup(html, "html.parser")
    content = select_content(soup, content_selector)
    if content is None:
        return None

    description = ""
    meta = soup.find("meta", attrs={"name": "description"})
    if meta is not None and meta.get("content"):
        description = meta["content"].strip()

    links = discover_links(url, soup)
    title = select_title(soup, title_selector, url)

    return ParsedPage(
        title=title,
        markdown=html_to_markdown(content),
        description=description,
        links=links
    )
