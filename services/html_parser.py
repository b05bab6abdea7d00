"""Plain-text, metadata, and link extraction from raw HTML pages."""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 50 * 1024
TRUNCATION_MARKER = "\n[Content truncated...]"

HTML_ENTITIES: dict[str, str] = {
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&apos;": "'",
    "&nbsp;": " ",
    "&ndash;": "-",
    "&mdash;": "-",
    "&copy;": "(c)",
    "&reg;": "(R)",
    "&trade;": "(TM)",
    "&bull;": "*",
    "&hellip;": "...",
}


@dataclass
class PageMetadata:
    title: str | None = None
    description: str | None = None
    og_image: str | None = None
    json_ld: dict[str, Any] | None = None


def _chr(code: int) -> str:
    try:
        return chr(code)
    except (ValueError, OverflowError):
        return ""


def decode_entities(text: str) -> str:
    """Decode the common named entities plus decimal and hex references."""
    for entity, char in HTML_ENTITIES.items():
        text = re.sub(re.escape(entity), char, text, flags=re.IGNORECASE)
    text = re.sub(r"&#(\d+);", lambda m: _chr(int(m.group(1))), text)
    text = re.sub(r"&#x([0-9a-f]+);", lambda m: _chr(int(m.group(1), 16)), text, flags=re.IGNORECASE)
    return text


def extract_text(html: str) -> str:
    """Reduce an HTML page to readable text with paragraph breaks."""
    text = re.sub(r"<script[^>]*>[\s\S]*?</script>", " ", html, flags=re.IGNORECASE)
    text = re.sub(r"<style[^>]*>[\s\S]*?</style>", " ", text, flags=re.IGNORECASE)
    text = re.sub(r"<noscript[^>]*>[\s\S]*?</noscript>", " ", text, flags=re.IGNORECASE)
    text = re.sub(r"<!--[\s\S]*?-->", " ", text)

    text = re.sub(r"</(p|div|h[1-6]|li|tr|br|hr)[^>]*>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<(br|hr)[^>]*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", " ", text)

    text = decode_entities(text)

    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n\s+", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = text.strip()

    if len(text) > MAX_CONTENT_LENGTH:
        text = text[:MAX_CONTENT_LENGTH] + TRUNCATION_MARKER
    return text


def is_event_type(value: Any) -> bool:
    """Match "Event", types containing it ("MusicEvent", "EventSeries"), or a list with one."""
    if isinstance(value, str):
        return "Event" in value
    if isinstance(value, list):
        return any(isinstance(v, str) and "Event" in v for v in value)
    return False


def find_event_node(data: Any) -> dict[str, Any] | None:
    """Locate an Event node in a JSON-LD payload: the object itself, an array item, or a @graph item."""
    if isinstance(data, dict):
        if is_event_type(data.get("@type")):
            return data
        graph = data.get("@graph")
        if isinstance(graph, list):
            return find_event_node(graph)
        return None
    if isinstance(data, list):
        for item in data:
            if isinstance(item, dict) and is_event_type(item.get("@type")):
                return item
    return None


def _meta_content(soup: BeautifulSoup, **attrs: str) -> str | None:
    tag = soup.find("meta", attrs=attrs)
    if tag and tag.get("content"):
        return tag["content"].strip() or None
    return None


def extract_metadata(html: str) -> PageMetadata:
    """Title, description, og:image and the first Event JSON-LD block of a page."""
    soup = BeautifulSoup(html, "html.parser")
    metadata = PageMetadata()

    if soup.title and soup.title.string and soup.title.string.strip():
        metadata.title = soup.title.string.strip()
    else:
        metadata.title = _meta_content(soup, property="og:title")

    metadata.description = _meta_content(soup, name="description") or _meta_content(
        soup, property="og:description"
    )
    metadata.og_image = _meta_content(soup, property="og:image")

    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        payload = script.string or script.get_text()
        try:
            data = json.loads(payload.strip())
        except (json.JSONDecodeError, AttributeError):
            logger.debug("Skipping malformed JSON-LD block")
            continue
        node = find_event_node(data)
        if node is not None:
            metadata.json_ld = node
            break

    return metadata


def extract_links(html: str, base_url: str) -> list[str]:
    """All distinct absolute http(s) links on the page."""
    soup = BeautifulSoup(html, "html.parser")
    links: dict[str, None] = {}
    for anchor in soup.find_all("a", href=True):
        try:
            url = urljoin(base_url, anchor["href"].strip())
            parsed = urlparse(url)
        except ValueError:
            continue
        if parsed.scheme in ("http", "https") and parsed.netloc:
            links[url] = None
    return list(links)
