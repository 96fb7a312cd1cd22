"""Main-content extraction and Markdown normalization."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import html2text
from bs4 import BeautifulSoup
from readability import Document
from readability.readability import Unparseable

from docrag.core.errors import ExtractionFailed
from docrag.utils.text import normalize, tidy_lines

logger = logging.getLogger(__name__)

_STRIP_TAGS = ("script", "style", "noscript", "template", "iframe", "svg", "canvas")


@dataclass(slots=True, frozen=True)
class Extraction:
    markdown: str
    title: str | None
    text_length: int


class ExtractionStrategy(Protocol):
    """Picks the main content block of a page. Returns (html fragment, title)."""

    name: str

    def select(self, html: str, url: str | None = None) -> tuple[str, str | None]: ...


class ReadabilityStrategy:
    """Text-density / link-density scoring via readability-lxml."""

    name = "readability"

    def __init__(self, min_text_length: int = 25, retry_length: int = 250) -> None:
        self.min_text_length = min_text_length
        self.retry_length = retry_length

    def select(self, html: str, url: str | None = None) -> tuple[str, str | None]:
        document = Document(
            html,
            url=url,
            min_text_length=self.min_text_length,
            retry_length=self.retry_length,
        )
        try:
            summary = document.summary(html_partial=True)
            title = document.short_title() or None
        except Unparseable as exc:
            logger.debug("Readability could not parse %s: %s", url, exc)
            return "", None
        return summary, title


class SemanticStrategy:
    """First <article>, <main> or role=main element, else the whole body."""

    name = "semantic"

    def select(self, html: str, url: str | None = None) -> tuple[str, str | None]:
        soup = BeautifulSoup(html, "html.parser")
        title = soup.title.get_text(strip=True) if soup.title else None
        node = (
            soup.find("article")
            or soup.find("main")
            or soup.find(attrs={"role": "main"})
            or soup.body
            or soup
        )
        return str(node), title or None


_STRATEGIES: dict[str, type] = {
    ReadabilityStrategy.name: ReadabilityStrategy,
    SemanticStrategy.name: SemanticStrategy,
}


def get_strategy(name: str) -> ExtractionStrategy:
    try:
        return _STRATEGIES[name]()
    except KeyError:
        raise ValueError(f"Unknown extraction strategy: {name}") from None


def to_markdown(html: str) -> str:
    """Convert an HTML fragment to Markdown with fixed, deterministic options."""
    converter = html2text.HTML2Text()
    converter.body_width = 0
    converter.ignore_links = True
    converter.ignore_images = True
    converter.ignore_emphasis = False
    converter.ignore_tables = False
    converter.unicode_snob = True
    converter.single_line_break = False
    return tidy_lines(converter.handle(html))


class ContentExtractor:
    """Threshold-gated readable-content extraction. Performs no I/O."""

    def __init__(self, char_threshold: int = 200, strategy: ExtractionStrategy | None = None) -> None:
        if char_threshold < 0:
            raise ValueError("char_threshold must be >= 0")
        self.char_threshold = char_threshold
        self.strategy = strategy or ReadabilityStrategy()

    def extract(self, html: str | bytes, url: str = "") -> Extraction:
        if isinstance(html, bytes):
            html = html.decode("utf-8", errors="replace")
        if not html.strip():
            raise ExtractionFailed(url, 0, self.char_threshold)

        fragment, title = self.strategy.select(html, url or None)
        soup = BeautifulSoup(fragment, "html.parser")
        for tag in soup.find_all(list(_STRIP_TAGS)):
            tag.decompose()
        for tag in soup.find_all(True):
            tag.attrs = {}

        text_length = len(normalize(soup.get_text(" ")))
        if text_length < self.char_threshold:
            raise ExtractionFailed(url, text_length, self.char_threshold)

        markdown = to_markdown(str(soup))
        return Extraction(markdown=markdown, title=title, text_length=text_length)


def build_extractor(strategy: str = "readability", char_threshold: int = 200) -> ContentExtractor:
    return ContentExtractor(char_threshold=char_threshold, strategy=get_strategy(strategy))


__all__ = [
    "ContentExtractor",
    "Extraction",
    "ExtractionStrategy",
    "ReadabilityStrategy",
    "SemanticStrategy",
    "build_extractor",
    "get_strategy",
    "to_markdown",
]
