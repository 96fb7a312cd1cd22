"""Chunking utilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from docrag.core.errors import ChunkConfigError
from docrag.ingest.types import PageRecord, Passage

STRATEGIES = ("characters", "boundaries")

# Preferred break points, strongest first.
_BREAKS = ("\n\n", "\n", ". ", "! ", "? ", " ")


@dataclass(slots=True)
class Window:
    start: int
    end: int


class Chunker:
    """Fixed-size overlapping windows over a page's extracted markup.

    Every window is at most ``chunk_size`` characters and each window after
    the first starts exactly ``overlap`` characters before the previous one
    ended. With the ``boundaries`` strategy a window may end early, at the
    last paragraph, line, sentence or word break in its second half.
    """

    def __init__(self, chunk_size: int = 500, overlap: int = 50, strategy: str = "characters") -> None:
        if chunk_size <= 0:
            raise ChunkConfigError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0:
            raise ChunkConfigError(f"overlap must be >= 0, got {overlap}")
        if overlap >= chunk_size:
            raise ChunkConfigError(f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})")
        if strategy not in STRATEGIES:
            raise ChunkConfigError(f"Unknown chunk strategy: {strategy}")
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.strategy = strategy

    def split(self, document: PageRecord) -> list[Passage]:
        text = document.extracted_markup
        if not text.strip():
            return []
        return [
            Passage(
                source_url=document.url,
                text=text[window.start : window.end],
                sequence_index=index,
                start_char=window.start,
                end_char=window.end,
            )
            for index, window in enumerate(self._windows(text))
        ]

    def split_documents(self, documents: Iterable[PageRecord]) -> list[Passage]:
        passages: list[Passage] = []
        for document in documents:
            passages.extend(self.split(document))
        return passages

    def _windows(self, text: str) -> Iterator[Window]:
        length = len(text)
        start = 0
        while start < length:
            end = min(start + self.chunk_size, length)
            if self.strategy == "boundaries" and end < length:
                floor = start + max(self.overlap, self.chunk_size // 2)
                end = _last_break(text, floor, end)
            yield Window(start=start, end=end)
            if end >= length:
                break
            start = end - self.overlap


def _last_break(text: str, floor: int, end: int) -> int:
    for separator in _BREAKS:
        position = text.rfind(separator, floor, end)
        if position != -1:
            return position + len(separator)
    return end


def split(document: PageRecord, chunk_size: int, overlap: int, strategy: str = "characters") -> list[Passage]:
    """Split one page into passages; see :class:`Chunker`."""
    return Chunker(chunk_size=chunk_size, overlap=overlap, strategy=strategy).split(document)


__all__ = ["Chunker", "split", "STRATEGIES"]
