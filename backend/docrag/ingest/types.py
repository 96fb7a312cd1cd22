"""Common pipeline data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence


@dataclass(slots=True, frozen=True)
class PageRecord:
    """One successfully fetched and extracted page."""

    url: str
    raw_content: str | bytes
    extracted_markup: str
    title: str | None = None


class EntryState(str, Enum):
    PENDING = "pending"
    VISITED = "visited"
    FAILED = "failed"


@dataclass(slots=True)
class FrontierEntry:
    """A discovered URL and where it was found."""

    url: str
    discovered_from: str | None
    state: EntryState = EntryState.PENDING
    reason: str | None = None


@dataclass(slots=True, frozen=True)
class Passage:
    """Bounded slice of a page's markup, the unit of retrieval."""

    source_url: str
    text: str
    sequence_index: int
    start_char: int = 0
    end_char: int = 0


@dataclass(slots=True, frozen=True)
class IndexedVector:
    passage: Passage
    embedding: tuple[float, ...]


@dataclass(slots=True, frozen=True)
class ScoredPassage:
    passage: Passage
    score: float


@dataclass(slots=True, frozen=True)
class QueryResult:
    passages: Sequence[Passage]
    answer_text: str


@dataclass(slots=True)
class CrawlStats:
    """Aggregated crawl statistics."""

    crawled: int = 0
    failed: int = 0
    extraction_failed: int = 0
    discovered: int = 0
    failures: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, int]:
        return {
            "crawled": self.crawled,
            "failed": self.failed,
            "extraction_failed": self.extraction_failed,
            "discovered": self.discovered,
        }


@dataclass(slots=True)
class IndexBuildReport:
    """Outcome of a bulk index build."""

    indexed: int = 0
    failed: list[tuple[Passage, str]] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def to_dict(self) -> dict[str, int]:
        return {"indexed": self.indexed, "failed": self.failed_count}


__all__ = [
    "PageRecord",
    "EntryState",
    "FrontierEntry",
    "Passage",
    "IndexedVector",
    "ScoredPassage",
    "QueryResult",
    "CrawlStats",
    "IndexBuildReport",
]
