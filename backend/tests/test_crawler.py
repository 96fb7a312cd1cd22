"""Tests for the crawl loop against an in-memory site."""

from __future__ import annotations

import asyncio

import pytest

from docrag.core.errors import SinkWriteError
from docrag.corpus.sink import MemoryCorpusSink
from docrag.crawl.crawler import SiteCrawler
from docrag.crawl.frontier import Frontier
from docrag.ingest.extractor import ContentExtractor, SemanticStrategy
from docrag.ingest.types import EntryState

from conftest import StaticSiteFetcher, article

ROOT = "https://docs.example.com/manual"


def _crawler(fetcher, sink=None, **kwargs) -> SiteCrawler:
    return SiteCrawler(
        fetcher=fetcher,
        extractor=ContentExtractor(char_threshold=200, strategy=SemanticStrategy()),
        frontier=Frontier([f"{ROOT}/**"]),
        sink=sink if sink is not None else MemoryCorpusSink(),
        idle_interval=0.001,
        **kwargs,
    )


def _site(long_paragraph: str) -> dict[str, str]:
    return {
        ROOT: article(
            "Manual",
            long_paragraph,
            links=[f"{ROOT}/autopilot", "/manual/charging#ports", "https://www.example.org/blog"],
        ),
        f"{ROOT}/autopilot": article("Autopilot", long_paragraph, links=[ROOT, "charging"]),
        f"{ROOT}/charging": article("Charging", long_paragraph, links=[f"{ROOT}/autopilot/"]),
        "https://www.example.org/blog": article("Blog", long_paragraph),
    }


def test_crawl_visits_only_in_scope_pages(long_paragraph: str) -> None:
    fetcher = StaticSiteFetcher(_site(long_paragraph))
    sink = MemoryCorpusSink()
    crawler = _crawler(fetcher, sink, concurrency=2)

    stats = asyncio.run(crawler.crawl(ROOT))

    assert sorted(fetcher.requested) == sorted([ROOT, f"{ROOT}/autopilot", f"{ROOT}/charging"])
    assert "https://www.example.org/blog" not in fetcher.requested
    assert stats.crawled == 3
    assert stats.failed == 0
    assert {record.url for record in sink.export_all()} == set(fetcher.requested)
    assert all(entry.state is EntryState.VISITED for entry in crawler.frontier.entries())


def test_single_worker_crawls_breadth_first(long_paragraph: str) -> None:
    fetcher = StaticSiteFetcher(_site(long_paragraph))
    sink = MemoryCorpusSink()
    asyncio.run(_crawler(fetcher, sink, concurrency=1).crawl(ROOT))

    assert fetcher.requested == [ROOT, f"{ROOT}/autopilot", f"{ROOT}/charging"]
    assert [record.url for record in sink.export_all()] == fetcher.requested
    assert sink.export_all()[0].title == "Manual"


def test_thin_page_is_dropped_and_crawl_continues(long_paragraph: str) -> None:
    pages = _site(long_paragraph)
    pages[f"{ROOT}/autopilot"] = article("Stub", "x" * 40, links=[f"{ROOT}/charging"])
    fetcher = StaticSiteFetcher(pages)
    sink = MemoryCorpusSink()
    crawler = _crawler(fetcher, sink, concurrency=1)

    stats = asyncio.run(crawler.crawl(ROOT))

    assert stats.extraction_failed == 1
    assert stats.crawled == 2
    assert f"{ROOT}/autopilot" not in {record.url for record in sink.export_all()}
    assert f"{ROOT}/charging" in fetcher.requested


def test_fetch_failure_is_recorded_and_crawl_continues(long_paragraph: str) -> None:
    fetcher = StaticSiteFetcher(_site(long_paragraph), failures=[f"{ROOT}/autopilot"])
    crawler = _crawler(fetcher, concurrency=2)

    stats = asyncio.run(crawler.crawl(ROOT))

    assert stats.failed == 1
    assert stats.failures == {f"{ROOT}/autopilot": "connection refused"}
    assert stats.crawled == 2
    [failed] = crawler.frontier.entries(EntryState.FAILED)
    assert failed.url == f"{ROOT}/autopilot"


def test_page_budget_stops_crawl(long_paragraph: str) -> None:
    fetcher = StaticSiteFetcher(_site(long_paragraph))
    stats = asyncio.run(_crawler(fetcher, concurrency=1, max_pages=1).crawl(ROOT))
    assert fetcher.requested == [ROOT]
    assert stats.crawled == 1


class BrokenSink(MemoryCorpusSink):
    def append(self, record) -> None:
        raise SinkWriteError("disk full")


def test_sink_failure_aborts_crawl(long_paragraph: str) -> None:
    fetcher = StaticSiteFetcher(_site(long_paragraph))
    with pytest.raises(SinkWriteError):
        asyncio.run(_crawler(fetcher, BrokenSink(), concurrency=2).crawl(ROOT))
    assert fetcher.requested[0] == ROOT


def test_trailing_slash_root_is_fetched_as_given(long_paragraph: str) -> None:
    root = f"{ROOT}/"
    fetcher = StaticSiteFetcher(
        {
            root: article("Manual", long_paragraph, links=["intro/"]),
            f"{ROOT}/intro/": article("Intro", long_paragraph, links=["../"]),
        }
    )
    sink = MemoryCorpusSink()
    stats = asyncio.run(_crawler(fetcher, sink, concurrency=1).crawl(root))

    assert fetcher.requested == [root, f"{ROOT}/intro/"]
    assert stats.crawled == 2
    assert stats.failed == 0
    assert [record.url for record in sink.export_all()] == [root, f"{ROOT}/intro/"]


class SlowFetcher(StaticSiteFetcher):
    def __init__(self, pages: dict[str, str], delay: float) -> None:
        super().__init__(pages)
        self.delay = delay

    async def fetch(self, url: str):
        page = await super().fetch(url)
        await asyncio.sleep(self.delay)
        return page


def test_deadline_stops_new_pulls_but_finishes_in_flight(long_paragraph: str) -> None:
    fetcher = SlowFetcher(_site(long_paragraph), delay=0.2)
    crawler = _crawler(fetcher, concurrency=2, max_seconds=0.05)

    stats = asyncio.run(crawler.crawl(ROOT))

    assert fetcher.requested == [ROOT]
    assert stats.crawled == 1
    assert crawler.frontier.pending == 2
    assert crawler.frontier.in_flight == 0


class FlakyExtractor(ContentExtractor):
    def extract(self, html, url=""):
        if url.endswith("/autopilot"):
            raise RuntimeError("malformed markup")
        return super().extract(html, url)


def test_unexpected_page_error_is_isolated(long_paragraph: str) -> None:
    fetcher = StaticSiteFetcher(_site(long_paragraph))
    sink = MemoryCorpusSink()
    crawler = SiteCrawler(
        fetcher=fetcher,
        extractor=FlakyExtractor(char_threshold=200, strategy=SemanticStrategy()),
        frontier=Frontier([f"{ROOT}/**"]),
        sink=sink,
        concurrency=1,
        idle_interval=0.001,
    )

    stats = asyncio.run(crawler.crawl(ROOT))

    assert stats.failed == 1
    assert stats.failures == {f"{ROOT}/autopilot": "RuntimeError: malformed markup"}
    assert stats.crawled == 2
    assert [record.url for record in sink.export_all()] == [ROOT, f"{ROOT}/charging"]
    [failed] = crawler.frontier.entries(EntryState.FAILED)
    assert failed.url == f"{ROOT}/autopilot"
