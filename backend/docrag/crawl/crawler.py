"""Bounded-concurrency crawl loop: fetch, extract, sink until the frontier is empty."""

from __future__ import annotations

import asyncio
import time

from docrag.core.errors import ExtractionFailed, FetchError, SinkWriteError
from docrag.core.logging import get_logger
from docrag.core.metrics import CRAWL_DURATION, PAGES_TOTAL
from docrag.corpus.sink import CorpusSink
from docrag.crawl.fetcher import Fetcher
from docrag.crawl.frontier import Frontier
from docrag.ingest.extractor import ContentExtractor
from docrag.ingest.types import CrawlStats, EntryState, FrontierEntry, PageRecord

logger = get_logger(__name__)


class SiteCrawler:
    """Runs ``concurrency`` workers that share one frontier.

    Workers stop pulling new URLs once the frontier is exhausted, the page
    budget is spent or the deadline passes; fetches already in flight are
    allowed to finish. A SinkWriteError stops the crawl and is re-raised; any
    other per-page error marks that URL Failed and the crawl goes on.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        extractor: ContentExtractor,
        frontier: Frontier,
        sink: CorpusSink,
        concurrency: int = 4,
        max_pages: int | None = None,
        max_seconds: float | None = None,
        idle_interval: float = 0.01,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.fetcher = fetcher
        self.extractor = extractor
        self.frontier = frontier
        self.sink = sink
        self.concurrency = concurrency
        self.max_pages = max_pages
        self.max_seconds = max_seconds
        self.idle_interval = idle_interval
        self.stats = CrawlStats()
        self._started = 0
        self._deadline: float | None = None
        self._stopping = False
        self._fatal: BaseException | None = None

    async def crawl(self, start_url: str) -> CrawlStats:
        if not self.frontier.enqueue(start_url) and start_url not in self.frontier:
            logger.warning("Start URL %s is outside the crawl scope", start_url)
        logger.info("Starting crawl of %s with %d workers", start_url, self.concurrency)
        started = time.monotonic()
        if self.max_seconds is not None:
            self._deadline = started + self.max_seconds

        workers = [asyncio.create_task(self._worker()) for _ in range(self.concurrency)]
        await asyncio.gather(*workers)

        duration = time.monotonic() - started
        CRAWL_DURATION.observe(duration)
        if self._fatal is not None:
            raise self._fatal
        logger.info(
            "Crawl finished: %d pages stored, %d failed, %d dropped in %.2fs",
            self.stats.crawled,
            self.stats.failed,
            self.stats.extraction_failed,
            duration,
        )
        return self.stats

    async def _worker(self) -> None:
        while not self._stopping:
            if self._budget_spent():
                self._stopping = True
                break
            entry = self.frontier.next_pending()
            if entry is None:
                if self.frontier.in_flight == 0:
                    break
                await asyncio.sleep(self.idle_interval)
                continue
            self._started += 1
            try:
                await self._process(entry)
            except SinkWriteError as exc:
                logger.error("Corpus write failed for %s, aborting crawl: %s", entry.url, exc)
                self._abort(entry, exc)
            except Exception as exc:
                logger.exception("Unexpected error while crawling %s", entry.url)
                self._record_failure(entry, f"{exc.__class__.__name__}: {exc}")

    def _record_failure(self, entry: FrontierEntry, reason: str) -> None:
        if entry.state is EntryState.PENDING:
            self.frontier.mark_failed(entry.url, reason)
        self.stats.failed += 1
        self.stats.failures[entry.url] = reason
        PAGES_TOTAL.labels(outcome="failed").inc()

    def _abort(self, entry: FrontierEntry, exc: BaseException) -> None:
        if entry.state is EntryState.PENDING:
            self.frontier.mark_failed(entry.url, str(exc))
        if self._fatal is None:
            self._fatal = exc
        self._stopping = True

    def _budget_spent(self) -> bool:
        if self.max_pages is not None and self._started >= self.max_pages:
            logger.info("Page budget of %d reached", self.max_pages)
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            logger.info("Crawl deadline reached")
            return True
        return False

    async def _process(self, entry: FrontierEntry) -> None:
        url = entry.url
        logger.info("Parsing %s", url)
        try:
            page = await self.fetcher.fetch(url)
        except FetchError as exc:
            self._record_failure(entry, exc.reason)
            logger.warning("Fetch failed for %s: %s", url, exc.reason)
            return

        for link in page.links:
            if self.frontier.enqueue(link, discovered_from=url):
                self.stats.discovered += 1

        try:
            extraction = await asyncio.to_thread(self.extractor.extract, page.content, page.final_url)
        except ExtractionFailed as exc:
            self.frontier.mark_visited(url)
            self.stats.extraction_failed += 1
            PAGES_TOTAL.labels(outcome="dropped").inc()
            logger.info("Dropping %s: %d chars below threshold %d", url, exc.length, exc.threshold)
            return

        self.sink.append(
            PageRecord(
                url=url,
                raw_content=page.content,
                extracted_markup=extraction.markdown,
                title=extraction.title,
            )
        )
        self.frontier.mark_visited(url)
        self.stats.crawled += 1
        PAGES_TOTAL.labels(outcome="stored").inc()


__all__ = ["SiteCrawler"]
