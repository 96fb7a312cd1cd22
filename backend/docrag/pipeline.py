"""Crawl, index and answer orchestration."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Sequence

from docrag.answer.composer import AnswerComposer
from docrag.answer.llm import ChatModel, build_chat_model
from docrag.core.config import Settings
from docrag.core.errors import DocRagError, EmptyCorpusError
from docrag.core.logging import get_logger
from docrag.corpus.export import export_csv
from docrag.corpus.sink import CorpusSink, open_sink
from docrag.crawl.crawler import SiteCrawler
from docrag.crawl.fetcher import Fetcher
from docrag.crawl.frontier import Frontier
from docrag.ingest.chunker import Chunker
from docrag.ingest.embeddings import EmbeddingModel, build_embedding_model
from docrag.ingest.extractor import ContentExtractor, build_extractor
from docrag.ingest.types import CrawlStats, IndexBuildReport, PageRecord, Passage, QueryResult
from docrag.retrieval import Retriever, VectorIndex
from docrag.utils.time import elapsed_ms

logger = get_logger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    CRAWLING = "crawling"
    EXTRACTING = "extracting"
    INDEXING = "indexing"
    ANSWERING = "answering"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class PipelineResult:
    crawl: CrawlStats
    index: IndexBuildReport
    query: QueryResult

    def summary(self) -> dict[str, int]:
        return {
            "pages_crawled": self.crawl.crawled,
            "pages_failed": self.crawl.failed,
            "pages_dropped": self.crawl.extraction_failed,
            "passages_indexed": self.index.indexed,
            "passages_failed": self.index.failed_count,
        }


class RagPipeline:
    """One crawl-and-answer session.

    Owns its frontier, corpus sink and vector index; nothing is shared
    between instances. Chunking parameters are validated on construction so a
    bad configuration fails before any page is fetched.
    """

    def __init__(
        self,
        settings: Settings,
        embedding_model: EmbeddingModel,
        chat_model: ChatModel,
        fetcher: Fetcher | None = None,
        sink: CorpusSink | None = None,
        extractor: ContentExtractor | None = None,
    ) -> None:
        settings.validate_chunking()
        self.settings = settings
        self.chunker = Chunker(settings.chunk_size, settings.chunk_overlap, settings.chunk_strategy)
        self.fetcher = fetcher
        self.sink = sink if sink is not None else open_sink(settings.sink_path)
        self.extractor = extractor or build_extractor(settings.extraction_strategy, settings.char_threshold)
        self.frontier = Frontier(settings.effective_scope)
        self.index = VectorIndex(
            embedding_model,
            concurrency=settings.embed_concurrency,
            batch_size=settings.embed_batch_size,
        )
        self.retriever = Retriever(self.index, k=settings.top_k)
        self.composer = AnswerComposer(chat_model)
        self.state = PipelineState.IDLE
        self.error: BaseException | None = None
        self.crawl_stats = CrawlStats()
        self.index_report = IndexBuildReport()

    async def run(self, question: str, export_path: Path | None = None) -> PipelineResult:
        """Crawl the configured site, index it and answer ``question``."""
        try:
            await self.crawl()
            records = self.sink.export_all()
            if export_path is not None:
                count = export_csv(records, export_path)
                logger.info("Exported %d pages to %s", count, export_path)
            self.index_records(records)
            result = self.ask(question)
        except Exception as exc:
            self._fail(exc)
            raise
        self._transition(PipelineState.DONE)
        return PipelineResult(crawl=self.crawl_stats, index=self.index_report, query=result)

    async def crawl(self) -> CrawlStats:
        if self.fetcher is None:
            raise DocRagError("No fetcher configured for crawling")
        self._transition(PipelineState.CRAWLING)
        crawler = SiteCrawler(
            fetcher=self.fetcher,
            extractor=self.extractor,
            frontier=self.frontier,
            sink=self.sink,
            concurrency=self.settings.max_concurrency,
            max_pages=self.settings.max_pages,
            max_seconds=self.settings.max_seconds,
        )
        try:
            self.crawl_stats = await crawler.crawl(self.settings.start_url)
        except Exception as exc:
            self.crawl_stats = crawler.stats
            self._fail(exc)
            raise
        return self.crawl_stats

    def prepare_passages(self, records: Iterable[PageRecord]) -> list[Passage]:
        self._transition(PipelineState.EXTRACTING)
        passages = self.chunker.split_documents(records)
        logger.info("Split corpus into %d passages", len(passages))
        return passages

    def build_index(self, passages: Sequence[Passage]) -> IndexBuildReport:
        self._transition(PipelineState.INDEXING)
        if not passages:
            raise EmptyCorpusError("Nothing to index: the corpus produced no passages")
        started = time.perf_counter()
        self.index_report = self.index.build_from_documents(passages)
        logger.info("Index built in %d ms", elapsed_ms(started))
        return self.index_report

    def index_records(self, records: Iterable[PageRecord]) -> IndexBuildReport:
        try:
            return self.build_index(self.prepare_passages(records))
        except Exception as exc:
            self._fail(exc)
            raise

    def ask(self, question: str) -> QueryResult:
        self._transition(PipelineState.ANSWERING)
        try:
            passages = self.retriever.retrieve(question)
            answer = self.composer.answer(question, passages)
        except Exception as exc:
            self._fail(exc)
            raise
        return QueryResult(passages=passages, answer_text=answer)

    def _transition(self, state: PipelineState) -> None:
        if self.state is PipelineState.FAILED:
            raise DocRagError(f"Pipeline already failed: {self.error}")
        logger.debug("Pipeline %s -> %s", self.state.value, state.value)
        self.state = state

    def _fail(self, exc: BaseException) -> None:
        if self.state is not PipelineState.FAILED:
            self.error = exc
            self.state = PipelineState.FAILED
            logger.error("Pipeline failed: %s", exc)


def build_pipeline(
    settings: Settings,
    fetcher: Fetcher | None = None,
    sink: CorpusSink | None = None,
) -> RagPipeline:
    """Wire the OpenAI (or hashed) collaborators; fails fast on a missing key."""
    settings.validate_chunking()
    chat_model = build_chat_model(settings)
    return RagPipeline(
        settings=settings,
        embedding_model=build_embedding_model(settings),
        chat_model=chat_model,
        fetcher=fetcher,
        sink=sink,
    )


__all__ = ["PipelineState", "PipelineResult", "RagPipeline", "build_pipeline"]
