"""CLI entrypoint for docrag."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import NoReturn, Optional

import requests
import typer

from docrag.core.config import Settings
from docrag.core.errors import DocRagError
from docrag.core.logging import configure_logging
from docrag.corpus.export import export_csv, load_csv
from docrag.corpus.sink import MemoryCorpusSink, open_sink
from docrag.crawl.crawler import SiteCrawler
from docrag.crawl.fetcher import HttpFetcher
from docrag.crawl.frontier import Frontier
from docrag.ingest.extractor import build_extractor
from docrag.ingest.types import CrawlStats
from docrag.pipeline import PipelineResult, build_pipeline

app = typer.Typer(name="docrag", help="Crawl a documentation site and answer questions about it")

DEFAULT_HOST = "http://127.0.0.1:8000"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("DOCRAG_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    try:
        resp = requests.request(method, url, timeout=120, **kwargs)
    except requests.RequestException as exc:
        typer.echo(f"Request failed: {exc}", err=True)
        raise typer.Exit(code=1)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _load_settings(
    config: Optional[Path],
    start_url: Optional[str] = None,
    max_pages: Optional[int] = None,
    corpus: Optional[Path] = None,
) -> Settings:
    settings = Settings.from_yaml(config)
    if start_url:
        settings.start_url = start_url
    if max_pages is not None:
        settings.max_pages = max_pages
    if corpus is not None:
        settings.corpus_path = corpus
    return settings


def _fail(exc: Exception) -> NoReturn:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


@app.callback()
def main(
    log_level: str = typer.Option("INFO", "--log-level", help="Log level for stderr output"),
    plain: bool = typer.Option(False, "--plain", help="Plain text logs instead of JSON"),
) -> None:
    configure_logging(log_level, use_json=not plain)


@app.command()
def crawl(
    start_url: Optional[str] = typer.Option(None, "--start-url", help="Root URL of the site"),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", help="Stop after this many pages"),
    output: Optional[Path] = typer.Option(None, "--output", help="CSV file for the exported corpus"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML configuration file"),
) -> None:
    """Crawl the site and export the corpus as CSV."""
    settings = _load_settings(config, start_url, max_pages, output)
    try:
        stats, count = asyncio.run(_crawl(settings))
    except DocRagError as exc:
        _fail(exc)
    typer.echo(json.dumps({**stats.to_dict(), "exported": count, "corpus": str(settings.corpus_path)}, indent=2))


async def _crawl(settings: Settings) -> tuple[CrawlStats, int]:
    sink = open_sink(settings.sink_path)
    try:
        async with HttpFetcher(
            timeout=settings.request_timeout,
            user_agent=settings.user_agent,
            max_connections=settings.max_concurrency,
        ) as fetcher:
            crawler = SiteCrawler(
                fetcher=fetcher,
                extractor=build_extractor(settings.extraction_strategy, settings.char_threshold),
                frontier=Frontier(settings.effective_scope),
                sink=sink,
                concurrency=settings.max_concurrency,
                max_pages=settings.max_pages,
                max_seconds=settings.max_seconds,
            )
            stats = await crawler.crawl(settings.start_url)
        count = export_csv(sink.export_all(), settings.corpus_path)
    finally:
        sink.close()
    return stats, count


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question to answer"),
    corpus: Optional[Path] = typer.Option(None, "--corpus", help="Exported corpus CSV"),
    host: Optional[str] = typer.Option(None, "--host", help="Ask a running docrag server instead"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML configuration file"),
) -> None:
    """Answer a question from an exported corpus."""
    if host:
        resp = _request("POST", "/answer", host=host, json={"question": question})
        typer.echo(resp.json()["answer"])
        return
    settings = _load_settings(config, corpus=corpus)
    try:
        pipeline = build_pipeline(settings, sink=MemoryCorpusSink())
        pipeline.index_records(load_csv(settings.corpus_path))
        result = pipeline.ask(question)
    except (DocRagError, OSError, ValueError) as exc:
        _fail(exc)
    typer.echo(result.answer_text)


@app.command()
def run(
    question: Optional[str] = typer.Argument(None, help="Question to answer after indexing"),
    start_url: Optional[str] = typer.Option(None, "--start-url", help="Root URL of the site"),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", help="Stop after this many pages"),
    export: Optional[Path] = typer.Option(None, "--export", help="Also write the corpus to this CSV"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML configuration file"),
) -> None:
    """Crawl, index and answer in one go."""
    settings = _load_settings(config, start_url, max_pages)
    try:
        result = asyncio.run(_run(settings, question or settings.question, export))
    except DocRagError as exc:
        _fail(exc)
    for key, value in result.summary().items():
        typer.echo(f"{key}: {value}")
    typer.echo("")
    typer.echo(result.query.answer_text)


async def _run(settings: Settings, question: str, export: Optional[Path]) -> PipelineResult:
    async with HttpFetcher(
        timeout=settings.request_timeout,
        user_agent=settings.user_agent,
        max_connections=settings.max_concurrency,
    ) as fetcher:
        pipeline = build_pipeline(settings, fetcher=fetcher)
        try:
            return await pipeline.run(question, export_path=export)
        finally:
            pipeline.sink.close()


if __name__ == "__main__":
    app()
