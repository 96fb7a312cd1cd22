"""Tests for link discovery and the HTTP fetcher."""

from __future__ import annotations

import asyncio

import pytest

from docrag.crawl.fetcher import HttpFetcher, extract_links


def test_extract_links_same_origin_in_document_order() -> None:
    html = """
    <a href="/manual/b#intro">B</a>
    <a href="c">C</a>
    <a href="https://docs.example.com/manual/b">B again</a>
    <a href="#top">Top</a>
    <a href="mailto:help@example.com">Mail</a>
    <a href="javascript:void(0)">JS</a>
    <a href="https://cdn.example.com/file">Other host</a>
    <a>No href</a>
    """
    links = extract_links(html, "https://docs.example.com/manual/a")
    assert links == ["https://docs.example.com/manual/b", "https://docs.example.com/manual/c"]


def test_fetch_requires_open_session() -> None:
    fetcher = HttpFetcher()
    with pytest.raises(RuntimeError):
        asyncio.run(fetcher.fetch("https://docs.example.com/"))
