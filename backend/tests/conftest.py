"""Test fixtures for docrag."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Sequence

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from docrag.core.errors import FetchError  # noqa: E402
from docrag.crawl.fetcher import FetchedPage, extract_links  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset cached settings, the API pipeline and environment between tests."""
    for key in list(os.environ):
        if key.startswith("DOCRAG_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("DOCRAG_CONFIG", str(tmp_path / "missing.yaml"))

    from docrag.api import dependencies as deps
    from docrag.core.config import get_settings

    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._PIPELINE = None
    yield
    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._PIPELINE = None


class StaticSiteFetcher:
    """In-memory fetcher serving a fixed mapping of URL -> HTML."""

    def __init__(self, pages: dict[str, str], failures: Sequence[str] = ()) -> None:
        self.pages = pages
        self.failures = set(failures)
        self.requested: list[str] = []

    async def fetch(self, url: str) -> FetchedPage:
        self.requested.append(url)
        if url in self.failures:
            raise FetchError(url, "connection refused")
        if url not in self.pages:
            raise FetchError(url, "HTTP 404", status=404)
        html = self.pages[url]
        return FetchedPage(url=url, final_url=url, status=200, content=html, links=extract_links(html, url))


class StubChatModel:
    """Records prompts and returns a canned answer."""

    def __init__(self, reply: str = "stubbed answer") -> None:
        self.reply = reply
        self.calls: list[list[dict[str, str]]] = []

    def complete(self, messages) -> str:
        self.calls.append(list(messages))
        return self.reply


def article(title: str, body: str, links: Sequence[str] = ()) -> str:
    anchors = "".join(f'<a href="{href}">{href}</a> ' for href in links)
    return (
        f"<html><head><title>{title}</title></head><body>"
        f"<nav>{anchors}</nav>"
        f"<article><h1>{title}</h1><p>{body}</p></article>"
        "</body></html>"
    )


@pytest.fixture
def long_paragraph() -> str:
    return (
        "Autopilot is an advanced driver assistance system that keeps the car centered in its lane "
        "and matches speed to surrounding traffic. To engage it, pull the drive stalk down twice "
        "while driving on a supported road. Keep your hands on the wheel at all times."
    )


@pytest.fixture
def chat_model() -> StubChatModel:
    return StubChatModel()
