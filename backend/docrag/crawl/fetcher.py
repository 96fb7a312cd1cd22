"""HTTP fetcher: retrieves raw HTML and the same-origin links it contains."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional, Protocol
from urllib.parse import urljoin, urlsplit, urlunsplit

import aiohttp
from bs4 import BeautifulSoup
from bs4.element import Tag

from docrag.core.errors import FetchError
from docrag.core.logging import get_logger

logger = get_logger(__name__)

_HTML_TYPES = ("", "text/html", "application/xhtml+xml")
_SKIP_SCHEMES = ("mailto:", "javascript:", "tel:", "data:")


@dataclass(slots=True)
class FetchedPage:
    """Raw page body plus the links discovered on it."""

    url: str
    final_url: str
    status: int
    content: str
    links: list[str] = field(default_factory=list)


class Fetcher(Protocol):
    async def fetch(self, url: str) -> FetchedPage: ...


def extract_links(html: str, base_url: str) -> list[str]:
    """Return same-origin http(s) links in document order, fragments removed, no repeats."""
    soup = BeautifulSoup(html, "html.parser")
    base_netloc = urlsplit(base_url).netloc.lower()
    seen: set[str] = set()
    links: list[str] = []
    for tag in soup.find_all("a", href=True):
        if not isinstance(tag, Tag):
            continue
        href = tag.get("href")
        if not isinstance(href, str):
            continue
        raw = href.strip()
        if not raw or raw.startswith("#") or raw.lower().startswith(_SKIP_SCHEMES):
            continue
        parsed = urlsplit(urljoin(base_url, raw))
        if parsed.scheme not in ("http", "https") or parsed.netloc.lower() != base_netloc:
            continue
        absolute = urlunsplit((parsed.scheme, parsed.netloc, parsed.path, parsed.query, ""))
        if absolute not in seen:
            seen.add(absolute)
            links.append(absolute)
    return links


class HttpFetcher:
    """aiohttp-backed fetcher. Use as an async context manager.

    No retries: any network error, timeout, HTTP error status or non-HTML
    response surfaces as FetchError.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = "docrag/0.1",
        max_connections: int = 10,
    ) -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_connections = max_connections
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "HttpFetcher":
        connector = aiohttp.TCPConnector(limit=self.max_connections)
        self.session = aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={"User-Agent": self.user_agent},
            raise_for_status=False,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    async def fetch(self, url: str) -> FetchedPage:
        if self.session is None:
            raise RuntimeError("Session not initialized")
        try:
            async with self.session.get(url, allow_redirects=True) as resp:
                mime = resp.headers.get("Content-Type", "").split(";", 1)[0].strip().lower()
                if resp.status >= 400:
                    raise FetchError(url, f"HTTP {resp.status}", status=resp.status)
                if mime not in _HTML_TYPES:
                    raise FetchError(url, f"unsupported content type {mime}", status=resp.status)
                text = await resp.text(errors="replace")
                final_url = str(resp.url)
                status = resp.status
        except asyncio.TimeoutError as exc:
            raise FetchError(url, f"timed out after {self.timeout}s") from exc
        except aiohttp.ClientError as exc:
            raise FetchError(url, str(exc) or exc.__class__.__name__) from exc
        if final_url != url:
            logger.debug("Redirected %s -> %s", url, final_url)
        return FetchedPage(
            url=url,
            final_url=final_url,
            status=status,
            content=text,
            links=extract_links(text, final_url),
        )


__all__ = ["Fetcher", "FetchedPage", "HttpFetcher", "extract_links"]
