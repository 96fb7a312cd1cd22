"""Crawl frontier: URL normalization, scope matching and FIFO traversal."""

from __future__ import annotations

import posixpath
import threading
from collections import deque
from fnmatch import fnmatchcase
from typing import Iterable, Sequence
from urllib.parse import parse_qsl, urldefrag, urlencode, urlsplit, urlunsplit

from docrag.core.logging import get_logger
from docrag.ingest.types import EntryState, FrontierEntry

logger = get_logger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}
_GLOB_CHARS = frozenset("*?[")


def normalize_url(url: str) -> str:
    """Canonical form used for dedup: no fragment, no trailing slash, sorted query.

    Scheme and host are lowercased and default ports dropped; the path keeps
    its case. Raises ValueError for URLs without scheme or host.
    """
    parsed = urlsplit(url.strip())
    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    if not scheme or not host:
        raise ValueError(f"not an absolute URL: {url!r}")
    port = parsed.port
    netloc = host if port is None or _DEFAULT_PORTS.get(scheme) == port else f"{host}:{port}"

    path = posixpath.normpath(parsed.path) if parsed.path else "/"
    if path.startswith("//"):
        path = "/" + path.lstrip("/")
    path = path.rstrip("/") or "/"

    query = urlencode(sorted(parse_qsl(parsed.query, keep_blank_values=True)), doseq=True)
    return urlunsplit((scheme, netloc, path, query, ""))


class ScopeMatcher:
    """Glob/prefix boundary for the crawl.

    Patterns are matched case-sensitively against the normalized URL with its
    query string removed. ``*`` and ``**`` both match across ``/``. A pattern
    without glob characters is a plain prefix. A URL also matches when the
    pattern only differs by a trailing slash, so ``https://site/docs`` is
    inside ``https://site/docs/**``.
    """

    def __init__(self, patterns: Iterable[str]) -> None:
        self.patterns = tuple(_lower_origin(p.strip()) for p in patterns if p and p.strip())
        if not self.patterns:
            raise ValueError("at least one scope pattern is required")

    @classmethod
    def from_root(cls, root: str) -> "ScopeMatcher":
        return cls([f"{normalize_url(root).rstrip('/')}/**"])

    def matches(self, url: str) -> bool:
        target = _without_query(url)
        candidates = (target,) if target.endswith("/") else (target, target + "/")
        for pattern in self.patterns:
            is_glob = any(ch in _GLOB_CHARS for ch in pattern)
            for candidate in candidates:
                if is_glob and fnmatchcase(candidate, pattern):
                    return True
                if not is_glob and candidate.startswith(pattern):
                    return True
        return False


class Frontier:
    """Owns crawl state; guarantees at most one fetch per normalized URL.

    Entries are keyed by the normalized URL but keep the first-seen URL
    (fragment removed) as the address to fetch. All mutations happen under a
    single lock so concurrent workers can share one frontier.
    """

    def __init__(self, scope: ScopeMatcher | Sequence[str]) -> None:
        self.scope = _as_matcher(scope)
        self._lock = threading.Lock()
        self._entries: dict[str, FrontierEntry] = {}
        self._pending: deque[str] = deque()
        self._in_flight: set[str] = set()

    def enqueue(
        self,
        url: str,
        scope: ScopeMatcher | Sequence[str] | None = None,
        discovered_from: str | None = None,
    ) -> bool:
        """Add ``url`` if it is new and in scope. Out-of-scope URLs are dropped silently."""
        try:
            normalized = normalize_url(url)
        except ValueError:
            return False
        if not normalized.startswith(("http://", "https://")):
            return False
        matcher = self.scope if scope is None else _as_matcher(scope)
        if not matcher.matches(normalized):
            return False
        with self._lock:
            if normalized in self._entries:
                return False
            target = urldefrag(url.strip()).url
            self._entries[normalized] = FrontierEntry(url=target, discovered_from=discovered_from)
            self._pending.append(normalized)
        logger.debug("Enqueued %s", target)
        return True

    def next_pending(self) -> FrontierEntry | None:
        """Pop the oldest pending entry (breadth-first), or None when nothing is pending."""
        with self._lock:
            if not self._pending:
                return None
            key = self._pending.popleft()
            self._in_flight.add(key)
            return self._entries[key]

    def mark_visited(self, url: str) -> None:
        self._transition(url, EntryState.VISITED, None)

    def mark_failed(self, url: str, reason: str) -> None:
        self._transition(url, EntryState.FAILED, reason)

    def _transition(self, url: str, state: EntryState, reason: str | None) -> None:
        key = normalize_url(url)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                raise KeyError(f"{key} is not in the frontier")
            if entry.state is not EntryState.PENDING:
                raise ValueError(f"{key} already {entry.state.value}")
            entry.state = state
            entry.reason = reason
            self._in_flight.discard(key)

    @property
    def in_flight(self) -> int:
        with self._lock:
            return len(self._in_flight)

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def exhausted(self) -> bool:
        with self._lock:
            return not self._pending and not self._in_flight

    def entries(self, state: EntryState | None = None) -> list[FrontierEntry]:
        with self._lock:
            values = list(self._entries.values())
        if state is None:
            return values
        return [entry for entry in values if entry.state is state]

    def __contains__(self, url: object) -> bool:
        if not isinstance(url, str):
            return False
        try:
            key = normalize_url(url)
        except ValueError:
            return False
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _as_matcher(scope: ScopeMatcher | Sequence[str]) -> ScopeMatcher:
    if isinstance(scope, ScopeMatcher):
        return scope
    if isinstance(scope, str):
        return ScopeMatcher([scope])
    return ScopeMatcher(scope)


def _without_query(url: str) -> str:
    parsed = urlsplit(url)
    return urlunsplit((parsed.scheme, parsed.netloc, parsed.path, "", ""))


def _lower_origin(pattern: str) -> str:
    scheme, sep, rest = pattern.partition("://")
    if not sep:
        return pattern
    host, slash, path = rest.partition("/")
    return f"{scheme.lower()}://{host.lower()}{slash}{path}"


__all__ = ["Frontier", "ScopeMatcher", "normalize_url"]
