"""Error taxonomy for the crawl, index and answer stages."""

from __future__ import annotations


class DocRagError(Exception):
    """Base class for all docrag errors."""


class MissingCredentialError(DocRagError):
    """Raised at startup when the model/embedding credential is absent."""


class FetchError(DocRagError):
    """A single URL could not be fetched. The crawl continues."""

    def __init__(self, url: str, reason: str, status: int | None = None) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
        self.status = status


class ExtractionFailed(DocRagError):
    """Readable content fell below the configured character threshold."""

    def __init__(self, url: str, length: int, threshold: int) -> None:
        super().__init__(f"{url}: extracted {length} chars, threshold is {threshold}")
        self.url = url
        self.length = length
        self.threshold = threshold


class SinkWriteError(DocRagError):
    """The corpus could not be written. Fatal to the crawl phase."""


class ChunkConfigError(DocRagError, ValueError):
    """Invalid chunking parameters (overlap must be smaller than chunk size)."""


class EmbeddingError(DocRagError):
    """The embedding collaborator failed for one passage or for all of them."""


class EmptyCorpusError(DocRagError):
    """Indexing was reached with nothing to index."""


class ModelError(DocRagError):
    """The language-model collaborator failed. Never retried."""


__all__ = [
    "DocRagError",
    "MissingCredentialError",
    "FetchError",
    "ExtractionFailed",
    "SinkWriteError",
    "ChunkConfigError",
    "EmbeddingError",
    "EmptyCorpusError",
    "ModelError",
]
