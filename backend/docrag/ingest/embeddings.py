"""Embedding service collaborators."""

from __future__ import annotations

import hashlib
import logging
import math
import re
from typing import Sequence

from openai import OpenAI, OpenAIError

from docrag.core.config import Settings
from docrag.core.errors import EmbeddingError

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+")

_KNOWN_DIMS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class EmbeddingModel:
    """Common embedding interface: texts in, one fixed-size vector per text out."""

    model_name: str = ""

    @property
    def dim(self) -> int:  # pragma: no cover - interface
        raise NotImplementedError

    def embed(self, texts: Sequence[str]) -> list[list[float]]:  # pragma: no cover - interface
        raise NotImplementedError


class HashedEmbeddingModel(EmbeddingModel):
    """Lightweight hashed bag-of-words model with deterministic output.

    Needs no network or credential, which makes it suitable for tests and
    offline indexing.
    """

    def __init__(self, model_name: str = "hashed", dim: int = 384) -> None:
        self.model_name = model_name
        self._dim = dim

    @property
    def dim(self) -> int:
        return self._dim

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for text in texts:
            vector = [0.0] * self._dim
            for token in _tokenize(text):
                vector[_hash_token(token, self._dim)] += 1.0
            vectors.append(normalize(vector))
        return vectors


class OpenAIEmbeddingModel(EmbeddingModel):
    """Embeddings from the OpenAI API. SDK-level retries are disabled."""

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str = "text-embedding-3-small",
        timeout: float = 30.0,
        client: OpenAI | None = None,
    ) -> None:
        self.model_name = model_name
        self._client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self._dim: int | None = _KNOWN_DIMS.get(model_name)

    @property
    def dim(self) -> int:
        return self._dim or 0

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            response = self._client.embeddings.create(model=self.model_name, input=list(texts))
        except OpenAIError as exc:
            raise EmbeddingError(f"{self.model_name} embedding request failed: {exc}") from exc
        data = sorted(response.data, key=lambda item: item.index)
        vectors = [list(item.embedding) for item in data]
        if len(vectors) != len(texts):
            raise EmbeddingError(f"{self.model_name} returned {len(vectors)} vectors for {len(texts)} texts")
        self._dim = len(vectors[0])
        return vectors


def build_embedding_model(settings: Settings) -> EmbeddingModel:
    if settings.embedding_backend == "hashed":
        return HashedEmbeddingModel(model_name="hashed", dim=settings.embedding_dim)
    return OpenAIEmbeddingModel(
        api_key=settings.require_api_key(),
        model_name=settings.embedding_model,
        timeout=settings.request_timeout,
    )


def normalize(vector: Sequence[float]) -> list[float]:
    """Return an L2-normalized copy; zero vectors come back unchanged."""
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return list(vector)
    inv = 1.0 / norm
    return [value * inv for value in vector]


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % dim


__all__ = [
    "EmbeddingModel",
    "HashedEmbeddingModel",
    "OpenAIEmbeddingModel",
    "build_embedding_model",
    "normalize",
]
