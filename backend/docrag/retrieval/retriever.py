"""Top-k passage retrieval."""

from __future__ import annotations

from docrag.ingest.types import Passage
from docrag.retrieval.vector_index import VectorIndex

DEFAULT_K = 4


class Retriever:
    """Fixed-k wrapper around :meth:`VectorIndex.query` that drops scores."""

    def __init__(self, index: VectorIndex, k: int = DEFAULT_K) -> None:
        if k < 1:
            raise ValueError("k must be >= 1")
        self.index = index
        self.k = k

    def retrieve(self, question: str) -> list[Passage]:
        return [hit.passage for hit in self.index.query(question, self.k)]


__all__ = ["Retriever", "DEFAULT_K"]
