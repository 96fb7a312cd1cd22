"""In-memory vector index over passage embeddings."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Sequence

from docrag.core.errors import EmbeddingError
from docrag.core.logging import get_logger
from docrag.core.metrics import EMBEDDING_FAILURES, INDEX_SIZE, PASSAGES_INDEXED
from docrag.ingest.embeddings import EmbeddingModel, normalize
from docrag.ingest.types import IndexBuildReport, IndexedVector, Passage, ScoredPassage

logger = get_logger(__name__)

_BatchOutcome = list[tuple[Passage, list[float] | None, str | None]]


class VectorIndex:
    """Cosine-similarity index; owns the vector corpus for one session.

    Vectors are L2-normalized on the way in, so every comparison is a dot
    product. Results are ordered by decreasing score, ties by insertion order.
    At most ``concurrency`` embedding requests are in flight at once.
    """

    def __init__(self, embedding_model: EmbeddingModel, concurrency: int = 4, batch_size: int = 16) -> None:
        if concurrency < 1 or batch_size < 1:
            raise ValueError("concurrency and batch_size must be >= 1")
        self.embedding_model = embedding_model
        self.concurrency = concurrency
        self.batch_size = batch_size
        self.dim: int | None = None
        self._entries: list[IndexedVector] = []
        self._lock = threading.Lock()
        self._in_flight = threading.BoundedSemaphore(concurrency)

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def passages(self) -> list[Passage]:
        with self._lock:
            return [entry.passage for entry in self._entries]

    def add(self, passage: Passage) -> IndexedVector:
        """Embed and store one passage. EmbeddingError propagates."""
        vector = self._embed([passage.text])[0]
        return self._store(passage, vector)

    def build_from_documents(self, passages: Iterable[Passage]) -> IndexBuildReport:
        """Bulk-embed passages; failed ones are skipped and reported.

        Raises EmbeddingError only when every passage failed.
        """
        items = list(passages)
        report = IndexBuildReport()
        if not items:
            return report
        batches = [items[i : i + self.batch_size] for i in range(0, len(items), self.batch_size)]
        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="embed") as pool:
            outcomes = list(pool.map(self._embed_isolated, batches))

        for outcome in outcomes:
            for passage, vector, error in outcome:
                if vector is None:
                    report.failed.append((passage, error or "unknown error"))
                    continue
                try:
                    self._store(passage, vector)
                except EmbeddingError as exc:
                    report.failed.append((passage, str(exc)))
                    continue
                report.indexed += 1

        PASSAGES_INDEXED.inc(report.indexed)
        EMBEDDING_FAILURES.inc(report.failed_count)
        if report.indexed == 0:
            raise EmbeddingError(f"All {len(items)} passages failed to embed; first error: {report.failed[0][1]}")
        if report.failed:
            logger.warning("Skipped %d of %d passages after embedding failures", report.failed_count, len(items))
        logger.info("Indexed %d passages", report.indexed)
        return report

    def query(self, text: str, k: int) -> list[ScoredPassage]:
        if k <= 0:
            return []
        with self._lock:
            entries = list(self._entries)
        if not entries:
            return []
        query_vector = normalize(self._embed([text])[0])
        if len(query_vector) != self.dim:
            raise EmbeddingError("Query vector dimension mismatch")
        scored = [(idx, _dot(entry.embedding, query_vector)) for idx, entry in enumerate(entries)]
        scored.sort(key=lambda item: (-item[1], item[0]))
        return [ScoredPassage(passage=entries[idx].passage, score=score) for idx, score in scored[:k]]

    def _embed(self, texts: Sequence[str]) -> list[list[float]]:
        with self._in_flight:
            try:
                vectors = self.embedding_model.embed(texts)
            except EmbeddingError:
                raise
            except Exception as exc:
                raise EmbeddingError(f"Embedding service failed: {exc}") from exc
        if len(vectors) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} vectors, got {len(vectors)}")
        return vectors

    def _embed_isolated(self, batch: Sequence[Passage]) -> _BatchOutcome:
        try:
            vectors = self._embed([passage.text for passage in batch])
            return [(passage, vector, None) for passage, vector in zip(batch, vectors)]
        except EmbeddingError as exc:
            if len(batch) == 1:
                return [(batch[0], None, str(exc))]
            logger.warning("Embedding batch of %d failed (%s); retrying passage by passage", len(batch), exc)
        outcome: _BatchOutcome = []
        for passage in batch:
            try:
                outcome.append((passage, self._embed([passage.text])[0], None))
            except EmbeddingError as exc:
                outcome.append((passage, None, str(exc)))
        return outcome

    def _store(self, passage: Passage, vector: Sequence[float]) -> IndexedVector:
        with self._lock:
            if self.dim is None:
                self.dim = len(vector)
            elif len(vector) != self.dim:
                raise EmbeddingError("Vector dimension mismatch")
            entry = IndexedVector(passage=passage, embedding=tuple(normalize(vector)))
            self._entries.append(entry)
            INDEX_SIZE.set(len(self._entries))
        return entry


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


__all__ = ["VectorIndex"]
