"""Tests for retrieval utilities."""

from __future__ import annotations

import threading
import time
from typing import Sequence

import pytest

from docrag.core.errors import EmbeddingError
from docrag.ingest.embeddings import EmbeddingModel, HashedEmbeddingModel
from docrag.ingest.types import Passage
from docrag.retrieval import Retriever, VectorIndex


class KeywordModel(EmbeddingModel):
    """One axis per keyword; texts containing "fail" raise."""

    model_name = "keywords"
    keywords = ("autopilot", "charging", "seats")

    @property
    def dim(self) -> int:
        return len(self.keywords)

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if any("fail" in text for text in texts):
            raise EmbeddingError("service unavailable")
        return [[float(text.count(word)) for word in self.keywords] for text in texts]


def _passage(text: str, index: int = 0) -> Passage:
    return Passage(source_url=f"https://example.com/{index}", text=text, sequence_index=0)


def test_vector_index_basic() -> None:
    index = VectorIndex(KeywordModel())
    index.add(_passage("autopilot autopilot", 0))
    index.add(_passage("charging", 1))
    results = index.query("autopilot", k=1)
    assert results
    assert results[0].passage.text == "autopilot autopilot"
    assert results[0].score == pytest.approx(1.0)


def test_query_orders_by_score_then_insertion() -> None:
    index = VectorIndex(KeywordModel(), batch_size=2)
    texts = ["charging", "autopilot", "autopilot and charging", "autopilot again"]
    report = index.build_from_documents([_passage(text, i) for i, text in enumerate(texts)])
    assert report.indexed == 4
    assert [p.text for p in index.passages] == texts

    hits = index.query("autopilot", k=3)
    assert [hit.passage.text for hit in hits] == ["autopilot", "autopilot again", "autopilot and charging"]
    assert hits[0].score == hits[1].score


def test_query_edge_cases() -> None:
    index = VectorIndex(KeywordModel())
    assert index.query("autopilot", k=4) == []
    index.add(_passage("seats", 0))
    assert len(index.query("seats", k=10)) == 1
    assert index.query("seats", k=0) == []


def test_failed_passages_are_skipped_and_reported() -> None:
    index = VectorIndex(KeywordModel(), concurrency=2, batch_size=2)
    passages = [_passage(text, i) for i, text in enumerate(["autopilot", "fail here", "charging", "seats"])]
    report = index.build_from_documents(passages)

    assert report.indexed == 3
    assert [passage.text for passage, _ in report.failed] == ["fail here"]
    assert "service unavailable" in report.failed[0][1]
    assert [p.text for p in index.passages] == ["autopilot", "charging", "seats"]


def test_all_failures_raise() -> None:
    index = VectorIndex(KeywordModel())
    with pytest.raises(EmbeddingError):
        index.build_from_documents([_passage("fail"), _passage("fail too", 1)])
    assert index.size == 0


def test_add_propagates_embedding_error() -> None:
    index = VectorIndex(KeywordModel())
    with pytest.raises(EmbeddingError):
        index.add(_passage("fail"))


def test_retriever_returns_top_k_passages() -> None:
    index = VectorIndex(HashedEmbeddingModel(dim=256))
    index.build_from_documents(
        [
            _passage("How to engage autopilot on the highway", 0),
            _passage("Charging cable and port status lights", 1),
            _passage("Adjusting seats and mirrors", 2),
        ]
    )
    retriever = Retriever(index, k=2)
    passages = retriever.retrieve("engage autopilot")
    assert len(passages) == 2
    assert passages[0].source_url == "https://example.com/0"


def test_retriever_rejects_bad_k() -> None:
    with pytest.raises(ValueError):
        Retriever(VectorIndex(HashedEmbeddingModel()), k=0)


class SlowCountingModel(KeywordModel):
    """Tracks how many embed calls overlap."""

    def __init__(self, delay: float = 0.02) -> None:
        self.delay = delay
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(self.delay)
            return super().embed(texts)
        finally:
            with self._lock:
                self.active -= 1


def test_in_flight_embedding_requests_are_capped() -> None:
    model = SlowCountingModel()
    index = VectorIndex(model, concurrency=2, batch_size=1)
    report = index.build_from_documents([_passage(f"autopilot {i}", i) for i in range(8)])
    assert report.indexed == 8
    assert 1 <= model.peak <= 2

    model.peak = 0
    threads = [
        threading.Thread(target=index.add, args=(_passage(f"charging {i}", 10 + i),))
        for i in range(6)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert index.size == 14
    assert 1 <= model.peak <= 2
