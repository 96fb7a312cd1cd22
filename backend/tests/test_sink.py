"""Tests for corpus sinks and CSV export."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from docrag.corpus.export import export_csv, load_csv
from docrag.corpus.sink import MemoryCorpusSink, SQLiteCorpusSink, open_sink
from docrag.ingest.types import PageRecord


def _record(url: str, text: str) -> PageRecord:
    return PageRecord(url=url, raw_content=f"<p>{text}</p>", extracted_markup=text, title=url.rsplit("/", 1)[-1])


@pytest.fixture(params=["memory", "sqlite"])
def sink(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "memory":
        instance = MemoryCorpusSink()
    else:
        instance = SQLiteCorpusSink(tmp_path / "corpus.db")
    yield instance
    instance.close()


def test_export_preserves_insertion_order(sink) -> None:
    for name in ("c", "a", "b"):
        sink.append(_record(f"https://example.com/{name}", f"page {name}"))
    assert [record.url for record in sink.export_all()] == [
        "https://example.com/c",
        "https://example.com/a",
        "https://example.com/b",
    ]
    assert len(sink) == 3


def test_duplicate_url_replaces_in_place(sink) -> None:
    sink.append(_record("https://example.com/a", "first"))
    sink.append(_record("https://example.com/b", "second"))
    sink.append(_record("https://example.com/a", "updated"))
    records = sink.export_all()
    assert [(r.url, r.extracted_markup) for r in records] == [
        ("https://example.com/a", "updated"),
        ("https://example.com/b", "second"),
    ]


def test_concurrent_appends_are_not_lost(sink) -> None:
    def writer(offset: int) -> None:
        for i in range(25):
            sink.append(_record(f"https://example.com/{offset}-{i}", "body"))

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert len(sink.export_all()) == 100


def test_sqlite_sink_survives_reopen(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "corpus.db"
    first = SQLiteCorpusSink(path)
    first.append(_record("https://example.com/a", "persisted"))
    first.close()

    reopened = open_sink(path)
    try:
        [record] = reopened.export_all()
        assert record.extracted_markup == "persisted"
        assert record.title == "a"
    finally:
        reopened.close()


def test_open_sink_defaults_to_memory() -> None:
    assert isinstance(open_sink(None), MemoryCorpusSink)


def test_csv_export_and_load(tmp_path: Path) -> None:
    text = 'Line one, with a comma\n\nLine "two"\n' + "long " * 40000
    records = [_record("https://example.com/a", text), _record("https://example.com/b", "short")]
    path = tmp_path / "out" / "corpus.csv"

    assert export_csv(records, path) == 2
    loaded = load_csv(path)
    assert [(r.url, r.extracted_markup) for r in loaded] == [(r.url, r.extracted_markup) for r in records]


def test_load_csv_requires_columns(tmp_path: Path) -> None:
    path = tmp_path / "bad.csv"
    path.write_text("link,body\nhttps://example.com,hello\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_csv(path)
