"""Two-column CSV export/import decoupling the crawl from indexing."""

from __future__ import annotations

import csv
import sys
from pathlib import Path
from typing import Iterable

from docrag.ingest.types import PageRecord

URL_COLUMN = "url"
CONTENT_COLUMN = "content"

# Extracted pages routinely exceed csv's default 128 KiB field limit.
csv.field_size_limit(min(sys.maxsize, 2**31 - 1))


def export_csv(records: Iterable[PageRecord], path: Path) -> int:
    """Write ``url,content`` rows in corpus order and return the row count."""
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("w", encoding="utf-8", newline="") as fh:
        writer = csv.DictWriter(fh, fieldnames=[URL_COLUMN, CONTENT_COLUMN])
        writer.writeheader()
        for record in records:
            writer.writerow({URL_COLUMN: record.url, CONTENT_COLUMN: record.extracted_markup})
            count += 1
    return count


def load_csv(path: Path, content_column: str = CONTENT_COLUMN) -> list[PageRecord]:
    """Read an export back as PageRecords. Raw page bodies are not part of the format."""
    path = Path(path).expanduser()
    with path.open("r", encoding="utf-8", newline="") as fh:
        reader = csv.DictReader(fh)
        fields = reader.fieldnames or []
        missing = [name for name in (URL_COLUMN, content_column) if name not in fields]
        if missing:
            raise ValueError(f"{path} is missing column(s): {', '.join(missing)}")
        return [
            PageRecord(url=row[URL_COLUMN], raw_content="", extracted_markup=row[content_column] or "")
            for row in reader
        ]


__all__ = ["export_csv", "load_csv", "URL_COLUMN", "CONTENT_COLUMN"]
