"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from fastapi import HTTPException

from docrag.core.config import Settings, get_settings
from docrag.core.errors import DocRagError
from docrag.core.logging import get_logger
from docrag.corpus.export import load_csv
from docrag.corpus.sink import MemoryCorpusSink
from docrag.pipeline import RagPipeline, build_pipeline

logger = get_logger(__name__)

_PIPELINE: RagPipeline | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_pipeline() -> RagPipeline:
    """Build the query pipeline once, indexing the exported corpus CSV."""
    global _PIPELINE
    if _PIPELINE is None:
        settings = get_app_settings()
        corpus_path = settings.corpus_path
        if not corpus_path.exists():
            raise HTTPException(status_code=503, detail=f"Corpus not found at {corpus_path}")
        try:
            pipeline = build_pipeline(settings, sink=MemoryCorpusSink())
            pipeline.index_records(load_csv(corpus_path))
        except DocRagError as exc:
            logger.error("Unable to build index from %s: %s", corpus_path, exc)
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        _PIPELINE = pipeline
    return _PIPELINE


__all__ = ["get_app_settings", "get_pipeline"]
