"""Query API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from docrag.api.dependencies import get_pipeline
from docrag.core.errors import EmbeddingError, ModelError
from docrag.core.metrics import REQUEST_COUNT, REQUEST_LATENCY
from docrag.ingest.types import QueryResult
from docrag.models.dto import (
    AnswerRequest,
    AnswerResponse,
    PassageResult,
    RetrieveRequest,
    RetrieveResponse,
)
from docrag.pipeline import RagPipeline

router = APIRouter()


@router.post("/retrieve", response_model=RetrieveResponse, summary="Return the closest passages")
def retrieve(
    request: RetrieveRequest,
    pipeline: RagPipeline = Depends(get_pipeline),
) -> RetrieveResponse:
    with REQUEST_LATENCY.labels(endpoint="/retrieve", method="POST").time():
        try:
            hits = pipeline.index.query(request.question, request.k)
        except EmbeddingError as exc:
            REQUEST_COUNT.labels(endpoint="/retrieve", method="POST", status="502").inc()
            raise HTTPException(status_code=502, detail=str(exc)) from exc
    REQUEST_COUNT.labels(endpoint="/retrieve", method="POST", status="200").inc()
    return RetrieveResponse(
        question=request.question,
        passages=[PassageResult.from_scored(hit) for hit in hits],
    )


@router.post("/answer", response_model=AnswerResponse, summary="Answer a question from the corpus")
def answer(
    request: AnswerRequest,
    pipeline: RagPipeline = Depends(get_pipeline),
) -> AnswerResponse:
    with REQUEST_LATENCY.labels(endpoint="/answer", method="POST").time():
        try:
            result = _answer(pipeline, request.question)
        except (EmbeddingError, ModelError) as exc:
            REQUEST_COUNT.labels(endpoint="/answer", method="POST", status="502").inc()
            raise HTTPException(status_code=502, detail=str(exc)) from exc
    REQUEST_COUNT.labels(endpoint="/answer", method="POST", status="200").inc()
    return AnswerResponse(
        answer=result.answer_text,
        passages=[PassageResult.from_passage(passage) for passage in result.passages],
    )


def _answer(pipeline: RagPipeline, question: str) -> QueryResult:
    # The shared pipeline serves many questions, so skip its one-shot state machine.
    passages = pipeline.retriever.retrieve(question)
    return QueryResult(passages=passages, answer_text=pipeline.composer.answer(question, passages))


__all__ = ["router"]
