"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from docrag.ingest.types import Passage, ScoredPassage


class RetrieveRequest(BaseModel):
    question: str = Field(min_length=1)
    k: int = Field(default=4, ge=1, le=50)


class PassageResult(BaseModel):
    source_url: str
    text: str
    sequence_index: int
    start_char: int
    end_char: int
    score: float | None = None

    @classmethod
    def from_passage(cls, passage: Passage, score: float | None = None) -> "PassageResult":
        return cls(
            source_url=passage.source_url,
            text=passage.text,
            sequence_index=passage.sequence_index,
            start_char=passage.start_char,
            end_char=passage.end_char,
            score=score,
        )

    @classmethod
    def from_scored(cls, hit: ScoredPassage) -> "PassageResult":
        return cls.from_passage(hit.passage, score=hit.score)


class RetrieveResponse(BaseModel):
    question: str
    passages: list[PassageResult]


class AnswerRequest(BaseModel):
    question: str = Field(min_length=1)


class AnswerResponse(BaseModel):
    answer: str
    passages: list[PassageResult]


__all__ = [
    "RetrieveRequest",
    "RetrieveResponse",
    "AnswerRequest",
    "AnswerResponse",
    "PassageResult",
]
