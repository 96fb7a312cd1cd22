"""Grounded prompt composition."""

from __future__ import annotations

from typing import Sequence

from docrag.answer.llm import ChatModel, Message
from docrag.core.logging import get_logger
from docrag.core.metrics import ANSWER_LATENCY
from docrag.ingest.types import Passage

logger = get_logger(__name__)

SYSTEM_TEMPLATE = (
    "Answer the user's question based only on the context below. "
    "If the context does not contain the answer, say that you don't know.\n\n"
    "Context:\n\n{context}"
)
PASSAGE_SEPARATOR = "\n\n"


class AnswerComposer:
    """Builds a system+context+question prompt and delegates to a chat model.

    The prompt is a pure function of the question and the passages (in the
    order given). Model errors are not caught here.
    """

    def __init__(
        self,
        model: ChatModel,
        system_template: str = SYSTEM_TEMPLATE,
        separator: str = PASSAGE_SEPARATOR,
    ) -> None:
        self.model = model
        self.system_template = system_template
        self.separator = separator

    def build_context(self, passages: Sequence[Passage]) -> str:
        return self.separator.join(passage.text for passage in passages)

    def compose(self, question: str, passages: Sequence[Passage]) -> list[Message]:
        system = self.system_template.format(context=self.build_context(passages))
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": question},
        ]

    def answer(self, question: str, passages: Sequence[Passage]) -> str:
        messages = self.compose(question, passages)
        logger.debug("Answering with %d passages", len(passages))
        with ANSWER_LATENCY.time():
            return self.model.complete(messages)


__all__ = ["AnswerComposer", "SYSTEM_TEMPLATE"]
