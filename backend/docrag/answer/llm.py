"""Language-model collaborators."""

from __future__ import annotations

from typing import Protocol, Sequence

from openai import OpenAI, OpenAIError

from docrag.core.config import Settings
from docrag.core.errors import ModelError

Message = dict[str, str]


class ChatModel(Protocol):
    def complete(self, messages: Sequence[Message]) -> str: ...


class OpenAIChatModel:
    """
    Chat completions against the OpenAI API.

    SDK retries are disabled; rate-limit, timeout and API failures surface as
    ModelError with the SDK exception chained.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str = "gpt-4o",
        temperature: float = 0.0,
        timeout: float = 60.0,
        client: OpenAI | None = None,
    ) -> None:
        self.model_name = model_name
        self.temperature = temperature
        self.client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def complete(self, messages: Sequence[Message]) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model_name,
                messages=list(messages),
                temperature=self.temperature,
            )
        except OpenAIError as exc:
            raise ModelError(f"{self.model_name} completion failed: {exc}") from exc
        if not response.choices or response.choices[0].message.content is None:
            raise ModelError(f"{self.model_name} returned an empty completion")
        return response.choices[0].message.content


def build_chat_model(settings: Settings) -> OpenAIChatModel:
    return OpenAIChatModel(
        api_key=settings.require_api_key(),
        model_name=settings.model_name,
        temperature=settings.temperature,
    )


__all__ = ["ChatModel", "Message", "OpenAIChatModel", "build_chat_model"]
