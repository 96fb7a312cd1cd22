"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

from docrag.core.errors import ChunkConfigError, MissingCredentialError

ENV_PREFIX = "DOCRAG_"
API_KEY_ENV = "OPENAI_API_KEY"
DEFAULT_CONFIG_PATH = Path("~/.config/docrag/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("crawl", "start_url"): "start_url",
    ("crawl", "scope"): "scope_globs",
    ("crawl", "concurrency"): "max_concurrency",
    ("crawl", "max_pages"): "max_pages",
    ("crawl", "max_seconds"): "max_seconds",
    ("crawl", "timeout"): "request_timeout",
    ("crawl", "user_agent"): "user_agent",
    ("extract", "char_threshold"): "char_threshold",
    ("extract", "strategy"): "extraction_strategy",
    ("chunking", "size"): "chunk_size",
    ("chunking", "overlap"): "chunk_overlap",
    ("chunking", "strategy"): "chunk_strategy",
    ("embeddings", "backend"): "embedding_backend",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("embeddings", "concurrency"): "embed_concurrency",
    ("embeddings", "batch_size"): "embed_batch_size",
    ("retrieval", "top_k"): "top_k",
    ("model", "name"): "model_name",
    ("model", "temperature"): "temperature",
    ("storage", "corpus_path"): "corpus_path",
    ("storage", "sink_path"): "sink_path",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    start_url: str = "https://www.tesla.com/ownersmanual/model3/en_us/"
    scope_globs: list[str] = Field(default_factory=list)
    max_concurrency: int = Field(default=4, ge=1)
    max_pages: int | None = Field(default=None, ge=1)
    max_seconds: float | None = Field(default=None, gt=0)
    request_timeout: float = Field(default=30.0, gt=0)
    user_agent: str = "docrag/0.1 (+https://github.com/docrag/docrag)"

    char_threshold: int = Field(default=200, ge=0)
    extraction_strategy: Literal["readability", "semantic"] = "readability"

    chunk_size: int = Field(default=500, ge=1)
    chunk_overlap: int = Field(default=50, ge=0)
    chunk_strategy: Literal["characters", "boundaries"] = "characters"

    embedding_backend: Literal["openai", "hashed"] = "openai"
    embedding_model: str = "text-embedding-3-small"
    embedding_dim: int = Field(default=384, ge=1)
    embed_concurrency: int = Field(default=4, ge=1)
    embed_batch_size: int = Field(default=16, ge=1)

    top_k: int = Field(default=4, ge=1)
    model_name: str = "gpt-4o"
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    question: str = "Explain what autopilot is and provide step by step instructions to turning it on."

    corpus_path: Path = Field(default=Path("storage") / "corpus.csv")
    sink_path: Path | None = None
    openai_api_key: str | None = None

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("corpus_path", "sink_path", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path | None:
        if value is None or value == "":
            return None
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("path settings must be a path or string")

    @field_validator("scope_globs", mode="before")
    @classmethod
    def _split_globs(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @property
    def effective_scope(self) -> list[str]:
        """Scope globs, defaulting to everything below the start URL."""
        if self.scope_globs:
            return list(self.scope_globs)
        return [f"{self.start_url.rstrip('/')}/**"]

    def require_api_key(self) -> str:
        """Return the API key or fail fast; every OpenAI collaborator needs one."""
        if not self.openai_api_key:
            raise MissingCredentialError(f"{API_KEY_ENV} environment variable is required.")
        return self.openai_api_key

    def validate_chunking(self) -> None:
        if self.chunk_overlap >= self.chunk_size:
            raise ChunkConfigError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than chunk_size ({self.chunk_size})"
            )

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        mapped_key = _YAML_KEY_MAP.get(next_prefix)
        if isinstance(value, Mapping) and mapped_key is None:
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        elif mapped_key:
            flat[mapped_key] = value
        elif key in Settings.model_fields:
            flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with DOCRAG_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    api_key = os.environ.get(API_KEY_ENV)
    if api_key:
        overrides["openai_api_key"] = api_key
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
