"""Retrieval components."""

from .vector_index import VectorIndex
from .retriever import DEFAULT_K, Retriever

__all__ = [
    "VectorIndex",
    "Retriever",
    "DEFAULT_K",
]
