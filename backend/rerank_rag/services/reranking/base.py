"""Reranking provider contract and the records it produces.

A provider takes the coarse candidate list from the vector store and returns
at most ``top_k`` RerankResult objects, ordered by relevance_score descending.
Exact ties keep their original retrieval order.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from langchain_core.documents import Document


class RerankError(Exception):
    """Base class for reranking-stage failures."""


class RerankTransportError(RerankError):
    """Remote reranker failed: network, timeout, bad status or bad body."""


class ConfigurationError(RerankError):
    """Provider cannot be built from the given configuration."""


@dataclass(frozen=True)
class Subscores:
    semantic: float
    lexical: float
    quality: float
    freshness: float

    def as_dict(self) -> Dict[str, float]:
        return {
            "semantic": self.semantic,
            "lexical": self.lexical,
            "quality": self.quality,
            "freshness": self.freshness,
        }


@dataclass(frozen=True)
class ScoredDocument:
    """Per-query scoring record of the local reranker."""
    document: Document
    original_index: int
    final_score: float
    subscores: Subscores


@dataclass(frozen=True)
class RerankResult:
    document: Document
    original_index: int
    new_index: int
    relevance_score: float
    provider_name: str
    subscores: Optional[Dict[str, float]] = None


def clamp_top_k(top_k: int, n_documents: int) -> int:
    """Number of results a provider must return for ``top_k`` over ``n_documents``."""
    return max(0, min(int(top_k), n_documents))


class RerankingProvider(ABC):
    """Pluggable second-stage ranking strategy.

    Implementations are immutable after construction and safe to share
    between concurrent queries.
    """

    provider_name: str

    @abstractmethod
    def rerank(self, query: str, documents: Sequence[Document], top_k: int) -> List[RerankResult]:
        """Return the ``min(top_k, len(documents))`` most relevant documents."""

    async def arerank(
        self, query: str, documents: Sequence[Document], top_k: int
    ) -> List[RerankResult]:
        return await asyncio.to_thread(self.rerank, query, list(documents), top_k)

    def is_available(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}(provider_name={self.provider_name!r})"
