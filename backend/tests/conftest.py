"""Shared fixtures for the rerank pipeline tests."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import httpx
import pytest
from langchain_core.documents import Document

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeVectorStore:
    """Returns its documents in stored order, truncated to k."""

    def __init__(self, documents: List[Document], error: Optional[Exception] = None) -> None:
        self.documents = documents
        self.error = error
        self.calls: List[tuple] = []

    def similarity_search(self, query: str, k: int) -> List[Document]:
        self.calls.append((query, k))
        if self.error is not None:
            raise self.error
        return self.documents[:k]


class RerankApi:
    """httpx MockTransport handler imitating the hosted rerank endpoint.

    ``responses`` is consumed one per request; the last one repeats.
    """

    def __init__(self, responses: List[httpx.Response]) -> None:
        self.responses = responses
        self.requests: List[httpx.Request] = []

    @property
    def payloads(self) -> List[Dict]:
        return [json.loads(r.content) for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.responses)) - 1
        return self.responses[index]


def rerank_response(pairs, status_code: int = 200) -> httpx.Response:
    """Build a rerank API body from (index, relevance_score) pairs."""
    return httpx.Response(
        status_code,
        json={
            "object": "list",
            "data": [{"index": i, "relevance_score": s, "document": f"doc {i}"} for i, s in pairs],
            "model": "rerank-1",
            "usage": {"total_tokens": 42},
        },
    )


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def spring_documents() -> List[Document]:
    return [
        Document(page_content="Python is a popular language for data science."),
        Document(
            page_content=(
                "Spring AI offers a RAG implementation: documents are embedded, "
                "stored in a vector store, and retrieved to ground the model."
            )
        ),
        Document(page_content="Java 21 introduced virtual threads and pattern matching."),
        Document(page_content="The weather today is sunny with a light breeze."),
        Document(page_content="Football season starts in September."),
    ]


@pytest.fixture
def make_api() -> Callable[..., RerankApi]:
    return RerankApi
