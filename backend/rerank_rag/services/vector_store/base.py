"""Vector-store contract consumed by the retrieval pipeline."""

from __future__ import annotations

from typing import List, Protocol, runtime_checkable

from langchain_core.documents import Document
from langchain_core.vectorstores import VectorStore


@runtime_checkable
class VectorSearch(Protocol):
    """Anything with ``similarity_search(query, k)``; LangChain stores qualify.

    Results must be ordered by descending similarity.
    """

    def similarity_search(self, query: str, k: int) -> List[Document]:
        ...


class LangChainVectorSearch:
    """Wraps a LangChain VectorStore so each hit carries its raw similarity.

    ``score_key`` names the metadata field the raw value lands in: "distance"
    for stores returning a distance (lower is closer, e.g. Chroma), "score"
    for stores returning a similarity (higher is closer).
    """

    def __init__(self, store: VectorStore, score_key: str = "distance") -> None:
        if score_key not in {"distance", "score"}:
            raise ValueError(f"score_key must be 'distance' or 'score', got {score_key!r}")
        self._store = store
        self._score_key = score_key

    def _stamp(self, pairs) -> List[Document]:
        return [
            Document(page_content=doc.page_content, metadata={**doc.metadata, self._score_key: float(score)})
            for doc, score in pairs
        ]

    def similarity_search(self, query: str, k: int) -> List[Document]:
        return self._stamp(self._store.similarity_search_with_score(query, k=k))

    async def asimilarity_search(self, query: str, k: int) -> List[Document]:
        return self._stamp(await self._store.asimilarity_search_with_score(query, k=k))
