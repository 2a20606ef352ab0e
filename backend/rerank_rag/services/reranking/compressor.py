"""LangChain document-compressor adapter over any RerankingProvider.

Lets a provider stand wherever LangChain expects a compressor, e.g. inside a
ContextualCompressionRetriever:

    compressor = RerankCompressor(provider=create_reranker(), top_n=5)
    docs = compressor.compress_documents(candidates, query)
"""

from __future__ import annotations

from typing import Optional, Sequence

from langchain_core.callbacks import Callbacks
from langchain_core.documents import Document
from langchain_core.documents.compressor import BaseDocumentCompressor
from pydantic import ConfigDict

from rerank_rag.services.reranking.base import RerankingProvider


class RerankCompressor(BaseDocumentCompressor):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    provider: RerankingProvider
    top_n: int = 5

    def compress_documents(
        self,
        documents: Sequence[Document],
        query: str,
        callbacks: Optional[Callbacks] = None,
    ) -> Sequence[Document]:
        results = self.provider.rerank(query, list(documents), self.top_n)
        return [
            Document(
                page_content=r.document.page_content,
                metadata={
                    **r.document.metadata,
                    "relevance_score": r.relevance_score,
                    "rerank_provider": r.provider_name,
                },
            )
            for r in results
        ]
