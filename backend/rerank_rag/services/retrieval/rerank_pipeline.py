"""Coarse vector search followed by reranking.

Per query, strictly in order:

    1. coarse retrieve   vector_store.similarity_search(query, first_stage_top_k)
                         failures propagate to the caller unchanged
    2. rerank            reranker.rerank(query, candidates, final_top_k)
                         any failure degrades to the first final_top_k
                         candidates in coarse order, tagged "fallback"
    3. compose context   final texts joined by newlines, cut at a document
                         boundary once max_context_length would be exceeded

The pipeline keeps no per-query state, so one instance serves concurrent
queries.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from langchain_core.callbacks import (
    AsyncCallbackManagerForRetrieverRun,
    CallbackManagerForRetrieverRun,
)
from langchain_core.documents import Document
from langchain_core.prompts import PromptTemplate
from langchain_core.retrievers import BaseRetriever
from pydantic import ConfigDict

from rerank_rag.core.config import RERANK_CONFIG, RerankConfig
from rerank_rag.services.reranking.base import RerankingProvider, RerankResult, clamp_top_k
from rerank_rag.services.vector_store.base import VectorSearch

logger = logging.getLogger(__name__)

FALLBACK_PROVIDER = "fallback"
COARSE_PROVIDER = "coarse"
FALLBACK_SCORE = 0.5
CONTEXT_SEPARATOR = "\n"

DEFAULT_USER_TEXT_ADVISE = PromptTemplate.from_template(
    "Context information is below.\n"
    "---------------------\n"
    "{context}\n"
    "---------------------\n"
    "Given the context and provided history information and not prior knowledge,\n"
    "reply to the user comment. If the answer is not in the context, inform\n"
    "the user that you can't answer the question.\n"
    "\n"
    "{query}"
)


@dataclass
class PipelineResult:
    query: str
    candidates: List[Document]
    results: List[RerankResult]
    context: str
    provider_name: str
    degraded: bool = False
    timing: Dict[str, float] = field(default_factory=dict)  # milliseconds per stage

    @property
    def documents(self) -> List[Document]:
        return [r.document for r in self.results]


def compose_context(
    documents: Sequence[Document],
    max_length: int = 0,
    separator: str = CONTEXT_SEPARATOR,
) -> str:
    """Join document texts, never cutting inside a document.

    ``max_length`` <= 0 disables the bound.
    """
    parts: List[str] = []
    length = 0
    for i, doc in enumerate(documents):
        text = doc.page_content
        added = len(text) + (len(separator) if parts else 0)
        if max_length > 0 and length + added > max_length:
            logger.warning(
                f"Context limit {max_length} reached, dropping {len(documents) - i} of {len(documents)} documents"
            )
            break
        parts.append(text)
        length += added
    return separator.join(parts)


def augment_prompt(query: str, context: str, template: PromptTemplate = DEFAULT_USER_TEXT_ADVISE) -> str:
    """Render the user message handed to the language model."""
    return template.format(context=context, query=query)


def coarse_results(candidates: Sequence[Document], top_k: int, provider_name: str) -> List[RerankResult]:
    """First ``top_k`` candidates in retrieval order with a neutral score."""
    return [
        RerankResult(
            document=doc,
            original_index=i,
            new_index=i,
            relevance_score=FALLBACK_SCORE,
            provider_name=provider_name,
        )
        for i, doc in enumerate(candidates[: clamp_top_k(top_k, len(candidates))])
    ]


def _ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class RetrievalRerankPipeline:
    """Two-stage retrieval: vector store for recall, reranker for precision.

    Usage:
        pipeline = RetrievalRerankPipeline(vector_store, create_reranker())
        result = pipeline.retrieve("How does RAG work?")
        prompt = augment_prompt(result.query, result.context)
    """

    def __init__(
        self,
        vector_store: VectorSearch,
        reranker: RerankingProvider,
        config: RerankConfig = RERANK_CONFIG,
    ) -> None:
        self._vs = vector_store
        self._reranker = reranker
        self.config = config
        logger.info(f"Retrieval pipeline ready, rerank provider: {reranker.provider_name}")

    @property
    def reranker(self) -> RerankingProvider:
        return self._reranker

    # ── Sync ───────────────────────────────────────────────────────

    def retrieve(self, query: str) -> PipelineResult:
        cfg = self.config
        timing: Dict[str, float] = {}

        # 1. Coarse retrieval. Errors propagate.
        t0 = time.perf_counter()
        candidates = list(self._vs.similarity_search(query, k=cfg.first_stage_top_k))
        timing["retrieve"] = _ms(t0)
        logger.info(f"Coarse retrieval returned {len(candidates)} documents (top_k={cfg.first_stage_top_k})")

        # 2. Rerank, degrading to coarse order on failure.
        t0 = time.perf_counter()
        if not cfg.enabled:
            results = coarse_results(candidates, cfg.final_top_k, COARSE_PROVIDER)
            provider, degraded = COARSE_PROVIDER, False
        else:
            try:
                results = self._reranker.rerank(query, candidates, cfg.final_top_k)
                provider, degraded = self._reranker.provider_name, False
            except Exception:
                results, provider, degraded = self._degrade(candidates)
        timing["rerank"] = _ms(t0)

        return self._finish(query, candidates, results, provider, degraded, timing)

    # ── Async ──────────────────────────────────────────────────────

    async def aretrieve(self, query: str) -> PipelineResult:
        """Async variant bounded by retrieval_timeout and rerank_timeout.

        A retrieval deadline miss raises TimeoutError; a rerank deadline miss
        degrades exactly like a rerank failure.
        """
        cfg = self.config
        timing: Dict[str, float] = {}

        t0 = time.perf_counter()
        search = getattr(self._vs, "asimilarity_search", None)
        if callable(search):
            pending = search(query, k=cfg.first_stage_top_k)
        else:
            pending = asyncio.to_thread(self._vs.similarity_search, query, k=cfg.first_stage_top_k)
        candidates = list(await asyncio.wait_for(pending, timeout=cfg.retrieval_timeout))
        timing["retrieve"] = _ms(t0)
        logger.info(f"Coarse retrieval returned {len(candidates)} documents (top_k={cfg.first_stage_top_k})")

        t0 = time.perf_counter()
        if not cfg.enabled:
            results = coarse_results(candidates, cfg.final_top_k, COARSE_PROVIDER)
            provider, degraded = COARSE_PROVIDER, False
        else:
            try:
                results = await asyncio.wait_for(
                    self._reranker.arerank(query, candidates, cfg.final_top_k),
                    timeout=cfg.rerank_timeout,
                )
                provider, degraded = self._reranker.provider_name, False
            except Exception:
                results, provider, degraded = self._degrade(candidates)
        timing["rerank"] = _ms(t0)

        return self._finish(query, candidates, results, provider, degraded, timing)

    # ── Internals ──────────────────────────────────────────────────

    def _degrade(self, candidates: List[Document]):
        logger.warning(
            f"Rerank with provider '{self._reranker.provider_name}' failed; "
            f"degrading to coarse order for {len(candidates)} candidates",
            exc_info=True,
        )
        return coarse_results(candidates, self.config.final_top_k, FALLBACK_PROVIDER), FALLBACK_PROVIDER, True

    def _finish(
        self,
        query: str,
        candidates: List[Document],
        results: List[RerankResult],
        provider: str,
        degraded: bool,
        timing: Dict[str, float],
    ) -> PipelineResult:
        t0 = time.perf_counter()
        context = compose_context([r.document for r in results], self.config.max_context_length)
        timing["compose"] = _ms(t0)
        logger.debug(f"Context length: {len(context)} characters from {len(results)} documents")
        return PipelineResult(
            query=query,
            candidates=candidates,
            results=results,
            context=context,
            provider_name=provider,
            degraded=degraded,
            timing=timing,
        )

    def as_langchain_retriever(self) -> "RerankRetrieverWrapper":
        """Return a LangChain-compatible BaseRetriever wrapping this pipeline."""
        return RerankRetrieverWrapper(pipeline=self)


# ─── LangChain-compatible wrapper ───────────────────────────────────

class RerankRetrieverWrapper(BaseRetriever):
    """Thin BaseRetriever shim so the pipeline works inside LangChain chains."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    pipeline: RetrievalRerankPipeline

    def _get_relevant_documents(
        self,
        query: str,
        *,
        run_manager: CallbackManagerForRetrieverRun,
    ) -> List[Document]:
        return self.pipeline.retrieve(query).documents

    async def _aget_relevant_documents(
        self,
        query: str,
        *,
        run_manager: AsyncCallbackManagerForRetrieverRun,
    ) -> List[Document]:
        return (await self.pipeline.aretrieve(query)).documents
