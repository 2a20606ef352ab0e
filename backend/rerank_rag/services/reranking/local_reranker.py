"""Multi-factor reranking without any network call.

final = w_semantic * semantic + w_lexical * lexical
      + w_quality  * quality  + w_freshness * freshness

Used on its own in development and as the fallback whenever the remote
provider cannot be configured.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from langchain_core.documents import Document

from rerank_rag.core.config import RerankWeights
from rerank_rag.services.reranking.base import (
    RerankingProvider,
    RerankResult,
    ScoredDocument,
    Subscores,
    clamp_top_k,
)
from rerank_rag.services.reranking.scoring import (
    bm25_scores,
    extract_keywords,
    freshness_score,
    lexical_score,
    quality_score,
    semantic_score,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocalReranker(RerankingProvider):
    provider_name = "local"

    def __init__(
        self,
        weights: Optional[RerankWeights] = None,
        lexical_mode: str = "simple",
        include_score_details: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if lexical_mode not in {"simple", "bm25"}:
            raise ValueError(f"Unknown lexical_mode: {lexical_mode}")
        self._weights = weights or RerankWeights()
        self._lexical_mode = lexical_mode
        self._include_score_details = include_score_details
        self._clock = clock

    @property
    def weights(self) -> RerankWeights:
        return self._weights

    def score_documents(self, query: str, documents: Sequence[Document]) -> List[ScoredDocument]:
        """Score every candidate, in input order."""
        keywords = extract_keywords(query)
        now = self._clock()
        texts = [doc.page_content or "" for doc in documents]
        if self._lexical_mode == "bm25":
            lexical = bm25_scores(texts, keywords)
        else:
            lexical = [lexical_score(text, query, keywords) for text in texts]

        w = self._weights
        scored: List[ScoredDocument] = []
        for i, doc in enumerate(documents):
            metadata = doc.metadata or {}
            sub = Subscores(
                semantic=semantic_score(metadata),
                lexical=lexical[i],
                quality=quality_score(doc),
                freshness=freshness_score(metadata, now=now),
            )
            final = (
                sub.semantic * w.semantic
                + sub.lexical * w.lexical
                + sub.quality * w.quality
                + sub.freshness * w.freshness
            )
            scored.append(ScoredDocument(document=doc, original_index=i, final_score=final, subscores=sub))
            logger.debug(
                f"doc {i}: semantic={sub.semantic:.3f} lexical={sub.lexical:.3f} "
                f"quality={sub.quality:.3f} freshness={sub.freshness:.3f} final={final:.3f}"
            )
        return scored

    def rerank(self, query: str, documents: Sequence[Document], top_k: int) -> List[RerankResult]:
        limit = clamp_top_k(top_k, len(documents))
        if limit == 0:
            return []

        scored = self.score_documents(query, documents)
        # sorted() is stable: exact ties keep retrieval order
        ranked = sorted(scored, key=lambda s: s.final_score, reverse=True)[:limit]

        results = [
            RerankResult(
                document=s.document,
                original_index=s.original_index,
                new_index=new_index,
                relevance_score=s.final_score,
                provider_name=self.provider_name,
                subscores=s.subscores.as_dict() if self._include_score_details else None,
            )
            for new_index, s in enumerate(ranked)
        ]
        logger.info(f"Local rerank: {len(documents)} candidates -> {len(results)} results")
        return results
