from datetime import timedelta

import pytest
from langchain_core.documents import Document

from conftest import FIXED_NOW
from rerank_rag.core.config import RerankWeights
from rerank_rag.services.reranking import LocalReranker


def _docs(n: int):
    return [Document(page_content=f"passage {i} about retrieval", metadata={"score": 0.1 * i}) for i in range(n)]


@pytest.mark.parametrize("top_k", [-3, 0, 1, 3, 5, 10])
def test_result_length_is_clamped(top_k: int, fixed_clock) -> None:
    docs = _docs(5)
    results = LocalReranker(clock=fixed_clock).rerank("retrieval", docs, top_k)
    assert len(results) == min(max(top_k, 0), len(docs))


def test_scores_are_non_increasing_and_indexes_consistent(fixed_clock) -> None:
    docs = _docs(6)
    results = LocalReranker(clock=fixed_clock).rerank("retrieval passage", docs, 6)
    scores = [r.relevance_score for r in results]
    assert scores == sorted(scores, reverse=True)
    assert [r.new_index for r in results] == list(range(6))
    assert sorted(r.original_index for r in results) == list(range(6))
    for r in results:
        assert r.document is docs[r.original_index]
        assert r.provider_name == "local"


def test_empty_documents_return_empty(fixed_clock) -> None:
    assert LocalReranker(clock=fixed_clock).rerank("anything", [], 5) == []


def test_ties_keep_retrieval_order(fixed_clock) -> None:
    docs = [Document(page_content="identical text") for _ in range(4)]
    results = LocalReranker(clock=fixed_clock).rerank("identical", docs, 4)
    assert [r.original_index for r in results] == [0, 1, 2, 3]


def test_reranking_is_deterministic(spring_documents, fixed_clock) -> None:
    reranker = LocalReranker(clock=fixed_clock)
    first = reranker.rerank("Spring AI RAG implementation", spring_documents, 5)
    second = reranker.rerank("Spring AI RAG implementation", spring_documents, 5)
    assert [(r.original_index, r.relevance_score) for r in first] == [
        (r.original_index, r.relevance_score) for r in second
    ]


def test_on_topic_document_ranks_first(spring_documents, fixed_clock) -> None:
    results = LocalReranker(clock=fixed_clock).rerank("Spring AI RAG implementation", spring_documents, 5)
    assert results[0].document is spring_documents[1]
    assert results[0].original_index == 1


def test_empty_query_scores_lexical_as_neutral(fixed_clock) -> None:
    docs = [Document(page_content="alpha"), Document(page_content="beta")]
    scored = LocalReranker(clock=fixed_clock).score_documents("", docs)
    assert [s.subscores.lexical for s in scored] == [0.5, 0.5]
    assert scored[0].final_score == pytest.approx(scored[1].final_score)


def test_subscores_and_weighted_sum(fixed_clock) -> None:
    doc = Document(
        page_content="short note",
        metadata={"distance": 0.2, "updated_at": (FIXED_NOW - timedelta(days=3)).isoformat()},
    )
    [scored] = LocalReranker(clock=fixed_clock).score_documents("unrelated", [doc])
    sub = scored.subscores
    assert sub.semantic == pytest.approx(0.8)
    assert sub.lexical == 0.0
    assert sub.quality == pytest.approx(0.5)
    assert sub.freshness == 1.0
    assert scored.final_score == pytest.approx(0.4 * 0.8 + 0.3 * 0.0 + 0.2 * 0.5 + 0.1 * 1.0)


def test_custom_weights_change_ordering(fixed_clock) -> None:
    docs = [
        Document(page_content="reranking reranking", metadata={"score": 0.1}),
        Document(page_content="unrelated text", metadata={"score": 0.9}),
    ]
    lexical_only = LocalReranker(weights=RerankWeights(0.0, 1.0, 0.0, 0.0), clock=fixed_clock)
    semantic_only = LocalReranker(weights=RerankWeights(1.0, 0.0, 0.0, 0.0), clock=fixed_clock)
    assert lexical_only.rerank("reranking", docs, 1)[0].original_index == 0
    assert semantic_only.rerank("reranking", docs, 1)[0].original_index == 1


def test_score_details_are_opt_in(fixed_clock) -> None:
    docs = _docs(2)
    plain = LocalReranker(clock=fixed_clock).rerank("retrieval", docs, 2)
    detailed = LocalReranker(include_score_details=True, clock=fixed_clock).rerank("retrieval", docs, 2)
    assert all(r.subscores is None for r in plain)
    assert set(detailed[0].subscores) == {"semantic", "lexical", "quality", "freshness"}


def test_bm25_mode_prefers_matching_candidate(fixed_clock) -> None:
    docs = [
        Document(page_content="cats purr softly"),
        Document(page_content="dogs bark loudly"),
        Document(page_content="reranking improves retrieval precision"),
    ]
    reranker = LocalReranker(lexical_mode="bm25", clock=fixed_clock)
    results = reranker.rerank("reranking", docs, 3)
    assert results[0].original_index == 2


def test_unknown_lexical_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        LocalReranker(lexical_mode="tfidf")


def test_async_rerank_matches_sync(spring_documents, fixed_clock) -> None:
    import asyncio

    reranker = LocalReranker(clock=fixed_clock)
    sync_results = reranker.rerank("Spring AI", spring_documents, 3)
    async_results = asyncio.run(reranker.arerank("Spring AI", spring_documents, 3))
    assert async_results == sync_results
