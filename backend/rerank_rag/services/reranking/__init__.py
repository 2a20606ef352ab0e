from rerank_rag.services.reranking.base import (
    ConfigurationError,
    RerankError,
    RerankingProvider,
    RerankResult,
    RerankTransportError,
    ScoredDocument,
    Subscores,
)
from rerank_rag.services.reranking.compressor import RerankCompressor
from rerank_rag.services.reranking.local_reranker import LocalReranker
from rerank_rag.services.reranking.remote_reranker import RemoteReranker
from rerank_rag.services.reranking.reranker_factory import RerankerFactory, create_reranker

__all__ = [
    "RerankingProvider",
    "RerankResult",
    "ScoredDocument",
    "Subscores",
    "RerankError",
    "RerankTransportError",
    "ConfigurationError",
    "LocalReranker",
    "RemoteReranker",
    "RerankerFactory",
    "RerankCompressor",
    "create_reranker",
]
