from rerank_rag.services.vector_store.base import LangChainVectorSearch, VectorSearch

__all__ = ["VectorSearch", "LangChainVectorSearch"]
