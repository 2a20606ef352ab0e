"""Two-stage retrieval: coarse vector search, then reranking."""

__version__ = "0.1.0"
