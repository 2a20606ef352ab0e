from rerank_rag.services.retrieval.rerank_pipeline import (
    PipelineResult,
    RerankRetrieverWrapper,
    RetrievalRerankPipeline,
    augment_prompt,
    compose_context,
)

__all__ = [
    "RetrievalRerankPipeline",
    "RerankRetrieverWrapper",
    "PipelineResult",
    "augment_prompt",
    "compose_context",
]
