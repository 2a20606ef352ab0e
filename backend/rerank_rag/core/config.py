import logging
import math
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    PROJECT_NAME: str = "Rerank RAG"  # Project name
    VERSION: str = "0.1.0"  # Project version

    # ─── Reranking provider ──────────────────────────────────────────────
    RERANK_ENABLED: bool = os.getenv("RERANK_ENABLED", "true").lower() == "true"
    # local | remote (legacy alias: voyage)
    RERANK_PROVIDER: str = os.getenv("RERANK_PROVIDER", "local")
    RERANK_API_KEY: str = os.getenv("RERANK_API_KEY", "")
    RERANK_API_URL: str = os.getenv("RERANK_API_URL", "https://api.voyageai.com/v1/rerank")
    RERANK_MODEL: str = os.getenv("RERANK_MODEL", "rerank-1")
    RERANK_TIMEOUT: float = float(os.getenv("RERANK_TIMEOUT", "30.0"))
    RERANK_MAX_RETRIES: int = int(os.getenv("RERANK_MAX_RETRIES", "2"))

    # ─── Two-stage retrieval sizes ───────────────────────────────────────
    # Coarse vector search pool handed to the reranker
    RERANK_FIRST_STAGE_TOP_K: int = int(os.getenv("RERANK_FIRST_STAGE_TOP_K", "50"))
    # Documents kept after reranking
    RERANK_FINAL_TOP_K: int = int(os.getenv("RERANK_FINAL_TOP_K", "5"))
    # Max characters of composed context (0 = unbounded)
    RERANK_MAX_CONTEXT_LENGTH: int = int(os.getenv("RERANK_MAX_CONTEXT_LENGTH", "4000"))

    # ─── Local reranker weights (normalized to sum 1) ───────────────────
    RERANK_SEMANTIC_WEIGHT: float = float(os.getenv("RERANK_SEMANTIC_WEIGHT", "0.4"))
    RERANK_LEXICAL_WEIGHT: float = float(os.getenv("RERANK_LEXICAL_WEIGHT", "0.3"))
    RERANK_QUALITY_WEIGHT: float = float(os.getenv("RERANK_QUALITY_WEIGHT", "0.2"))
    RERANK_FRESHNESS_WEIGHT: float = float(os.getenv("RERANK_FRESHNESS_WEIGHT", "0.1"))
    # simple (per-document TF) | bm25 (Okapi over the candidate set)
    RERANK_LEXICAL_MODE: str = os.getenv("RERANK_LEXICAL_MODE", "simple")
    RERANK_INCLUDE_SCORE_DETAILS: bool = (
        os.getenv("RERANK_INCLUDE_SCORE_DETAILS", "false").lower() == "true"
    )

    class Config:
        env_file = ".env"


settings = Settings()


class RerankProvider(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"

    @classmethod
    def parse(cls, value) -> "RerankProvider":
        """Resolve a config string to a provider; unknown values mean local."""
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower()
        if key in _PROVIDER_ALIASES:
            return _PROVIDER_ALIASES[key]
        logger.warning(f"Unknown rerank provider '{value}', using local")
        return cls.LOCAL


_PROVIDER_ALIASES = {
    "local": RerankProvider.LOCAL,
    "remote": RerankProvider.REMOTE,
    "voyage": RerankProvider.REMOTE,
}


@dataclass(frozen=True)
class RerankWeights:
    """Linear weights of the local reranker's four sub-scores."""
    semantic: float = 0.4
    lexical: float = 0.3
    quality: float = 0.2
    freshness: float = 0.1

    def __post_init__(self) -> None:
        values = (self.semantic, self.lexical, self.quality, self.freshness)
        if any(v < 0 for v in values):
            raise ValueError(f"Rerank weights must be non-negative: {values}")
        total = sum(values)
        if total <= 0:
            raise ValueError("Rerank weights must have a positive sum")
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            logger.warning(f"Rerank weights sum to {total:.4f}, normalizing to 1.0")
            # frozen: bypass __setattr__ once during construction
            object.__setattr__(self, "semantic", self.semantic / total)
            object.__setattr__(self, "lexical", self.lexical / total)
            object.__setattr__(self, "quality", self.quality / total)
            object.__setattr__(self, "freshness", self.freshness / total)


@dataclass(frozen=True)
class RerankConfig:
    """Immutable two-stage retrieval configuration, loaded once per process."""
    first_stage_top_k: int = 50
    final_top_k: int = 5
    provider: RerankProvider = RerankProvider.LOCAL
    remote_api_key: Optional[str] = None
    remote_model: str = "rerank-1"
    remote_api_url: str = "https://api.voyageai.com/v1/rerank"
    remote_timeout: float = 30.0
    remote_max_retries: int = 2
    remote_backoff_base: float = 1.5
    weights: RerankWeights = field(default_factory=RerankWeights)
    lexical_mode: str = "simple"
    include_score_details: bool = False
    enabled: bool = True
    max_context_length: int = 4000
    rerank_timeout: Optional[float] = None     # async path only
    retrieval_timeout: Optional[float] = None  # async path only

    def __post_init__(self) -> None:
        object.__setattr__(self, "provider", RerankProvider.parse(self.provider))
        mode = self.lexical_mode.strip().lower()
        if mode not in {"simple", "bm25"}:
            raise ValueError(f"Unknown lexical_mode: {self.lexical_mode}")
        object.__setattr__(self, "lexical_mode", mode)

    @staticmethod
    def from_settings(s: Settings) -> "RerankConfig":
        return RerankConfig(
            first_stage_top_k=s.RERANK_FIRST_STAGE_TOP_K,
            final_top_k=s.RERANK_FINAL_TOP_K,
            provider=RerankProvider.parse(s.RERANK_PROVIDER),
            remote_api_key=s.RERANK_API_KEY or None,
            remote_model=s.RERANK_MODEL,
            remote_api_url=s.RERANK_API_URL,
            remote_timeout=s.RERANK_TIMEOUT,
            remote_max_retries=s.RERANK_MAX_RETRIES,
            weights=RerankWeights(
                semantic=s.RERANK_SEMANTIC_WEIGHT,
                lexical=s.RERANK_LEXICAL_WEIGHT,
                quality=s.RERANK_QUALITY_WEIGHT,
                freshness=s.RERANK_FRESHNESS_WEIGHT,
            ),
            lexical_mode=s.RERANK_LEXICAL_MODE,
            include_score_details=s.RERANK_INCLUDE_SCORE_DETAILS,
            enabled=s.RERANK_ENABLED,
            max_context_length=s.RERANK_MAX_CONTEXT_LENGTH,
        )


# Instantiated at import time from settings so env vars take effect immediately.
RERANK_CONFIG = RerankConfig.from_settings(settings)
