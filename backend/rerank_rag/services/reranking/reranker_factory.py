"""Builds the RerankingProvider used by the pipeline.

The provider is chosen once at startup from RerankConfig:

    local  -> LocalReranker
    remote -> RemoteReranker, or LocalReranker when the API key is missing
              or the provider reports itself unavailable

A configuration problem never fails startup; it is logged as a warning and
the local algorithm is used instead. Per-request transport failures are a
separate concern handled by RetrievalRerankPipeline.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from rerank_rag.core.config import RERANK_CONFIG, RerankConfig, RerankProvider
from rerank_rag.services.reranking.base import ConfigurationError, RerankingProvider
from rerank_rag.services.reranking.local_reranker import LocalReranker
from rerank_rag.services.reranking.remote_reranker import RemoteReranker

logger = logging.getLogger(__name__)


class RerankerFactory:
    def __init__(
        self,
        config: RerankConfig,
        http_client: Optional[httpx.Client] = None,
        async_http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self._http_client = http_client
        self._async_http_client = async_http_client

    def create(self) -> RerankingProvider:
        provider = self.config.provider
        logger.info(f"Creating rerank provider: {provider.value}")

        if provider is RerankProvider.REMOTE:
            try:
                return self._create_remote()
            except ConfigurationError as e:
                logger.warning(f"Remote reranker unavailable ({e}); falling back to local reranker")
        return self._create_local()

    def _create_remote(self) -> RemoteReranker:
        cfg = self.config
        if not (cfg.remote_api_key or "").strip():
            raise ConfigurationError("rerank API key is not configured")

        reranker = RemoteReranker(
            api_key=cfg.remote_api_key,
            model=cfg.remote_model,
            base_url=cfg.remote_api_url,
            timeout=cfg.remote_timeout,
            max_retries=cfg.remote_max_retries,
            backoff_base=cfg.remote_backoff_base,
            client=self._http_client,
            async_client=self._async_http_client,
        )
        if not self.is_provider_available(reranker):
            reranker.close()
            raise ConfigurationError("remote reranker reports itself unavailable")

        logger.info(f"Remote rerank provider ready, model: {cfg.remote_model}")
        return reranker

    def _create_local(self) -> LocalReranker:
        cfg = self.config
        logger.info(f"Local rerank provider ready, lexical mode: {cfg.lexical_mode}")
        return LocalReranker(
            weights=cfg.weights,
            lexical_mode=cfg.lexical_mode,
            include_score_details=cfg.include_score_details,
        )

    @staticmethod
    def is_provider_available(provider: RerankingProvider) -> bool:
        try:
            return provider.is_available()
        except Exception:
            logger.exception(f"Availability check failed for provider {provider.provider_name}")
            return False


def create_reranker(config: Optional[RerankConfig] = None) -> RerankingProvider:
    """Return the reranker for ``config`` (defaults to the env-driven RERANK_CONFIG)."""
    return RerankerFactory(config or RERANK_CONFIG).create()
