from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import httpx
from langchain_core.documents import Document
from pydantic import BaseModel, ValidationError

from rerank_rag.services.reranking.base import (
    RerankingProvider,
    RerankResult,
    RerankTransportError,
    clamp_top_k,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.voyageai.com/v1/rerank"
DEFAULT_MODEL = "rerank-1"

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


# ─── Wire format ────────────────────────────────────────────────────

class RerankItem(BaseModel):
    index: int
    relevance_score: float
    document: Optional[str] = None


class RerankUsage(BaseModel):
    total_tokens: Optional[int] = None


class RerankResponse(BaseModel):
    object: Optional[str] = None
    data: List[RerankItem]
    model: Optional[str] = None
    usage: Optional[RerankUsage] = None


class _RetryableStatus(Exception):
    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


# ─── Provider ───────────────────────────────────────────────────────

class RemoteReranker(RerankingProvider):
    """Reranking delegated to a hosted rerank API (Voyage-compatible).

    Failures are raised as RerankTransportError; this class never falls back
    on its own, the pipeline decides what to do.
    """

    provider_name = "remote"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        max_retries: int = 2,
        backoff_base: float = 1.5,
        client: Optional[httpx.Client] = None,
        async_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key or ""
        self.model = model or DEFAULT_MODEL
        self.url = base_url
        self.timeout = timeout
        self.max_retries = max(0, int(max_retries))
        self.backoff_base = backoff_base
        # built on first request; an unused reranker holds no connections
        self._client = client
        self._async_client = async_client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    @property
    def async_client(self) -> httpx.AsyncClient:
        if self._async_client is None:
            self._async_client = httpx.AsyncClient(timeout=self.timeout)
        return self._async_client

    def is_available(self) -> bool:
        return bool(self.api_key.strip())

    # ── Request / response mapping ─────────────────────────────────

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _payload(self, query: str, documents: Sequence[Document], limit: int) -> Dict[str, Any]:
        return {
            "query": query,
            "model": self.model,
            "top_k": limit,
            "return_documents": True,
            "documents": [doc.page_content for doc in documents],
        }

    def _parse(self, response: httpx.Response, documents: Sequence[Document], limit: int) -> List[RerankResult]:
        try:
            body = RerankResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RerankTransportError(f"Malformed rerank response: {e}") from e

        items = []
        seen = set()
        for item in body.data:
            if not 0 <= item.index < len(documents):
                raise RerankTransportError(
                    f"Rerank response index {item.index} out of range for {len(documents)} documents"
                )
            if item.index in seen:
                raise RerankTransportError(f"Rerank response repeats index {item.index}")
            seen.add(item.index)
            items.append(item)
        if len(items) < limit:
            raise RerankTransportError(f"Rerank response has {len(items)} results, expected {limit}")

        if body.usage is not None:
            logger.debug(f"Rerank API usage: total_tokens={body.usage.total_tokens}")

        items.sort(key=lambda it: it.relevance_score, reverse=True)
        return [
            RerankResult(
                document=documents[item.index],
                original_index=item.index,
                new_index=new_index,
                relevance_score=item.relevance_score,
                provider_name=self.provider_name,
            )
            for new_index, item in enumerate(items[:limit])
        ]

    def _check_status(self, response: httpx.Response) -> None:
        if response.status_code in RETRYABLE_STATUS:
            raise _RetryableStatus(response)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RerankTransportError(f"Rerank API returned HTTP {response.status_code}") from e

    def _delay(self, attempt: int) -> float:
        return self.backoff_base ** attempt

    # ── Sync ───────────────────────────────────────────────────────

    def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries + 1):
            if attempt:
                delay = self._delay(attempt)
                logger.warning(f"Rerank request failed ({last_error}), retry {attempt} in {delay:.1f}s")
                time.sleep(delay)
            try:
                response = self.client.post(self.url, json=payload, headers=self._headers())
                self._check_status(response)
                return response
            except (httpx.TransportError, _RetryableStatus) as e:
                last_error = e
        logger.error(f"Rerank API unreachable after {self.max_retries + 1} attempts: {last_error}")
        raise RerankTransportError(f"Rerank API request failed: {last_error}") from last_error

    def rerank(self, query: str, documents: Sequence[Document], top_k: int) -> List[RerankResult]:
        limit = clamp_top_k(top_k, len(documents))
        if limit == 0:
            return []
        logger.info(f"Remote rerank: model={self.model} documents={len(documents)} top_k={limit}")
        response = self._post(self._payload(query, documents, limit))
        return self._parse(response, documents, limit)

    # ── Async ──────────────────────────────────────────────────────

    async def _apost(self, payload: Dict[str, Any]) -> httpx.Response:
        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries + 1):
            if attempt:
                delay = self._delay(attempt)
                logger.warning(f"Rerank request failed ({last_error}), retry {attempt} in {delay:.1f}s")
                await asyncio.sleep(delay)
            try:
                response = await self.async_client.post(self.url, json=payload, headers=self._headers())
                self._check_status(response)
                return response
            except (httpx.TransportError, _RetryableStatus) as e:
                last_error = e
        logger.error(f"Rerank API unreachable after {self.max_retries + 1} attempts: {last_error}")
        raise RerankTransportError(f"Rerank API request failed: {last_error}") from last_error

    async def arerank(self, query: str, documents: Sequence[Document], top_k: int) -> List[RerankResult]:
        limit = clamp_top_k(top_k, len(documents))
        if limit == 0:
            return []
        response = await self._apost(self._payload(query, documents, limit))
        return self._parse(response, documents, limit)

    # ── Misc ───────────────────────────────────────────────────────

    def test_connection(self) -> bool:
        """Send a one-document probe; True when the API answers sensibly."""
        try:
            self.rerank("connection test", [Document(page_content="connection test")], 1)
            return True
        except RerankTransportError:
            logger.exception("Rerank API connection test failed")
            return False

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    async def aclose(self) -> None:
        if self._async_client is not None:
            await self._async_client.aclose()
