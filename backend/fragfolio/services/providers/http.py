"""
Fragfolio Backend — HTTP Provider Transport
=============================================

What:  Shared httpx transport for the REST-based providers (OpenAI, Anthropic).
How:   One AsyncClient per provider instance; every POST goes through a
       tenacity retry with exponential backoff and jitter.

Retry policy:
    Retried:     connection errors, timeouts, HTTP 429 and 5xx
    Not retried: other 4xx (bad key, bad request); retrying cannot fix them
"""

import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from fragfolio.config import settings
from fragfolio.services.providers.base import AIProvider

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504, 529}


class ProviderHTTPError(Exception):
    """Non-2xx answer from a provider API."""

    def __init__(self, provider: str, status_code: int, body: str):
        self.provider = provider
        self.status_code = status_code
        self.body = body[:500]
        super().__init__(f"{provider} API request failed with HTTP {status_code}: {self.body}")


class RetryableProviderError(ProviderHTTPError):
    """Status code worth retrying (rate limited or server side)."""


class HTTPProvider(AIProvider):
    """AIProvider whose vendor speaks JSON over HTTPS."""

    base_url: str = ""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key=api_key, model=model)
        if base_url:
            self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.ai_request_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, RetryableProviderError)),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.client.post(path, json=payload, headers=self._headers())
        if response.status_code in RETRYABLE_STATUS:
            raise RetryableProviderError(self.name, response.status_code, response.text)
        if response.is_error:
            raise ProviderHTTPError(self.name, response.status_code, response.text)
        return response.json()

    async def _ping(self, path: str) -> bool:
        try:
            response = await self.client.get(path, headers=self._headers())
        except httpx.HTTPError as e:
            logger.warning("%s health check failed: %s", self.name, str(e))
            return False
        if response.is_error:
            logger.warning("%s health check returned HTTP %d", self.name, response.status_code)
            return False
        return True

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
