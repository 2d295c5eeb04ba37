"""HTTP embedding provider.

Calls an embedding service exposing
``POST {provider_url}/api/v1/environments/{environment}/embeddings`` with a
``{"text" | "image", "model"}`` body and a ``{"values", "model"}`` answer.

Each request runs through a circuit breaker. Transient failures (transport
errors, 5xx, 429) are retried, waiting for ``Retry-After`` when the service
sends it and backing off exponentially otherwise. Other HTTP errors fail
immediately.
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional

import httpx
import structlog

from ..common.config import ProviderSettings
from ..errors import ProviderError, ProviderUnavailableError
from ..models import EmbeddingRequest, EmbeddingResult
from ..resilience.circuit_breaker import CircuitBreaker, CircuitBreakerError
from ..resilience.retry_handler import RetryConfig, RetryHandler
from .base import EmbeddingProvider

logger = structlog.get_logger("stores.http_provider")


class HttpEmbeddingProvider(EmbeddingProvider):
    """Embedding provider backed by an HTTP embedding service.

    The ``httpx.AsyncClient`` can be injected (tests pass one with a
    ``MockTransport``); otherwise one is created from settings and closed by
    ``aclose``.
    """

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        retry_handler: Optional[RetryHandler] = None
    ):
        self.settings = settings or ProviderSettings()
        self.base_url = self.settings.provider_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=self.settings.provider_timeout)

        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=self.settings.breaker_failure_threshold,
            recovery_timeout=self.settings.breaker_recovery_timeout,
            name="embedding-provider",
        )
        self.retry_handler = retry_handler or RetryHandler(RetryConfig(
            max_attempts=self.settings.retry_attempts,
            base_delay=self.settings.retry_base_delay,
            max_delay=self.settings.retry_max_delay,
        ))

    async def embed(self, request: EmbeddingRequest, environment: str) -> EmbeddingResult:
        """Generate one embedding through the remote service."""
        payload = request.model_dump(exclude_none=True)
        url = f"{self.base_url}/api/v1/environments/{environment}/embeddings"

        try:
            response = await self.retry_handler.execute_with_retry(
                self.circuit_breaker.call,
                self._post,
                url,
                payload,
                operation_name=f"embed_{environment}",
            )
        except CircuitBreakerError as exc:
            logger.error("Embedding provider circuit breaker open", environment=environment)
            raise ProviderUnavailableError(str(exc), retry_after=exc.retry_after) from exc

        return self._parse(response)

    async def _post(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        try:
            response = await self.client.post(url, json=payload)
        except httpx.TransportError as exc:
            raise ProviderUnavailableError(f"Embedding provider unreachable: {exc}") from exc

        status = response.status_code
        if status >= 500 or status == 429:
            raise ProviderUnavailableError(
                f"Embedding provider returned status {status}",
                status_code=status,
                retry_after=_retry_after_seconds(response),
            )
        if status >= 400:
            raise ProviderError(
                f"Embedding provider rejected request with status {status}: {response.text}",
                status_code=status,
            )
        return response

    @staticmethod
    def _parse(response: httpx.Response) -> EmbeddingResult:
        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError("Embedding provider returned invalid JSON") from exc

        values = body.get("values")
        model = body.get("model")
        if not isinstance(values, list) or not model:
            raise ProviderError("Embedding provider response is missing 'values' or 'model'")
        return EmbeddingResult(values=[float(v) for v in values], model=str(model))

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self.client.aclose()


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    """Parse a ``Retry-After`` header given in seconds or as an HTTP date."""
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)
