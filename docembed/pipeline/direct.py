"""Single-request embedding generation for content within budget."""

import time
from dataclasses import dataclass
from typing import Optional

import structlog

from ..common.metrics import MetricsCollector
from ..models import EmbeddingConfig, EmbeddingRequest, EmbeddingResult, EmbeddingType
from ..stores.base import EmbeddingProvider

logger = structlog.get_logger("pipeline.direct")


async def call_provider(
    provider: EmbeddingProvider,
    request: EmbeddingRequest,
    environment: str,
    embedding_type: EmbeddingType,
    metrics: Optional[MetricsCollector] = None
) -> EmbeddingResult:
    """Call the provider, recording latency and outcome. Errors propagate."""
    start = time.perf_counter()
    try:
        result = await provider.embed(request, environment)
    except Exception:
        if metrics is not None:
            metrics.record_provider_call(embedding_type.value, "error", time.perf_counter() - start)
        raise
    if metrics is not None:
        metrics.record_provider_call(embedding_type.value, "ok", time.perf_counter() - start)
    return result


def unusable_result_reason(result: Optional[EmbeddingResult], config: EmbeddingConfig) -> Optional[str]:
    """Why a provider answer cannot be stored, or ``None`` when it can.

    Empty vectors are rejected, and so are vectors whose length differs from
    the configured ``dimensions`` when that is set.
    """
    if not result or not result.values:
        return "no embeddings generated"
    if config.dimensions is not None and len(result.values) != config.dimensions:
        return f"expected {config.dimensions} dimensions, provider returned {len(result.values)}"
    return None


@dataclass
class DirectOutcome:
    """Either a result or the reason there is none."""
    result: Optional[EmbeddingResult] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is not None


class DirectEmbeddingGenerator:
    """Embeds a whole content string with one provider call.

    Missing content, empty provider answers and vectors of the wrong size come
    back as a failed ``DirectOutcome``; provider exceptions propagate to the
    caller.
    """

    def __init__(self, provider: EmbeddingProvider, metrics: Optional[MetricsCollector] = None):
        self.provider = provider
        self.metrics = metrics

    async def generate(
        self,
        content: Optional[str],
        config: EmbeddingConfig,
        embedding_type: EmbeddingType,
        missing_message: str = "no content found"
    ) -> DirectOutcome:
        if not content:
            return DirectOutcome(message=missing_message)

        logger.info(
            "Generating embeddings",
            type=embedding_type.value,
            environment=config.environment,
            chars=len(content),
        )
        result = await call_provider(
            self.provider,
            EmbeddingRequest(text=content, model=config.model),
            config.environment,
            embedding_type,
            self.metrics,
        )

        reason = unusable_result_reason(result, config)
        if reason is not None:
            return DirectOutcome(message=reason)
        return DirectOutcome(result=result)
