"""Exception hierarchy for the embedding pipeline.

Infrastructure-class failures (missing configuration, missing records,
provider or store outages) are raised so the orchestrator's retry policy
applies. Business outcomes (disabled type, missing content, nothing to
aggregate) are *not* exceptions; they come back as structured results.
"""

from typing import List, Optional, Sequence


class EmbeddingPipelineError(Exception):
    """Base exception for pipeline operations."""
    pass


class ConfigurationMissingError(EmbeddingPipelineError):
    """Required project configuration (e.g. the environment) is not set."""
    pass


class DocumentNotFoundError(EmbeddingPipelineError):
    """A document, part, project or rendition could not be found."""

    def __init__(self, message: str, ids: Optional[Sequence[str]] = None):
        self.ids: List[str] = list(ids or [])
        if self.ids:
            message = f"{message}: {', '.join(self.ids)}"
        super().__init__(message)


class ProviderError(EmbeddingPipelineError):
    """The embedding provider failed to produce a vector."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ProviderUnavailableError(ProviderError):
    """Transient provider failure (transport error, 5xx, 429, open breaker).

    ``retry_after`` carries the wait in seconds the provider (or the open
    breaker) asked for, when known.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None
    ):
        self.retry_after = retry_after
        super().__init__(message, status_code=status_code)


class RenditionPendingError(EmbeddingPipelineError):
    """An image rendition is still being generated; retry later."""
    pass


class AggregationError(EmbeddingPipelineError):
    """Part vectors cannot be combined into one document vector."""
    pass


class AggregationEmptyError(AggregationError):
    """There are no valid part vectors to combine."""
    pass


class DimensionMismatchError(AggregationError):
    """Part vectors do not share one dimensionality."""

    def __init__(self, dimensions: Sequence[int]):
        self.dimensions = list(dimensions)
        super().__init__(
            f"Cannot aggregate vectors of different dimensions: {sorted(set(self.dimensions))}"
        )


class ModelMismatchError(AggregationError):
    """Part vectors were produced by different embedding models."""

    def __init__(self, models: Sequence[str]):
        self.models = sorted(set(models))
        super().__init__(f"Cannot aggregate vectors from different models: {self.models}")


class InvalidWeightsError(AggregationError):
    """A weighting strategy returned weights that are not a distribution."""
    pass


class InvalidStateTransitionError(EmbeddingPipelineError):
    """A run tried to move between two states that are not connected."""
    pass
