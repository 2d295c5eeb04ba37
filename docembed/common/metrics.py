"""Metrics collection for the embedding pipeline.

Provides a thin convenience wrapper around ``prometheus_client`` so pipeline
components record run outcomes, part outcomes, provider latency and
aggregation sizes with consistent label sets.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
  (no document ids in labels)
- A registry is kept per collector so tests can build isolated instances
"""

import time
from functools import wraps
from typing import Any, Callable, Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection for embedding runs.

    Parameters
    - service_name: Logical name of the worker emitting the metrics
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.runs = Counter(
            'docembed_runs_total',
            'Embedding generation runs by terminal status',
            ['embedding_type', 'status', 'path'],
            registry=self.registry
        )

        self.run_duration = Histogram(
            'docembed_run_duration_seconds',
            'Embedding generation run duration',
            ['embedding_type', 'path'],
            registry=self.registry
        )

        self.part_outcomes = Counter(
            'docembed_part_outcomes_total',
            'Per-part embedding outcomes on the chunked path',
            ['status'],
            registry=self.registry
        )

        self.provider_requests = Counter(
            'docembed_provider_requests_total',
            'Embedding provider calls',
            ['embedding_type', 'outcome'],
            registry=self.registry
        )

        self.provider_duration = Histogram(
            'docembed_provider_duration_seconds',
            'Embedding provider call duration',
            ['embedding_type'],
            registry=self.registry
        )

        self.aggregated_parts = Histogram(
            'docembed_aggregated_parts',
            'Number of part vectors combined into one document vector',
            buckets=(1, 2, 4, 8, 16, 32, 64, 128, 256),
            registry=self.registry
        )

        self.store_writes = Counter(
            'docembed_store_writes_total',
            'Embedding records written to the document store',
            ['record_kind'],
            registry=self.registry
        )

    def record_run(
        self,
        embedding_type: str,
        status: str,
        path: str,
        duration: Optional[float] = None
    ) -> None:
        """Record a terminal run outcome; ``duration`` is in seconds."""
        self.runs.labels(embedding_type=embedding_type, status=status, path=path).inc()
        if duration is not None:
            self.run_duration.labels(embedding_type=embedding_type, path=path).observe(duration)

    def record_part_outcome(self, status: str) -> None:
        """Record one part outcome (success, skipped or failed)."""
        self.part_outcomes.labels(status=status).inc()

    def record_provider_call(
        self,
        embedding_type: str,
        outcome: str,
        duration: float
    ) -> None:
        """Record a provider call with its outcome (``ok`` or ``error``)."""
        self.provider_requests.labels(embedding_type=embedding_type, outcome=outcome).inc()
        self.provider_duration.labels(embedding_type=embedding_type).observe(duration)

    def record_aggregation(self, part_count: int) -> None:
        """Record how many vectors went into one aggregation."""
        self.aggregated_parts.observe(part_count)

    def record_store_write(self, record_kind: str) -> None:
        """Record an embedding write (``document`` or ``part``)."""
        self.store_writes.labels(record_kind=record_kind).inc()

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str = "embedding-pipeline") -> MetricsCollector:
    """Get or create the process-wide metrics collector."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
    return _metrics_collector


def measure_time(operation: str, **labels: Any) -> Callable:
    """Decorator logging the execution time of a synchronous function.

    Example
    >>> @measure_time("aggregate", strategy="softmax")
    ... def combine(vectors):
    ...     ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Operation {operation} failed",
                    operation=operation,
                    duration_ms=(time.perf_counter() - start_time) * 1000,
                    error=str(e),
                    **labels
                )
                raise
            logger.debug(
                f"Operation {operation} completed",
                operation=operation,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                **labels
            )
            return result
        return wrapper
    return decorator
