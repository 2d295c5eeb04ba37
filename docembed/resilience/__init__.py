"""Resilience helpers for calls to external services.

- ``retry_handler``: exponential backoff with jitter.
- ``circuit_breaker``: fail fast while a provider is down.

Only provider adapters use these; the pipeline itself leaves whole-run
retries to the orchestrator.
"""
