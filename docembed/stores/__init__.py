"""Collaborators consumed by the pipeline.

Primary components:
- ``base``: abstract ``DocumentStore``, ``EmbeddingProvider``, ``ConfigStore``,
  ``RenditionService`` and ``TokenCounter`` interfaces.
- ``memory``: in-process implementations for local runs and tests.
- ``http_provider``: ``EmbeddingProvider`` talking to an embedding service
  over HTTP with retries and a circuit breaker.
"""
