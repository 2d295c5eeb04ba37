"""Tests for the embedding pipeline.

The suite runs against in-memory collaborators and ``httpx.MockTransport``;
no embedding service, document store or network access is needed.
"""
