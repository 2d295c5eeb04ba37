"""Shared fixtures: in-memory collaborators and a pipeline factory."""

from typing import List, Optional

import pytest
from prometheus_client import CollectorRegistry

from docembed.common.config import PipelineSettings
from docembed.common.metrics import MetricsCollector
from docembed.models import Document, EmbeddingConfig, ProjectEmbeddingsConfig, TokenInfo
from docembed.pipeline.aggregation import UniformWeighting
from docembed.pipeline.generator import EmbeddingPipeline
from docembed.stores.memory import (
    InMemoryConfigStore,
    InMemoryDocumentStore,
    StaticEmbeddingProvider,
)

PROJECT_ID = "project-1"


@pytest.fixture
def metrics():
    """Collector with its own registry so tests don't share counters."""
    return MetricsCollector("test-pipeline", registry=CollectorRegistry())


@pytest.fixture
def settings():
    return PipelineSettings(max_concurrency=4, default_max_tokens=8000, skip_unchanged=True)


@pytest.fixture
def project_config():
    return ProjectEmbeddingsConfig(
        text=EmbeddingConfig(environment="env-1", enabled=True, max_tokens=8000, dimensions=4),
        properties=EmbeddingConfig(environment="env-1", enabled=True, dimensions=4),
        image=EmbeddingConfig(environment="env-1", enabled=True, dimensions=4),
    )


@pytest.fixture
def config_store(project_config):
    return InMemoryConfigStore({PROJECT_ID: project_config})


@pytest.fixture
def document_store():
    return InMemoryDocumentStore()


@pytest.fixture
def provider():
    return StaticEmbeddingProvider(dimensions=4)


@pytest.fixture
def make_pipeline(document_store, provider, config_store, settings, metrics):
    """Build a pipeline from the default fixtures; keyword arguments override them."""
    def _make(**kwargs):
        params = dict(
            document_store=document_store,
            provider=provider,
            config_store=config_store,
            settings=settings,
            metrics=metrics,
            weighting=UniformWeighting(),
        )
        params.update(kwargs)
        return EmbeddingPipeline(**params)
    return _make


@pytest.fixture
def add_chunked_document(document_store):
    """Register a document and its parts; returns the parent document."""
    def _add(
        doc_id: str,
        token_count: int,
        part_texts: List[str],
        part_tokens: List[Optional[int]],
    ) -> Document:
        part_ids = []
        for i, (text, tokens) in enumerate(zip(part_texts, part_tokens)):
            part_id = f"{doc_id}-part-{i}"
            document_store.add(Document(id=part_id, text=text, tokens=TokenInfo(count=tokens)))
            part_ids.append(part_id)

        document = Document(
            id=doc_id,
            text=" ".join(part_texts),
            tokens=TokenInfo(count=token_count),
            parts=part_ids,
        )
        document_store.add(document)
        return document
    return _add
