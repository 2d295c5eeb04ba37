"""In-memory implementations of the collaborator interfaces.

These back local runs and the test-suite. They follow the same contracts as
the platform-backed implementations, including the one-level merge of
mapping fields on ``update``, and keep a log of writes and provider calls so
callers can assert on them.
"""

import asyncio
import copy
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from ..errors import DocumentNotFoundError
from ..models import (
    Document,
    EmbeddingRequest,
    EmbeddingResult,
    ProjectEmbeddingsConfig,
    Rendition,
    RenditionResponse,
)
from .base import ConfigStore, DocumentStore, EmbeddingProvider, RenditionService, TokenCounter

logger = structlog.get_logger("stores.memory")

_MERGED_FIELDS = ("embeddings", "tokens")


class InMemoryDocumentStore(DocumentStore):
    """Document store holding records as plain dicts."""

    def __init__(self, records: Optional[List[Document]] = None):
        self._records: Dict[str, Dict[str, Any]] = {}
        self.updates: List[Tuple[str, Dict[str, Any]]] = []
        for record in records or []:
            self.add(record)

    def add(self, record: Document) -> None:
        self._records[record.id] = record.model_dump()

    async def retrieve(self, record_id: str, field_selector: Optional[str] = None) -> Document:
        data = self._records.get(record_id)
        if data is None:
            raise DocumentNotFoundError("Document not found", [record_id])
        return Document.model_validate(copy.deepcopy(data))

    async def update(self, record_id: str, fields: Dict[str, Any]) -> None:
        data = self._records.get(record_id)
        if data is None:
            raise DocumentNotFoundError("Document not found", [record_id])

        fields = copy.deepcopy(fields)
        self.updates.append((record_id, fields))
        for key, value in fields.items():
            if key in _MERGED_FIELDS and isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key] = {**data[key], **value}
            else:
                data[key] = value
        logger.debug("Record updated", record_id=record_id, fields=sorted(fields))

    def get(self, record_id: str) -> Document:
        """Synchronous accessor for assertions and debugging."""
        return Document.model_validate(copy.deepcopy(self._records[record_id]))


class InMemoryConfigStore(ConfigStore):
    """Config store backed by a ``project_id -> config`` mapping."""

    def __init__(self, configs: Optional[Dict[str, ProjectEmbeddingsConfig]] = None):
        self._configs = dict(configs or {})

    def set(self, project_id: str, config: ProjectEmbeddingsConfig) -> None:
        self._configs[project_id] = config

    async def fetch_config(self, project_id: str) -> Optional[ProjectEmbeddingsConfig]:
        config = self._configs.get(project_id)
        return config.model_copy(deep=True) if config is not None else None


class StaticEmbeddingProvider(EmbeddingProvider):
    """Provider answering from a callable, recording every call it receives.

    ``embed_fn`` maps a request to the vector values; raising from it models a
    provider failure. ``delay`` adds a suspension point so concurrent callers
    actually overlap.
    """

    def __init__(
        self,
        embed_fn: Optional[Callable[[EmbeddingRequest], List[float]]] = None,
        model: str = "static-embedding-v1",
        dimensions: int = 4,
        delay: float = 0.0
    ):
        self.embed_fn = embed_fn
        self.model = model
        self.dimensions = dimensions
        self.delay = delay
        self.calls: List[Tuple[EmbeddingRequest, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def _default_values(self, request: EmbeddingRequest) -> List[float]:
        payload = request.text if request.text is not None else (request.image or "")
        seed = float(len(payload))
        return [seed + i for i in range(self.dimensions)]

    async def embed(self, request: EmbeddingRequest, environment: str) -> EmbeddingResult:
        self.calls.append((request, environment))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            fn = self.embed_fn or self._default_values
            values = fn(request)
            return EmbeddingResult(values=list(values), model=request.model or self.model)
        finally:
            self.in_flight -= 1


class InMemoryRenditionService(RenditionService):
    """Rendition service serving pre-registered responses and blobs."""

    def __init__(self):
        self._responses: Dict[str, RenditionResponse] = {}
        self._blobs: Dict[str, bytes] = {}
        self.requests: List[Dict[str, Any]] = []

    def set_response(self, document_id: str, response: RenditionResponse) -> None:
        self._responses[document_id] = response

    def set_blob(self, url: str, data: bytes) -> None:
        self._blobs[url] = data

    async def get_rendition(
        self,
        document_id: str,
        format: str,
        max_hw: Optional[int] = None,
        generate_if_missing: bool = False
    ) -> RenditionResponse:
        self.requests.append({
            "document_id": document_id,
            "format": format,
            "max_hw": max_hw,
            "generate_if_missing": generate_if_missing,
        })
        response = self._responses.get(document_id)
        if response is None:
            raise DocumentNotFoundError("Rendition not found", [document_id])
        return response

    async def fetch(self, rendition: Rendition) -> bytes:
        if rendition.data is not None:
            return rendition.data
        if rendition.url and rendition.url in self._blobs:
            return self._blobs[rendition.url]
        raise DocumentNotFoundError("Rendition content not found", [rendition.url or rendition.format])


class WhitespaceTokenCounter(TokenCounter):
    """Rough counter splitting on whitespace; good enough for local runs."""

    async def count(self, text: str) -> int:
        return len(text.split())
