"""Collaborator interfaces consumed by the pipeline.

Defines the abstract contracts the pipeline depends on, independent of the
backing implementation (platform REST API, in-memory fixtures, ...). The
pipeline receives instances of these through its constructor; nothing is
looked up from ambient state.

All I/O methods are asynchronous so part-level calls can overlap.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..models import (
    Document,
    EmbeddingRequest,
    EmbeddingResult,
    ProjectEmbeddingsConfig,
    Rendition,
    RenditionResponse,
)


class DocumentStore(ABC):
    """Reads and updates document and part records.

    Implementations must apply ``update`` atomically per record and merge
    mapping-valued fields (``embeddings``, ``tokens``) one level deep, so a
    single call can replace one embedding type without touching the others.
    """

    @abstractmethod
    async def retrieve(self, record_id: str, field_selector: Optional[str] = None) -> Document:
        """Fetch a record.

        Raises
        - ``DocumentNotFoundError`` when no record has this id
        """
        pass

    @abstractmethod
    async def update(self, record_id: str, fields: Dict[str, Any]) -> None:
        """Apply a partial update to a record in one write."""
        pass


class EmbeddingProvider(ABC):
    """Turns text or an image into a vector."""

    @abstractmethod
    async def embed(self, request: EmbeddingRequest, environment: str) -> EmbeddingResult:
        """Generate an embedding.

        Raises on failure; callers decide whether the error is fatal.
        """
        pass


class ConfigStore(ABC):
    """Reads project-level embedding configuration."""

    @abstractmethod
    async def fetch_config(self, project_id: str) -> Optional[ProjectEmbeddingsConfig]:
        """Return the project's embedding settings, or ``None`` if the project is unknown."""
        pass


class RenditionService(ABC):
    """Produces image renditions of a document's content."""

    @abstractmethod
    async def get_rendition(
        self,
        document_id: str,
        format: str,
        max_hw: Optional[int] = None,
        generate_if_missing: bool = False
    ) -> RenditionResponse:
        """Look up (and optionally start generating) a rendition."""
        pass

    @abstractmethod
    async def fetch(self, rendition: Rendition) -> bytes:
        """Download the bytes of a ready rendition."""
        pass


class TokenCounter(ABC):
    """Counts model tokens in a text."""

    @abstractmethod
    async def count(self, text: str) -> int:
        pass
