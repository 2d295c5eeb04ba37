"""Data model for documents, embedding configuration and run results.

Store records and configuration are pydantic models so they validate what the
collaborators hand back. Transient per-run values (``EmbeddingResult``,
``PartOutcome``) are plain dataclasses.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class EmbeddingType(str, Enum):
    """Embedding types a project can enable."""
    TEXT = "text"
    PROPERTIES = "properties"
    IMAGE = "image"


class RunStatus(str, Enum):
    """Terminal status returned to the orchestrator."""
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class PartStatus(str, Enum):
    """Outcome of a single part on the chunked path."""
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class TokenInfo(BaseModel):
    """Token count of a record's text and the fingerprint it was counted from."""
    count: Optional[int] = None
    fingerprint: Optional[str] = None


class StoredEmbedding(BaseModel):
    """An embedding as persisted on a document or part record."""
    values: List[float]
    model: str
    fingerprint: Optional[str] = None


class ContentInfo(BaseModel):
    """Descriptor of a record's binary content (MIME type and blob etag)."""
    type: Optional[str] = None
    fingerprint: Optional[str] = None


class Document(BaseModel):
    """A content object, or one of its parts.

    Parts are stored with the same shape as their parent; ``parts`` holds the
    ordered ids of a document's parts and is empty on a part record.
    """
    id: str
    text: Optional[str] = None
    text_fingerprint: Optional[str] = None
    properties: Optional[Dict[str, Any]] = None
    content: Optional[ContentInfo] = None
    tokens: Optional[TokenInfo] = None
    parts: List[str] = Field(default_factory=list)
    embeddings: Dict[str, StoredEmbedding] = Field(default_factory=dict)

    @property
    def token_count(self) -> Optional[int]:
        return self.tokens.count if self.tokens else None


# Parts share the document record shape.
Part = Document


class EmbeddingConfig(BaseModel):
    """Project-level settings for one embedding type.

    When ``dimensions`` is set, provider vectors of any other length are
    rejected instead of stored.
    """
    environment: Optional[str] = None
    model: Optional[str] = None
    enabled: bool = False
    max_tokens: Optional[int] = Field(default=None, ge=1)
    dimensions: Optional[int] = Field(default=None, ge=1)


class ProjectEmbeddingsConfig(BaseModel):
    """Embedding settings of a project, one optional block per type."""
    text: Optional[EmbeddingConfig] = None
    properties: Optional[EmbeddingConfig] = None
    image: Optional[EmbeddingConfig] = None

    def for_type(self, embedding_type: EmbeddingType) -> Optional[EmbeddingConfig]:
        return getattr(self, embedding_type.value)


class EmbeddingRequest(BaseModel):
    """Payload sent to an embedding provider: either text or a base64 image."""
    text: Optional[str] = None
    image: Optional[str] = None
    model: Optional[str] = None


class RenditionStatus(str, Enum):
    READY = "ready"
    GENERATING = "generating"
    FAILED = "failed"


class Rendition(BaseModel):
    """One rendition of a document's content (e.g. a JPEG preview)."""
    format: str
    url: Optional[str] = None
    data: Optional[bytes] = None


class RenditionResponse(BaseModel):
    status: RenditionStatus
    renditions: List[Rendition] = Field(default_factory=list)


class GenerateEmbeddingsRequest(BaseModel):
    """Parameters of one unit of work, as handed over by the orchestrator.

    ``environment`` and ``model`` override the project's configuration for
    this run only. ``force`` regenerates even when the stored fingerprint
    matches the current content.
    """
    project_id: str
    object_id: str
    type: EmbeddingType
    force: bool = False
    environment: Optional[str] = None
    model: Optional[str] = None


@dataclass
class EmbeddingResult:
    """A vector returned by the provider together with the model that made it."""
    values: List[float]
    model: str


@dataclass
class PartOutcome:
    """Result of embedding one part, tagged with its position in the document."""
    id: str
    index: int
    status: PartStatus
    vector: Optional[List[float]] = None
    model: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Summary for the run result; vectors are left out."""
        data: Dict[str, Any] = {"id": self.id, "index": self.index, "status": self.status.value}
        if self.message:
            data["message"] = self.message
        if self.error:
            data["error"] = self.error
        return data


class GenerationResult(BaseModel):
    """Result contract returned to the orchestrator."""
    id: str
    status: RunStatus
    type: Optional[EmbeddingType] = None
    len: Optional[int] = None
    message: Optional[str] = None
    parts: Optional[List[Dict[str, Any]]] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
