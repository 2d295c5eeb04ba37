"""Fingerprints and atomic embedding writes.

A stored embedding is only trustworthy while its fingerprint matches the
fingerprint of the content it was computed from. The writer therefore always
sends vector, model and fingerprint in one ``update`` call per record.
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from ..common.metrics import MetricsCollector
from ..models import Document, EmbeddingType, StoredEmbedding
from ..stores.base import DocumentStore

logger = structlog.get_logger("pipeline.persistence")


def md5_hex(data: str) -> str:
    return hashlib.md5(data.encode("utf-8")).hexdigest()


def canonical_json(value: Any) -> str:
    """Stable JSON encoding used both as provider input and fingerprint source."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def content_fingerprint(record: Document, embedding_type: EmbeddingType) -> Optional[str]:
    """Fingerprint of the content an embedding of this type is computed from.

    Returns ``None`` when the record has no such content.
    """
    if embedding_type == EmbeddingType.TEXT:
        if record.text_fingerprint:
            return record.text_fingerprint
        return md5_hex(record.text) if record.text else None
    if embedding_type == EmbeddingType.PROPERTIES:
        return md5_hex(canonical_json(record.properties)) if record.properties else None
    if record.content is not None:
        return record.content.fingerprint
    return None


@dataclass(frozen=True)
class FingerprintPolicy:
    """Skip-on-unchanged-content guard.

    When ``skip_unchanged`` is on, a record whose stored embedding already
    carries the current content fingerprint is not regenerated unless the run
    is forced.
    """
    skip_unchanged: bool = True

    def should_skip(
        self,
        record: Document,
        embedding_type: EmbeddingType,
        fingerprint: Optional[str],
        force: bool = False
    ) -> bool:
        if force or not self.skip_unchanged or not fingerprint:
            return False
        existing = record.embeddings.get(embedding_type.value)
        return existing is not None and existing.fingerprint == fingerprint


class PersistenceWriter:
    """Writes ``{values, model, fingerprint}`` onto documents and parts."""

    def __init__(self, store: DocumentStore, metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.metrics = metrics

    async def write_embedding(
        self,
        record_id: str,
        embedding_type: EmbeddingType,
        values: List[float],
        model: str,
        fingerprint: Optional[str],
        record_kind: str = "document"
    ) -> StoredEmbedding:
        """Store one embedding in a single update of the record."""
        embedding = StoredEmbedding(values=list(values), model=model, fingerprint=fingerprint)
        fields: Dict[str, Any] = {
            "embeddings": {embedding_type.value: embedding.model_dump()},
        }
        await self.store.update(record_id, fields)

        if self.metrics is not None:
            self.metrics.record_store_write(record_kind)
        logger.info(
            "Embedding stored",
            record_id=record_id,
            record_kind=record_kind,
            type=embedding_type.value,
            len=len(embedding.values),
            model=model,
        )
        return embedding

    async def write_tokens(self, record_id: str, count: int, fingerprint: Optional[str]) -> None:
        """Store a fresh token count with the fingerprint it was counted from."""
        await self.store.update(record_id, {"tokens": {"count": count, "fingerprint": fingerprint}})
        logger.debug("Token count stored", record_id=record_id, count=count)
