"""Concurrent per-part embedding generation for oversized documents.

Every part is handled on its own: a part over budget is skipped, a provider
failure is recorded on that part only, and a successful vector is persisted on
the part record straight away. A failed part write is an infrastructure
failure and propagates. Outcomes keep the part's position in the document so
aggregation does not depend on completion order.
"""

import time
from typing import List, Optional, Sequence

import structlog

from ..common.metrics import MetricsCollector
from ..models import (
    Document,
    EmbeddingConfig,
    EmbeddingRequest,
    EmbeddingType,
    PartOutcome,
    PartStatus,
)
from ..stores.base import DocumentStore, EmbeddingProvider
from .budget import TokenBudgetClassifier
from .direct import call_provider, unusable_result_reason
from .persistence import PersistenceWriter, content_fingerprint
from .worker_pool import BoundedWorkerPool

logger = structlog.get_logger("pipeline.parts")

PART_FIELDS = "+text +tokens +embeddings"


class PartEmbeddingGenerator:
    """Fans provider calls out over a document's parts through a bounded pool."""

    def __init__(
        self,
        store: DocumentStore,
        provider: EmbeddingProvider,
        writer: PersistenceWriter,
        classifier: TokenBudgetClassifier,
        max_in_flight: int = 8,
        metrics: Optional[MetricsCollector] = None
    ):
        self.store = store
        self.provider = provider
        self.writer = writer
        self.classifier = classifier
        self.pool = BoundedWorkerPool(max_in_flight)
        self.metrics = metrics

    async def fetch_parts(self, part_ids: Sequence[str]) -> List[Document]:
        """Retrieve every part record; a missing part raises before any embedding starts."""
        async def _fetch(part_id: str, index: int) -> Document:
            return await self.store.retrieve(part_id, PART_FIELDS)

        results = await self.pool.map(_fetch, list(part_ids), capture_errors=False)
        return [r.value for r in results]

    async def generate(
        self,
        parts: Sequence[Document],
        config: EmbeddingConfig,
        embedding_type: EmbeddingType
    ) -> List[PartOutcome]:
        """Embed all parts and return one outcome per part, in document order."""
        start = time.perf_counter()
        max_tokens = self.classifier.effective_budget(config.max_tokens)

        async def _embed(part: Document, index: int) -> PartOutcome:
            return await self._embed_part(part, index, config, embedding_type, max_tokens)

        # provider errors are recorded per part in _embed_part; anything else
        # (e.g. a failed part write) cancels the remaining parts and propagates
        results = await self.pool.map(_embed, list(parts), capture_errors=False)

        outcomes = [task.value for task in results]
        if self.metrics is not None:
            for outcome in outcomes:
                self.metrics.record_part_outcome(outcome.status.value)

        logger.info(
            "Part embeddings generated",
            parts=len(outcomes),
            succeeded=sum(1 for o in outcomes if o.status == PartStatus.SUCCESS),
            skipped=sum(1 for o in outcomes if o.status == PartStatus.SKIPPED),
            failed=sum(1 for o in outcomes if o.status == PartStatus.FAILED),
            duration_ms=(time.perf_counter() - start) * 1000,
            max_tokens=max_tokens,
        )
        return outcomes

    async def _embed_part(
        self,
        part: Document,
        index: int,
        config: EmbeddingConfig,
        embedding_type: EmbeddingType,
        max_tokens: int
    ) -> PartOutcome:
        if not self.classifier.fits(part.token_count, max_tokens):
            logger.info(
                "Part exceeds token budget, skipping",
                part_id=part.id,
                index=index,
                tokens=part.token_count,
                max_tokens=max_tokens,
            )
            return PartOutcome(id=part.id, index=index, status=PartStatus.SKIPPED, message="part too large")

        if not part.text:
            return PartOutcome(id=part.id, index=index, status=PartStatus.SKIPPED, message="no text found")

        try:
            result = await call_provider(
                self.provider,
                EmbeddingRequest(text=part.text, model=config.model),
                config.environment,
                embedding_type,
                self.metrics,
            )
        except Exception as e:
            logger.warning(
                "Error generating embeddings for part",
                part_id=part.id,
                index=index,
                text_length=len(part.text),
                error=str(e),
            )
            return PartOutcome(
                id=part.id,
                index=index,
                status=PartStatus.FAILED,
                error=str(e),
                message="error generating embeddings",
            )

        reason = unusable_result_reason(result, config)
        if reason is not None:
            logger.warning("Unusable part embedding", part_id=part.id, index=index, reason=reason)
            return PartOutcome(
                id=part.id,
                index=index,
                status=PartStatus.FAILED,
                message=reason,
            )

        await self.writer.write_embedding(
            part.id,
            embedding_type,
            result.values,
            result.model,
            content_fingerprint(part, EmbeddingType.TEXT),
            record_kind="part",
        )
        return PartOutcome(
            id=part.id,
            index=index,
            status=PartStatus.SUCCESS,
            vector=list(result.values),
            model=result.model,
        )
