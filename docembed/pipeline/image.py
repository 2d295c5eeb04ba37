"""Image embedding generation from a document's JPEG rendition."""

import base64
from dataclasses import dataclass
from typing import Optional

import structlog

from ..common.metrics import MetricsCollector
from ..errors import DocumentNotFoundError, RenditionPendingError
from ..models import (
    Document,
    EmbeddingConfig,
    EmbeddingRequest,
    EmbeddingResult,
    EmbeddingType,
    RenditionStatus,
)
from ..stores.base import EmbeddingProvider, RenditionService
from .direct import DirectOutcome, call_provider, unusable_result_reason

logger = structlog.get_logger("pipeline.image")

RENDITION_FORMAT = "jpeg"


def is_image_content(document: Document) -> bool:
    """Images and PDFs can be rendered to an image."""
    content_type = document.content.type if document.content else None
    if not content_type:
        return False
    return content_type.startswith("image/") or "pdf" in content_type


@dataclass
class ImageEmbeddingGenerator:
    """Fetches a rendition and sends it, base64-encoded, to the provider.

    A rendition still being generated raises ``RenditionPendingError`` so the
    orchestrator retries later; a failed or empty rendition raises
    ``DocumentNotFoundError``.
    """

    provider: EmbeddingProvider
    renditions: RenditionService
    max_hw: int = 1024
    metrics: Optional[MetricsCollector] = None

    async def generate(self, document: Document, config: EmbeddingConfig) -> DirectOutcome:
        response = await self.renditions.get_rendition(
            document.id,
            format=RENDITION_FORMAT,
            max_hw=self.max_hw,
            generate_if_missing=True,
        )

        if response.status == RenditionStatus.GENERATING:
            raise RenditionPendingError(
                f"Rendition for {document.id} is generating, will retry later"
            )
        if response.status == RenditionStatus.FAILED or not response.renditions:
            raise DocumentNotFoundError("Rendition retrieval failed", [document.id])

        image_bytes = await self.renditions.fetch(response.renditions[0])
        image = base64.b64encode(image_bytes).decode("ascii")

        logger.info(
            "Generating image embeddings",
            document_id=document.id,
            environment=config.environment,
            image_bytes=len(image_bytes),
        )
        result: EmbeddingResult = await call_provider(
            self.provider,
            EmbeddingRequest(image=image, model=config.model),
            config.environment,
            EmbeddingType.IMAGE,
            self.metrics,
        )

        reason = unusable_result_reason(result, config)
        if reason is not None:
            return DirectOutcome(message=reason)
        return DirectOutcome(result=result)
