"""Embedding generation for one document and one embedding type.

``EmbeddingPipeline.run`` is the unit of work an orchestrator schedules:

    resolve config -> check budget -> direct call, or parts + aggregation
    -> persist vector, model and fingerprint in one write

Business outcomes (disabled type, missing content, unchanged content, nothing
to aggregate) come back as a ``GenerationResult``; infrastructure failures
raise so the orchestrator's retry policy applies.
"""

import time
from typing import Any, Dict, Optional, Union

import structlog

from ..common.config import PipelineSettings
from ..common.metrics import MetricsCollector, get_metrics_collector
from ..errors import AggregationError, ConfigurationMissingError
from ..models import (
    Document,
    EmbeddingConfig,
    EmbeddingType,
    GenerateEmbeddingsRequest,
    GenerationResult,
    PartStatus,
    RunStatus,
    TokenInfo,
)
from ..stores.base import (
    ConfigStore,
    DocumentStore,
    EmbeddingProvider,
    RenditionService,
    TokenCounter,
)
from .aggregation import VectorAggregator, WeightingStrategy
from .budget import EmbeddingPath, TokenBudgetClassifier
from .direct import DirectEmbeddingGenerator
from .image import ImageEmbeddingGenerator, is_image_content
from .parts import PartEmbeddingGenerator
from .persistence import FingerprintPolicy, PersistenceWriter, canonical_json, content_fingerprint
from .resolver import ConfigurationResolver, Disabled
from .state import RunState, RunStateMachine

logger = structlog.get_logger("pipeline.generator")

DOCUMENT_FIELDS = "+text +parts +embeddings +tokens +properties +content"

_STATUS_FOR_STATE = {
    RunState.PERSISTED: RunStatus.COMPLETED,
    RunState.SKIPPED: RunStatus.SKIPPED,
    RunState.FAILED: RunStatus.FAILED,
}


class EmbeddingPipeline:
    """Generates and stores embeddings through injected collaborators.

    Parameters
    - document_store / provider / config_store: required collaborators
    - rendition_service: needed for ``image`` embeddings only
    - token_counter: when given, stale or missing token counts are refreshed
      before the budget check
    - settings: ``PipelineSettings``; read from the environment if omitted
    - weighting: aggregation weighting strategy (random attention by default)
    - fingerprint_policy: overrides ``settings.skip_unchanged``
    """

    def __init__(
        self,
        document_store: DocumentStore,
        provider: EmbeddingProvider,
        config_store: ConfigStore,
        rendition_service: Optional[RenditionService] = None,
        token_counter: Optional[TokenCounter] = None,
        settings: Optional[PipelineSettings] = None,
        weighting: Optional[WeightingStrategy] = None,
        metrics: Optional[MetricsCollector] = None,
        fingerprint_policy: Optional[FingerprintPolicy] = None
    ):
        self.settings = settings or PipelineSettings()
        self.metrics = metrics or get_metrics_collector()
        self.store = document_store
        self.token_counter = token_counter

        self.resolver = ConfigurationResolver(config_store)
        self.classifier = TokenBudgetClassifier(self.settings.default_max_tokens)
        self.writer = PersistenceWriter(document_store, self.metrics)
        self.fingerprint_policy = fingerprint_policy or FingerprintPolicy(self.settings.skip_unchanged)
        self.direct = DirectEmbeddingGenerator(provider, self.metrics)
        self.parts = PartEmbeddingGenerator(
            document_store,
            provider,
            self.writer,
            self.classifier,
            max_in_flight=self.settings.max_concurrency,
            metrics=self.metrics,
        )
        self.aggregator = VectorAggregator(weighting)
        self.image: Optional[ImageEmbeddingGenerator] = None
        if rendition_service is not None:
            self.image = ImageEmbeddingGenerator(
                provider,
                rendition_service,
                max_hw=self.settings.image_max_hw,
                metrics=self.metrics,
            )

    async def run(self, request: GenerateEmbeddingsRequest) -> GenerationResult:
        """Run one unit of work and return its result contract."""
        start = time.perf_counter()
        embedding_type = request.type
        machine = RunStateMachine(request.object_id, embedding_type.value)
        log = logger.bind(
            project_id=request.project_id,
            document_id=request.object_id,
            type=embedding_type.value,
        )

        config = await self.resolver.resolve(
            request.project_id,
            embedding_type,
            environment=request.environment,
            model=request.model,
        )
        if isinstance(config, Disabled):
            return self._finish(
                machine, RunState.SKIPPED, start, "none",
                message=config.message,
            )

        log.info("Embedding generation starting", force=request.force, environment=config.environment)
        document = await self.store.retrieve(request.object_id, DOCUMENT_FIELDS)

        try:
            if embedding_type == EmbeddingType.IMAGE:
                return await self._run_image(document, config, request, machine, start)
            return await self._run_text(document, config, request, machine, start)
        except Exception as e:
            log.error("Embedding generation error", state=machine.state.value, error=str(e))
            self.metrics.record_run(embedding_type.value, "error", "unknown")
            raise

    async def _run_text(
        self,
        document: Document,
        config: EmbeddingConfig,
        request: GenerateEmbeddingsRequest,
        machine: RunStateMachine,
        start: float
    ) -> GenerationResult:
        embedding_type = request.type
        if embedding_type == EmbeddingType.TEXT:
            content, missing = document.text, "no text found"
        else:
            content = canonical_json(document.properties) if document.properties else None
            missing = "no properties found"

        if not content:
            return self._finish(machine, RunState.FAILED, start, "none", document.id, message=missing)

        fingerprint = content_fingerprint(document, embedding_type)
        if self.fingerprint_policy.should_skip(document, embedding_type, fingerprint, request.force):
            logger.info(
                "Skipping embeddings, fingerprint unchanged",
                document_id=document.id,
                type=embedding_type.value,
            )
            return self._finish(
                machine, RunState.SKIPPED, start, "none", document.id,
                message="embeddings already exist with matching fingerprint",
            )

        path = EmbeddingPath.DIRECT
        if embedding_type == EmbeddingType.TEXT:
            await self._refresh_tokens(document, fingerprint)
            path = self.classifier.classify(document.token_count, config.max_tokens)
        machine.advance(RunState.BUDGET_CHECKED)

        if path == EmbeddingPath.DIRECT:
            machine.advance(RunState.DIRECT_GENERATING)
            outcome = await self.direct.generate(content, config, embedding_type, missing_message=missing)
            if not outcome.ok:
                return self._finish(machine, RunState.FAILED, start, path.value, document.id, message=outcome.message)
            await self.writer.write_embedding(
                document.id, embedding_type, outcome.result.values, outcome.result.model, fingerprint
            )
            return self._finish(
                machine, RunState.PERSISTED, start, path.value, document.id,
                len=len(outcome.result.values),
            )

        return await self._run_parts(document, config, embedding_type, fingerprint, machine, start)

    async def _run_parts(
        self,
        document: Document,
        config: EmbeddingConfig,
        embedding_type: EmbeddingType,
        fingerprint: Optional[str],
        machine: RunStateMachine,
        start: float
    ) -> GenerationResult:
        path = EmbeddingPath.CHUNKED.value
        logger.info(
            "Document too large, generating embeddings for parts",
            document_id=document.id,
            tokens=document.token_count,
            parts=len(document.parts),
        )
        if not document.parts:
            return self._finish(machine, RunState.SKIPPED, start, path, document.id, message="no parts found")

        machine.advance(RunState.PARTS_GENERATING)
        parts = await self.parts.fetch_parts(document.parts)
        outcomes = await self.parts.generate(parts, config, embedding_type)
        summaries = [o.to_dict() for o in outcomes]

        valid = [o for o in outcomes if o.status == PartStatus.SUCCESS]
        if not valid:
            return self._finish(
                machine, RunState.SKIPPED, start, path, document.id,
                message="no valid part embeddings", parts=summaries,
            )

        machine.advance(RunState.AGGREGATING)
        models = [o.model for o in valid]
        try:
            values = self.aggregator.aggregate([o.vector for o in valid], models)
        except AggregationError as e:
            logger.error("Part vectors cannot be aggregated", document_id=document.id, error=str(e))
            return self._finish(machine, RunState.FAILED, start, path, document.id, message=str(e), parts=summaries)
        self.metrics.record_aggregation(len(valid))

        await self.writer.write_embedding(document.id, embedding_type, values, models[0], fingerprint)
        return self._finish(
            machine, RunState.PERSISTED, start, path, document.id,
            len=len(values), parts=summaries,
        )

    async def _run_image(
        self,
        document: Document,
        config: EmbeddingConfig,
        request: GenerateEmbeddingsRequest,
        machine: RunStateMachine,
        start: float
    ) -> GenerationResult:
        if self.image is None:
            raise ConfigurationMissingError("A rendition service is required to generate image embeddings")

        if not is_image_content(document):
            return self._finish(machine, RunState.FAILED, start, "none", document.id, message="content is not an image")

        fingerprint = content_fingerprint(document, EmbeddingType.IMAGE)
        if self.fingerprint_policy.should_skip(document, EmbeddingType.IMAGE, fingerprint, request.force):
            logger.info("Skipping image embeddings, content fingerprint unchanged", document_id=document.id)
            return self._finish(
                machine, RunState.SKIPPED, start, "none", document.id,
                message="embeddings already exist with matching fingerprint",
            )

        machine.advance(RunState.BUDGET_CHECKED)
        machine.advance(RunState.DIRECT_GENERATING)
        outcome = await self.image.generate(document, config)
        if not outcome.ok:
            return self._finish(machine, RunState.FAILED, start, "direct", document.id, message=outcome.message)

        await self.writer.write_embedding(
            document.id, EmbeddingType.IMAGE, outcome.result.values, outcome.result.model, fingerprint
        )
        return self._finish(
            machine, RunState.PERSISTED, start, "direct", document.id,
            len=len(outcome.result.values),
        )

    async def _refresh_tokens(self, document: Document, fingerprint: Optional[str]) -> None:
        """Recount tokens when the count is missing or was taken from other text."""
        if self.token_counter is None or not document.text:
            return
        tokens = document.tokens
        if tokens is not None and tokens.count and tokens.fingerprint == fingerprint:
            return

        count = await self.token_counter.count(document.text)
        await self.writer.write_tokens(document.id, count, fingerprint)
        document.tokens = TokenInfo(count=count, fingerprint=fingerprint)
        logger.debug("Token count updated", document_id=document.id, count=count)

    def _finish(
        self,
        machine: RunStateMachine,
        state: RunState,
        start: float,
        path: str,
        document_id: Optional[str] = None,
        **fields: Any
    ) -> GenerationResult:
        machine.advance(state)
        status = _STATUS_FOR_STATE[state]
        embedding_type = EmbeddingType(machine.embedding_type)
        duration = time.perf_counter() - start

        result = GenerationResult(
            id=document_id or machine.document_id,
            status=status,
            type=embedding_type,
            **fields,
        )
        self.metrics.record_run(embedding_type.value, status.value, path, duration)
        logger.info(
            "Embedding generation finished",
            document_id=result.id,
            type=embedding_type.value,
            status=status.value,
            path=path,
            message=result.message,
            len=result.len,
            duration_ms=duration * 1000,
        )
        return result


async def generate_embeddings(
    request: Union[GenerateEmbeddingsRequest, Dict[str, Any]],
    document_store: DocumentStore,
    provider: EmbeddingProvider,
    config_store: ConfigStore,
    **kwargs: Any
) -> Dict[str, Any]:
    """Build a pipeline, run one request and return the result as a dict.

    ``kwargs`` are forwarded to ``EmbeddingPipeline``.
    """
    if not isinstance(request, GenerateEmbeddingsRequest):
        request = GenerateEmbeddingsRequest.model_validate(request)
    pipeline = EmbeddingPipeline(document_store, provider, config_store, **kwargs)
    result = await pipeline.run(request)
    return result.to_dict()
