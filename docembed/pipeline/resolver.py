"""Resolution of a project's embedding settings for one embedding type."""

from dataclasses import dataclass
from typing import Optional, Union

import structlog

from ..errors import ConfigurationMissingError, DocumentNotFoundError
from ..models import EmbeddingConfig, EmbeddingType
from ..stores.base import ConfigStore

logger = structlog.get_logger("pipeline.resolver")


@dataclass(frozen=True)
class Disabled:
    """Signal returned instead of a config when the type is switched off."""
    embedding_type: EmbeddingType

    @property
    def message(self) -> str:
        return f"Embeddings generation disabled for type {self.embedding_type.value}"


class ConfigurationResolver:
    """Loads per-type embedding settings from the project config store.

    Checks run in a fixed order: unknown project, missing block for the type,
    disabled type, missing environment. Only the disabled case is a business
    outcome; the others raise.
    """

    def __init__(self, config_store: ConfigStore):
        self.config_store = config_store

    async def resolve(
        self,
        project_id: str,
        embedding_type: EmbeddingType,
        environment: Optional[str] = None,
        model: Optional[str] = None
    ) -> Union[EmbeddingConfig, Disabled]:
        """Resolve the effective config, applying per-run overrides.

        Raises
        - ``DocumentNotFoundError`` when the project or its config block is missing
        - ``ConfigurationMissingError`` when no environment is configured
        """
        project_config = await self.config_store.fetch_config(project_id)
        if project_config is None:
            raise DocumentNotFoundError("Project not found", [project_id])

        config = project_config.for_type(embedding_type)
        if config is None:
            raise DocumentNotFoundError(
                f"Embeddings configuration not found for type {embedding_type.value}",
                [project_id],
            )

        if not config.enabled:
            logger.info(
                "Embeddings generation disabled",
                project_id=project_id,
                type=embedding_type.value,
            )
            return Disabled(embedding_type)

        overrides = {}
        if environment:
            overrides["environment"] = environment
        if model:
            overrides["model"] = model
        if overrides:
            config = config.model_copy(update=overrides)

        if not config.environment:
            raise ConfigurationMissingError(
                "No environment found in project configuration. "
                "Set environment in project configuration to generate embeddings."
            )

        return config
