"""Configuration management for the embedding pipeline.

This module centralizes environment-driven configuration for the pipeline and
its provider adapters. It builds on ``pydantic_settings.BaseSettings`` so
configuration can be provided via environment variables, ``.env`` files, or
defaults.

Highlights
- Strongly-typed settings with sensible defaults
- One place to discover the ``DOCEMBED_*`` environment variables
- Small purpose-specific subclasses to keep concerns clear

Usage
- Inject settings where the pipeline is built:
  ``settings = PipelineSettings()``
- Or select dynamically: ``settings = get_settings("provider")``

Per-project embedding configuration (enabled flag, environment, token budget)
is *not* read from here; it comes from the project config store at run time.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration shared by every pipeline component.

    Notes
    - Add new shared settings here so downstream settings inherit them.
    - Every field maps to ``DOCEMBED_<FIELD_NAME>`` (case-insensitive).
    """

    model_config = SettingsConfigDict(
        env_prefix="DOCEMBED_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")


class PipelineSettings(BaseConfig):
    """Settings for the generation pipeline itself.

    ``max_concurrency`` caps in-flight provider calls for a single document;
    ``default_max_tokens`` applies when a project's config leaves
    ``max_tokens`` unset.
    """

    max_concurrency: int = Field(default=8, ge=1)
    default_max_tokens: int = Field(default=8000, ge=1)
    skip_unchanged: bool = Field(default=True)
    image_max_hw: int = Field(default=1024, ge=1)


class ProviderSettings(BaseConfig):
    """Settings for the HTTP embedding provider adapter.

    Retry and circuit breaker knobs live together so the adapter can be built
    from a single object.
    """

    provider_url: str = Field(default="http://localhost:9006")
    provider_timeout: float = Field(default=60.0)

    retry_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0)
    retry_max_delay: float = Field(default=8.0)

    breaker_failure_threshold: int = Field(default=5, ge=1)
    breaker_recovery_timeout: float = Field(default=30.0)


def get_settings(name: str) -> BaseConfig:
    """Get settings by name.

    Parameters
    - name: ``pipeline`` or ``provider``

    Returns
    - A concrete ``BaseConfig`` subclass pre-wired to read the right env vars.
    """
    settings_map = {
        "pipeline": PipelineSettings,
        "provider": ProviderSettings,
    }

    # Unknown names get the shared base rather than an error.
    settings_class = settings_map.get(name, BaseConfig)
    return settings_class()
