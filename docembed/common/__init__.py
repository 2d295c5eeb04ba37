"""Common utilities shared across the pipeline.

Includes:
- ``config``: pydantic-settings configuration from ``DOCEMBED_*`` variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers.

Import pattern:
- from docembed.common.config import PipelineSettings
- from docembed.common.logging import configure_logging
"""
