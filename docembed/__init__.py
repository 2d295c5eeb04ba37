"""Document embedding generation.

Subpackages:
- ``docembed.common``: configuration, logging and metrics.
- ``docembed.stores``: collaborator interfaces and their implementations.
- ``docembed.resilience``: retry and circuit breaker helpers.
- ``docembed.pipeline``: the generation pipeline itself.

Modules:
- ``docembed.models``: documents, configuration and result types.
- ``docembed.errors``: exception hierarchy.
"""

__version__ = "0.1.0"
