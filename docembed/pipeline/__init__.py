"""Embedding generation pipeline.

The modules in this package make up one generation run:

- ``resolver``: per-type project settings, or a ``Disabled`` signal
- ``budget``: direct vs. chunked path selection
- ``direct`` / ``image``: single-request generation
- ``parts``: bounded concurrent generation over a document's parts
- ``aggregation``: weighted combination of part vectors
- ``persistence``: fingerprints and atomic embedding writes
- ``state``: run lifecycle
- ``generator``: ``EmbeddingPipeline`` wiring all of the above

Import convenience:
- from docembed.pipeline.generator import EmbeddingPipeline, generate_embeddings
"""
