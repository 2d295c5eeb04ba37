"""Weighted combination of part vectors into one document vector.

The reduction is a per-dimension weighted sum. Weights come from a
``WeightingStrategy`` so the default scorer (random scores passed through a
softmax) can be replaced by a learned attention scorer without touching the
reduction.
"""

import random
from typing import Callable, List, Optional, Sequence

import numpy as np
import structlog

from ..common.metrics import measure_time
from ..errors import (
    AggregationEmptyError,
    AggregationError,
    DimensionMismatchError,
    InvalidWeightsError,
    ModelMismatchError,
)

logger = structlog.get_logger("pipeline.aggregation")

WEIGHT_SUM_TOLERANCE = 1e-9


def softmax(scores: Sequence[float]) -> np.ndarray:
    """Exponentiate then divide by the sum.

    Scores are shifted by their maximum first; the result is the same and
    large scores do not overflow.
    """
    values = np.asarray(scores, dtype=np.float64)
    exp = np.exp(values - values.max())
    return exp / exp.sum()


class WeightingStrategy:
    """Base class for weighting strategies.

    ``weights`` receives the part vectors in document order and returns one
    non-negative weight per vector, summing to 1.
    """

    name = "base"

    def weights(self, vectors: np.ndarray) -> np.ndarray:
        raise NotImplementedError


class SoftmaxWeighting(WeightingStrategy):
    """Scores each vector with ``scorer`` and normalizes with softmax."""

    name = "softmax"

    def __init__(self, scorer: Callable[[np.ndarray], Sequence[float]]):
        self.scorer = scorer

    def weights(self, vectors: np.ndarray) -> np.ndarray:
        return softmax(self.scorer(vectors))


class RandomAttentionWeighting(SoftmaxWeighting):
    """Placeholder attention: uniform random scores in [0, 1), softmaxed.

    This is not learned attention. Pass ``seed`` (or an ``rng``) for
    reproducible weights.
    """

    name = "random_attention"

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random(seed)
        super().__init__(self._random_scores)

    def _random_scores(self, vectors: np.ndarray) -> List[float]:
        return [self.rng.random() for _ in range(len(vectors))]


class UniformWeighting(WeightingStrategy):
    """Equal weights; the aggregate is the plain mean."""

    name = "uniform"

    def weights(self, vectors: np.ndarray) -> np.ndarray:
        count = len(vectors)
        return np.full(count, 1.0 / count)


def validate_weights(weights: np.ndarray, count: int) -> np.ndarray:
    """Check that ``weights`` is a probability distribution over ``count`` items."""
    weights = np.asarray(weights, dtype=np.float64)
    if weights.shape != (count,):
        raise InvalidWeightsError(f"Expected {count} weights, got shape {weights.shape}")
    if not np.all(np.isfinite(weights)):
        raise InvalidWeightsError("Weights must be finite")
    if np.any(weights < 0):
        raise InvalidWeightsError("Weights must be non-negative")
    total = float(weights.sum())
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        raise InvalidWeightsError(f"Weights must sum to 1, got {total!r}")
    return weights


class VectorAggregator:
    """Reduces part vectors to one document vector.

    Inputs must be non-empty, share a dimensionality and, when model names are
    given, come from one model. These are checked here rather than left to the
    arithmetic.
    """

    def __init__(self, strategy: Optional[WeightingStrategy] = None):
        self.strategy = strategy or RandomAttentionWeighting()

    @measure_time("aggregate_vectors")
    def aggregate(
        self,
        vectors: Sequence[Sequence[float]],
        models: Optional[Sequence[str]] = None
    ) -> List[float]:
        """Return the weighted sum of ``vectors``.

        ``models`` names the model behind each vector; when given, every
        vector must come from the same model.

        Raises
        - ``AggregationEmptyError`` when ``vectors`` is empty
        - ``ModelMismatchError`` when ``models`` differ
        - ``DimensionMismatchError`` when lengths differ
        - ``InvalidWeightsError`` when the strategy misbehaves
        """
        if len(vectors) == 0:
            raise AggregationEmptyError("No part vectors to aggregate")

        if models is not None:
            if len(models) != len(vectors):
                raise AggregationError(f"Expected {len(vectors)} model names, got {len(models)}")
            if len(set(models)) > 1:
                raise ModelMismatchError(models)

        dimensions = [len(v) for v in vectors]
        if len(set(dimensions)) != 1:
            raise DimensionMismatchError(dimensions)
        if dimensions[0] == 0:
            raise AggregationEmptyError("Part vectors are empty")

        if len(vectors) == 1:
            # weight 1: the part vector is the document vector
            return [float(x) for x in vectors[0]]

        matrix = np.asarray(vectors, dtype=np.float64)
        weights = validate_weights(self.strategy.weights(matrix), len(vectors))
        combined = weights @ matrix

        logger.info(
            "Part vectors aggregated",
            count=len(vectors),
            dimensions=dimensions[0],
            strategy=self.strategy.name,
        )
        return combined.tolist()
