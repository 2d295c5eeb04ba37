"""Token budget classification: direct vs. chunked generation."""

from enum import Enum
from typing import Optional

DEFAULT_MAX_TOKENS = 8000


class EmbeddingPath(str, Enum):
    DIRECT = "direct"
    CHUNKED = "chunked"


class TokenBudgetClassifier:
    """Decides whether content fits in a single provider request.

    ``default_max_tokens`` applies when the project's config leaves
    ``max_tokens`` unset.
    """

    def __init__(self, default_max_tokens: int = DEFAULT_MAX_TOKENS):
        self.default_max_tokens = default_max_tokens

    def effective_budget(self, max_tokens: Optional[int]) -> int:
        return max_tokens if max_tokens is not None else self.default_max_tokens

    def fits(self, token_count: Optional[int], max_tokens: Optional[int]) -> bool:
        """True when the content can go in one request.

        An unknown token count is treated as fitting.
        """
        if token_count is None:
            return True
        return token_count <= self.effective_budget(max_tokens)

    def classify(self, token_count: Optional[int], max_tokens: Optional[int]) -> EmbeddingPath:
        if self.fits(token_count, max_tokens):
            return EmbeddingPath.DIRECT
        return EmbeddingPath.CHUNKED
