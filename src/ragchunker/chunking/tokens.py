"""Character-ratio token estimation shared by every sizing decision."""
from __future__ import annotations

import math

DEFAULT_CHARS_PER_TOKEN = 4.0


class TokenEstimator:
    """Approximate token counts from text length.

    The estimate is ``ceil(len(text) / chars_per_token)``. It is not meant to
    match a real tokenizer; it only has to be identical everywhere so that
    chunks produced by different strategies are comparable.
    """

    def __init__(self, chars_per_token: float = DEFAULT_CHARS_PER_TOKEN) -> None:
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self.chars_per_token = float(chars_per_token)

    def estimate(self, text: str) -> int:
        if not text:
            return 0
        return self.estimate_length(len(text))

    def estimate_length(self, length: int) -> int:
        if length <= 0:
            return 0
        return math.ceil(length / self.chars_per_token)

    def max_chars(self, tokens: int) -> int:
        """Largest character count whose estimate stays within ``tokens``."""

        if tokens <= 0:
            return 0
        return int(tokens * self.chars_per_token)

    def __repr__(self) -> str:
        return f"TokenEstimator(chars_per_token={self.chars_per_token})"


DEFAULT_ESTIMATOR = TokenEstimator()


def estimate_tokens(text: str) -> int:
    """Estimate tokens with the shared default estimator."""

    return DEFAULT_ESTIMATOR.estimate(text)
