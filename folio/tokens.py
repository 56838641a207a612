"""Token estimation with tiktoken, degrading to a length heuristic."""

from __future__ import annotations

import logging
import math
from typing import Dict, Optional, Protocol

import tiktoken

from . import config

logger = logging.getLogger(__name__)

# Rough prose ratio used when no tokenizer is available
CHARS_PER_TOKEN = 4


class TokenEstimator(Protocol):
    def estimate(self, text: Optional[str]) -> int:
        ...


class ApproximateEstimator:
    """ceil(len(text) / 4) - no tokenizer needed."""

    def estimate(self, text: Optional[str]) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / CHARS_PER_TOKEN)


# Encodings are expensive to build; load once per model and share
_encodings: Dict[str, tiktoken.Encoding] = {}


def _load_encoding(model: str) -> tiktoken.Encoding:
    encoding = _encodings.get(model)
    if encoding is None:
        encoding = tiktoken.encoding_for_model(model)
        _encodings[model] = encoding
    return encoding


class TiktokenEstimator:
    """Exact token counts for `model`, falling back to ApproximateEstimator.

    The encoding is loaded lazily on the first non-empty estimate. If it
    cannot be loaded (unknown model, tokenizer files unreachable) the
    estimator logs once and approximates from then on.
    """

    def __init__(self, model: Optional[str] = None):
        self.model = model or config.tokenizer_model()
        self._encoding: Optional[tiktoken.Encoding] = None
        self._unavailable = False
        self._fallback = ApproximateEstimator()

    @property
    def exact(self) -> bool:
        """Whether estimates come from the real tokenizer."""
        return self._get_encoding() is not None

    def _get_encoding(self) -> Optional[tiktoken.Encoding]:
        if self._encoding is None and not self._unavailable:
            try:
                self._encoding = _load_encoding(self.model)
            except Exception as e:
                self._unavailable = True
                logger.warning("Tokenizer for %s unavailable, approximating: %s", self.model, e)
        return self._encoding

    def estimate(self, text: Optional[str]) -> int:
        if not text:
            return 0

        encoding = self._get_encoding()
        if encoding is None:
            return self._fallback.estimate(text)

        try:
            return len(encoding.encode(text, disallowed_special=()))
        except Exception as e:
            logger.warning("Token encoding failed, approximating: %s", e)
            return self._fallback.estimate(text)


_default_estimator: TiktokenEstimator | None = None


def get_estimator() -> TiktokenEstimator:
    """Process-wide default estimator (created on first use)."""
    global _default_estimator
    if _default_estimator is None:
        _default_estimator = TiktokenEstimator()
    return _default_estimator


def estimate_tokens(text: Optional[str]) -> int:
    return get_estimator().estimate(text)
