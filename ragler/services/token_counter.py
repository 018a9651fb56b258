"""Exact and heuristic token counting.

``TokenCounter.count`` uses tiktoken for the configured model.  The
heuristic :func:`estimate_tokens` is used when no encoding can be loaded
(offline hosts) and by payload-size guards that only need a ceiling.
"""

from __future__ import annotations

import math

import structlog
import tiktoken

from ragler.utils.text_normalizer import has_cyrillic

logger = structlog.get_logger(logger_name=__name__)

_CHARS_PER_TOKEN = 4.0
# Cyrillic tokenizes roughly 1.6x denser than Latin text.
_CHARS_PER_TOKEN_CYRILLIC = 2.5
_FALLBACK_ENCODING = "cl100k_base"


def estimate_tokens(text: str) -> int:
    """Return a fast upper-bound style estimate of the token count."""
    if not text:
        return 0
    ratio = _CHARS_PER_TOKEN_CYRILLIC if has_cyrillic(text) else _CHARS_PER_TOKEN
    return math.ceil(len(text) / ratio)


class TokenCounter:
    """Counts tokens with the tiktoken encoding for *model*.

    Parameters
    ----------
    model:
        OpenAI model name used to pick the encoding.  Unknown models fall
        back to ``cl100k_base``.
    """

    def __init__(self, model: str = "gpt-4o") -> None:
        self._model = model
        self._encoding = self._load_encoding(model)

    @property
    def is_exact(self) -> bool:
        return self._encoding is not None

    def count(self, text: str) -> int:
        """Return the token count of *text* (exact when an encoding is loaded)."""
        if not text:
            return 0
        if self._encoding is not None:
            return len(self._encoding.encode(text, disallowed_special=()))
        return estimate_tokens(text)

    def fits(self, text: str, limit: int) -> bool:
        return self.count(text) <= limit

    @staticmethod
    def _load_encoding(model: str) -> tiktoken.Encoding | None:
        """Load the encoding, falling back to cl100k_base, then to the heuristic."""
        try:
            name = tiktoken.encoding_name_for_model(model)
        except KeyError:
            name = _FALLBACK_ENCODING
        try:
            return tiktoken.get_encoding(name)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "tiktoken_unavailable",
                model=model,
                error=str(exc),
                msg="Falling back to heuristic token estimation.",
            )
            return None
