"""
Tidings Hash Embedder
---------------------
Deterministic text → vector projection used by hybrid search.

Each distinct token is hashed with SHA-256; the digest is read as eight
big-endian int32 words and folded into a fixed-dimension accumulator
(``vector[i] += fmod(word[i % 8], 1000) / 1000``), which is then
L2-normalized. Identical text always yields the identical vector, so cached
vectors never need invalidating for unchanged records.

Any object with ``embed(text) -> np.ndarray`` and a ``dimensions`` attribute
can stand in for ``HashEmbedder``.
"""

import hashlib
import re
from typing import List, Sequence

import numpy as np

DEFAULT_DIMENSIONS = 64

# Service names that should contribute a stable token however they are written
DOMAIN_HINTS = {
    "gmail": ("gmail", "이메일", "메일"),
    "github": ("github",),
    "google": ("google",),
    "steam": ("steam",),
    "openai": ("openai",),
}

_SPLIT_PATTERN = re.compile(r"[\s\W_]+", re.UNICODE)


def embedding_tokens(text: str) -> List[str]:
    """Lowercase, split on whitespace/punctuation, drop 1-char tokens, dedupe in order."""
    lower = text.lower()
    hints = [hint for hint, needles in DOMAIN_HINTS.items() if any(n in lower for n in needles)]
    tokens = [t for t in _SPLIT_PATTERN.split(lower) if len(t) >= 2]
    return list(dict.fromkeys(hints + tokens))


class HashEmbedder:
    """SHA-256 hash projection embedder."""

    def __init__(self, dimensions: int = DEFAULT_DIMENSIONS):
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        self.dimensions = dimensions
        self._fold = np.arange(dimensions) % 8

    def embed(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimensions, dtype=np.float64)
        if not text or not text.strip():
            return vector.astype(np.float32)

        for token in embedding_tokens(text):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            words = np.frombuffer(digest, dtype=">i4").astype(np.int64)
            # fmod keeps the sign of the word (truncating remainder)
            vector += np.fmod(words, 1000)[self._fold] / 1000.0

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.astype(np.float32)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity clamped to [-1, 1].

    Returns 0.0 when either vector is empty, the dimensions differ, or either
    has zero magnitude.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.size == 0 or vb.size == 0 or va.shape != vb.shape:
        return 0.0
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    score = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, score))
