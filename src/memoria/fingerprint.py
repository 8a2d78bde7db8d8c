"""
Memoria Fingerprints -- cheap deterministic text vectors for similarity search.

Provides:
- embed(text, dimensions) -> float32 vector in (-1, 1)
- encode_vector / decode_vector for the little-endian float32 BLOB format
- cosine_similarity with zero-norm and length-mismatch guards

The fingerprint is a trigonometric hash of character codes and positions, a
placeholder for a learned embedding model. Similar strings tend to land near
each other, but similarity scores are best-effort hints and carry no semantic
guarantee.
"""

import hashlib
import logging
import math
from collections import OrderedDict
from typing import Sequence, Union

import numpy as np

__all__ = [
    "embed",
    "encode_vector",
    "decode_vector",
    "cosine_similarity",
    "as_vector",
    "reset_fingerprint_cache",
]

logger = logging.getLogger("memoria.fingerprint")

DEFAULT_DIMENSIONS = 128

# Little-endian float32, independent of host byte order
_BLOB_DTYPE = np.dtype("<f4")

# Small LRU so repeated queries (same user message across partitions) are free
_FINGERPRINT_CACHE: OrderedDict = OrderedDict()
_FINGERPRINT_CACHE_MAX = 256

VectorLike = Union[np.ndarray, Sequence[float]]


def reset_fingerprint_cache() -> None:
    """Drop cached fingerprints (test isolation)."""
    _FINGERPRINT_CACHE.clear()


def _compute(text: str, dimensions: int) -> np.ndarray:
    normalized = text.lower().strip()
    if not normalized:
        return np.zeros(dimensions, dtype=np.float32)

    codes = np.fromiter((ord(ch) for ch in normalized), dtype=np.float64, count=len(normalized))
    positions = np.arange(len(normalized), dtype=np.float64)
    seeds = np.arange(1, dimensions + 1, dtype=np.float64)

    # value[i] = sum_j sin(code_j * (i+1) * 0.01) * cos(j * 0.01)
    waves = np.sin(np.outer(seeds, codes) * 0.01)
    values = waves @ np.cos(positions * 0.01)
    return np.tanh(values).astype(np.float32)


def embed(text: str, dimensions: int = DEFAULT_DIMENSIONS) -> np.ndarray:
    """Fingerprint text into a fixed-length float32 vector.

    Never raises. On any internal failure a zero vector of the requested
    length is returned.
    """
    dimensions = max(1, int(dimensions))
    try:
        cache_key = (hashlib.md5(text.encode("utf-8", "surrogatepass")).hexdigest(), dimensions)
        cached = _FINGERPRINT_CACHE.get(cache_key)
        if cached is not None:
            _FINGERPRINT_CACHE.move_to_end(cache_key)
            return cached.copy()

        vector = _compute(text, dimensions)
        _FINGERPRINT_CACHE[cache_key] = vector
        while len(_FINGERPRINT_CACHE) > _FINGERPRINT_CACHE_MAX:
            _FINGERPRINT_CACHE.popitem(last=False)
        logger.debug("Generated %d-d fingerprint for %d chars", dimensions, len(text))
        return vector.copy()
    except Exception as e:
        logger.error("Fingerprint generation failed, using zero vector: %s", e)
        return np.zeros(dimensions, dtype=np.float32)


def as_vector(values: VectorLike) -> np.ndarray:
    """Coerce a list/array of numbers to a 1-d float32 array."""
    vector = np.asarray(values, dtype=np.float32)
    if vector.ndim != 1:
        raise ValueError(f"vector must be one-dimensional, got shape {vector.shape}")
    return vector


def encode_vector(values: VectorLike) -> bytes:
    """Serialize a vector as contiguous little-endian float32 (4 bytes per element)."""
    return as_vector(values).astype(_BLOB_DTYPE, copy=False).tobytes()


def decode_vector(blob: bytes) -> np.ndarray:
    """Deserialize a BLOB written by encode_vector."""
    if len(blob) % _BLOB_DTYPE.itemsize:
        raise ValueError(f"vector blob length {len(blob)} is not a multiple of 4")
    return np.frombuffer(blob, dtype=_BLOB_DTYPE).astype(np.float32)


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """Cosine similarity in [-1, 1].

    Returns 0.0 when the vectors differ in length, either has zero norm, or
    the result is not finite.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape or va.size == 0:
        return 0.0
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    sim = float(np.dot(va, vb)) / (norm_a * norm_b)
    if not math.isfinite(sim):
        return 0.0
    return max(-1.0, min(1.0, sim))
