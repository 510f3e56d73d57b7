"""Vector helpers for the search index."""

import math
from collections.abc import Sequence

import numpy as np

EMBEDDING_DIMENSIONS = 384


def serialize_vector(vector: np.ndarray | list[float]) -> bytes:
    """
    Serialize a vector to bytes for storage in SQLite.

    Args:
        vector: Numpy array or list of floats

    Returns:
        Bytes representation of vector as float32
    """
    if isinstance(vector, list):
        vector = np.array(vector, dtype=np.float32)
    elif vector.dtype != np.float32:
        vector = vector.astype(np.float32)
    return vector.tobytes()


def deserialize_vector(blob: bytes) -> list[float]:
    """Inverse of :func:`serialize_vector`."""
    return np.frombuffer(blob, dtype=np.float32).tolist()


def coerce_embedding(
    value: Sequence[float] | np.ndarray | None,
    dimensions: int = EMBEDDING_DIMENSIONS,
) -> list[float] | None:
    """
    Return ``value`` as a list of floats, or None if it is not a usable vector.

    A vector is usable when it has exactly ``dimensions`` finite components.
    Anything else (wrong length, nested arrays, NaN, non-numeric entries) is
    treated as absent.
    """
    if value is None:
        return None
    try:
        array = np.asarray(value, dtype=np.float32)
    except (TypeError, ValueError):
        return None
    if array.ndim != 1 or array.shape[0] != dimensions:
        return None
    values = array.tolist()
    if not all(math.isfinite(v) for v in values):
        return None
    return values
