"""
Vector similarity for embedding comparison.
"""

from typing import Sequence, Union

import numpy as np

from .errors import DimensionMismatch

VectorLike = Union[np.ndarray, Sequence[float]]


def _as_vector(vector: VectorLike) -> np.ndarray:
    return np.asarray(vector, dtype=np.float64).reshape(-1)


def cosine_similarity(vec_a: VectorLike, vec_b: VectorLike) -> float:
    """
    Cosine similarity between two vectors.

    Args:
        vec_a: First vector
        vec_b: Second vector

    Returns:
        Cosine of the angle between the vectors; 0.0 if either has zero magnitude

    Raises:
        DimensionMismatch: If the vectors differ in length
    """
    a = _as_vector(vec_a)
    b = _as_vector(vec_b)

    if a.shape[0] != b.shape[0]:
        raise DimensionMismatch(a.shape[0], b.shape[0])

    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


def l2_normalize(vector: VectorLike) -> np.ndarray:
    """Scale a vector to unit length. Zero vectors are returned unchanged."""
    arr = np.asarray(vector, dtype=np.float32).reshape(-1)
    norm = float(np.linalg.norm(arr))
    if norm == 0.0:
        return arr
    return arr / norm
