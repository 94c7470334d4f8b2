"""Distance functions for similarity search.

All metrics are expressed as distances: smaller means more similar, so every
provider ranks candidates in ascending order.
"""

import math
from typing import Sequence, TypeVar

from .errors import DimensionMismatchError, InvalidVectorError
from .interfaces import DistanceMetric

T = TypeVar("T")


def validate_vector(vector: Sequence[float], dimension: int = 0) -> None:
    """Reject empty or non-finite vectors and dimension mismatches.

    A dimension of 0 skips the dimension check.
    """
    if not vector:
        raise InvalidVectorError("vector cannot be empty")
    if any(not math.isfinite(x) for x in vector):
        raise InvalidVectorError("vector contains NaN or infinite values")
    if dimension and len(vector) != dimension:
        raise DimensionMismatchError(
            f"Invalid vector dimension: expected {dimension}, got {len(vector)}"
        )


def l2_distance(a: Sequence[float], b: Sequence[float]) -> float:
    return math.sqrt(sum((x - y) * (x - y) for x, y in zip(a, b)))


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """1 - cosine similarity; 1.0 when either vector has zero magnitude."""
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if norm_a == 0 or norm_b == 0:
        return 1.0
    return 1.0 - dot / (norm_a * norm_b)


def inner_product_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Negative dot product, so larger products rank first."""
    return -sum(x * y for x, y in zip(a, b))


_DISTANCES = {
    DistanceMetric.L2: l2_distance,
    DistanceMetric.COSINE: cosine_distance,
    DistanceMetric.INNER_PRODUCT: inner_product_distance,
}


def distance(metric: DistanceMetric, a: Sequence[float], b: Sequence[float]) -> float:
    return _DISTANCES[metric](a, b)


def rank(scored: list[tuple[float, T]], k: int) -> list[tuple[float, T]]:
    """Sort (distance, item) pairs ascending and keep the first k.

    The sort is stable, so equal distances keep their input order.
    ``k <= 0`` keeps everything.
    """
    ranked = sorted(scored, key=lambda pair: pair[0])
    if k > 0:
        return ranked[:k]
    return ranked
