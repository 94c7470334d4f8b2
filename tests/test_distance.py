"""Tests for distance metrics and ranking."""

import math

import pytest

from portastore.distance import (
    cosine_distance,
    distance,
    inner_product_distance,
    l2_distance,
    rank,
    validate_vector,
)
from portastore.errors import DimensionMismatchError, InvalidVectorError
from portastore.interfaces import DistanceMetric


class TestMetrics:
    """Tests for the three metrics."""

    def test_l2(self):
        assert l2_distance([0, 0], [3, 4]) == 5.0

    def test_cosine(self):
        assert cosine_distance([1, 0], [2, 0]) == pytest.approx(0.0)
        assert cosine_distance([1, 0], [0, 1]) == pytest.approx(1.0)
        assert cosine_distance([1, 0], [-1, 0]) == pytest.approx(2.0)

    def test_cosine_zero_vector(self):
        assert cosine_distance([0, 0], [1, 0]) == 1.0

    def test_inner_product_ranks_larger_products_first(self):
        assert inner_product_distance([1, 1], [2, 2]) < inner_product_distance([1, 1], [1, 1])

    def test_dispatch(self):
        assert distance(DistanceMetric.L2, [0, 0], [0, 2]) == 2.0
        assert distance(DistanceMetric.INNER_PRODUCT, [1, 2], [3, 4]) == -11.0


class TestRank:
    """Tests for rank()."""

    def test_ascending(self):
        ranked = rank([(3.0, "c"), (1.0, "a"), (2.0, "b")], 0)
        assert [item for _, item in ranked] == ["a", "b", "c"]

    def test_top_k(self):
        assert len(rank([(3.0, "c"), (1.0, "a"), (2.0, "b")], 2)) == 2

    def test_stable_for_ties(self):
        ranked = rank([(1.0, "first"), (0.5, "x"), (1.0, "second")], 0)
        assert [item for _, item in ranked] == ["x", "first", "second"]

    def test_negative_k_keeps_all(self):
        assert len(rank([(1.0, "a"), (2.0, "b")], -1)) == 2


class TestValidateVector:
    """Tests for validate_vector()."""

    def test_empty(self):
        with pytest.raises(InvalidVectorError):
            validate_vector([])

    def test_non_finite(self):
        with pytest.raises(InvalidVectorError):
            validate_vector([1.0, math.nan])
        with pytest.raises(InvalidVectorError):
            validate_vector([math.inf])

    def test_dimension(self):
        validate_vector([1.0, 2.0], 2)
        validate_vector([1.0, 2.0, 3.0], 0)
        with pytest.raises(DimensionMismatchError):
            validate_vector([1.0, 2.0], 3)
