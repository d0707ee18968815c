"""Tests for the spatial indices."""

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from hypothesis.extra.numpy import arrays

from pcregistration.kdtree import BruteForceIndex, KDTree, build_index

from conftest import make_grid


coordinates = st.floats(min_value=-10.0, max_value=10.0, allow_nan=False, allow_infinity=False)


@settings(max_examples=50, deadline=None)
@given(
    points=arrays(np.float64, st.tuples(st.integers(1, 200), st.just(3)), elements=coordinates),
    query=arrays(np.float64, (3,), elements=coordinates),
    radius=st.floats(min_value=0.1, max_value=15.0),
    max_neighbours=st.integers(min_value=1, max_value=30),
    leaf_size=st.integers(min_value=1, max_value=16),
)
def test_kdtree_matches_brute_force(points, query, radius, max_neighbours, leaf_size):
    tree = KDTree(leaf_size=leaf_size)
    tree.build_optimized(points)
    brute = BruteForceIndex(points)
    np.testing.assert_array_equal(tree.query(query, radius, max_neighbours),
                                  brute.query(query, radius, max_neighbours))


def test_query_returns_nearest_first(random_points):
    tree = build_index(random_points, kind="kdtree")
    query = np.array([5.0, 5.0, 5.0])
    indices = tree.query(query, 3.0, 1000)
    distances = np.linalg.norm(random_points[indices] - query, axis=1)
    assert len(indices) > 0
    assert np.all(np.diff(distances) >= 0)
    assert np.all(distances <= 3.0)
    # Nothing within the radius is missed
    all_distances = np.linalg.norm(random_points - query, axis=1)
    assert len(indices) == np.count_nonzero(all_distances <= 3.0)


def test_query_truncates_to_closest(random_points):
    tree = build_index(random_points, kind="kdtree")
    query = random_points[10]
    full = tree.query(query, 4.0, 1000)
    capped = tree.query(query, 4.0, 5)
    np.testing.assert_array_equal(capped, full[:5])
    assert capped[0] == 10


def test_ties_broken_by_index():
    points = np.array([[1.0, 0, 0], [-1.0, 0, 0], [0, 1.0, 0], [0, 0, 5.0]])
    for kind in ("kdtree", "brute"):
        index = build_index(points, kind=kind)
        np.testing.assert_array_equal(index.query([0, 0, 0], 1.0, 2), [0, 1])
        np.testing.assert_array_equal(index.query([0, 0, 0], 1.0, 10), [0, 1, 2])


def test_radius_is_inclusive():
    points = np.array([[0.0, 0, 0], [2.0, 0, 0]])
    tree = build_index(points)
    np.testing.assert_array_equal(tree.query([0, 0, 0], 2.0, 5), [0, 1])


def test_empty_index():
    empty = np.empty((0, 3))
    for kind in ("kdtree", "brute"):
        index = build_index(empty, kind=kind)
        assert index.query([0, 0, 0], 1.0, 5).shape == (0,)
        assert len(index) == 0


def test_no_neighbours_within_radius(grid_points):
    tree = build_index(grid_points)
    assert tree.query([100.0, 100.0, 100.0], 1.0, 5).shape == (0,)


def test_unknown_index_kind():
    with pytest.raises(ValueError):
        build_index(np.zeros((3, 3)), kind="octree")


def test_non_finite_rows_are_skipped():
    grid = make_grid(4)
    grid[:37, 0] = np.nan
    grid[40] = [np.inf, 0.0, 0.0]
    tree = KDTree(leaf_size=1)
    tree.build_optimized(grid)
    brute = BruteForceIndex(grid)

    for query in (grid[63], grid[50], [1.0, 1.0, 1.0]):
        expected = brute.query(query, 1.5, 10)
        np.testing.assert_array_equal(tree.query(query, 1.5, 10), expected)
    assert len(tree.query(grid[63], 1.5, 10)) == 7


def test_all_non_finite_cloud_has_no_neighbours():
    tree = build_index(np.full((5, 3), np.nan))
    assert tree.query([0.0, 0.0, 0.0], 10.0, 5).shape == (0,)
