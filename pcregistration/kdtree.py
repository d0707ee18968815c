"""Spatial indices for radius-bounded neighbour search."""

import numpy as np
from .utils import point_distances, radius_search


class Node:
    def __init__(self):
        self.point = None
        self.index = None
        self.left = None
        self.right = None
        self.axis = None
        self.indices = None
    def set_point(self, point, index):
        self.point = point
        self.index = index
    def set_left(self, left):
        self.left = left
    def set_right(self, right):
        self.right = right
    def set_axis(self, axis):
        self.axis = axis
    def set_indices(self, indices):
        self.indices = indices


def _nearest_first(indices, distances, max_neighbours):
    # Closest first, ties broken by lower index
    order = np.lexsort((indices, distances))
    return indices[order][:max_neighbours]


class KDTree:
    def __init__(self, leaf_size=32, dimension=3):
        self.root = None
        self.points = None
        self.leaf_size = max(1, int(leaf_size))
        self.dimension = dimension

    def build_optimized(self, points=None, depth=0, indices=None):
        # Initialize indices only at the top-level call
        if indices is None:
            pts = self.points if points is None else np.asarray(points, dtype=np.float64)
            if pts is None or pts.shape[0] == 0:
                self.points = pts
                self.root = None
                return None
            # Non-finite rows can never be within a radius; left in, they
            # would poison the splitting planes
            indices = np.flatnonzero(np.all(np.isfinite(pts), axis=1)).astype(np.int64)
            # Keep a reference to the canonical points array
            self.points = pts
            self.root = self.build_optimized(depth=depth, indices=indices)
            return self.root

        n_points = indices.shape[0]

        # No points
        if n_points == 0:
            return None

        # Leaf: store the indices to avoid creating millions of nodes
        if n_points <= self.leaf_size:
            leaf = Node()
            leaf.set_axis(depth % self.dimension)
            leaf.set_indices(indices)
            return leaf

        # Choose splitting axis
        axis = depth % self.dimension

        # Compute median position and in-place partition indices by the chosen axis
        median_index = n_points // 2
        order = np.argpartition(self.points[indices, axis], median_index)
        # Reorder this segment of indices in-place to avoid large copies
        indices[:] = indices[order]

        median_point_index = indices[median_index]

        node = Node()
        node.set_axis(axis)
        node.set_point(self.points[median_point_index], median_point_index)

        # Build subtrees using views (no copies) into the shared indices array
        left_view = indices[:median_index]
        right_view = indices[median_index+1:]

        node.set_left(self.build_optimized(depth=depth+1, indices=left_view))
        node.set_right(self.build_optimized(depth=depth+1, indices=right_view))
        return node

    def query(self, point, radius, max_neighbours):
        """
        Indices of indexed points within radius of point.

        Sorted by increasing distance (ties by index), at most max_neighbours.
        """
        if self.root is None:
            return np.empty(0, dtype=np.int64)
        point = np.asarray(point, dtype=np.float64)
        indices, distances = radius_search(point, self.root, self.points, radius)
        return _nearest_first(indices, distances, max_neighbours)

    def __len__(self):
        return 0 if self.points is None else self.points.shape[0]


class BruteForceIndex:
    """Linear scan over all points; same query contract as KDTree."""

    def __init__(self, points):
        self.points = np.asarray(points, dtype=np.float64)

    def query(self, point, radius, max_neighbours):
        if self.points.shape[0] == 0:
            return np.empty(0, dtype=np.int64)
        distances = point_distances(self.points, np.asarray(point, dtype=np.float64))
        indices = np.flatnonzero(distances <= radius)
        return _nearest_first(indices, distances[indices], max_neighbours)

    def __len__(self):
        return self.points.shape[0]


def build_index(points, kind="kdtree", leaf_size=32):
    """
    Build a spatial index over points.

    Args:
        points: (N, 3) array
        kind: 'kdtree' or 'brute'
        leaf_size: Leaf size of the KD-tree

    Returns:
        Object with a query(point, radius, max_neighbours) method
    """
    if kind == "kdtree":
        tree = KDTree(leaf_size=leaf_size, dimension=3)
        tree.build_optimized(points)
        return tree
    elif kind == "brute":
        return BruteForceIndex(points)
    else:
        raise ValueError(f"Unknown index kind: {kind}")
