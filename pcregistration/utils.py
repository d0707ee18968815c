"""General utility functions."""

import time
from functools import wraps
import numpy as np


def time_function(func):
    """
    Decorator to time function execution.
    For recursive functions, only times the top-level call.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        if not hasattr(wrapper, '_in_call'):
            wrapper._in_call = False

        if not wrapper._in_call:
            wrapper._in_call = True
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                elapsed = time.time() - start_time
                print(f"{func.__name__} took {elapsed:.6f} seconds")
                return result
            finally:
                wrapper._in_call = False
        else:
            return func(*args, **kwargs)

    return wrapper


def point_distances(points, query_point):
    """Euclidean distances from each row of points to query_point."""
    return np.sqrt(np.sum((points - query_point) ** 2, axis=1))


def radius_search(query_point, root, points_array, radius):
    """
    Iterative radius search in a KD-tree.

    Args:
        query_point: Point to search around
        root: Root node of the KD-tree
        points_array: Numpy array of the indexed points
        radius: Search radius (inclusive)

    Returns:
        Tuple of (indices, distances) of every point within radius, unordered
    """
    found_indices = []
    found_distances = []
    stack = [root]

    while stack:
        node = stack.pop()
        if node is None:
            continue

        # Leaf node: check all points in the leaf
        if node.indices is not None:
            leaf_points = points_array[node.indices]
            dists = point_distances(leaf_points, query_point)
            mask = dists <= radius
            if np.any(mask):
                found_indices.append(node.indices[mask])
                found_distances.append(dists[mask])
            continue

        # Internal node: check node point
        dist = point_distances(points_array[node.index][np.newaxis], query_point)[0]
        if dist <= radius:
            found_indices.append(np.array([node.index], dtype=np.int64))
            found_distances.append(np.array([dist]))

        # Visit the far side only if the ball crosses the splitting plane
        axis = node.axis
        diff = query_point[axis] - node.point[axis]
        if diff < 0:
            near_node, far_node = node.left, node.right
        else:
            near_node, far_node = node.right, node.left

        stack.append(near_node)
        if abs(diff) <= radius:
            stack.append(far_node)

    if not found_indices:
        return np.empty(0, dtype=np.int64), np.empty(0)
    return np.concatenate(found_indices), np.concatenate(found_distances)
