"""Data association between source and target points."""

import numpy as np
from joblib import Parallel, delayed
from scipy.sparse import csr_matrix


class Association:
    """
    Sparse one-to-many mapping from source indices to target indices.

    Row i of the CSR matrix holds the target neighbours of source point i,
    nearest first.
    """

    def __init__(self, matrix):
        self.matrix = matrix

    @classmethod
    def from_neighbour_lists(cls, neighbour_lists, num_targets):
        counts = np.array([len(n) for n in neighbour_lists], dtype=np.int64)
        indptr = np.zeros(len(neighbour_lists) + 1, dtype=np.int64)
        np.cumsum(counts, out=indptr[1:])
        if counts.sum() > 0:
            indices = np.concatenate(neighbour_lists).astype(np.int64)
        else:
            indices = np.empty(0, dtype=np.int64)
        data = np.ones(indices.shape[0], dtype=np.int8)
        matrix = csr_matrix((data, indices, indptr),
                            shape=(len(neighbour_lists), num_targets))
        return cls(matrix)

    @property
    def num_sources(self):
        return self.matrix.shape[0]

    @property
    def num_correspondences(self):
        return int(self.matrix.indptr[-1])

    @property
    def num_matched_sources(self):
        return int(np.count_nonzero(np.diff(self.matrix.indptr)))

    def neighbours(self, i):
        """Target indices associated with source point i."""
        start, end = self.matrix.indptr[i], self.matrix.indptr[i + 1]
        return self.matrix.indices[start:end]

    def pairs(self):
        """
        Flatten the association into aligned index arrays.

        Returns:
            Tuple of (source_indices, target_indices)
        """
        counts = np.diff(self.matrix.indptr)
        source_indices = np.repeat(np.arange(self.num_sources, dtype=np.int64), counts)
        return source_indices, self.matrix.indices.astype(np.int64)

    def __len__(self):
        return self.num_correspondences


def _search_chunk(points, index, radius, max_neighbours):
    return [index.query(p, radius, max_neighbours) for p in points]


def build_association(source_points, index, num_targets, radius, max_neighbours,
                      n_jobs=1, chunk_size=512):
    """
    Associate every source point with the target points within radius.

    Args:
        source_points: (N, 3) array of the current aligned source cloud
        index: Spatial index over the target cloud
        num_targets: Number of target points
        radius: Search radius
        max_neighbours: Maximum neighbours kept per source point
        n_jobs: Number of parallel workers
        chunk_size: Source points per worker task

    Returns:
        Association
    """
    source_points = np.asarray(source_points, dtype=np.float64)
    n_points = source_points.shape[0]
    chunks = [source_points[i:i + chunk_size] for i in range(0, n_points, chunk_size)]

    if n_jobs == 1 or len(chunks) <= 1:
        results = [_search_chunk(chunk, index, radius, max_neighbours) for chunk in chunks]
    else:
        # Workers only read the index and the chunk, no locking needed
        results = Parallel(n_jobs=n_jobs, backend='loky')(
            delayed(_search_chunk)(chunk, index, radius, max_neighbours)
            for chunk in chunks
        )

    neighbour_lists = [neighbours for chunk_result in results for neighbours in chunk_result]
    return Association.from_neighbour_lists(neighbour_lists, num_targets)
