"""Iterative robust registration of a source cloud onto a target cloud."""

import os
import pickle
import time

import numpy as np

from .config import RegistrationParameters
from .correspondences import build_association
from .estimator import TransformEstimator
from .kdtree import build_index
from .point_cloud import PointCloud
from .transforms import RigidTransform


class PointCloudRegistration:
    """
    Robust ICP-style registration with Student-t weighting.

    Each outer iteration re-associates the working source cloud with the
    target, solves for an incremental transform, applies it to the working
    cloud and left-composes it onto the accumulated transform.
    """

    def __init__(self, source, target, parameters=None, index="kdtree", optimizer=None):
        """
        Initialize the registration.

        Args:
            source: PointCloud or (N, 3) array to be moved; never modified
            target: PointCloud or (M, 3) array kept fixed
            parameters: RegistrationParameters (defaults if None)
            index: 'kdtree', 'brute', or a prebuilt index over the target
            optimizer: Optional solver with the LeastSquaresOptimizer interface
        """
        if not isinstance(source, PointCloud):
            source = PointCloud(source)
        if not isinstance(target, PointCloud):
            target = PointCloud(target)

        self.parameters = parameters if parameters is not None else RegistrationParameters()
        self.source_cloud = source.copy()
        self.target_cloud = target
        self.estimator = TransformEstimator(self.parameters, optimizer=optimizer)

        # The target never moves, so its index is built once
        if isinstance(index, str):
            self.index = build_index(self.target_cloud.points, kind=index)
        else:
            self.index = index

        self.transformation = RigidTransform.identity()
        self.current_iteration = 0
        self.last_increment = None
        self.summaries = []
        self.intermediate_transforms = [self.transformation]
        self.correspondence_counts = []

    @property
    def aligned_cloud(self):
        return self.source_cloud

    def step(self):
        """Run one outer iteration."""
        params = self.parameters
        iter_start = time.time()

        association = build_association(
            self.source_cloud.points, self.index, len(self.target_cloud),
            params.radius, params.max_neighbours, n_jobs=params.n_jobs,
        )
        increment, summary = self.estimator.estimate(
            self.source_cloud.points, self.target_cloud.points, association
        )

        self.transformation = increment.compose(self.transformation)
        self.source_cloud.transform(increment)
        self.current_iteration += 1
        self.last_increment = increment

        self.summaries.append(summary)
        self.intermediate_transforms.append(self.transformation)
        self.correspondence_counts.append(association.num_correspondences)

        if params.verbose:
            iter_time = time.time() - iter_start
            print(f"Iter {self.current_iteration - 1:3d}: "
                  f"correspondences={association.num_correspondences} "
                  f"({association.num_matched_sources}/{len(self.source_cloud)} points) | "
                  f"cost={summary.final_cost:.6e} | total={iter_time:.3f}s")
            if association.num_correspondences == 0:
                print("  Warning: no correspondences within radius, increment is identity")
            print(summary.full_report())
        return increment

    def has_converged(self):
        params = self.parameters
        if self.current_iteration >= params.n_iter:
            if params.verbose:
                print(f"Terminating because maximum number of iterations has been reached "
                      f"({self.current_iteration} iter)")
            return True

        if params.transform_tolerance is not None and self.last_increment is not None:
            angle = self.last_increment.rotation_angle()
            shift = np.linalg.norm(self.last_increment.translation)
            if angle < params.transform_tolerance and shift < params.transform_tolerance:
                if params.verbose:
                    print(f"Terminating because the last increment is below tolerance "
                          f"(angle={angle:.3e}, translation={shift:.3e}, "
                          f"{self.current_iteration} iter)")
                return True
        return False

    def align(self):
        """Iterate until the configured stopping criterion is met."""
        while not self.has_converged():
            self.step()
        return self.transformation

    def save_result(self, filepath):
        """Save registration results to file."""
        result = {
            'transformation': self.transformation.matrix(),
            'rotation': self.transformation.rotation,
            'translation': self.transformation.translation,
            'iterations': self.current_iteration,
            'costs': [s.final_cost for s in self.summaries],
            'correspondence_counts': list(self.correspondence_counts),
            'intermediate_transforms': [t.matrix() for t in self.intermediate_transforms],
            'aligned_points': self.source_cloud.points,
            'target_points': self.target_cloud.points,
        }

        with open(filepath, 'wb') as f:
            pickle.dump(result, f)
        print(f"Results saved to {filepath}")

    @staticmethod
    def load_result(filepath):
        """Load previously saved registration results."""
        if not os.path.exists(filepath):
            print(f"File {filepath} not found")
            return None

        with open(filepath, 'rb') as f:
            result = pickle.load(f)
        print(f"Results loaded from {filepath}")
        return result
