"""Robust estimation of the incremental rigid transformation."""

import numpy as np
from joblib import Parallel, delayed

from .losses import get_weight_function
from .optimizer import LeastSquaresOptimizer, SolverSummary
from .transforms import (RigidTransform, angle_axis_to_quaternion, quaternion_plus,
                         quaternion_to_matrix, right_jacobian_so3)


IDENTITY_QUATERNION = np.array([1.0, 0.0, 0.0, 0.0])

# Below this many correspondences evaluation stays on the calling thread
PARALLEL_EVALUATION_THRESHOLD = 20000


class RegistrationProblem:
    """
    Weighted point-to-point least-squares problem over one association.

    Parameters are a 6-vector (omega, t). omega is a tangent-space increment
    of the rotation about the base quaternion, mapped through
    quaternion_plus; t is the translation.
    """

    def __init__(self, source_points, target_points, weight_fn,
                 base_rotation=None, reweight=False, num_threads=1):
        if base_rotation is None:
            base_rotation = IDENTITY_QUATERNION
        self.base_rotation = np.array(base_rotation, dtype=np.float64)
        # Source points rotated by the base rotation, so residuals only
        # depend on the tangent increment
        self.rotated_source = source_points @ quaternion_to_matrix(self.base_rotation).T
        self.target_points = target_points
        self.weight_fn = weight_fn
        self.reweight = reweight
        self.num_threads = num_threads
        self.sqrt_weights = np.sqrt(self._weights(self.raw_residuals(np.zeros(6))))

    @property
    def num_correspondences(self):
        return self.target_points.shape[0]

    @property
    def num_residuals(self):
        return 3 * self.num_correspondences

    def _weights(self, raw_residuals):
        return self.weight_fn(np.sum(raw_residuals ** 2, axis=1))

    def raw_residuals(self, x, start=0, stop=None):
        """Unweighted residuals R(omega) v + t - q for a slice of correspondences."""
        rotation = quaternion_to_matrix(angle_axis_to_quaternion(x[:3]))
        return (self.rotated_source[start:stop] @ rotation.T + x[3:]
                - self.target_points[start:stop])

    def _residual_block(self, x, start, stop):
        raw = self.raw_residuals(x, start, stop)
        if self.reweight:
            sqrt_weights = np.sqrt(self._weights(raw))
        else:
            sqrt_weights = self.sqrt_weights[start:stop]
        return raw * sqrt_weights[:, np.newaxis]

    def _jacobian_block(self, x, start, stop):
        omega = x[:3]
        rotation = quaternion_to_matrix(angle_axis_to_quaternion(omega))
        jr = right_jacobian_so3(omega)
        v = self.rotated_source[start:stop]
        n = v.shape[0]

        # d(Exp(omega) v)/d(omega) = -Exp(omega) [v]x Jr(omega)
        # cross(v, Jr[:, c]) is column c of [v]x Jr
        skew_jr = np.cross(v[:, np.newaxis, :], jr.T[np.newaxis, :, :]).transpose(0, 2, 1)
        jac = np.empty((n, 3, 6))
        jac[:, :, :3] = -np.einsum('ij,kjc->kic', rotation, skew_jr)
        jac[:, :, 3:] = np.eye(3)

        if self.reweight:
            sqrt_weights = np.sqrt(self._weights(self.raw_residuals(x, start, stop)))
        else:
            sqrt_weights = self.sqrt_weights[start:stop]
        jac *= sqrt_weights[:, np.newaxis, np.newaxis]
        return jac

    def _chunks(self):
        n = self.num_correspondences
        if self.num_threads <= 1 or n < PARALLEL_EVALUATION_THRESHOLD:
            return [(0, n)]
        size = int(np.ceil(n / self.num_threads))
        return [(start, min(start + size, n)) for start in range(0, n, size)]

    def _evaluate(self, block_fn, x):
        chunks = self._chunks()
        if len(chunks) == 1:
            return [block_fn(x, *chunks[0])]
        # The parameter vector is read-only while the workers run
        return Parallel(n_jobs=len(chunks), prefer='threads')(
            delayed(block_fn)(x, start, stop) for start, stop in chunks
        )

    def residuals(self, x):
        return np.concatenate(self._evaluate(self._residual_block, x), axis=0).ravel()

    def jacobian(self, x):
        blocks = self._evaluate(self._jacobian_block, x)
        return np.concatenate(blocks, axis=0).reshape(self.num_residuals, 6)

    def weights(self, x=None):
        """Robust weights of all correspondences at x (default: the start point)."""
        if x is None:
            return self.sqrt_weights ** 2
        return self._weights(self.raw_residuals(x))

    def cost(self, x):
        """Objective sum of w * ||r||^2 at x."""
        return float(np.sum(self.residuals(x) ** 2))

    def to_transform(self, x):
        return RigidTransform(quaternion_plus(self.base_rotation, x[:3]), x[3:])


class TransformEstimator:
    """
    Estimates the incremental rigid transform aligning the current source
    cloud to the target under the configured noise model.
    """

    def __init__(self, parameters, optimizer=None):
        self.parameters = parameters
        self.weight_fn = get_weight_function(parameters.dof)
        self.optimizer = optimizer if optimizer is not None else \
            LeastSquaresOptimizer(parameters.solver_options)

    def build_problem(self, source_points, target_points, association):
        """Gather the correspondences of an association into a RegistrationProblem."""
        source_indices, target_indices = association.pairs()
        options = self.parameters.solver_options
        return RegistrationProblem(
            np.asarray(source_points, dtype=np.float64)[source_indices],
            np.asarray(target_points, dtype=np.float64)[target_indices],
            self.weight_fn,
            reweight=options.reweight_during_solve,
            num_threads=options.effective_threads,
        )

    def estimate(self, source_points, target_points, association):
        """
        Solve for the incremental transform.

        Args:
            source_points: (N, 3) array, current aligned source cloud
            target_points: (M, 3) array, target cloud
            association: Association between them

        Returns:
            Tuple of (RigidTransform increment, SolverSummary)
        """
        if association.num_correspondences == 0:
            summary = SolverSummary(
                converged=False,
                termination="No correspondences found, returning identity",
            )
            return RigidTransform.identity(), summary

        problem = self.build_problem(source_points, target_points, association)
        x, summary = self.optimizer.solve(
            problem.residuals, problem.jacobian, np.zeros(6), problem.num_residuals
        )
        return problem.to_transform(x), summary
