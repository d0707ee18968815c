"""Tests for the transform estimator and its least-squares problem."""

import math

import numpy as np
import pytest

from pcregistration.config import RegistrationParameters
from pcregistration.correspondences import Association
from pcregistration.estimator import RegistrationProblem, TransformEstimator
from pcregistration.losses import get_weight_function
from pcregistration.optimizer import SolverOptions
from pcregistration.transforms import RigidTransform, angle_axis_to_quaternion


def one_to_one(n):
    return Association.from_neighbour_lists([np.array([i]) for i in range(n)], n)


def numerical_jacobian(fun, x, eps=1e-6):
    columns = []
    for k in range(x.shape[0]):
        step = np.zeros_like(x)
        step[k] = eps
        columns.append((fun(x + step) - fun(x - step)) / (2 * eps))
    return np.stack(columns, axis=1)


@pytest.mark.parametrize("dof", [5.0, math.inf])
def test_analytic_jacobian_matches_finite_differences(random_points, dof):
    rng = np.random.default_rng(7)
    source = random_points[:50]
    target = source + rng.normal(scale=0.5, size=source.shape)
    base = angle_axis_to_quaternion([0.2, -0.1, 0.05])
    problem = RegistrationProblem(source, target, get_weight_function(dof), base_rotation=base)

    for x in (np.zeros(6), np.array([0.3, -0.2, 0.4, 1.0, -2.0, 0.5])):
        np.testing.assert_allclose(problem.jacobian(x),
                                   numerical_jacobian(problem.residuals, x),
                                   atol=1e-5)


def test_weights_are_fixed_unless_reweighting(random_points):
    source = random_points[:20]
    target = source + 0.5
    weight_fn = get_weight_function(5.0)
    x = np.array([0.0, 0.0, 0.0, 0.5, 0.5, 0.5])

    fixed = RegistrationProblem(source, target, weight_fn)
    reweighted = RegistrationProblem(source, target, weight_fn, reweight=True)

    # At x the raw residuals vanish
    assert fixed.cost(x) == pytest.approx(0.0, abs=1e-20)
    np.testing.assert_allclose(fixed.weights(), np.full(20, 8.0 / 5.75))
    np.testing.assert_allclose(reweighted.weights(x), np.full(20, 8.0 / 5.0))
    np.testing.assert_allclose(reweighted.residuals(np.zeros(6)), fixed.residuals(np.zeros(6)))


def test_chunked_evaluation_matches_single_block(random_points, monkeypatch):
    import pcregistration.estimator as estimator_module

    monkeypatch.setattr(estimator_module, "PARALLEL_EVALUATION_THRESHOLD", 10)
    source = random_points
    target = source + 0.3
    weight_fn = get_weight_function(5.0)
    x = np.array([0.01, 0.02, -0.03, 0.1, 0.2, 0.3])

    single = RegistrationProblem(source, target, weight_fn, num_threads=1)
    chunked = RegistrationProblem(source, target, weight_fn, num_threads=4)
    assert len(chunked._chunks()) == 4
    np.testing.assert_allclose(chunked.residuals(x), single.residuals(x))
    np.testing.assert_allclose(chunked.jacobian(x), single.jacobian(x))


@pytest.mark.parametrize("dof", [5.0, math.inf])
def test_recovers_known_transform(random_points, dof):
    truth = RigidTransform(angle_axis_to_quaternion([0.05, -0.1, 0.2]), [0.5, -0.2, 0.1])
    source = random_points
    target = truth.apply(source)
    estimator = TransformEstimator(RegistrationParameters(dof=dof))

    increment, summary = estimator.estimate(source, target, one_to_one(len(source)))

    assert increment.is_close(truth, atol=1e-6)
    assert summary.final_cost < 1e-12
    assert summary.num_residuals == 3 * len(source)
    assert summary.linear_solver == "dense_direct"


def test_large_problem_uses_iterative_solver(random_points):
    truth = RigidTransform(translation=[0.1, 0.0, -0.1])
    options = SolverOptions(dense_threshold=100)
    estimator = TransformEstimator(RegistrationParameters(solver_options=options))

    increment, summary = estimator.estimate(random_points, truth.apply(random_points),
                                            one_to_one(len(random_points)))

    assert summary.linear_solver == "sparse_iterative"
    assert increment.is_close(truth, atol=1e-5)


def test_no_correspondences_returns_identity(random_points):
    estimator = TransformEstimator(RegistrationParameters())
    empty = Association.from_neighbour_lists([np.array([], dtype=np.int64)] * 10, 300)

    increment, summary = estimator.estimate(random_points[:10], random_points, empty)

    assert increment.is_close(RigidTransform.identity(), atol=0)
    assert summary.iterations == 0
    assert not summary.converged
    assert "No correspondences" in summary.termination


def test_zero_residual_problem_is_not_moved():
    points = np.array([[0.0, 0, 0], [1.0, 0, 0], [0, 1.0, 0]])
    estimator = TransformEstimator(RegistrationParameters(use_gaussian=True))

    increment, summary = estimator.estimate(points, points, one_to_one(3))

    assert increment.is_close(RigidTransform.identity(), atol=1e-12)
    assert summary.final_cost == 0.0


def test_summary_report_lists_diagnostics(random_points):
    estimator = TransformEstimator(RegistrationParameters())
    _, summary = estimator.estimate(random_points, random_points + 0.1,
                                    one_to_one(len(random_points)))
    report = summary.full_report()
    assert "Iterations" in report
    assert "Final cost" in report
    assert summary.iterations >= 1
    assert summary.final_cost <= summary.initial_cost


def test_default_base_rotation_is_not_shared(random_points):
    import pcregistration.estimator as estimator_module

    weight_fn = get_weight_function(5.0)
    first = RegistrationProblem(random_points[:5], random_points[:5], weight_fn)
    first.base_rotation[0] = 0.5
    second = RegistrationProblem(random_points[:5], random_points[:5], weight_fn)

    np.testing.assert_array_equal(second.base_rotation, [1.0, 0.0, 0.0, 0.0])
    np.testing.assert_array_equal(estimator_module.IDENTITY_QUATERNION, [1.0, 0.0, 0.0, 0.0])
