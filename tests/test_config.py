"""Tests for configuration validation."""

import math

import pytest

from pcregistration.config import RegistrationParameters
from pcregistration.optimizer import SolverOptions


def test_defaults():
    params = RegistrationParameters()
    assert params.radius == 3.0
    assert params.max_neighbours == 10
    assert params.n_iter == 10
    assert params.dof == 5.0
    assert not params.use_gaussian
    assert params.transform_tolerance is None
    assert isinstance(params.solver_options, SolverOptions)


def test_use_gaussian_forces_infinite_dof():
    params = RegistrationParameters(dof=5.0, use_gaussian=True)
    assert math.isinf(params.dof)
    assert params.use_gaussian
    assert RegistrationParameters(dof=math.inf).use_gaussian


def test_zero_iterations_is_valid():
    assert RegistrationParameters(n_iter=0).n_iter == 0


@pytest.mark.parametrize("kwargs", [
    {"radius": 0},
    {"radius": -1.0},
    {"radius": math.inf},
    {"max_neighbours": 0},
    {"max_neighbours": 2.5},
    {"max_neighbours": True},
    {"n_iter": -1},
    {"n_iter": 1.5},
    {"dof": 0},
    {"dof": -3.0},
    {"dof": math.nan},
    {"n_jobs": 0},
    {"transform_tolerance": 0.0},
])
def test_invalid_parameters_are_rejected(kwargs):
    with pytest.raises(ValueError):
        RegistrationParameters(**kwargs)


@pytest.mark.parametrize("kwargs", [
    {"max_iterations": 0},
    {"function_tolerance": 0},
    {"gradient_tolerance": -1e-3},
    {"dense_threshold": 0},
    {"num_threads": 0},
])
def test_invalid_solver_options_are_rejected(kwargs):
    with pytest.raises(ValueError):
        SolverOptions(**kwargs)


def test_solver_options_thread_count():
    assert SolverOptions(num_threads=3).effective_threads == 3
    assert SolverOptions(num_threads=-1).effective_threads >= 1


def test_verbose_propagates_to_default_solver_options():
    assert RegistrationParameters(verbose=True).solver_options.verbose
