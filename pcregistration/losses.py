"""Robust weighting of correspondences for outlier handling."""

import math
from functools import partial

import numpy as np


def student_t_weights(squared_residuals, dof=5.0):
    """
    Compute Student-t weights for robust estimation.

    This is the expectation step of EM under a 3-D Student-t noise model:
    weights decrease monotonically with the squared residual, so far
    correspondences are suppressed without being discarded.

    Args:
        squared_residuals: Array of squared residual norms r^T r
        dof: Degrees of freedom of the t-distribution (finite, > 0)

    Returns:
        Array of weights, (dof + 3) / (dof + r^T r)
    """
    squared_residuals = np.asarray(squared_residuals, dtype=np.float64)
    return (dof + 3.0) / (dof + squared_residuals)


def gaussian_weights(squared_residuals):
    """Uniform weights: plain least squares, no robustness."""
    return np.ones_like(np.asarray(squared_residuals, dtype=np.float64))


def get_weight_function(dof):
    """
    Get the weight function for a noise model.

    Args:
        dof: Degrees of freedom; math.inf selects the Gaussian model

    Returns:
        Callable mapping squared residuals to weights
    """
    dof = float(dof)
    if math.isnan(dof) or dof <= 0:
        raise ValueError(f"dof must be positive or infinite, got {dof}")
    if math.isinf(dof):
        return gaussian_weights
    return partial(student_t_weights, dof=dof)
