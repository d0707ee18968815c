"""Nonlinear least-squares solver wrapper used by the transform estimator."""

import os
import time

import numpy as np
from scipy.optimize import least_squares


# Messages reported by scipy for each termination status
_TERMINATION_REASONS = {
    -1: "Improper input parameters",
    0: "Maximum number of function evaluations reached",
    1: "Gradient tolerance reached",
    2: "Function tolerance reached",
    3: "Parameter tolerance reached",
    4: "Function and parameter tolerance reached",
}


class SolverOptions:
    """
    Settings for the least-squares solve of one outer iteration.

    Args:
        max_iterations: Maximum solver iterations, None for no limit
        function_tolerance: Stop when the relative cost decrease is below this
        gradient_tolerance: Stop when the scaled gradient norm is below this
        parameter_tolerance: Stop when the relative step size is below this
        dense_threshold: Residual count above which LSMR replaces the
            dense direct trust-region solve
        num_threads: Workers for residual/Jacobian evaluation (-1 = all cores)
        reweight_during_solve: Recompute robust weights at every evaluation
        verbose: Print solver progress
    """

    def __init__(self, max_iterations=None, function_tolerance=1e-15,
                 gradient_tolerance=1e-10, parameter_tolerance=1e-10,
                 dense_threshold=30000, num_threads=-1,
                 reweight_during_solve=False, verbose=False):
        if max_iterations is not None and int(max_iterations) <= 0:
            raise ValueError(f"max_iterations must be positive or None, got {max_iterations}")
        for name, value in (("function_tolerance", function_tolerance),
                            ("gradient_tolerance", gradient_tolerance),
                            ("parameter_tolerance", parameter_tolerance)):
            if not value > 0:
                raise ValueError(f"{name} must be positive, got {value}")
        if int(dense_threshold) <= 0:
            raise ValueError(f"dense_threshold must be positive, got {dense_threshold}")
        if int(num_threads) == 0:
            raise ValueError("num_threads must be non-zero")

        self.max_iterations = None if max_iterations is None else int(max_iterations)
        self.function_tolerance = float(function_tolerance)
        self.gradient_tolerance = float(gradient_tolerance)
        self.parameter_tolerance = float(parameter_tolerance)
        self.dense_threshold = int(dense_threshold)
        self.num_threads = int(num_threads)
        self.reweight_during_solve = bool(reweight_during_solve)
        self.verbose = bool(verbose)

    @property
    def effective_threads(self):
        if self.num_threads < 0:
            return os.cpu_count() or 1
        return self.num_threads


class SolverSummary:
    """Diagnostics of a single least-squares solve."""

    def __init__(self, iterations=0, initial_cost=0.0, final_cost=0.0,
                 converged=True, termination="", linear_solver="none",
                 num_residuals=0, num_parameters=6, elapsed=0.0):
        self.iterations = iterations
        self.initial_cost = initial_cost
        self.final_cost = final_cost
        self.converged = converged
        self.termination = termination
        self.linear_solver = linear_solver
        self.num_residuals = num_residuals
        self.num_parameters = num_parameters
        self.elapsed = elapsed

    def brief_report(self):
        return (f"iterations={self.iterations}, cost {self.initial_cost:.6e} -> "
                f"{self.final_cost:.6e}, {'converged' if self.converged else 'NOT converged'}")

    def full_report(self):
        lines = [
            "Solver Summary",
            f"{'─'*40}",
            f"Residuals:          {self.num_residuals}",
            f"Parameters:         {self.num_parameters}",
            f"Linear solver:      {self.linear_solver}",
            f"Iterations:         {self.iterations}",
            f"Initial cost:       {self.initial_cost:.6e}",
            f"Final cost:         {self.final_cost:.6e}",
            f"Change:             {self.initial_cost - self.final_cost:.6e}",
            f"Time:               {self.elapsed:.4f}s",
            f"Termination:        {self.termination}",
            f"Converged:          {self.converged}",
        ]
        return "\n".join(lines)

    def __repr__(self):
        return f"SolverSummary({self.brief_report()})"


class LeastSquaresOptimizer:
    """
    Trust-region least-squares solver over residual and Jacobian callbacks.

    Small problems use a dense direct solve of the trust-region subproblem,
    large ones switch to LSMR.
    """

    def __init__(self, options=None):
        self.options = options if options is not None else SolverOptions()

    def solve(self, fun, jac, x0, num_residuals):
        """
        Minimize 0.5 * ||fun(x)||^2 starting at x0.

        Args:
            fun: Callable returning the residual vector at x
            jac: Callable returning the Jacobian at x
            x0: Initial parameter vector
            num_residuals: Length of the residual vector

        Returns:
            Tuple of (best parameter vector, SolverSummary)
        """
        options = self.options
        x0 = np.asarray(x0, dtype=np.float64)
        tr_solver = "exact" if num_residuals <= options.dense_threshold else "lsmr"
        max_nfev = None
        if options.max_iterations is not None:
            max_nfev = options.max_iterations

        start = time.time()
        initial_cost = 0.5 * float(np.sum(np.square(fun(x0))))
        result = least_squares(
            fun,
            x0,
            jac=jac,
            method="trf",
            tr_solver=tr_solver,
            ftol=options.function_tolerance,
            xtol=options.parameter_tolerance,
            gtol=options.gradient_tolerance,
            max_nfev=max_nfev,
            verbose=2 if options.verbose else 0,
        )
        elapsed = time.time() - start

        summary = SolverSummary(
            iterations=int(result.njev if result.njev is not None else result.nfev),
            initial_cost=initial_cost,
            final_cost=float(result.cost),
            converged=bool(result.success) and result.status > 0,
            termination=_TERMINATION_REASONS.get(result.status, result.message),
            linear_solver="dense_direct" if tr_solver == "exact" else "sparse_iterative",
            num_residuals=num_residuals,
            num_parameters=x0.shape[0],
            elapsed=elapsed,
        )
        return result.x, summary
