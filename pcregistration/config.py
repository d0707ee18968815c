"""Registration parameters."""

import math

from .optimizer import SolverOptions


class RegistrationParameters:
    """
    Configuration of a registration run. Validated once, never mutated by
    the registration.

    Args:
        radius: Neighbour search radius around each source point
        max_neighbours: Maximum target neighbours kept per source point
        n_iter: Number of outer iterations
        dof: Degrees of freedom of the Student-t noise model, inf for Gaussian
        verbose: Print per-iteration diagnostics
        use_gaussian: Shortcut for dof=inf
        n_jobs: Workers for the neighbour search (-1 = all cores)
        transform_tolerance: Optional early stop when the incremental
            rotation angle and translation norm both fall below this value
        solver_options: SolverOptions for the inner least-squares solve
    """

    def __init__(self, radius=3.0, max_neighbours=10, n_iter=10, dof=5.0,
                 verbose=False, use_gaussian=False, n_jobs=-1,
                 transform_tolerance=None, solver_options=None):
        radius = float(radius)
        if not (radius > 0 and math.isfinite(radius)):
            raise ValueError(f"radius must be a positive finite number, got {radius}")

        if isinstance(max_neighbours, bool) or int(max_neighbours) != max_neighbours \
                or max_neighbours <= 0:
            raise ValueError(f"max_neighbours must be a positive integer, got {max_neighbours}")

        if isinstance(n_iter, bool) or int(n_iter) != n_iter or n_iter < 0:
            raise ValueError(f"n_iter must be a non-negative integer, got {n_iter}")

        dof = math.inf if use_gaussian else float(dof)
        if math.isnan(dof) or dof <= 0:
            raise ValueError(f"dof must be positive or infinite, got {dof}")

        if int(n_jobs) == 0:
            raise ValueError("n_jobs must be non-zero")

        if transform_tolerance is not None:
            transform_tolerance = float(transform_tolerance)
            if not transform_tolerance > 0:
                raise ValueError(
                    f"transform_tolerance must be positive or None, got {transform_tolerance}")

        if solver_options is None:
            solver_options = SolverOptions(verbose=verbose)

        self.radius = radius
        self.max_neighbours = int(max_neighbours)
        self.n_iter = int(n_iter)
        self.dof = dof
        self.verbose = bool(verbose)
        self.n_jobs = int(n_jobs)
        self.transform_tolerance = transform_tolerance
        self.solver_options = solver_options

    @property
    def use_gaussian(self):
        return math.isinf(self.dof)

    def __repr__(self):
        return (f"RegistrationParameters(radius={self.radius}, max_neighbours={self.max_neighbours}, "
                f"n_iter={self.n_iter}, dof={self.dof}, verbose={self.verbose}, "
                f"n_jobs={self.n_jobs}, transform_tolerance={self.transform_tolerance})")
