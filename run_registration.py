#!/usr/bin/env python3
"""
Command-line entry point for robust point cloud registration.

Loads a source and a target cloud, filters them, aligns the source onto
the target and reports the estimated rigid transformation.
"""

import argparse
import sys

import numpy as np

from pcregistration import (PointCloud, PointCloudRegistration, RegistrationParameters,
                            RigidTransform, SolverOptions)
from pcregistration.utils import time_function
from pcregistration.visualization import plot_convergence, show_alignment


@time_function
def load_cloud(path, filter_size):
    """Load a cloud, drop NaN points and voxel-filter it."""
    cloud = PointCloud.from_file(path)
    cloud, removed = cloud.remove_nan()
    print(f"  {path}: removed {removed} NaN points")
    if filter_size > 0:
        filtered = cloud.voxelize(filter_size)
        print(f"  {path}: voxel filter {filter_size} -> {len(filtered):,} of {len(cloud):,} points")
        return cloud, filtered
    return cloud, cloud


def load_previous_transform(path):
    matrix = np.load(path)
    print(f"Loaded previous transform from {path}:\n{matrix}")
    return RigidTransform.from_matrix(matrix)


def run_registration(args):
    print("\n" + "="*70)
    print("Robust Point Cloud Registration")
    print("="*70)

    print(f"\nLoading point clouds...")
    source_full, source = load_cloud(args.source, args.source_filter_size)
    target_full, target = load_cloud(args.target, args.target_filter_size)
    print(f"  Source points: {len(source):,}")
    print(f"  Target points: {len(target):,}")

    previous = load_previous_transform(args.previous) if args.previous else None

    solver_options = SolverOptions(
        max_iterations=args.max_solver_iterations,
        function_tolerance=args.function_tolerance,
        num_threads=args.n_jobs,
        reweight_during_solve=args.reweight,
        verbose=args.verbose,
    )
    parameters = RegistrationParameters(
        radius=args.radius,
        max_neighbours=args.max_neighbours,
        n_iter=args.n_iter,
        dof=args.dof,
        use_gaussian=args.use_gaussian,
        verbose=args.verbose,
        n_jobs=args.n_jobs,
        transform_tolerance=args.transform_tolerance,
        solver_options=solver_options,
    )

    if parameters.use_gaussian:
        print("\nUsing gaussian model")
    else:
        print(f"\nDegree of freedom of t-distribution: {parameters.dof}")
    print(f"Radius of the neighborhood search: {parameters.radius}")
    print(f"Dimension of neighborhood: {parameters.max_neighbours}")
    print(f"Outer iterations: {parameters.n_iter}")

    if args.visualize:
        print("\nShowing initial state (before alignment)...")
        show_alignment(source_full, target_full, window_name="Initial State")

    registration = PointCloudRegistration(source, target, parameters, index=args.index)
    registration.align()

    estimated = registration.transformation
    if previous is not None:
        estimated = estimated.compose(previous)

    print(f"\n{'='*70}")
    print("RESULTS")
    print("="*70)
    print(f"Iterations: {registration.current_iteration}")
    if registration.summaries:
        print(f"Final cost: {registration.summaries[-1].final_cost:.6e}")
    t = estimated.translation
    q = estimated.rotation
    print(f"Estimated trans: [{t[0]:f}\t {t[1]:f}\t {t[2]:f}]")
    print(f"Estimated rot: [{q[0]:f}\t {q[1]:f}\t {q[2]:f}\t {q[3]:f}]")
    print(f"\nTransformation matrix:")
    print(estimated.matrix())

    if args.output:
        source_full.transformed(registration.transformation).save(args.output)
        print(f"Aligned source cloud written to {args.output}")

    if args.save:
        registration.save_result(args.save)

    if args.plot:
        plot_convergence([s.final_cost for s in registration.summaries],
                         registration.correspondence_counts)

    if args.visualize:
        print("\nShowing final state (after alignment)...")
        show_alignment(source_full, target_full, registration.transformation,
                       window_name="Final State")

    return estimated


def build_parser():
    parser = argparse.ArgumentParser(
        description='Robust point cloud registration',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Student-t registration with default parameters
  python run_registration.py sparse.pcd dense.pcd

  # Gaussian (plain least squares) model, larger radius
  python run_registration.py sparse.pcd dense.pcd --use-gaussian --radius 5

  # Downsample both clouds and save the aligned source
  python run_registration.py sparse.pcd dense.pcd --source-filter-size 0.5 \\
      --target-filter-size 0.5 --output aligned.pcd
        """
    )
    parser.add_argument('source', type=str, help='Path to source (moving) point cloud')
    parser.add_argument('target', type=str, help='Path to target (fixed) point cloud')
    parser.add_argument('--radius', type=float, default=3.0,
                        help='Radius of the neighborhood search')
    parser.add_argument('--max-neighbours', type=int, default=10,
                        help='Maximum neighbours per source point')
    parser.add_argument('--n-iter', type=int, default=10,
                        help='Number of outer iterations')
    parser.add_argument('--dof', type=float, default=5.0,
                        help='Degrees of freedom of the t-distribution')
    parser.add_argument('--use-gaussian', action='store_true',
                        help='Use the gaussian model (infinite degrees of freedom)')
    parser.add_argument('--source-filter-size', type=float, default=0.0,
                        help='Voxel size for the source cloud, 0 disables filtering')
    parser.add_argument('--target-filter-size', type=float, default=0.0,
                        help='Voxel size for the target cloud, 0 disables filtering')
    parser.add_argument('--previous', type=str, default=None,
                        help='4x4 .npy transform composed after the estimate')
    parser.add_argument('--n-jobs', type=int, default=-1,
                        help='Parallel workers (-1 = all cores)')
    parser.add_argument('--transform-tolerance', type=float, default=None,
                        help='Stop early when the increment falls below this')
    parser.add_argument('--max-solver-iterations', type=int, default=None,
                        help='Iteration limit of each inner solve')
    parser.add_argument('--function-tolerance', type=float, default=1e-15,
                        help='Relative cost decrease that ends an inner solve')
    parser.add_argument('--reweight', action='store_true',
                        help='Recompute robust weights at every solver evaluation')
    parser.add_argument('--index', type=str, default='kdtree', choices=['kdtree', 'brute'],
                        help='Spatial index over the target cloud')
    parser.add_argument('--output', type=str, default=None,
                        help='Write the aligned source cloud to this file')
    parser.add_argument('--save', type=str, default=None,
                        help='Pickle the registration results to this file')
    parser.add_argument('--visualize', action='store_true',
                        help='Show the clouds before and after alignment')
    parser.add_argument('--plot', action='store_true',
                        help='Plot the cost of each outer iteration')
    parser.add_argument('--verbose', action='store_true',
                        help='Print solver reports')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    try:
        run_registration(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
