"""Visualization utilities for registration results."""

import matplotlib.pyplot as plt
import numpy as np
import open3d as o3d


def plot_convergence(costs, correspondence_counts=None, save_path='registration_convergence.png',
                     show=True):
    """
    Plot the final solver cost of each outer iteration.

    Args:
        costs: List of final costs, one per outer iteration
        correspondence_counts: Optional list of correspondence counts per iteration
        save_path: Path to save the plot
        show: Open an interactive window after saving
    """
    fig, ax = plt.subplots(figsize=(12, 7))

    ax.plot(costs, marker='o', linewidth=2, markersize=4,
            color='#2E86AB', label='Final cost')
    ax.set_xlabel('Outer iteration', fontsize=12)
    ax.set_ylabel('Cost', fontsize=12)
    if len(costs) > 0 and np.min(costs) > 0:
        ax.set_yscale('log')

    if correspondence_counts is not None:
        ax2 = ax.twinx()
        ax2.plot(correspondence_counts, linestyle='--', color='#E07A5F',
                 label='Correspondences')
        ax2.set_ylabel('Correspondences', fontsize=12)
        ax2.legend(loc='upper center')

    title = 'Registration Convergence'
    if len(costs) > 0:
        title += f"\nInitial: {costs[0]:.4e} → Final: {costs[-1]:.4e}"
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.grid(True, alpha=0.3)
    ax.legend(loc='best')

    plt.tight_layout()
    plt.savefig(save_path, dpi=150)
    print(f"Convergence plot saved to '{save_path}'")
    if show:
        plt.show()
    plt.close(fig)


def show_alignment(source, target, transformation=None, window_name="Registration"):
    """
    Render source (red) and target (blue), optionally moving the source first.

    Args:
        source: PointCloud to display
        target: PointCloud to display
        transformation: Optional RigidTransform applied to the source
        window_name: Window title
    """
    source_points = source.points
    if transformation is not None:
        source_points = transformation.apply(source_points)

    source_pcd = source.to_o3d(points=source_points)
    target_pcd = target.to_o3d()

    # If no colors, use default coloring: red for source, blue for target
    if source.colors is None:
        source_pcd.paint_uniform_color([1, 0, 0])
    if target.colors is None:
        target_pcd.paint_uniform_color([0, 0, 1])

    o3d.visualization.draw_geometries(
        [source_pcd, target_pcd],
        window_name=window_name,
        width=1024,
        height=768
    )
