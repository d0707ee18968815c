"""Point cloud data management and preprocessing."""

import os

import numpy as np
import open3d as o3d

from .transforms import apply_transformation


class PointCloud:
    """Ordered (N, 3) set of points; row order addresses correspondences."""

    def __init__(self, points, colors=None):
        """
        Initialize a point cloud.

        Args:
            points: Array-like of shape (N, 3), or an Open3D PointCloud
            colors: Optional (N, 3) array of RGB colors
        """
        if isinstance(points, o3d.geometry.PointCloud):
            if colors is None and points.has_colors():
                colors = np.asarray(points.colors)
            points = np.asarray(points.points)

        points = np.array(points, dtype=np.float64)
        if points.size == 0:
            points = points.reshape(0, 3)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"Points must have shape (N, 3), got {points.shape}")

        if colors is not None:
            colors = np.array(colors, dtype=np.float64)
            if colors.shape != points.shape:
                raise ValueError(f"Colors shape {colors.shape} does not match points {points.shape}")

        self.points = points
        self.colors = colors

    @classmethod
    def from_file(cls, filepath):
        """Load point cloud from file (any format Open3D reads)."""
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"Point cloud file not found: {filepath}")
        pcd = o3d.io.read_point_cloud(filepath)
        if not pcd.has_points():
            raise ValueError(f"Could not read any points from {filepath}")
        return cls(pcd)

    def save(self, filepath):
        """Write the cloud to a file, format chosen by extension."""
        if not o3d.io.write_point_cloud(filepath, self.to_o3d()):
            raise ValueError(f"Could not write point cloud to {filepath}")

    def copy(self):
        colors = None if self.colors is None else self.colors.copy()
        return PointCloud(self.points.copy(), colors)

    def remove_nan(self):
        """
        Drop points with any non-finite coordinate.

        Returns:
            Tuple of (new PointCloud, number of removed points)
        """
        mask = np.all(np.isfinite(self.points), axis=1)
        colors = None if self.colors is None else self.colors[mask]
        return PointCloud(self.points[mask], colors), int(np.count_nonzero(~mask))

    def voxelize(self, voxel_size):
        """
        Downsample point cloud using voxel grid.

        Args:
            voxel_size: Size of voxels for downsampling, 0 keeps the cloud as is

        Returns:
            Downsampled PointCloud (voxel centroids)
        """
        if voxel_size < 0:
            raise ValueError(f"voxel_size must be non-negative, got {voxel_size}")
        if voxel_size == 0 or self.points.shape[0] == 0:
            return self.copy()

        min_bound = np.min(self.points, axis=0)
        voxel_indices = np.floor((self.points - min_bound) / voxel_size).astype(np.int64)

        voxel_dict = {}
        for i, point in enumerate(self.points):
            key = tuple(voxel_indices[i])
            if key not in voxel_dict:
                voxel_dict[key] = {'sum': point.copy(), 'count': 1}
            else:
                voxel_dict[key]['sum'] += point
                voxel_dict[key]['count'] += 1

        return PointCloud(np.array([v['sum'] / v['count'] for v in voxel_dict.values()]))

    def transform(self, rigid_transform):
        """Re-transform the points in place."""
        self.points[:] = apply_transformation(self.points, rigid_transform.matrix())
        return self

    def transformed(self, rigid_transform):
        """Return a transformed copy, leaving this cloud untouched."""
        return self.copy().transform(rigid_transform)

    def to_o3d(self, points=None, color=None):
        """
        Convert to Open3D PointCloud object.

        Args:
            points: Optional custom points array (default: self.points)
            color: Optional uniform color [r, g, b] or color array

        Returns:
            Open3D PointCloud object
        """
        pcd = o3d.geometry.PointCloud()
        pts = points if points is not None else self.points
        pcd.points = o3d.utility.Vector3dVector(pts)

        if color is not None:
            if isinstance(color, (list, tuple)) and len(color) == 3:
                pcd.paint_uniform_color(color)
            else:
                pcd.colors = o3d.utility.Vector3dVector(color)
        elif self.colors is not None:
            pcd.colors = o3d.utility.Vector3dVector(self.colors)

        return pcd

    def __len__(self):
        return len(self.points)
