"""
pcregistration - Robust point cloud registration

Rigid alignment of a source point cloud onto a target point cloud featuring:
- Radius-bounded one-to-many data association over a KD-tree
- Student-t weighting of correspondences for outlier handling
- Least-squares estimation with the rotation kept on the unit-quaternion manifold
- Parallel neighbour search and residual evaluation
"""

from .config import RegistrationParameters
from .correspondences import Association, build_association
from .estimator import TransformEstimator
from .kdtree import BruteForceIndex, KDTree, build_index
from .losses import gaussian_weights, get_weight_function, student_t_weights
from .optimizer import LeastSquaresOptimizer, SolverOptions, SolverSummary
from .point_cloud import PointCloud
from .registration import PointCloudRegistration
from .transforms import RigidTransform
from .visualization import plot_convergence, show_alignment

__version__ = "1.0.0"
__all__ = ["Association", "BruteForceIndex", "KDTree", "LeastSquaresOptimizer",
           "PointCloud", "PointCloudRegistration", "RegistrationParameters",
           "RigidTransform", "SolverOptions", "SolverSummary", "TransformEstimator",
           "build_association", "build_index", "gaussian_weights",
           "get_weight_function", "plot_convergence", "show_alignment",
           "student_t_weights"]
