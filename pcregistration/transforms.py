"""Rigid transformation utilities for point cloud registration."""

import numpy as np


def normalize_quaternion(q):
    """Return q scaled to unit norm, (w, x, y, z) ordering."""
    q = np.asarray(q, dtype=np.float64)
    norm = np.linalg.norm(q)
    if norm == 0.0 or not np.isfinite(norm):
        raise ValueError(f"Cannot normalize quaternion {q}")
    q = q / norm
    # Keep w non-negative so that q and -q have a single representation
    if q[0] < 0:
        q = -q
    return q


def quaternion_multiply(q1, q2):
    """Hamilton product q1 ⊗ q2."""
    w1, x1, y1, z1 = q1
    w2, x2, y2, z2 = q2
    return np.array([
        w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
        w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
        w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
        w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
    ])


def quaternion_to_matrix(q):
    """Rotation matrix of a unit quaternion."""
    w, x, y, z = q
    return np.array([
        [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
        [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
        [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
    ])


def matrix_to_quaternion(R):
    """
    Convert a rotation matrix to a unit quaternion.

    Uses the largest-diagonal branch to stay numerically stable near
    180 degree rotations.
    """
    R = np.asarray(R, dtype=np.float64)
    trace = np.trace(R)
    if trace > 0:
        s = 2.0 * np.sqrt(trace + 1.0)
        q = [0.25 * s,
             (R[2, 1] - R[1, 2]) / s,
             (R[0, 2] - R[2, 0]) / s,
             (R[1, 0] - R[0, 1]) / s]
    elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
        q = [(R[2, 1] - R[1, 2]) / s,
             0.25 * s,
             (R[0, 1] + R[1, 0]) / s,
             (R[0, 2] + R[2, 0]) / s]
    elif R[1, 1] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
        q = [(R[0, 2] - R[2, 0]) / s,
             (R[0, 1] + R[1, 0]) / s,
             0.25 * s,
             (R[1, 2] + R[2, 1]) / s]
    else:
        s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
        q = [(R[1, 0] - R[0, 1]) / s,
             (R[0, 2] + R[2, 0]) / s,
             (R[1, 2] + R[2, 1]) / s,
             0.25 * s]
    return normalize_quaternion(q)


def angle_axis_to_quaternion(omega):
    """Exponential map from a rotation vector (axis * angle) to a quaternion."""
    omega = np.asarray(omega, dtype=np.float64)
    theta = np.linalg.norm(omega)
    half = 0.5 * theta
    if theta < 1e-12:
        # Taylor expansion of sin(theta/2)/theta
        k = 0.5 - theta * theta / 48.0
        return np.array([np.cos(half), *(k * omega)])
    return np.array([np.cos(half), *(np.sin(half) / theta * omega)])


def quaternion_plus(q, omega):
    """
    Manifold update of a unit quaternion by a tangent-space increment.

    The increment is composed on the left, exp(omega) ⊗ q, and the result
    is re-normalized so the unit-norm invariant holds exactly.
    """
    return normalize_quaternion(quaternion_multiply(angle_axis_to_quaternion(omega), q))


def skew(v):
    """Cross-product matrix [v]x."""
    return np.array([
        [0.0, -v[2], v[1]],
        [v[2], 0.0, -v[0]],
        [-v[1], v[0], 0.0],
    ])


def right_jacobian_so3(omega):
    """Right Jacobian of SO(3) at the rotation vector omega."""
    theta = np.linalg.norm(omega)
    W = skew(omega)
    if theta < 1e-8:
        return np.eye(3) - 0.5 * W + (W @ W) / 6.0
    theta2 = theta * theta
    return (np.eye(3)
            - (1.0 - np.cos(theta)) / theta2 * W
            + (theta - np.sin(theta)) / (theta2 * theta) * (W @ W))


def apply_transformation(points, transformation):
    """Apply a 4x4 homogeneous matrix to an (N, 3) array."""
    R = transformation[:3, :3]
    t = transformation[:3, 3]
    return points @ R.T + t


class RigidTransform:
    """
    Rotation (unit quaternion, w first) followed by a translation.

    Instances are treated as immutable values.
    """

    def __init__(self, rotation=None, translation=None):
        if rotation is None:
            rotation = [1.0, 0.0, 0.0, 0.0]
        if translation is None:
            translation = [0.0, 0.0, 0.0]
        rotation = np.asarray(rotation, dtype=np.float64).reshape(-1)
        translation = np.asarray(translation, dtype=np.float64).reshape(-1)
        if rotation.shape != (4,):
            raise ValueError(f"Rotation must be a quaternion of 4 values, got shape {rotation.shape}")
        if translation.shape != (3,):
            raise ValueError(f"Translation must have 3 values, got shape {translation.shape}")
        self.rotation = normalize_quaternion(rotation)
        self.translation = translation.copy()

    @classmethod
    def identity(cls):
        return cls()

    @classmethod
    def from_matrix(cls, matrix):
        """Build from a 4x4 homogeneous matrix."""
        matrix = np.asarray(matrix, dtype=np.float64)
        if matrix.shape != (4, 4):
            raise ValueError(f"Expected a 4x4 matrix, got shape {matrix.shape}")
        return cls(matrix_to_quaternion(matrix[:3, :3]), matrix[:3, 3])

    @property
    def rotation_matrix(self):
        return quaternion_to_matrix(self.rotation)

    def matrix(self):
        """4x4 homogeneous matrix."""
        transformation = np.eye(4)
        transformation[:3, :3] = self.rotation_matrix
        transformation[:3, 3] = self.translation
        return transformation

    def apply(self, points):
        """Rotate then translate an (N, 3) array (or a single point)."""
        points = np.asarray(points, dtype=np.float64)
        return points @ self.rotation_matrix.T + self.translation

    def compose(self, other):
        """
        Return self ∘ other, the transform that applies `other` first.

        Accumulating an increment onto a running total is therefore
        ``increment.compose(total)``.
        """
        rotation = quaternion_multiply(self.rotation, other.rotation)
        translation = self.rotation_matrix @ other.translation + self.translation
        return RigidTransform(rotation, translation)

    def inverse(self):
        w, x, y, z = self.rotation
        conjugate = np.array([w, -x, -y, -z])
        translation = -(quaternion_to_matrix(conjugate) @ self.translation)
        return RigidTransform(conjugate, translation)

    def rotation_angle(self):
        """Rotation angle in radians, in [0, pi]."""
        return 2.0 * np.arctan2(np.linalg.norm(self.rotation[1:]), abs(self.rotation[0]))

    def is_close(self, other, atol=1e-6):
        """Compare two transforms up to the quaternion sign ambiguity."""
        same_rotation = (np.allclose(self.rotation, other.rotation, atol=atol)
                         or np.allclose(self.rotation, -other.rotation, atol=atol))
        return same_rotation and np.allclose(self.translation, other.translation, atol=atol)

    def __repr__(self):
        return (f"RigidTransform(rotation={np.array2string(self.rotation, precision=6)}, "
                f"translation={np.array2string(self.translation, precision=6)})")
