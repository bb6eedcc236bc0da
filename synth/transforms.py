"""SE3 and camera rotation utilities.  T_A_B converts points FROM B INTO A."""

from __future__ import annotations

import numpy as np
from scipy.spatial.transform import Rotation


def quaternion_from_normalized(x: float, y: float, z: float) -> np.ndarray:
    """Rebuild (x, y, z, w) from the vector part of a unit quaternion.

    The scalar part is taken non-negative. Rounding can push |v| a hair past
    1, so the radicand is clamped at zero.
    """
    w = np.sqrt(max(0.0, 1.0 - (x * x + y * y + z * z)))
    return np.array([x, y, z, w], dtype=np.float64)


def rotation_from_quaternion(q: np.ndarray) -> np.ndarray:
    """3×3 rotation matrix from a scalar-last (x, y, z, w) quaternion."""
    return Rotation.from_quat(np.asarray(q, dtype=np.float64)).as_matrix()


def pose_to_matrix(position: np.ndarray, R: np.ndarray) -> np.ndarray:
    """Build a 4×4 SE3 matrix from a translation and a 3×3 rotation."""
    T = np.eye(4, dtype=np.float64)
    T[:3, :3] = R
    T[:3, 3] = position
    return T


def invert_se3(T: np.ndarray) -> np.ndarray:
    """Invert a 4×4 SE3 matrix: T_B_A = invert_se3(T_A_B)."""
    R = T[:3, :3]
    t = T[:3, 3]
    # Transpose instead of a general inverse.
    T_inv = np.eye(4, dtype=np.float64)
    T_inv[:3, :3] = R.T
    T_inv[:3, 3] = -R.T @ t
    return T_inv


def is_valid_se3(T: np.ndarray, atol: float = 1e-8) -> bool:
    """Check if T is a valid 4×4 SE3 matrix."""
    if T.shape != (4, 4):
        return False
    if not np.allclose(T[3, :], [0, 0, 0, 1], atol=atol):
        return False
    R = T[:3, :3]
    if not np.allclose(R @ R.T, np.eye(3), atol=atol):
        return False
    if abs(np.linalg.det(R) - 1.0) > atol:
        return False
    return True
