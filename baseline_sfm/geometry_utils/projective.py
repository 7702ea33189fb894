"""
Camera matrices for the two-view setup.

The first frame of a pair is the reference camera K [I | 0]; the second is
K [R | t] with t already in baseline units.
"""

from typing import Tuple

import numpy as np


def _as_pose(R: np.ndarray, t: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    R = np.asarray(R, np.float64)
    t = np.asarray(t, np.float64).reshape(-1, 1)
    if R.shape != (3, 3) or t.shape != (3, 1):
        raise ValueError(f"Expected R (3,3) and t (3,), got {R.shape} and {t.shape}")
    return R, t


def projection_matrix(K: np.ndarray, R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """(3,4) P = K [R | t]."""
    K = np.asarray(K, np.float64)
    if K.shape != (3, 3):
        raise ValueError(f"K must be (3,3), got {K.shape}")
    R, t = _as_pose(R, t)
    return K @ np.concatenate([R, t], axis=1)


def reference_and_second_projections(K: np.ndarray, R: np.ndarray, t: np.ndarray):
    P1 = projection_matrix(K, np.eye(3), np.zeros(3))
    return P1, projection_matrix(K, R, t)


def camera_center(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Second camera position in the reference frame (solves R C + t = 0)."""
    R, t = _as_pose(R, t)
    return -(R.T @ t).ravel()
