from typing import Optional, Tuple

import cv2
import numpy as np

_EPS_NORM = 1e-12


def skew(t: np.ndarray) -> np.ndarray:
    t = np.asarray(t, np.float64).reshape(3)
    return np.array([
        [0.0, -t[2], t[1]],
        [t[2], 0.0, -t[0]],
        [-t[1], t[0], 0.0],
    ], dtype=np.float64)


def essential_from_pose(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """E = [t]x R for x2 = R x1 + t, normalized to unit Frobenius norm."""
    E = skew(t) @ np.asarray(R, np.float64)
    return E / (np.linalg.norm(E) + _EPS_NORM)


def fundamental_from_essential(E: np.ndarray, K: np.ndarray) -> np.ndarray:
    """F = K^-T E K^-1 (same K for both views) such that p2^T F p1 = 0."""
    K_inv = np.linalg.inv(np.asarray(K, np.float64))
    F = K_inv.T @ np.asarray(E, np.float64) @ K_inv
    return F / (np.linalg.norm(F) + _EPS_NORM)


def epipolar_distances(pts1: np.ndarray, pts2: np.ndarray, F: np.ndarray) -> np.ndarray:
    """
    Symmetric epipolar distance per correspondence, in pixels.

    Returns the average of:
    - Distance from p2 to epipolar line of p1
    - Distance from p1 to epipolar line of p2
    """
    pts1 = np.asarray(pts1, np.float64).reshape(-1, 2)
    pts2 = np.asarray(pts2, np.float64).reshape(-1, 2)
    ones = np.ones((pts1.shape[0], 1))
    p1 = np.hstack([pts1, ones])
    p2 = np.hstack([pts2, ones])

    l2 = p1 @ F.T    # lines in image 2
    l1 = p2 @ F      # lines in image 1
    num = np.abs(np.sum(p2 * l2, axis=1))
    d2 = num / (np.sqrt(l2[:, 0] ** 2 + l2[:, 1] ** 2) + _EPS_NORM)
    d1 = num / (np.sqrt(l1[:, 0] ** 2 + l1[:, 1] ** 2) + _EPS_NORM)
    return (d1 + d2) / 2


def estimate_essential(
    pts1: np.ndarray,
    pts2: np.ndarray,
    K: np.ndarray,
    prob: float = 0.999,
    threshold_px: float = 1.0,
    seed: Optional[int] = 0,
) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
    """
    Robust essential matrix fit (RANSAC).

    Returns:
      E: (3,3) or None when the fit is empty/singular
      inlier_mask: (N,) bool aligned with the input, or None
    """
    pts1 = np.asarray(pts1, dtype=np.float64).reshape(-1, 2)
    pts2 = np.asarray(pts2, dtype=np.float64).reshape(-1, 2)
    if pts1.shape[0] < 5:
        return None, None

    if seed is not None:
        # OpenCV's RNG is per-thread; seed right before the fit
        cv2.setRNGSeed(int(seed))

    E, mask = cv2.findEssentialMat(
        pts1, pts2, np.asarray(K, np.float64),
        method=cv2.RANSAC,
        prob=prob,
        threshold=threshold_px,
    )
    if E is None or mask is None:
        return None, None

    E = np.asarray(E, np.float64)
    # several solutions come back stacked as (3k,3)
    if E.shape[0] > 3 and E.shape[0] % 3 == 0 and E.shape[1] == 3:
        E = E[:3]
    if E.shape != (3, 3) or not np.isfinite(E).all() or np.linalg.norm(E) < 1e-9:
        return None, None

    return E, mask.ravel().astype(bool)
