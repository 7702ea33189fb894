from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np


@dataclass
class TwoViewResult:
    R: np.ndarray            # (3,3)
    t_unit: np.ndarray       # (3,1) unit length, as recovered
    t: np.ndarray            # (3,1) t_unit * baseline (metric)
    inlier_mask: np.ndarray  # (N,) bool, chirality-consistent inliers
    n_inliers: int

    @property
    def baseline(self) -> float:
        return float(np.linalg.norm(self.t))


def scale_translation(t_unit: np.ndarray, baseline: float) -> np.ndarray:
    """The only step that gives the two-view solution physical units."""
    if not baseline > 0:
        raise ValueError(f"Baseline must be positive, got {baseline}")
    t_unit = np.asarray(t_unit, np.float64).reshape(3, 1)
    return t_unit * float(baseline)


def recover_pose(
    E: np.ndarray,
    pts1: np.ndarray,
    pts2: np.ndarray,
    K: np.ndarray,
    baseline: float,
    mask: Optional[np.ndarray] = None,
) -> Optional[TwoViewResult]:
    """
    Decompose E into (R, t) and keep the correspondences with positive depth
    in both views for the chosen solution.

    Args:
      pts1, pts2: (N,2) pixel coordinates
      mask: optional (N,) RANSAC inlier mask; only those rows are considered
      baseline: physical distance between the two camera centres

    Returns:
      TwoViewResult, or None if the decomposition produced no usable translation.
    """
    pts1 = np.asarray(pts1, dtype=np.float64).reshape(-1, 2)
    pts2 = np.asarray(pts2, dtype=np.float64).reshape(-1, 2)
    K = np.asarray(K, dtype=np.float64)

    if mask is None:
        mask_in = np.full((pts1.shape[0], 1), 255, dtype=np.uint8)
    else:
        mask_in = (np.asarray(mask).ravel().astype(bool).astype(np.uint8) * 255).reshape(-1, 1)

    # recoverPose returns a mask of inliers that satisfy cheirality for the chosen (R,t)
    n_good, R, t, mask_pose = cv2.recoverPose(E, pts1, pts2, K, mask=mask_in)

    t = np.asarray(t, np.float64).reshape(3, 1)
    norm_t = float(np.linalg.norm(t))
    if not np.isfinite(t).all() or norm_t < 1e-9:
        return None
    t_unit = t / norm_t

    keep = mask_pose.ravel() > 0 if mask_pose is not None else np.zeros((pts1.shape[0],), bool)

    return TwoViewResult(
        R=np.asarray(R, np.float64),
        t_unit=t_unit,
        t=scale_translation(t_unit, baseline),
        inlier_mask=keep,
        n_inliers=int(np.count_nonzero(keep)),
    )
