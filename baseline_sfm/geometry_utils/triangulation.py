"""
Linear two-view triangulation and the depth plausibility filter.

Depth is the Z coordinate in the reference camera frame; t is in baseline units,
so every depth here is metric.
"""

from dataclasses import dataclass

import cv2
import numpy as np

from baseline_sfm.geometry_utils.projective import camera_center, reference_and_second_projections
from baseline_sfm.geometry_utils.reprojection import finite_rows

_MIN_DEPTH = 1e-12


def cheirality_mask(X: np.ndarray, R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """(N,) True where X is finite and lies in front of the camera x_cam = R X + t."""
    X = np.asarray(X, dtype=np.float64).reshape(-1, 3)
    R = np.asarray(R, dtype=np.float64)
    t = np.asarray(t, dtype=np.float64).reshape(3)

    ok = finite_rows(X)
    if not (np.isfinite(R).all() and np.isfinite(t).all()):
        return np.zeros_like(ok)

    depth = np.full(X.shape[0], -np.inf)
    depth[ok] = X[ok] @ R[2] + t[2]
    return ok & (depth > _MIN_DEPTH)


def triangulate_points(
    pts1: np.ndarray,
    pts2: np.ndarray,
    K: np.ndarray,
    R: np.ndarray,
    t: np.ndarray,
    min_abs_w: float = 1e-6,
) -> np.ndarray:
    """
    DLT triangulation between K [I | 0] and K [R | t]. No filtering here.

    Returns (N,3) points in the reference frame. Rows whose homogeneous
    weight is not above min_abs_w are NaN.
    """
    pts1 = np.asarray(pts1, dtype=np.float64).reshape(-1, 2)
    pts2 = np.asarray(pts2, dtype=np.float64).reshape(-1, 2)

    X = np.full((pts1.shape[0], 3), np.nan, dtype=np.float64)
    if pts1.shape[0] == 0:
        return X

    P1, P2 = reference_and_second_projections(K, R, t)
    Xh = cv2.triangulatePoints(P1, P2, pts1.T, pts2.T)

    w = Xh[3]
    usable = np.isfinite(w) & (np.abs(w) > min_abs_w)
    X[usable] = (Xh[:3, usable] / w[usable]).T
    return X


def triangulation_angles_deg(X: np.ndarray, R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """
    Parallax angle at each point between the rays from the two camera centres.
    NaN for non-finite points.
    """
    X = np.asarray(X, dtype=np.float64).reshape(-1, 3)
    out = np.full(X.shape[0], np.nan)
    ok = finite_rows(X)
    if not ok.any():
        return out

    ray1 = X[ok]
    ray2 = X[ok] - camera_center(R, t)
    cos = np.einsum("ij,ij->i", ray1, ray2) / (
        np.linalg.norm(ray1, axis=1) * np.linalg.norm(ray2, axis=1) + 1e-12
    )
    out[ok] = np.degrees(np.arccos(np.clip(cos, -1.0, 1.0)))
    return out


def plausible_depth_mask(
    X: np.ndarray,
    R: np.ndarray,
    t: np.ndarray,
    max_depth: float,
) -> np.ndarray:
    """Finite points in front of both cameras whose reference depth is below max_depth."""
    X = np.asarray(X, dtype=np.float64).reshape(-1, 3)
    keep = cheirality_mask(X, np.eye(3), np.zeros(3)) & cheirality_mask(X, R, t)
    keep[keep] = X[keep, 2] < float(max_depth)
    return keep


@dataclass
class DepthBounds:
    X: np.ndarray       # (M,3) surviving points, reference frame
    keep: np.ndarray    # (N,) bool mask over the input correspondences
    min_depth: float
    max_depth: float

    @property
    def count(self) -> int:
        return int(self.X.shape[0])

    @property
    def extent(self) -> float:
        return self.max_depth - self.min_depth if self.count else 0.0


def depth_bounds(X: np.ndarray, keep: np.ndarray) -> DepthBounds:
    """Running min/max of the reference depth over the kept points."""
    X_keep = np.asarray(X, np.float64)[keep]
    if X_keep.shape[0] == 0:
        return DepthBounds(X_keep.reshape(0, 3), keep, float("nan"), float("nan"))
    z = X_keep[:, 2]
    return DepthBounds(X_keep, keep, float(z.min()), float(z.max()))


def triangulate_and_bound(
    pts1: np.ndarray,
    pts2: np.ndarray,
    K: np.ndarray,
    R: np.ndarray,
    t: np.ndarray,
    baseline: float,
    depth_ceiling_factor: float = 100.0,
    min_abs_w: float = 1e-6,
) -> DepthBounds:
    """
    Triangulate metric points and apply the depth plausibility filter.

    `t` must already be scaled by the baseline. Points are kept when the
    homogeneous weight is non-degenerate, depth is positive in both views, and
    the reference depth is below depth_ceiling_factor * baseline.
    """
    X = triangulate_points(pts1, pts2, K, R, t, min_abs_w=min_abs_w)
    keep = plausible_depth_mask(X, R, t, depth_ceiling_factor * float(baseline))
    return depth_bounds(X, keep)
