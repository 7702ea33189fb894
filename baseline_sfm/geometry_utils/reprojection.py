"""
Projection of reconstructed points and the reprojection check of a pair.
"""

from dataclasses import dataclass

import numpy as np

from baseline_sfm.geometry_utils.projective import projection_matrix

_MIN_DEPTH = 1e-12


def finite_rows(X: np.ndarray) -> np.ndarray:
    """(N,) mask of rows of an (N,3) array with no NaN/inf."""
    X = np.asarray(X)
    if X.ndim != 2 or X.shape[1] != 3:
        raise ValueError(f"Expected (N,3) array, got {X.shape}")
    return np.isfinite(X).all(axis=1)


def project_points(
    X: np.ndarray,
    K: np.ndarray,
    R: np.ndarray,
    t: np.ndarray,
) -> np.ndarray:
    """
    Pixel projections of X through K [R | t].

    Rows that are non-finite or not in front of the camera come back as NaN.
    """
    X = np.asarray(X, dtype=np.float64)
    uv = np.full((X.shape[0], 2), np.nan, dtype=np.float64)

    P = projection_matrix(K, R, t)
    rows = np.flatnonzero(finite_rows(X))
    if rows.size == 0 or not np.isfinite(P).all():
        return uv

    # K's last row is (0,0,1), so the third homogeneous coordinate is the camera depth
    h = P @ np.vstack([X[rows].T, np.ones(rows.size)])
    front = h[2] > _MIN_DEPTH
    uv[rows[front]] = (h[:2, front] / h[2, front]).T
    return uv


def reprojection_errors(
    X: np.ndarray,
    pts_obs: np.ndarray,
    K: np.ndarray,
    R: np.ndarray,
    t: np.ndarray,
) -> np.ndarray:
    """Pixel distance between projection and observation per point, +inf where undefined."""
    diff = project_points(X, K, R, t) - np.asarray(pts_obs, np.float64).reshape(-1, 2)
    err = np.hypot(diff[:, 0], diff[:, 1])
    err[~np.isfinite(err)] = np.inf
    return err


@dataclass
class ReprojectionReport:
    mean_error: float          # px, over both views and all points
    err1: np.ndarray           # (N,) reference view
    err2: np.ndarray           # (N,) second view
    low_confidence: bool = False

    def accepted(self, max_mean_px: float) -> bool:
        return bool(np.isfinite(self.mean_error) and self.mean_error <= max_mean_px)


def validate_reprojection(
    X: np.ndarray,
    pts1: np.ndarray,
    pts2: np.ndarray,
    K: np.ndarray,
    R: np.ndarray,
    t: np.ndarray,
    fallback_error_px: float = 0.5,
) -> ReprojectionReport:
    """
    Mean reprojection error of X against its observations in both views.

    The reference view is [I | 0] and the second view is [R | t].
    When X and the observations have different lengths, the rows cannot be
    paired up, so the report carries `fallback_error_px` and is flagged
    low_confidence instead of an actual measurement.
    """
    X = np.asarray(X, np.float64).reshape(-1, 3)
    pts1 = np.asarray(pts1, np.float64).reshape(-1, 2)
    pts2 = np.asarray(pts2, np.float64).reshape(-1, 2)

    if X.shape[0] != pts1.shape[0] or X.shape[0] != pts2.shape[0]:
        empty = np.zeros((0,), np.float64)
        return ReprojectionReport(float(fallback_error_px), empty, empty, low_confidence=True)

    err1 = reprojection_errors(X, pts1, K, np.eye(3), np.zeros((3, 1)))
    err2 = reprojection_errors(X, pts2, K, R, t)
    if X.shape[0] == 0:
        return ReprojectionReport(float("inf"), err1, err2)

    mean_error = float(np.mean(np.concatenate([err1, err2])))
    return ReprojectionReport(mean_error, err1, err2)
