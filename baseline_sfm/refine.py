from __future__ import annotations

import numpy as np
from scipy.optimize import least_squares
from scipy.sparse import lil_matrix

from baseline_sfm.geometry_utils.reprojection import project_points

_BAD_PX = 1e6


def _build_jac_sparsity(n_pts: int) -> lil_matrix:
    """
    Each point only affects its own 4 residuals (x/y in both views).
    Rows: 4 per point. Columns: 3 per point.
    """
    J = lil_matrix((4 * n_pts, 3 * n_pts), dtype=np.int8)
    for k in range(n_pts):
        J[4 * k:4 * k + 4, 3 * k:3 * k + 3] = 1
    return J


def _residuals(params, pts1, pts2, K, R, t):
    X = params.reshape(-1, 3)
    x1 = project_points(X, K, np.eye(3), np.zeros((3, 1)))
    x2 = project_points(X, K, R, t)
    # invalid projections become large residuals for the robust loss to down-weight
    r1 = np.nan_to_num(x1 - pts1, nan=_BAD_PX, posinf=_BAD_PX, neginf=-_BAD_PX)
    r2 = np.nan_to_num(x2 - pts2, nan=_BAD_PX, posinf=_BAD_PX, neginf=-_BAD_PX)
    return np.hstack([r1, r2]).ravel()


def refine_points_two_view(
    X: np.ndarray,
    pts1: np.ndarray,
    pts2: np.ndarray,
    K: np.ndarray,
    R: np.ndarray,
    t: np.ndarray,
    loss: str = "huber",
    f_scale: float = 1.0,
    max_nfev: int = 200,
    logger=None,
) -> np.ndarray:
    """
    Refine triangulated points with both cameras held fixed.

    Minimizes the reprojection error in the reference view [I|0] and the
    second view [R|t]. Returns the refined (N,3) points; the input is
    returned unchanged when there is nothing to optimize.
    """
    X = np.asarray(X, np.float64).reshape(-1, 3)
    pts1 = np.asarray(pts1, np.float64).reshape(-1, 2)
    pts2 = np.asarray(pts2, np.float64).reshape(-1, 2)
    n = X.shape[0]
    if n == 0 or not np.isfinite(X).all():
        return X

    res = least_squares(
        _residuals,
        X.ravel(),
        jac_sparsity=_build_jac_sparsity(n),
        x_scale="jac",
        loss=loss,
        f_scale=f_scale,
        max_nfev=max_nfev,
        method="trf",
        args=(pts1, pts2, np.asarray(K, np.float64), np.asarray(R, np.float64),
              np.asarray(t, np.float64).reshape(3, 1)),
    )

    if logger:
        r0 = _residuals(X.ravel(), pts1, pts2, K, R, t)
        logger.debug(
            f"  refine: n={n} cost {0.5 * float(r0 @ r0):.3f} -> {float(res.cost):.3f} "
            f"({res.nfev} evals)"
        )

    return res.x.reshape(-1, 3)
