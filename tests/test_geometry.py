import numpy as np
import pytest

from baseline_sfm.geometry import (
    camera_center,
    depth_bounds,
    epipolar_distances,
    essential_from_pose,
    estimate_essential,
    fundamental_from_essential,
    plausible_depth_mask,
    recover_pose,
    scale_translation,
    triangulate_and_bound,
    triangulate_points,
    validate_reprojection,
)
from baseline_sfm.pipeline.config import TriangulationConfig
from baseline_sfm.refine import refine_points_two_view


def test_essential_fit_on_exact_correspondences(scene):
    E, mask = estimate_essential(scene.pts1, scene.pts2, scene.K)
    assert E is not None
    assert E.shape == (3, 3)
    assert mask.dtype == bool
    assert mask.sum() >= 0.95 * len(mask)

    F = fundamental_from_essential(E, scene.K)
    d = epipolar_distances(scene.pts1, scene.pts2, F)
    assert float(np.median(d)) < 0.1


def test_essential_needs_five_points(scene):
    E, mask = estimate_essential(scene.pts1[:4], scene.pts2[:4], scene.K)
    assert E is None and mask is None


def test_true_pose_satisfies_epipolar_constraint(scene):
    E = essential_from_pose(scene.R, scene.t)
    F = fundamental_from_essential(E, scene.K)
    d = epipolar_distances(scene.pts1, scene.pts2, F)
    assert float(np.max(d)) < 1e-6


def test_recover_pose_scales_translation_by_baseline(scene):
    E, mask = estimate_essential(scene.pts1, scene.pts2, scene.K)
    pose = recover_pose(E, scene.pts1, scene.pts2, scene.K, scene.baseline, mask=mask)

    assert pose is not None
    assert pose.baseline == pytest.approx(scene.baseline)
    assert np.linalg.norm(pose.t_unit) == pytest.approx(1.0)
    np.testing.assert_allclose(pose.t, scene.t, atol=0.02)
    np.testing.assert_allclose(pose.R, scene.R, atol=1e-3)
    assert pose.n_inliers == int(pose.inlier_mask.sum())
    assert pose.n_inliers >= 0.95 * len(scene.pts1)

    C = camera_center(pose.R, pose.t)
    np.testing.assert_allclose(C, [scene.baseline, 0.0, 0.0], atol=0.02)


def test_scale_translation_rejects_non_positive_baseline():
    with pytest.raises(ValueError):
        scale_translation(np.array([1.0, 0.0, 0.0]), 0.0)


def test_triangulation_recovers_points(scene):
    X = triangulate_points(scene.pts1, scene.pts2, scene.K, scene.R, scene.t)
    np.testing.assert_allclose(X, scene.X, atol=1e-3)

    bounds = triangulate_and_bound(scene.pts1, scene.pts2, scene.K, scene.R, scene.t, scene.baseline)
    assert bounds.count == len(scene.X)
    assert bounds.min_depth <= bounds.max_depth
    assert bounds.extent == pytest.approx(scene.true_extent, abs=1e-3)


def test_depth_ceiling_drops_far_points(scene):
    X = scene.X.copy()
    X[:5, 2] = 1000.0
    X[5, 2] = -3.0
    X[6] = np.nan
    keep = plausible_depth_mask(X, scene.R, scene.t, max_depth=100.0 * scene.baseline)
    assert not keep[:7].any()
    assert keep[7:].all()


def test_depth_bounds_empty():
    X = np.zeros((3, 3))
    b = depth_bounds(X, np.zeros(3, bool))
    assert b.count == 0
    assert b.extent == 0.0
    assert np.isnan(b.min_depth)


def test_reprojection_of_exact_points_is_tiny(scene):
    rep = validate_reprojection(scene.X, scene.pts1, scene.pts2, scene.K, scene.R, scene.t)
    assert not rep.low_confidence
    assert rep.mean_error < 1e-6
    assert rep.accepted(1.0)
    assert rep.err1.shape == (len(scene.X),)


def test_reprojection_misaligned_inputs_use_fallback(scene):
    rep = validate_reprojection(scene.X[:10], scene.pts1, scene.pts2, scene.K, scene.R, scene.t,
                                fallback_error_px=0.5)
    assert rep.low_confidence
    assert rep.mean_error == 0.5


def test_reprojection_with_no_points_is_rejected(scene):
    empty2 = np.zeros((0, 2))
    rep = validate_reprojection(np.zeros((0, 3)), empty2, empty2, scene.K, scene.R, scene.t)
    assert rep.mean_error == float("inf")
    assert not rep.accepted(5.0)


def test_refinement_reduces_point_error(scene):
    tc = TriangulationConfig()
    rng = np.random.default_rng(0)
    X0 = scene.X + rng.normal(0.0, 0.05, scene.X.shape)
    X1 = refine_points_two_view(
        X0, scene.pts1, scene.pts2, scene.K, scene.R, scene.t,
        loss=tc.refine_loss, f_scale=tc.refine_f_scale, max_nfev=tc.refine_max_nfev,
    )

    err0 = np.linalg.norm(X0 - scene.X, axis=1).mean()
    err1 = np.linalg.norm(X1 - scene.X, axis=1).mean()
    assert X1.shape == scene.X.shape
    assert err1 < 0.1 * err0
