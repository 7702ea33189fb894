import numpy as np
import pytest

from baseline_sfm.features import Correspondences
from baseline_sfm.pipeline import PairPipeline, PairStage, SizeConfig, StageOutcome, Status

from conftest import SceneMatcher


def _pipeline(scene, loader, matcher, config=None, **kw):
    return PairPipeline(scene.cam, scene.baseline, config=config, loader=loader, matcher=matcher, **kw)


def test_successful_pair_reports_ordered_depths(scene, loader, matcher):
    r = _pipeline(scene, loader, matcher).run((0, 1), "a", "b")

    assert r.ok, r.detail
    assert r.status == Status.SUCCESS
    assert r.min_depth <= r.max_depth
    assert r.extent >= 0.0
    assert r.point_count > 0
    assert r.inlier_count >= 30
    assert r.mean_reprojection_error < 1.0
    assert not r.low_confidence
    assert r.stages[0] is PairStage.INIT
    assert r.stages[-1] is PairStage.DONE
    assert PairStage.VALIDATE in r.stages


def test_depth_span_recovered_within_five_percent(scene, loader, matcher):
    r = _pipeline(scene, loader, matcher).run((0, 1), "a", "b")
    assert r.ok
    assert r.extent == pytest.approx(scene.true_extent, rel=0.05)
    assert r.min_depth == pytest.approx(scene.X[:, 2].min(), rel=0.05)


def test_same_inputs_same_result(scene, loader, matcher):
    p = _pipeline(scene, loader, matcher)
    a = p.run((0, 1), "a", "b")
    b = p.run((0, 1), "a", "b")
    assert a.extent == b.extent
    assert a.inlier_count == b.inlier_count


def test_too_few_keypoints_stops_before_geometry(scene, loader):
    # real feature matcher on blank frames
    r = PairPipeline(scene.cam, scene.baseline, loader=loader).run((0, 1), "a", "b")

    assert r.status == Status.TOO_FEW_KEYPOINTS
    assert r.stages == (PairStage.INIT, PairStage.UNDISTORT, PairStage.MATCH, PairStage.DONE)
    assert PairStage.ESTIMATE_ESSENTIAL not in r.stages
    assert r.extent == 0.0
    assert np.isnan(r.min_depth)


def test_missing_image_file_is_a_load_failure(scene, matcher, tmp_path):
    p = PairPipeline(scene.cam, scene.baseline, matcher=matcher)
    r = p.run((0, 1), tmp_path / "nope1.png", tmp_path / "nope2.png")
    assert r.status == Status.IMAGE_LOAD_FAILED
    assert matcher.calls == 0


def test_loader_returning_none_is_a_load_failure(scene, matcher):
    p = _pipeline(scene, lambda src, cam: None, matcher)
    assert p.run((0, 1), "a", "b").status == Status.IMAGE_LOAD_FAILED


def test_insufficient_inliers(scene, loader, matcher):
    cfg = SizeConfig()
    cfg.geometry.min_inliers = 10000
    r = _pipeline(scene, loader, matcher, config=cfg).run((0, 1), "a", "b")
    assert r.status == Status.INSUFFICIENT_INLIERS
    assert r.inlier_count > 0
    assert PairStage.RECOVER_POSE not in r.stages


def test_degenerate_geometry_with_too_few_matches(scene, loader):
    def four_matches(img1, img2, config):
        return StageOutcome.success(Correspondences.from_points(scene.pts1[:4], scene.pts2[:4]))

    r = _pipeline(scene, loader, four_matches).run((0, 1), "a", "b")
    assert r.status == Status.DEGENERATE_GEOMETRY


def test_depth_ceiling_empties_triangulation(scene, loader, matcher):
    cfg = SizeConfig()
    cfg.triangulation.depth_ceiling_factor = 0.1  # nothing closer than 0.2 units
    r = _pipeline(scene, loader, matcher, config=cfg).run((0, 1), "a", "b")
    assert r.status == Status.TRIANGULATION_EMPTY
    assert PairStage.VALIDATE not in r.stages


def test_reprojection_ceiling(noisy_scene, loader):
    cfg = SizeConfig()
    cfg.validation.max_mean_reproj_px = 0.01
    r = _pipeline(noisy_scene, loader, SceneMatcher(noisy_scene), config=cfg).run((0, 1), "a", "b")
    assert r.status == Status.REPROJECTION_TOO_HIGH
    assert r.mean_reprojection_error > 0.01


def test_noisy_pair_still_succeeds(noisy_scene, loader):
    r = _pipeline(noisy_scene, loader, SceneMatcher(noisy_scene)).run((0, 1), "a", "b")
    assert r.ok, r.detail
    assert r.extent == pytest.approx(noisy_scene.true_extent, rel=0.1)


def test_refined_points_keep_the_span(scene, loader, matcher):
    cfg = SizeConfig()
    cfg.triangulation.refine_points = True
    r = _pipeline(scene, loader, matcher, config=cfg).run((0, 1), "a", "b")
    assert r.ok
    assert r.extent == pytest.approx(scene.true_extent, rel=0.05)


def test_matcher_exception_becomes_internal_fault(scene, loader):
    def boom(img1, img2, config):
        raise RuntimeError("matcher crashed")

    r = _pipeline(scene, loader, boom).run((0, 1), "a", "b")
    assert r.status == Status.INTERNAL_FAULT
    assert "matcher crashed" in r.detail


def test_non_positive_baseline_rejected(scene):
    with pytest.raises(ValueError):
        PairPipeline(scene.cam, 0.0)


def test_frame_reuse_loads_shared_frame_once(scene, loader, matcher):
    p = _pipeline(scene, loader, matcher, reuse_frames=True)
    p.run((0, 1), "a", "b")
    p.run((1, 2), "b", "c")
    assert loader.loaded == ["a", "b", "c"]
