import numpy as np

from baseline_sfm.features import (
    Correspondences,
    detect_and_describe,
    match_pair,
    retain_best,
)
from baseline_sfm.pipeline.config import MatchingConfig
from baseline_sfm.status import Status

SHIFT = 10


def _crops(texture):
    img1 = texture[20:500, 20:660]
    img2 = texture[20:500, 20 + SHIFT:660 + SHIFT]
    return np.ascontiguousarray(img1), np.ascontiguousarray(img2)


def test_blank_image_has_too_few_keypoints():
    blank = np.full((480, 640), 128, np.uint8)
    out = match_pair(blank, blank, MatchingConfig())
    assert not out.ok
    assert out.status == Status.TOO_FEW_KEYPOINTS
    assert out.value is None


def test_textured_pair_matches_sorted_by_distance(texture):
    img1, img2 = _crops(texture)
    out = match_pair(img1, img2, MatchingConfig())

    assert out.ok
    corr = out.value
    assert len(corr) >= MatchingConfig().min_matches
    assert np.all(np.diff(corr.distances) >= 0)

    dx = corr.pts1[:, 0] - corr.pts2[:, 0]
    dy = corr.pts1[:, 1] - corr.pts2[:, 1]
    assert abs(float(np.median(dx)) - SHIFT) < 1.0
    assert abs(float(np.median(dy))) < 1.0


def test_orb_detector_runs(texture):
    feats = detect_and_describe(texture, method="orb", nfeatures=500)
    assert len(feats) > 0
    assert feats.desc.dtype == np.uint8


def test_unreachable_match_minimum_fails(texture):
    img1, img2 = _crops(texture)
    cfg = MatchingConfig(min_matches=100000)
    out = match_pair(img1, img2, cfg)
    assert out.status == Status.TOO_FEW_MATCHES


def test_retain_best_fraction_and_floor():
    matches = [(i, i, float(i)) for i in range(1000)]
    assert len(retain_best(matches, 0.15, 50)) == 150
    assert retain_best(matches, 0.15, 50)[0] == (0, 0, 0.0)

    few = matches[:200]
    # 15% of 200 is 30, under the floor: keep everything
    assert len(retain_best(few, 0.15, 50)) == 200


def test_correspondences_subset_and_shape_check():
    corr = Correspondences.from_points(np.zeros((4, 2)), np.ones((4, 2)))
    sub = corr.subset(np.array([True, False, True, False]))
    assert len(sub) == 2
    assert sub.distances.shape == (2,)

    try:
        Correspondences.from_points(np.zeros((4, 2)), np.zeros((3, 2)))
    except ValueError:
        pass
    else:
        raise AssertionError("expected ValueError")
