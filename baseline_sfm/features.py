from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Literal, Optional, Tuple

import cv2
import numpy as np

from baseline_sfm.status import StageOutcome, Status

if TYPE_CHECKING:
    from baseline_sfm.pipeline.config import MatchingConfig

MatcherType = Literal["sift", "orb"]


@dataclass
class Features:
    kpts_xy: np.ndarray   # (N,2) float32
    desc: np.ndarray      # (N,D) float32 (SIFT) or uint8 (ORB)

    def __len__(self) -> int:
        return int(self.kpts_xy.shape[0])


@dataclass
class Correspondences:
    """Matched pixel pairs, best (lowest descriptor distance) first."""
    pts1: np.ndarray       # (N,2) float32
    pts2: np.ndarray       # (N,2) float32
    distances: np.ndarray  # (N,) float32

    def __len__(self) -> int:
        return int(self.pts1.shape[0])

    def subset(self, mask: np.ndarray) -> "Correspondences":
        mask = np.asarray(mask).astype(bool).ravel()
        return Correspondences(self.pts1[mask], self.pts2[mask], self.distances[mask])

    @classmethod
    def from_points(cls, pts1, pts2, distances=None) -> "Correspondences":
        pts1 = np.asarray(pts1, dtype=np.float32).reshape(-1, 2)
        pts2 = np.asarray(pts2, dtype=np.float32).reshape(-1, 2)
        if pts1.shape != pts2.shape:
            raise ValueError(f"pts1/pts2 shape mismatch: {pts1.shape} vs {pts2.shape}")
        if distances is None:
            distances = np.zeros((pts1.shape[0],), np.float32)
        return cls(pts1, pts2, np.asarray(distances, dtype=np.float32).reshape(-1))


def _to_xy(kps: List[cv2.KeyPoint]) -> np.ndarray:
    return np.array([kp.pt for kp in kps], dtype=np.float32).reshape(-1, 2)


def detect_and_describe(
    gray: np.ndarray,
    method: MatcherType = "sift",
    nfeatures: int = 2000,
    mask: Optional[np.ndarray] = None,
) -> Features:
    """
    Detect scale/rotation invariant keypoints + descriptors on a single-channel image.
    SIFT is the default; ORB is faster but less stable.
    """
    if method == "sift":
        det = cv2.SIFT_create(nfeatures=nfeatures)
        kps, desc = det.detectAndCompute(gray, mask)
        if desc is None or len(kps) == 0:
            return Features(np.zeros((0, 2), np.float32), np.zeros((0, 128), np.float32))
        return Features(_to_xy(kps), desc.astype(np.float32))

    if method == "orb":
        det = cv2.ORB_create(nfeatures=nfeatures)
        kps, desc = det.detectAndCompute(gray, mask)
        if desc is None or len(kps) == 0:
            return Features(np.zeros((0, 2), np.float32), np.zeros((0, 32), np.uint8))
        return Features(_to_xy(kps), desc)

    raise ValueError(f"Unknown method: {method}")


def match_descriptors(
    f1: Features,
    f2: Features,
    method: MatcherType = "sift",
    cross_check: bool = True,
) -> List[Tuple[int, int, float]]:
    """
    Brute-force nearest neighbour matching, sorted by ascending distance.

    Returns (i, j, dist) triples. With cross_check only mutual best matches survive.
    """
    if len(f1) == 0 or len(f2) == 0:
        return []

    norm = cv2.NORM_L2 if method == "sift" else cv2.NORM_HAMMING
    bf = cv2.BFMatcher(norm, crossCheck=cross_check)
    matches = bf.match(f1.desc, f2.desc)

    scored = [(m.queryIdx, m.trainIdx, float(m.distance)) for m in matches]
    # stable: equal distances keep query order
    scored.sort(key=lambda x: x[2])
    return scored


def retain_best(
    matches: List[Tuple[int, int, float]],
    fraction: float,
    floor: int,
) -> List[Tuple[int, int, float]]:
    """
    Keep the best `fraction` of distance-sorted matches.
    If that is fewer than `floor`, keep all of them instead.
    """
    n_keep = int(len(matches) * fraction)
    if n_keep < floor:
        n_keep = len(matches)
    return matches[:n_keep]


def match_pair(
    img1: np.ndarray,
    img2: np.ndarray,
    config: MatchingConfig,
    logger=None,
) -> StageOutcome[Correspondences]:
    """
    Detect, match and rank correspondences between two single-channel images.

    Fails with TOO_FEW_KEYPOINTS if either image is under `feature.min_keypoints`,
    and with TOO_FEW_MATCHES if the retained set is under `min_matches`.
    """
    fc = config.feature
    f1 = detect_and_describe(img1, method=fc.method, nfeatures=fc.nfeatures)
    f2 = detect_and_describe(img2, method=fc.method, nfeatures=fc.nfeatures)

    if logger:
        logger.debug(f"  kpts: {len(f1)} / {len(f2)}")

    if len(f1) < fc.min_keypoints or len(f2) < fc.min_keypoints:
        return StageOutcome.failure(
            Status.TOO_FEW_KEYPOINTS,
            f"kpts {len(f1)}/{len(f2)} < {fc.min_keypoints}",
        )

    raw = match_descriptors(f1, f2, method=fc.method, cross_check=config.cross_check)
    kept = retain_best(raw, config.retain_fraction, config.retain_floor)

    if logger:
        logger.debug(f"  matches: raw={len(raw)} retained={len(kept)}")

    if len(kept) < config.min_matches:
        return StageOutcome.failure(
            Status.TOO_FEW_MATCHES,
            f"retained {len(kept)} < {config.min_matches}",
        )

    pts1 = f1.kpts_xy[[i for i, _, _ in kept]]
    pts2 = f2.kpts_xy[[j for _, j, _ in kept]]
    dist = np.array([d for _, _, d in kept], dtype=np.float32)
    return StageOutcome.success(Correspondences(pts1, pts2, dist))
