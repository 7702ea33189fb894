"""
Shared fixtures: a synthetic two-view scene with known geometry, plus
loader/matcher stand-ins so pipeline tests do not depend on feature detection.
"""

import threading
from dataclasses import dataclass

import cv2
import numpy as np
import pytest

from baseline_sfm.features import Correspondences
from baseline_sfm.geometry import project_points
from baseline_sfm.status import StageOutcome, Status
from data_io.camera import CameraIntrinsics

FOCAL = 800.0
CX, CY = 320.0, 240.0
BASELINE = 2.0


@dataclass
class Scene:
    cam: CameraIntrinsics
    X: np.ndarray       # (N,3) reference frame
    R: np.ndarray
    t: np.ndarray       # (3,1), |t| == BASELINE
    pts1: np.ndarray
    pts2: np.ndarray
    baseline: float

    @property
    def K(self) -> np.ndarray:
        return np.asarray(self.cam.K)

    @property
    def true_extent(self) -> float:
        return float(self.X[:, 2].max() - self.X[:, 2].min())


def make_scene(n=200, seed=7, noise_px=0.0) -> Scene:
    rng = np.random.default_rng(seed)
    X = np.column_stack([
        rng.uniform(-3.0, 3.0, n),
        rng.uniform(-3.0, 3.0, n),
        rng.uniform(10.0, 16.0, n),
    ])
    cam = CameraIntrinsics.from_params(fx=FOCAL, cx=CX, cy=CY)

    R, _ = cv2.Rodrigues(np.array([0.0, np.deg2rad(2.0), 0.0]))
    C = np.array([[BASELINE], [0.0], [0.0]])
    t = -R @ C

    pts1 = project_points(X, cam.K, np.eye(3), np.zeros((3, 1)))
    pts2 = project_points(X, cam.K, R, t)
    if noise_px > 0:
        pts1 = pts1 + rng.normal(0.0, noise_px, pts1.shape)
        pts2 = pts2 + rng.normal(0.0, noise_px, pts2.shape)

    return Scene(cam, X, R, t, pts1, pts2, BASELINE)


class SceneMatcher:
    """Returns the scene correspondences; fails on the listed call numbers (0-based)."""

    def __init__(self, scene: Scene, fail_calls=(), status=Status.TOO_FEW_MATCHES):
        self.scene = scene
        self.fail_calls = set(fail_calls)
        self.status = status
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, img1, img2, config):
        with self._lock:
            n = self.calls
            self.calls += 1
        if n in self.fail_calls:
            return StageOutcome.failure(self.status, f"scripted failure on call {n}")
        return StageOutcome.success(Correspondences.from_points(self.scene.pts1, self.scene.pts2))


class CountingLoader:
    """Returns a blank frame for any source and counts the loads."""

    def __init__(self, shape=(480, 640)):
        self.shape = shape
        self.loaded = []
        self._lock = threading.Lock()

    def __call__(self, source, cam):
        with self._lock:
            self.loaded.append(source)
        return np.zeros(self.shape, np.uint8)


def textured_image(h=520, w=720, seed=3) -> np.ndarray:
    """Smooth random blobs, rich in SIFT keypoints."""
    rng = np.random.default_rng(seed)
    small = rng.integers(0, 256, (h // 4, w // 4)).astype(np.uint8)
    img = cv2.resize(small, (w, h), interpolation=cv2.INTER_CUBIC)
    return cv2.GaussianBlur(img, (0, 0), 1.0)


@pytest.fixture
def scene():
    return make_scene()


@pytest.fixture
def noisy_scene():
    return make_scene(noise_px=0.3)


@pytest.fixture
def loader():
    return CountingLoader()


@pytest.fixture
def matcher(scene):
    return SceneMatcher(scene)


@pytest.fixture
def texture():
    return textured_image()
