"""
Shared camera model for a size-estimation run: pinhole K plus up to five
distortion coefficients, with readers for the camera files people actually have
(bare 3x3 text dumps, calibration JSON/YAML, .npy).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union

import cv2
import numpy as np

from .parsing import dump_json, extract_floats, load_data

MAX_DIST_COEFFS = 5  # k1, k2, p1, p2, k3

# where calibration tools tend to nest the camera block
_NESTED_KEYS = ("intrinsics", "camera")


@dataclass(frozen=True, eq=False)
class CameraIntrinsics:
    """
    Pinhole intrinsics plus optional radial/tangential distortion.

    Both arrays are copied and flagged read-only on construction, so one
    instance can be shared by every pair of a run.
    """
    K: np.ndarray                      # (3,3)
    dist: Optional[np.ndarray] = None  # (5,) k1 k2 p1 p2 k3

    def __post_init__(self):
        K = np.array(self.K, dtype=np.float64)
        if K.size == 9:
            K = K.reshape(3, 3)
        check_K(K)
        K.setflags(write=False)
        object.__setattr__(self, "K", K)

        dist = normalize_dist(self.dist)
        if dist is not None:
            dist.setflags(write=False)
        object.__setattr__(self, "dist", dist)

    @classmethod
    def from_params(
        cls,
        fx: float,
        cx: float,
        cy: float,
        fy: Optional[float] = None,
        dist: Optional[Sequence[float]] = None,
    ) -> "CameraIntrinsics":
        return cls(K=_pinhole(fx, fx if fy is None else fy, cx, cy), dist=dist)

    @property
    def fx(self) -> float:
        return float(self.K[0, 0])

    @property
    def fy(self) -> float:
        return float(self.K[1, 1])

    @property
    def cx(self) -> float:
        return float(self.K[0, 2])

    @property
    def cy(self) -> float:
        return float(self.K[1, 2])

    @property
    def has_distortion(self) -> bool:
        return self.dist is not None and bool(np.any(self.dist != 0.0))

    def to_dict(self) -> dict:
        return {
            "fx": self.fx, "fy": self.fy, "cx": self.cx, "cy": self.cy,
            "K": self.K.tolist(),
            "dist": None if self.dist is None else self.dist.tolist(),
        }


def normalize_dist(dist: Any) -> Optional[np.ndarray]:
    """
    Coerce distortion coefficients to a (5,) float64 array.

    Shorter inputs are zero-padded. Empty input means "no distortion".
    """
    if dist is None:
        return None
    arr = np.array(dist, dtype=np.float64).reshape(-1)
    if arr.size == 0:
        return None
    if arr.size > MAX_DIST_COEFFS:
        raise ValueError(f"Expected at most {MAX_DIST_COEFFS} distortion coefficients, got {arr.size}")
    if not np.isfinite(arr).all():
        raise ValueError("Distortion coefficients contain non-finite values.")
    return np.pad(arr, (0, MAX_DIST_COEFFS - arr.size))


def check_K(K: np.ndarray) -> None:
    """Raise ValueError unless K is a finite 3x3 pinhole matrix with positive focals."""
    if K.shape != (3, 3):
        raise ValueError(f"K must be 3x3, got {K.shape}")
    if not np.isfinite(K).all():
        raise ValueError("K has non-finite entries")
    if not np.isclose(K[2, 2], 1.0, atol=1e-6):
        raise ValueError(f"K[2,2] must be 1, got {K[2, 2]}")
    if K[0, 0] <= 0 or K[1, 1] <= 0:
        raise ValueError(f"Focal lengths must be positive, got fx={K[0, 0]} fy={K[1, 1]}")


# -------------------------
# Files
# -------------------------

def read_camera(path: Union[str, Path], *, read_dist: bool = True) -> CameraIntrinsics:
    """
    Read a camera file (.txt / .json / .yaml / .npy).

    Text and .npy: the first 9 numbers are K (row-major), any following
    numbers are distortion. Mappings: "K" or fx/(fy)/cx/cy, plus "dist",
    at the top level or under "intrinsics" / "camera".
    """
    obj = load_data(path)
    if isinstance(obj, str):
        vals = extract_floats(obj)
    elif isinstance(obj, np.ndarray):
        vals = obj.reshape(-1).tolist()
    elif isinstance(obj, Mapping):
        return _camera_from_mapping(obj, read_dist, path)
    else:
        raise ValueError(f"Unsupported camera file content in {path}")

    if len(vals) < 9:
        raise ValueError(f"{path}: need at least 9 numbers for K, found {len(vals)}")
    dist = vals[9:] if read_dist else None
    return CameraIntrinsics(K=np.reshape(vals[:9], (3, 3)), dist=dist or None)


def write_camera(cam: CameraIntrinsics, path: Union[str, Path], **extra: Any) -> Path:
    """Write intrinsics as JSON in a layout `read_camera` understands."""
    d = cam.to_dict()
    d.update(extra)
    return dump_json(d, path)


def _camera_from_mapping(obj: Mapping, read_dist: bool, path) -> CameraIntrinsics:
    blocks = [obj] + [obj[k] for k in _NESTED_KEYS if isinstance(obj.get(k), Mapping)]

    K = None
    for b in blocks:
        if "K" in b:
            K = np.asarray(b["K"], dtype=np.float64)
            if K.size != 9:
                raise ValueError(f"{path}: K has {K.size} values, expected 9")
            break
        if {"fx", "cx", "cy"} <= set(b):
            K = _pinhole(b["fx"], b.get("fy", b["fx"]), b["cx"], b["cy"])
            break
    if K is None:
        raise ValueError(f"{path}: no K or fx/cx/cy entry")

    dist = None
    if read_dist:
        dist = next((b["dist"] for b in blocks if b.get("dist") is not None), None)
    return CameraIntrinsics(K=K, dist=dist)


def _pinhole(fx, fy, cx, cy) -> np.ndarray:
    K = np.eye(3)
    K[0, 0], K[1, 1], K[0, 2], K[1, 2] = float(fx), float(fy), float(cx), float(cy)
    return K


# -------------------------
# Lens correction
# -------------------------

def undistort_image(image: np.ndarray, cam: CameraIntrinsics) -> np.ndarray:
    """
    Remove lens distortion, keeping the same K (no new optimal camera matrix).
    Returns the input unchanged when there is no distortion.
    """
    if not cam.has_distortion:
        return image
    return cv2.undistort(image, np.asarray(cam.K), np.asarray(cam.dist))
