"""
Frame decoding for the size pipeline.

Frames are never resized: the intrinsics describe the full-resolution sensor.
"""

from __future__ import annotations

from pathlib import Path
from typing import FrozenSet, List, Union

import cv2
import numpy as np

from .camera import CameraIntrinsics, undistort_image

IMAGE_SUFFIXES: FrozenSet[str] = frozenset(
    {".jpg", ".jpeg", ".png", ".bmp", ".tif", ".tiff", ".webp", ".ppm"}
)

ImageSource = Union[str, Path, np.ndarray]


def collect_image_paths(image_dir: Union[str, Path]) -> List[Path]:
    """
    Images in `image_dir`, ordered by file name.

    File-name order is taken as capture order, so adjacent names form a pair.
    """
    root = Path(image_dir)
    if not root.is_dir():
        raise FileNotFoundError(f"Not an image directory: {root}")

    found = sorted(
        (p for p in root.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_SUFFIXES),
        key=lambda p: p.name,
    )
    if not found:
        raise FileNotFoundError(f"{root} holds no files with suffix {sorted(IMAGE_SUFFIXES)}")
    return found


def load_image(path: Union[str, Path], *, color: bool = False) -> np.ndarray:
    """cv2.imread wrapper that raises IOError instead of returning None."""
    img = cv2.imread(str(path), cv2.IMREAD_COLOR if color else cv2.IMREAD_GRAYSCALE)
    if img is None:
        raise IOError(f"Cannot decode image: {path}")
    return img


def to_gray(image: np.ndarray) -> np.ndarray:
    """Single-channel uint8 view of an image array (BGR, BGRA or gray)."""
    img = np.asarray(image)
    if img.ndim == 3 and img.shape[2] == 3:
        img = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    elif img.ndim == 3 and img.shape[2] == 4:
        img = cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    elif img.ndim == 3 and img.shape[2] == 1:
        img = img[:, :, 0]
    elif img.ndim != 2:
        raise ValueError(f"Unsupported image shape {img.shape}")

    if img.dtype != np.uint8:
        img = cv2.normalize(img, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
    return img


def load_corrected_frame(source: ImageSource, cam: CameraIntrinsics) -> np.ndarray:
    """
    Default frame loader: decode to grayscale and remove lens distortion.

    `source` is a path or an already-decoded image array.
    Raises IOError/FileNotFoundError when the frame cannot be produced.
    """
    if isinstance(source, np.ndarray):
        gray = to_gray(source)
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Image not found: {path}")
        gray = load_image(path, color=False)

    return undistort_image(gray, cam)
