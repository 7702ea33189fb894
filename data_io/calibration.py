"""
Chessboard calibration producing the CameraIntrinsics the size pipeline consumes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

import cv2
import numpy as np

from .camera import CameraIntrinsics
from .images import load_image

_FIND_FLAGS = cv2.CALIB_CB_ADAPTIVE_THRESH + cv2.CALIB_CB_NORMALIZE_IMAGE + cv2.CALIB_CB_FAST_CHECK
_SUBPIX_CRITERIA = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, 30, 0.001)


@dataclass
class CalibrationResult:
    success: bool
    intrinsics: Optional[CameraIntrinsics] = None
    rms_error: float = float("nan")
    image_size: Optional[Tuple[int, int]] = None  # (width, height)
    used_images: List[str] = field(default_factory=list)
    error_message: Optional[str] = None


def board_object_points(board_size: Tuple[int, int], square_size: float) -> np.ndarray:
    """(W*H, 3) float32 corner grid on the Z=0 plane, in square_size units."""
    w, h = board_size
    objp = np.zeros((w * h, 3), np.float32)
    objp[:, :2] = np.mgrid[0:w, 0:h].T.reshape(-1, 2) * float(square_size)
    return objp


def find_board_corners(
    gray: np.ndarray,
    board_size: Tuple[int, int],
    refine: bool = True,
) -> Optional[np.ndarray]:
    """
    Detect inner chessboard corners. board_size is (corners across, corners down).
    Returns (N,1,2) float32 corners or None.
    """
    found, corners = cv2.findChessboardCorners(gray, tuple(board_size), _FIND_FLAGS)
    if not found or corners is None:
        return None
    if refine:
        corners = cv2.cornerSubPix(gray, corners, (11, 11), (-1, -1), _SUBPIX_CRITERIA)
    return corners


def detect_chessboard(image_path: Union[str, Path], board_size: Tuple[int, int]) -> bool:
    """Preview check: does this image show the full board?"""
    try:
        gray = load_image(image_path, color=False)
    except (IOError, OSError):
        return False
    return find_board_corners(gray, board_size, refine=False) is not None


def calibrate_from_chessboard(
    image_paths: Iterable[Union[str, Path]],
    board_size: Tuple[int, int],
    square_size: float,
    min_views: int = 10,
    fix_principal_point: bool = True,
    logger=None,
) -> CalibrationResult:
    """
    Calibrate intrinsics + distortion (k1 k2 p1 p2 k3) from chessboard photos.

    Unreadable images and images without a detected board are skipped.
    Fewer than `min_views` usable images is reported as a failed result.
    """
    objp = board_object_points(board_size, square_size)
    object_points: List[np.ndarray] = []
    image_points: List[np.ndarray] = []
    used: List[str] = []
    image_size: Optional[Tuple[int, int]] = None

    for p in image_paths:
        try:
            gray = load_image(p, color=False)
        except (IOError, OSError):
            if logger:
                logger.info(f"  calib: unreadable {p}")
            continue

        if image_size is None:
            image_size = (gray.shape[1], gray.shape[0])
        elif (gray.shape[1], gray.shape[0]) != image_size:
            if logger:
                logger.info(f"  calib: size mismatch {p}")
            continue

        corners = find_board_corners(gray, board_size)
        if corners is None:
            if logger:
                logger.debug(f"  calib: no board in {p}")
            continue

        object_points.append(objp.copy())
        image_points.append(corners)
        used.append(str(p))

    if len(used) < min_views:
        return CalibrationResult(
            success=False,
            image_size=image_size,
            used_images=used,
            error_message=f"Not enough valid images. Found {len(used)}, need at least {min_views}.",
        )

    flags = cv2.CALIB_FIX_PRINCIPAL_POINT if fix_principal_point else 0
    rms, K, dist, _rvecs, _tvecs = cv2.calibrateCamera(
        object_points, image_points, image_size, None, None, flags=flags,
    )

    intrinsics = CameraIntrinsics(K=K, dist=np.asarray(dist).reshape(-1)[:5])
    if logger:
        logger.info(
            f"Calibrated from {len(used)} views: fx={intrinsics.fx:.1f} fy={intrinsics.fy:.1f} "
            f"cx={intrinsics.cx:.1f} cy={intrinsics.cy:.1f} rms={rms:.3f}px"
        )

    return CalibrationResult(
        success=True,
        intrinsics=intrinsics,
        rms_error=float(rms),
        image_size=image_size,
        used_images=used,
    )
