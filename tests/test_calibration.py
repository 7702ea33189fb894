import cv2
import numpy as np
import pytest

from data_io.calibration import (
    board_object_points,
    calibrate_from_chessboard,
    detect_chessboard,
    find_board_corners,
)

SQUARES = (8, 6)          # squares across, down
INNER = (7, 5)            # inner corners
PX = 50                   # board image pixels per square
BORDER = 50

IMG_SIZE = (640, 480)
K_TRUE = np.array([[600.0, 0.0, 319.5], [0.0, 600.0, 239.5], [0.0, 0.0, 1.0]])


def board_image() -> np.ndarray:
    w, h = SQUARES
    img = np.full((h * PX + 2 * BORDER, w * PX + 2 * BORDER), 255, np.uint8)
    for r in range(h):
        for c in range(w):
            if (r + c) % 2 == 0:
                y0, x0 = BORDER + r * PX, BORDER + c * PX
                img[y0:y0 + PX, x0:x0 + PX] = 0
    return img


def render_view(board: np.ndarray, rx_deg: float, ry_deg: float, tx: float, ty: float, tz: float) -> np.ndarray:
    """Image of the board plane (square units, centred on the origin) seen by K_TRUE."""
    R, _ = cv2.Rodrigues(np.array([np.deg2rad(rx_deg), np.deg2rad(ry_deg), 0.0]))
    t = np.array([tx, ty, tz])
    H_img_plane = K_TRUE @ np.column_stack([R[:, 0], R[:, 1], t])

    w, h = SQUARES
    # plane (X, Y) in squares -> board image pixels
    A = np.array([[PX, 0.0, BORDER + w * PX / 2.0],
                  [0.0, PX, BORDER + h * PX / 2.0],
                  [0.0, 0.0, 1.0]])
    H = H_img_plane @ np.linalg.inv(A)
    return cv2.warpPerspective(board, H, IMG_SIZE, flags=cv2.INTER_LINEAR,
                               borderMode=cv2.BORDER_CONSTANT, borderValue=255)


POSES = [
    (0, 0, 0.0, 0.0, 14.0),
    (15, 0, 0.0, 0.0, 14.0),
    (-15, 0, 0.0, 0.0, 14.0),
    (0, 15, 0.0, 0.0, 14.0),
    (0, -15, 0.0, 0.0, 14.0),
    (10, 10, 0.5, 0.3, 15.0),
    (-10, 10, -0.5, 0.3, 15.0),
    (10, -10, 0.5, -0.3, 15.0),
    (-10, -10, -0.5, -0.3, 15.0),
    (20, 5, 0.0, 0.5, 16.0),
    (5, -20, 0.3, 0.0, 16.0),
    (-20, -5, -0.3, -0.5, 16.0),
]


@pytest.fixture
def board():
    return board_image()


def test_object_points_grid():
    objp = board_object_points(INNER, 25.0)
    assert objp.shape == (35, 3)
    assert objp.dtype == np.float32
    np.testing.assert_allclose(objp[1], [25.0, 0.0, 0.0])
    np.testing.assert_allclose(objp[7], [0.0, 25.0, 0.0])
    assert np.all(objp[:, 2] == 0)


def test_detects_fronto_parallel_board(board, tmp_path):
    corners = find_board_corners(board, INNER)
    assert corners is not None
    assert corners.shape[0] == INNER[0] * INNER[1]

    path = tmp_path / "board.png"
    cv2.imwrite(str(path), board)
    assert detect_chessboard(path, INNER)


def test_blank_and_unreadable_images_have_no_board(tmp_path):
    blank = tmp_path / "blank.png"
    cv2.imwrite(str(blank), np.full((480, 640), 255, np.uint8))
    assert not detect_chessboard(blank, INNER)
    assert not detect_chessboard(tmp_path / "missing.png", INNER)


def test_too_few_views_fails(board, tmp_path):
    paths = []
    for k, pose in enumerate(POSES[:3]):
        p = tmp_path / f"view{k}.png"
        cv2.imwrite(str(p), render_view(board, *pose))
        paths.append(p)
    paths.append(tmp_path / "missing.png")

    result = calibrate_from_chessboard(paths, INNER, 1.0, min_views=10)
    assert not result.success
    assert result.intrinsics is None
    assert len(result.used_images) == 3
    assert "Found 3" in result.error_message


def test_calibration_recovers_focal_length(board, tmp_path):
    paths = []
    for k, pose in enumerate(POSES):
        p = tmp_path / f"view{k:02d}.png"
        cv2.imwrite(str(p), render_view(board, *pose))
        paths.append(p)

    result = calibrate_from_chessboard(paths, INNER, 1.0, min_views=10)
    assert result.success, result.error_message
    assert result.image_size == IMG_SIZE
    assert result.rms_error < 1.0
    assert result.intrinsics.fx == pytest.approx(600.0, rel=0.05)
    assert result.intrinsics.fy == pytest.approx(600.0, rel=0.05)
    assert result.intrinsics.dist.shape == (5,)
