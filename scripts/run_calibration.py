"""
scripts/run_calibration.py

Chessboard calibration runner. Writes a camera file that
scripts.run_estimation --camera_file (and data_io.camera.read_camera) can read.
"""

import argparse
import sys
from pathlib import Path

from data_io.calibration import calibrate_from_chessboard, detect_chessboard
from data_io.camera import write_camera
from data_io.images import collect_image_paths
from utils.logging_utils import level_for, make_logger, timed


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Calibrate camera intrinsics and distortion from chessboard photos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # 9x6 inner corners, 25 mm squares
  python -m scripts.run_calibration --images_dir Data/calib --board_width 9 --board_height 6 --square_size 25 --out cam.json

  # Only check which photos show the full board
  python -m scripts.run_calibration --images_dir Data/calib --board_width 9 --board_height 6 --square_size 25 --check_only
        """
    )
    parser.add_argument("--images_dir", type=str, required=True,
                        help="Directory of chessboard photos")
    parser.add_argument("--board_width", type=int, required=True,
                        help="Inner corners across")
    parser.add_argument("--board_height", type=int, required=True,
                        help="Inner corners down")
    parser.add_argument("--square_size", type=float, required=True,
                        help="Square edge length (any unit)")
    parser.add_argument("--min_views", type=int, default=10,
                        help="Minimum photos with a detected board")
    parser.add_argument("--free_principal_point", action="store_true",
                        help="Estimate cx, cy instead of fixing them at the image centre")
    parser.add_argument("--out", type=str, default="camera.json",
                        help="Output camera file (JSON)")
    parser.add_argument("--check_only", action="store_true",
                        help="Report board detection per image and exit")
    parser.add_argument("--verbose", action="store_true")

    args = parser.parse_args(argv)

    logger = make_logger("baseline_sfm", level=level_for(args.verbose))
    board_size = (args.board_width, args.board_height)
    paths = collect_image_paths(Path(args.images_dir))
    logger.info(f"[Calibration] {len(paths)} images, board {board_size[0]}x{board_size[1]}")

    if args.check_only:
        found = 0
        for p in paths:
            ok = detect_chessboard(p, board_size)
            found += int(ok)
            print(f"  {p.name}: {'board' if ok else 'no board'}")
        print(f"\n[Done] {found}/{len(paths)} images show the board")
        return 0 if found >= args.min_views else 1

    with timed(logger, "Calibration"):
        result = calibrate_from_chessboard(
            paths,
            board_size,
            args.square_size,
            min_views=args.min_views,
            fix_principal_point=not args.free_principal_point,
            logger=logger,
        )

    if not result.success:
        print(f"\n[Done] Calibration failed: {result.error_message}")
        return 1

    out = write_camera(
        result.intrinsics,
        args.out,
        rms_error=result.rms_error,
        image_size=list(result.image_size),
        used_images=result.used_images,
    )
    print(f"\n[Done] RMS reprojection error: {result.rms_error:.4f}px "
          f"from {len(result.used_images)} views")
    print(f"  Saved: {out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
