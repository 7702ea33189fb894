"""
scripts/run_estimation.py

Command line runner for baseline-scaled size estimation.
Uses the config system - all thresholds come from a profile or a config file.
"""

import argparse
import sys
from pathlib import Path

from baseline_sfm.pipeline import SizeConfig, get_config
from baseline_sfm.run_sfm import estimate_sequence
from data_io.camera import CameraIntrinsics, read_camera
from data_io.images import collect_image_paths
from data_io.parsing import dump_json
from utils.logging_utils import level_for, make_logger


def build_config_from_args(args) -> SizeConfig:
    """
    Build SizeConfig from command line arguments.

    Starts with the config file if given, else the named profile,
    then overrides with any explicitly provided arguments.
    """
    if args.config:
        config = SizeConfig.from_file(args.config)
    else:
        config = get_config(args.profile)

    if args.feature is not None:
        config.matching.feature.method = args.feature
    if args.min_inliers is not None:
        config.geometry.min_inliers = args.min_inliers
    if args.max_reproj_px is not None:
        config.validation.max_mean_reproj_px = args.max_reproj_px
    if args.refine:
        config.triangulation.refine_points = True
    if args.workers is not None:
        config.workers = args.workers

    config.verbose = args.verbose or config.verbose
    return config


def build_camera_from_args(args, parser) -> CameraIntrinsics:
    if args.camera_file:
        cam = read_camera(args.camera_file)
        if args.dist is not None:
            cam = CameraIntrinsics(K=cam.K, dist=args.dist)
        return cam

    if args.focal is None or args.cx is None or args.cy is None:
        parser.error("either --camera_file or all of --focal --cx --cy are required")
    return CameraIntrinsics.from_params(fx=args.focal, cx=args.cx, cy=args.cy, dist=args.dist)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Estimate object depth extent from an image sequence with a known baseline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Shots taken 5 cm apart, pinhole intrinsics on the command line
  python -m scripts.run_estimation --images_dir Data/box --baseline 5.0 --focal 1450 --cx 960 --cy 540

  # Calibrated camera file (see scripts.run_calibration), strict thresholds
  python -m scripts.run_estimation --images a.jpg b.jpg c.jpg --baseline 5.0 --camera_file cam.json --profile strict

  # Save the per-pair breakdown
  python -m scripts.run_estimation --images_dir Data/box --baseline 5.0 --camera_file cam.json --json_out result.json
        """
    )

    # =========================================================
    # INPUT
    # =========================================================
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--images_dir", type=str,
                     help="Directory of images, taken in order (sorted by name)")
    src.add_argument("--images", type=str, nargs="+",
                     help="Explicit ordered list of images")
    parser.add_argument("--baseline", type=float, required=True,
                        help="Distance between consecutive shots (output uses this unit)")

    # =========================================================
    # CAMERA
    # =========================================================
    parser.add_argument("--camera_file", type=str, default=None,
                        help="Camera file (JSON/YAML/txt) with K and optional dist")
    parser.add_argument("--focal", type=float, default=None, help="Focal length in pixels")
    parser.add_argument("--cx", type=float, default=None, help="Principal point x")
    parser.add_argument("--cy", type=float, default=None, help="Principal point y")
    parser.add_argument("--dist", type=float, nargs="+", default=None,
                        help="Distortion coefficients k1 k2 p1 p2 k3 (up to 5)")

    # =========================================================
    # CONFIG
    # =========================================================
    parser.add_argument("--profile", type=str, default="default", choices=["default", "strict"],
                        help="Threshold profile (ignored when --config is given)")
    parser.add_argument("--config", type=str, default=None,
                        help="JSON/YAML config file")
    parser.add_argument("--feature", type=str, default=None, choices=["sift", "orb"])
    parser.add_argument("--min_inliers", type=int, default=None)
    parser.add_argument("--max_reproj_px", type=float, default=None)
    parser.add_argument("--refine", action="store_true",
                        help="Refine triangulated points before validation")
    parser.add_argument("--workers", type=int, default=None,
                        help="Thread pool size for pairs after the first")

    # =========================================================
    # OUTPUT
    # =========================================================
    parser.add_argument("--json_out", type=str, default=None,
                        help="Write the result and per-pair breakdown as JSON")
    parser.add_argument("--verbose", action="store_true")

    args = parser.parse_args(argv)

    if not args.baseline > 0:
        parser.error("--baseline must be positive")

    config = build_config_from_args(args)
    logger = make_logger("baseline_sfm", level=level_for(config.verbose))

    if args.images_dir:
        paths = collect_image_paths(Path(args.images_dir))
    else:
        paths = [Path(p) for p in args.images]
    logger.info(f"[Loading] {len(paths)} images")

    cam = build_camera_from_args(args, parser)
    logger.debug(f"[Loading] K:\n{cam.K}")
    if cam.has_distortion:
        logger.debug(f"[Loading] dist: {cam.dist.tolist()}")

    logger.info(f"[Config] profile={args.profile if not args.config else args.config}")
    logger.info(f"  retain_fraction={config.matching.retain_fraction} min_matches={config.matching.min_matches}")
    logger.info(f"  min_inliers={config.geometry.min_inliers} ransac_thresh_px={config.geometry.ransac_thresh_px}")
    logger.info(f"  max_mean_reproj_px={config.validation.max_mean_reproj_px} max_extent={config.aggregation.max_extent}")

    result = estimate_sequence([str(p) for p in paths], args.baseline, cam, config=config, logger=logger)

    for r in result.pair_results:
        if r.ok:
            print(f"  pair {r.pair}: extent={r.extent:.3f} inliers={r.inlier_count} "
                  f"points={r.point_count} reproj={r.mean_reprojection_error:.3f}px")
        else:
            print(f"  pair {r.pair}: {r.status.name} {r.detail}")

    if result.ok:
        print(f"\n[Done] Estimated extent: {result.extent:.4f} "
              f"({result.contributing}/{len(result.pair_results)} pairs)")
    else:
        print(f"\n[Done] Failed: {result.status.name} ({int(result.status)})")

    if args.json_out:
        out = {
            "status": result.status.name,
            "value": result.value,
            "extent": result.extent,
            "contributing": result.contributing,
            "baseline": args.baseline,
            "images": [str(p) for p in paths],
            "camera": cam.to_dict(),
            "config": config.to_dict(),
            "pairs": [
                {
                    "pair": list(r.pair),
                    "status": r.status.name,
                    "extent": r.extent,
                    "min_depth": r.min_depth,
                    "max_depth": r.max_depth,
                    "inlier_count": r.inlier_count,
                    "point_count": r.point_count,
                    "mean_reprojection_error": r.mean_reprojection_error,
                    "low_confidence": r.low_confidence,
                    "detail": r.detail,
                }
                for r in result.pair_results
            ],
        }
        dump_json(out, args.json_out)
        print(f"  Saved: {args.json_out}")

    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
