"""
baseline_sfm/run_sfm.py

Main entry points for size estimation.
This is a thin layer over the pipeline package.

ALL numeric defaults come from pipeline/config.py - no hardcoded values here.

The reported metric is the spread of the camera-forward (Z) coordinate of the
reconstructed points. It equals an object's upright height only when the
camera looks straight down at it.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from data_io.camera import MAX_DIST_COEFFS, CameraIntrinsics
from utils.logging_utils import level_for, make_logger, timed

from .pipeline.config import SizeConfig, get_default_config
from .pipeline.pair import FrameLoader, Matcher
from .pipeline.sequence import SequenceAggregator
from .pipeline.state import SequenceResult, Status


def estimate_sequence(
    sources: Sequence[Any],
    baseline: float,
    intrinsics: CameraIntrinsics,
    config: Optional[SizeConfig] = None,
    loader: Optional[FrameLoader] = None,
    matcher: Optional[Matcher] = None,
    logger=None,
) -> SequenceResult:
    """
    Estimate the mean depth extent over all adjacent pairs of `sources`.

    Args:
        sources: ordered image paths (or already decoded image arrays)
        baseline: physical distance between consecutive shots; output shares its unit
        intrinsics: shared CameraIntrinsics (with optional distortion)
        config: SizeConfig (default profile if None)
        loader: frame loader override, (source, intrinsics) -> gray image
        matcher: correspondence matcher override

    Returns:
        SequenceResult. Never raises.

    Example:
        cam = CameraIntrinsics.from_params(fx=1400.0, cx=960.0, cy=540.0)
        result = estimate_sequence(paths, baseline=5.0, intrinsics=cam)
        if result.ok:
            print(result.extent)
    """
    try:
        if config is None:
            config = get_default_config()
        if logger is None:
            logger = make_logger("baseline_sfm", level=level_for(config.verbose))

        agg = SequenceAggregator(
            intrinsics,
            baseline,
            config=config,
            loader=loader,
            matcher=matcher,
            logger=logger,
        )
        with timed(logger, "Size estimation"):
            return agg.run(sources)
    except Exception:
        if logger:
            logger.exception("estimate_sequence: unexpected fault")
        return SequenceResult(Status.INTERNAL_FAULT)


def estimate_height_from_baseline(
    image_paths: Sequence[Any],
    count: int,
    baseline: float,
    focal: float,
    cx: float,
    cy: float,
    sensor_width: Optional[float] = None,
    sensor_height: Optional[float] = None,
    dist_coeffs: Optional[Sequence[float]] = None,
    dist_count: Optional[int] = None,
    config: Optional[SizeConfig] = None,
    loader: Optional[FrameLoader] = None,
    matcher: Optional[Matcher] = None,
    logger=None,
) -> float:
    """
    Scalar entry point.

    Returns:
        > 0: mean depth extent, in the unit of `baseline`
        <= 0: a Status code (e.g. -1 INSUFFICIENT_IMAGES, -2 NO_VALID_DATA, -5 INTERNAL_FAULT)

    `sensor_width`/`sensor_height` are accepted for interface compatibility
    and not used. `count` is clamped to len(image_paths). Only the first
    `dist_count` (at most 5) distortion coefficients are used.
    """
    try:
        paths = list(image_paths)[:max(0, int(count))]
        if len(paths) < 2:
            return float(int(Status.INSUFFICIENT_IMAGES))

        if not baseline > 0 or not focal > 0:
            if logger:
                logger.error(f"invalid inputs: baseline={baseline} focal={focal}")
            return float(int(Status.INTERNAL_FAULT))

        dist = None
        if dist_coeffs is not None:
            n = len(dist_coeffs) if dist_count is None else int(dist_count)
            dist = list(dist_coeffs)[:max(0, min(n, MAX_DIST_COEFFS))]

        intrinsics = CameraIntrinsics.from_params(fx=focal, cx=cx, cy=cy, dist=dist)
        result = estimate_sequence(
            paths,
            baseline,
            intrinsics,
            config=config,
            loader=loader,
            matcher=matcher,
            logger=logger,
        )
        return result.value
    except Exception:
        if logger:
            logger.exception("estimate_height_from_baseline: unexpected fault")
        return float(int(Status.INTERNAL_FAULT))
