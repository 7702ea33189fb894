"""
baseline_sfm/pipeline/pair.py

Two-view reconstruction of one adjacent image pair, run as a small state machine:

    INIT -> UNDISTORT -> MATCH -> ESTIMATE_ESSENTIAL -> RECOVER_POSE
         -> TRIANGULATE -> VALIDATE -> DONE

Every stage either advances or ends the pair with a failure status. Nothing
raised inside a stage escapes run(); it becomes INTERNAL_FAULT.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from data_io.camera import CameraIntrinsics
from data_io.images import load_corrected_frame
from baseline_sfm.features import Correspondences, match_pair
from baseline_sfm.geometry import (
    DepthBounds,
    ReprojectionReport,
    TwoViewResult,
    depth_bounds,
    epipolar_distances,
    estimate_essential,
    fundamental_from_essential,
    plausible_depth_mask,
    recover_pose,
    triangulate_and_bound,
    triangulation_angles_deg,
    validate_reprojection,
)
from baseline_sfm.refine import refine_points_two_view

from .config import MatchingConfig, SizeConfig
from .state import PairResult, PairStage, StageOutcome, Status

FrameLoader = Callable[[Any, CameraIntrinsics], Optional[np.ndarray]]
Matcher = Callable[[np.ndarray, np.ndarray, MatchingConfig], StageOutcome[Correspondences]]

_NEXT: Dict[PairStage, PairStage] = {
    PairStage.INIT: PairStage.UNDISTORT,
    PairStage.UNDISTORT: PairStage.MATCH,
    PairStage.MATCH: PairStage.ESTIMATE_ESSENTIAL,
    PairStage.ESTIMATE_ESSENTIAL: PairStage.RECOVER_POSE,
    PairStage.RECOVER_POSE: PairStage.TRIANGULATE,
    PairStage.TRIANGULATE: PairStage.VALIDATE,
    PairStage.VALIDATE: PairStage.DONE,
}


@dataclass
class _PairContext:
    """Working data of one run(); discarded when the pair completes."""
    pair: Tuple[int, int]
    sources: Tuple[Any, Any]
    img1: Optional[np.ndarray] = None
    img2: Optional[np.ndarray] = None
    corr: Optional[Correspondences] = None
    E: Optional[np.ndarray] = None
    ransac_mask: Optional[np.ndarray] = None
    pose: Optional[TwoViewResult] = None
    inliers: Optional[Correspondences] = None
    bounds: Optional[DepthBounds] = None
    report: Optional[ReprojectionReport] = None
    inlier_count: int = 0
    trace: List[PairStage] = field(default_factory=list)


class PairPipeline:
    """
    Reconstructs one pair and measures the depth spread of its points.

    Args:
        intrinsics: shared, read-only camera intrinsics
        baseline: physical distance between the two shots
        config: SizeConfig (default profile if None)
        loader: (source, intrinsics) -> single-channel undistorted image
        matcher: (img1, img2, MatchingConfig) -> StageOutcome[Correspondences]
        reuse_frames: keep the last loaded frame for the next adjacent pair.
            Only for sequential use; leave False when sharing across threads.
    """

    def __init__(
        self,
        intrinsics: CameraIntrinsics,
        baseline: float,
        config: Optional[SizeConfig] = None,
        loader: Optional[FrameLoader] = None,
        matcher: Optional[Matcher] = None,
        reuse_frames: bool = False,
        logger=None,
    ):
        if not baseline > 0:
            raise ValueError(f"Baseline must be positive, got {baseline}")
        self.intrinsics = intrinsics
        self.K = np.asarray(intrinsics.K)
        self.baseline = float(baseline)
        self.config = config if config is not None else SizeConfig()
        self.loader = loader if loader is not None else load_corrected_frame
        self.matcher = matcher
        self.reuse_frames = reuse_frames
        self.logger = logger
        self._last_frame: Optional[Tuple[int, np.ndarray]] = None

        self._handlers = {
            PairStage.INIT: self._init,
            PairStage.UNDISTORT: self._undistort,
            PairStage.MATCH: self._match,
            PairStage.ESTIMATE_ESSENTIAL: self._estimate_essential,
            PairStage.RECOVER_POSE: self._recover_pose,
            PairStage.TRIANGULATE: self._triangulate,
            PairStage.VALIDATE: self._validate,
        }

    # =========================================================
    # Driver
    # =========================================================

    def run(self, pair: Tuple[int, int], source1: Any, source2: Any) -> PairResult:
        ctx = _PairContext(pair=tuple(pair), sources=(source1, source2))
        stage = PairStage.INIT
        ctx.trace.append(stage)

        try:
            while stage is not PairStage.DONE:
                outcome = self._handlers[stage](ctx)
                if not outcome.ok:
                    ctx.trace.append(PairStage.DONE)
                    return self._finish(ctx, outcome.status, f"{stage.value}: {outcome.detail}")
                stage = _NEXT[stage]
                ctx.trace.append(stage)
        except Exception as e:
            if self.logger:
                self.logger.exception(f"pair {ctx.pair}: fault in stage {stage.value}")
            ctx.trace.append(PairStage.DONE)
            return self._finish(ctx, Status.INTERNAL_FAULT, f"{stage.value}: {type(e).__name__}: {e}")

        return self._finish(ctx, Status.SUCCESS)

    def _finish(self, ctx: _PairContext, status: Status, detail: str = "") -> PairResult:
        ok = status is Status.SUCCESS
        report = ctx.report
        bounds = ctx.bounds

        result = PairResult(
            pair=ctx.pair,
            status=status,
            min_depth=bounds.min_depth if ok else float("nan"),
            max_depth=bounds.max_depth if ok else float("nan"),
            inlier_count=ctx.inlier_count,
            mean_reprojection_error=report.mean_error if report is not None else float("nan"),
            point_count=bounds.count if bounds is not None else 0,
            low_confidence=bool(report is not None and report.low_confidence),
            detail=detail,
            stages=tuple(ctx.trace),
        )

        if self.logger:
            if ok:
                self.logger.info(
                    f"pair {ctx.pair}: inliers={result.inlier_count} points={result.point_count} "
                    f"z=[{result.min_depth:.3f}, {result.max_depth:.3f}] extent={result.extent:.3f} "
                    f"reproj={result.mean_reprojection_error:.2f}px"
                )
            else:
                self.logger.info(f"pair {ctx.pair}: {status.name} ({detail})")
        return result

    # =========================================================
    # Stages
    # =========================================================

    def _init(self, ctx: _PairContext) -> StageOutcome:
        return StageOutcome.success(None)

    def _frame(self, index: int, source: Any) -> Optional[np.ndarray]:
        if self.reuse_frames and self._last_frame is not None and self._last_frame[0] == index:
            return self._last_frame[1]
        img = self.loader(source, self.intrinsics)
        if self.reuse_frames and img is not None:
            self._last_frame = (index, img)
        return img

    def _undistort(self, ctx: _PairContext) -> StageOutcome:
        i, j = ctx.pair
        try:
            ctx.img1 = self._frame(i, ctx.sources[0])
            ctx.img2 = self._frame(j, ctx.sources[1])
        except (IOError, OSError, ValueError) as e:
            return StageOutcome.failure(Status.IMAGE_LOAD_FAILED, str(e))

        if ctx.img1 is None or ctx.img2 is None:
            return StageOutcome.failure(Status.IMAGE_LOAD_FAILED, "loader returned no image")
        return StageOutcome.success(None)

    def _match(self, ctx: _PairContext) -> StageOutcome:
        if self.matcher is not None:
            outcome = self.matcher(ctx.img1, ctx.img2, self.config.matching)
        else:
            outcome = match_pair(ctx.img1, ctx.img2, self.config.matching, logger=self.logger)

        # frames are not needed past matching
        ctx.img1 = ctx.img2 = None
        if not outcome.ok:
            return outcome
        ctx.corr = outcome.value
        return StageOutcome.success(None)

    def _estimate_essential(self, ctx: _PairContext) -> StageOutcome:
        gc = self.config.geometry
        corr = ctx.corr
        E, mask = estimate_essential(
            corr.pts1, corr.pts2, self.K,
            prob=gc.ransac_prob,
            threshold_px=gc.ransac_thresh_px,
            seed=gc.seed,
        )
        if E is None:
            return StageOutcome.failure(Status.DEGENERATE_GEOMETRY, f"no essential matrix from {len(corr)} matches")

        n_in = int(np.count_nonzero(mask))
        ctx.E, ctx.ransac_mask, ctx.inlier_count = E, mask, n_in
        if n_in < gc.min_inliers:
            return StageOutcome.failure(Status.INSUFFICIENT_INLIERS, f"inliers {n_in} < {gc.min_inliers}")

        if self.logger:
            F = fundamental_from_essential(E, self.K)
            d = epipolar_distances(corr.pts1[mask], corr.pts2[mask], F)
            self.logger.debug(f"  E: inliers={n_in}/{len(corr)} median epipolar dist={float(np.median(d)):.3f}px")
        return StageOutcome.success(None)

    def _recover_pose(self, ctx: _PairContext) -> StageOutcome:
        gc = self.config.geometry
        corr = ctx.corr
        pose = recover_pose(ctx.E, corr.pts1, corr.pts2, self.K, self.baseline, mask=ctx.ransac_mask)
        if pose is None:
            return StageOutcome.failure(Status.POSE_RECOVERY_FAILED, "decomposition gave no translation")

        ctx.pose = pose
        ctx.inlier_count = pose.n_inliers
        if pose.n_inliers < gc.min_pose_inliers:
            return StageOutcome.failure(
                Status.POSE_RECOVERY_FAILED,
                f"chirality inliers {pose.n_inliers} < {gc.min_pose_inliers}",
            )
        ctx.inliers = corr.subset(pose.inlier_mask)
        return StageOutcome.success(None)

    def _triangulate(self, ctx: _PairContext) -> StageOutcome:
        tc = self.config.triangulation
        pose, inl = ctx.pose, ctx.inliers
        bounds = triangulate_and_bound(
            inl.pts1, inl.pts2, self.K, pose.R, pose.t,
            baseline=self.baseline,
            depth_ceiling_factor=tc.depth_ceiling_factor,
            min_abs_w=tc.min_abs_w,
        )

        if tc.refine_points and bounds.count > 0:
            X_ref = refine_points_two_view(
                bounds.X, inl.pts1[bounds.keep], inl.pts2[bounds.keep],
                self.K, pose.R, pose.t,
                loss=tc.refine_loss,
                f_scale=tc.refine_f_scale,
                max_nfev=tc.refine_max_nfev,
                logger=self.logger,
            )
            X_full = np.full((len(inl), 3), np.nan, dtype=np.float64)
            X_full[bounds.keep] = X_ref
            keep = plausible_depth_mask(X_full, pose.R, pose.t, tc.depth_ceiling_factor * self.baseline)
            bounds = depth_bounds(X_full, keep)

        ctx.bounds = bounds
        if bounds.count == 0:
            return StageOutcome.failure(Status.TRIANGULATION_EMPTY, f"0 of {len(inl)} points plausible")

        if self.logger:
            ang = triangulation_angles_deg(bounds.X, pose.R, pose.t)
            self.logger.debug(
                f"  triangulated {bounds.count}/{len(inl)} median parallax={float(np.nanmedian(ang)):.2f}deg"
            )
        return StageOutcome.success(None)

    def _validate(self, ctx: _PairContext) -> StageOutcome:
        vc = self.config.validation
        pose, inl, bounds = ctx.pose, ctx.inliers, ctx.bounds
        report = validate_reprojection(
            bounds.X, inl.pts1[bounds.keep], inl.pts2[bounds.keep],
            self.K, pose.R, pose.t,
            fallback_error_px=vc.fallback_error_px,
        )
        ctx.report = report

        if report.low_confidence:
            if self.logger:
                self.logger.warning(
                    f"pair {ctx.pair}: points and observations not aligned, "
                    f"using placeholder reprojection error {report.mean_error:.2f}px"
                )
            return StageOutcome.success(None)

        if not report.accepted(vc.max_mean_reproj_px):
            return StageOutcome.failure(
                Status.REPROJECTION_TOO_HIGH,
                f"mean reprojection {report.mean_error:.2f}px > {vc.max_mean_reproj_px}px",
            )
        return StageOutcome.success(None)
