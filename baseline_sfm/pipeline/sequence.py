"""
baseline_sfm/pipeline/sequence.py

Runs the pair pipeline over adjacent frames (0,1), (1,2), ... and reduces the
per-pair depth extents to one mean.

Rules:
  - fewer than 2 frames -> INSUFFICIENT_IMAGES, no pair is formed
  - pair 0 failing ends the run with pair 0's status
  - later failures only drop that pair from the mean
  - no contributing pair -> NO_VALID_DATA
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional, Sequence

from data_io.camera import CameraIntrinsics

from .config import AggregationConfig, SizeConfig
from .pair import FrameLoader, Matcher, PairPipeline
from .state import PairResult, SequenceResult, Status


def adjacent_pairs(count: int) -> List[tuple]:
    return [(i, i + 1) for i in range(max(0, count - 1))]


def reduce_extents(
    results: Sequence[PairResult],
    config: AggregationConfig,
    logger=None,
) -> SequenceResult:
    """
    Equal-weighted mean of usable pair extents.
    Assumes pair 0 has already been checked by the caller.
    """
    total = 0.0
    used = 0
    for r in results:
        if r.is_usable(config.noise_floor, config.max_extent):
            total += r.extent
            used += 1
        elif r.ok and logger:
            logger.info(f"pair {r.pair}: extent {r.extent:.3f} outside plausible range, skipped")

    if used == 0:
        return SequenceResult(Status.NO_VALID_DATA, None, tuple(results), 0)
    return SequenceResult(Status.SUCCESS, total / used, tuple(results), used)


class SequenceAggregator:
    """
    Entry point for one sequence.

    Usage:
        agg = SequenceAggregator(intrinsics, baseline=10.0, config=get_config("strict"))
        result = agg.run(["img0.jpg", "img1.jpg", "img2.jpg"])
        result.value   # mean extent, or the status code
    """

    def __init__(
        self,
        intrinsics: CameraIntrinsics,
        baseline: float,
        config: Optional[SizeConfig] = None,
        loader: Optional[FrameLoader] = None,
        matcher: Optional[Matcher] = None,
        logger=None,
    ):
        self.intrinsics = intrinsics
        self.baseline = baseline
        self.config = config if config is not None else SizeConfig()
        self.loader = loader
        self.matcher = matcher
        self.logger = logger

    def _pipeline(self, baseline: float, reuse_frames: bool) -> PairPipeline:
        return PairPipeline(
            self.intrinsics,
            baseline,
            config=self.config,
            loader=self.loader,
            matcher=self.matcher,
            reuse_frames=reuse_frames,
            logger=self.logger,
        )

    def run(self, sources: Sequence[Any]) -> SequenceResult:
        """Never raises; internal faults come back as INTERNAL_FAULT."""
        try:
            return self._run(list(sources))
        except Exception:
            if self.logger:
                self.logger.exception("sequence: unexpected fault")
            return SequenceResult(Status.INTERNAL_FAULT)

    def _run(self, sources: List[Any]) -> SequenceResult:
        count = len(sources)
        if count < 2:
            if self.logger:
                self.logger.info(f"sequence: {count} image(s), need at least 2")
            return SequenceResult(Status.INSUFFICIENT_IMAGES)

        baseline = float(self.baseline)
        pairs = adjacent_pairs(count)
        workers = max(1, int(self.config.workers))
        if self.logger:
            self.logger.info(f"sequence: {count} images, {len(pairs)} pairs, baseline={baseline} workers={workers}")

        # the frame cache is only safe when pairs run one after another
        pipeline = self._pipeline(baseline, reuse_frames=(workers == 1))

        # pair 0 decides whether the run continues, so it always goes first
        first = pipeline.run(pairs[0], sources[0], sources[1])
        if not first.ok:
            return self._fatal(first)

        def run_pair(p):
            return pipeline.run(p, sources[p[0]], sources[p[1]])

        rest = pairs[1:]
        if workers == 1 or len(rest) < 2:
            later = [run_pair(p) for p in rest]
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                later = list(pool.map(run_pair, rest))
        results = [first] + later

        out = reduce_extents(results, self.config.aggregation, self.logger)
        if self.logger:
            if out.ok:
                self.logger.info(f"sequence: mean extent={out.extent:.3f} from {out.contributing}/{len(results)} pairs")
            else:
                self.logger.info(f"sequence: {out.status.name}")
        return out

    def _fatal(self, first: PairResult) -> SequenceResult:
        if self.logger:
            self.logger.info(f"sequence: first pair failed with {first.status.name}, stopping")
        return SequenceResult(first.status, None, (first,), 0)
