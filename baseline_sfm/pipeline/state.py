"""
baseline_sfm/pipeline/state.py

Pair state machine stages and the immutable per-pair / per-run results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from baseline_sfm.status import StageOutcome, Status

__all__ = ["PairStage", "PairResult", "SequenceResult", "Status", "StageOutcome"]


class PairStage(Enum):
    INIT = "init"
    UNDISTORT = "undistort"
    MATCH = "match"
    ESTIMATE_ESSENTIAL = "estimate_essential"
    RECOVER_POSE = "recover_pose"
    TRIANGULATE = "triangulate"
    VALIDATE = "validate"
    DONE = "done"


@dataclass(frozen=True)
class PairResult:
    """Outcome of one adjacent pair. Depth values are in the baseline's unit."""
    pair: Tuple[int, int]
    status: Status
    min_depth: float = float("nan")
    max_depth: float = float("nan")
    inlier_count: int = 0
    mean_reprojection_error: float = float("nan")
    point_count: int = 0
    low_confidence: bool = False
    detail: str = ""
    stages: Tuple[PairStage, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCESS

    @property
    def extent(self) -> float:
        """max_depth - min_depth, clamped at 0; 0 for failed pairs."""
        if not self.ok:
            return 0.0
        return max(0.0, self.max_depth - self.min_depth)

    def is_usable(self, noise_floor: float, max_extent: Optional[float] = None) -> bool:
        if not self.ok:
            return False
        e = self.extent
        if e <= noise_floor:
            return False
        if max_extent is not None and e >= max_extent:
            return False
        return True


@dataclass(frozen=True)
class SequenceResult:
    """Outcome of a whole run: a mean extent or a status code."""
    status: Status
    extent: Optional[float] = None
    pair_results: Tuple[PairResult, ...] = field(default_factory=tuple)
    contributing: int = 0

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCESS

    @property
    def value(self) -> float:
        """Positive extent on success, otherwise the (non-positive) status code."""
        if self.ok and self.extent is not None:
            return float(self.extent)
        return float(int(self.status))
