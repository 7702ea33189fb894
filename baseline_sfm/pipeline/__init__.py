"""
baseline_sfm/pipeline/__init__.py

Pairwise two-view size estimation pipeline.

Usage:
    from baseline_sfm.pipeline import SequenceAggregator, get_config
    from data_io.camera import CameraIntrinsics

    cam = CameraIntrinsics.from_params(fx=1500.0, cx=960.0, cy=540.0)
    result = SequenceAggregator(cam, baseline=5.0, config=get_config("strict")).run(paths)

    # Scalar contract (extent or status code): baseline_sfm.run_sfm.estimate_height_from_baseline
"""

from .config import (
    SizeConfig,
    FeatureConfig,
    MatchingConfig,
    GeometryConfig,
    TriangulationConfig,
    ValidationConfig,
    AggregationConfig,
    get_config,
    get_default_config,
    get_strict_config,
)

from .state import (
    PairStage,
    PairResult,
    SequenceResult,
    Status,
    StageOutcome,
)

from .pair import PairPipeline
from .sequence import SequenceAggregator, adjacent_pairs, reduce_extents

__all__ = [
    # Config
    "SizeConfig",
    "FeatureConfig",
    "MatchingConfig",
    "GeometryConfig",
    "TriangulationConfig",
    "ValidationConfig",
    "AggregationConfig",
    "get_config",
    "get_default_config",
    "get_strict_config",
    # State
    "PairStage",
    "PairResult",
    "SequenceResult",
    "Status",
    "StageOutcome",
    # Stages
    "PairPipeline",
    "SequenceAggregator",
    "adjacent_pairs",
    "reduce_extents",
]
