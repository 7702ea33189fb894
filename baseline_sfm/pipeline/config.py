"""
baseline_sfm/pipeline/config.py

All configuration dataclasses for the size-estimation pipeline.
ALL default values live here - no hardcoded numbers elsewhere.

Two threshold profiles have been used in practice and they disagree
(retention 15% vs 20%, inlier minimum 30 vs 50, reprojection ceiling
5.0 vs 1.0 px, extent upper bound 500 vs none). Both are provided as presets.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union


@dataclass
class FeatureConfig:
    """Keypoint detector parameters."""
    method: str = "sift"                   # "sift" | "orb"
    nfeatures: int = 2000                  # Target features per image
    min_keypoints: int = 100               # Fail the pair below this, per image (observed 30-100)


@dataclass
class MatchingConfig:
    """Descriptor matching and best-match retention."""
    feature: FeatureConfig = field(default_factory=FeatureConfig)

    cross_check: bool = True               # Mutual nearest neighbour
    retain_fraction: float = 0.15          # Keep the best fraction of sorted matches
    retain_floor: int = 50                 # If fraction gives fewer than this, keep all matches
    min_matches: int = 50                  # Fail the pair below this (observed 10-50)


@dataclass
class GeometryConfig:
    """Essential matrix RANSAC and pose recovery."""
    ransac_prob: float = 0.999
    ransac_thresh_px: float = 1.0
    min_inliers: int = 30                  # RANSAC inliers required
    min_pose_inliers: int = 10             # Chirality-consistent inliers required
    seed: int = 0                          # OpenCV RNG seed before each fit


@dataclass
class TriangulationConfig:
    """Triangulation plausibility filter."""
    depth_ceiling_factor: float = 100.0    # Reject z >= factor * baseline
    min_abs_w: float = 1e-6                # Reject near-zero homogeneous weight

    # Optional fixed-camera refinement of points (two views only)
    refine_points: bool = False
    refine_loss: str = "huber"
    refine_f_scale: float = 1.0
    refine_max_nfev: int = 200


@dataclass
class ValidationConfig:
    """Reprojection acceptance."""
    max_mean_reproj_px: float = 5.0        # Observed 1.0 - 5.0
    fallback_error_px: float = 0.5         # Placeholder when points/observations cannot be aligned


@dataclass
class AggregationConfig:
    """Sequence-level reduction."""
    noise_floor: float = 0.1               # Extents at or below this are noise
    max_extent: Optional[float] = 500.0    # None disables the upper sanity bound


@dataclass
class SizeConfig:
    """
    Master configuration for a size-estimation run.

    Usage:
        config = SizeConfig()                 # default profile
        config = get_config("strict")         # named profile
        config.geometry.min_inliers = 40      # modify specific values
        config = SizeConfig.from_file("cfg.yaml")
    """
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    geometry: GeometryConfig = field(default_factory=GeometryConfig)
    triangulation: TriangulationConfig = field(default_factory=TriangulationConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)

    # Runtime
    workers: int = 1                       # >1 dispatches pairs 1..N-2 to a thread pool
    verbose: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SizeConfig":
        """Create config from dictionary (e.g., loaded from YAML/JSON)."""
        d = dict(d or {})
        matching_dict = dict(d.pop("matching", {}) or {})
        feature_dict = matching_dict.pop("feature", {}) or {}
        matching_dict["feature"] = FeatureConfig(**feature_dict)

        known = {"geometry", "triangulation", "validation", "aggregation", "workers", "verbose"}
        unknown = set(d) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")

        return cls(
            matching=MatchingConfig(**matching_dict),
            geometry=GeometryConfig(**(d.get("geometry") or {})),
            triangulation=TriangulationConfig(**(d.get("triangulation") or {})),
            validation=ValidationConfig(**(d.get("validation") or {})),
            aggregation=AggregationConfig(**(d.get("aggregation") or {})),
            workers=int(d.get("workers", 1)),
            verbose=bool(d.get("verbose", False)),
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "SizeConfig":
        """Load a JSON/YAML config file. Keys not given keep their defaults."""
        from data_io.parsing import load_data

        obj = load_data(path)
        if not isinstance(obj, dict):
            raise ValueError(f"Config file must contain a mapping: {path}")
        return cls.from_dict(obj)

    def to_dict(self) -> dict:
        """Convert config to dictionary (for saving to YAML/JSON)."""
        return asdict(self)


# ============================================================
# PRESET CONFIGURATIONS
# ============================================================

def get_default_config() -> SizeConfig:
    """Lenient profile: 15% retention, 30 inliers, 5 px ceiling, 500 unit extent bound."""
    return SizeConfig()


def get_strict_config() -> SizeConfig:
    """Strict profile: 20% retention, 50 inliers, 1 px ceiling, no extent upper bound."""
    return SizeConfig(
        matching=MatchingConfig(
            retain_fraction=0.20,
        ),
        geometry=GeometryConfig(
            min_inliers=50,
        ),
        validation=ValidationConfig(
            max_mean_reproj_px=1.0,
        ),
        aggregation=AggregationConfig(
            max_extent=None,
        ),
    )


PROFILES = {
    "default": get_default_config,
    "strict": get_strict_config,
}


def get_config(profile: str = "default") -> SizeConfig:
    try:
        return PROFILES[profile]()
    except KeyError:
        raise ValueError(f"Unknown profile: {profile}. Use one of {sorted(PROFILES)}") from None
