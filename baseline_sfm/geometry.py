# baseline_sfm/geometry.py
"""
Public geometry API.

Internals live in baseline_sfm/geometry_utils/.
Import from here in the rest of the codebase to avoid deep-path imports.
"""

from baseline_sfm.geometry_utils.epipolar import (
    essential_from_pose,
    estimate_essential,
    epipolar_distances,
    fundamental_from_essential,
)
from baseline_sfm.geometry_utils.projective import projection_matrix, camera_center
from baseline_sfm.geometry_utils.reprojection import (
    project_points,
    reprojection_errors,
    validate_reprojection,
    ReprojectionReport,
)
from baseline_sfm.geometry_utils.triangulation import (
    triangulate_points,
    triangulate_and_bound,
    triangulation_angles_deg,
    plausible_depth_mask,
    depth_bounds,
    cheirality_mask,
    DepthBounds,
)
from baseline_sfm.geometry_utils.twoview import recover_pose, scale_translation, TwoViewResult

__all__ = [
    "essential_from_pose",
    "estimate_essential",
    "epipolar_distances",
    "fundamental_from_essential",
    "projection_matrix",
    "camera_center",
    "project_points",
    "reprojection_errors",
    "validate_reprojection",
    "ReprojectionReport",
    "triangulate_points",
    "triangulate_and_bound",
    "triangulation_angles_deg",
    "plausible_depth_mask",
    "depth_bounds",
    "cheirality_mask",
    "DepthBounds",
    "recover_pose",
    "scale_translation",
    "TwoViewResult",
]
