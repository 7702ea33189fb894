"""
baseline_sfm/status.py

Status codes and the tagged result passed across every stage boundary.

The numeric values are part of the public contract of the scalar entry point:
a non-positive return value is one of these codes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class Status(IntEnum):
    SUCCESS = 0
    INSUFFICIENT_IMAGES = -1
    NO_VALID_DATA = -2
    TOO_FEW_KEYPOINTS = -3
    TOO_FEW_MATCHES = -4
    INTERNAL_FAULT = -5
    DEGENERATE_GEOMETRY = -6
    INSUFFICIENT_INLIERS = -7
    POSE_RECOVERY_FAILED = -8
    TRIANGULATION_EMPTY = -9
    REPROJECTION_TOO_HIGH = -10
    IMAGE_LOAD_FAILED = -11

    @property
    def ok(self) -> bool:
        return self is Status.SUCCESS


@dataclass(frozen=True)
class StageOutcome(Generic[T]):
    """Either a value (status SUCCESS) or a failure status with a reason."""
    status: Status
    value: Optional[T] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCESS

    @classmethod
    def success(cls, value: T, detail: str = "") -> "StageOutcome[T]":
        return cls(Status.SUCCESS, value, detail)

    @classmethod
    def failure(cls, status: Status, detail: str = "", value: Optional[T] = None) -> "StageOutcome[T]":
        if status is Status.SUCCESS:
            raise ValueError("failure() needs a non-success status")
        return cls(status, value, detail)
