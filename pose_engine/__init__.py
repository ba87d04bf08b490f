"""Camera pose estimation from surveyed fiducial markers."""

from .engine import PositionEstimationEngine
from .pe_types import (
    CameraIntrinsics,
    DetectedMarker,
    MarkerWorldEntry,
    Point2D,
    Point3D,
    PoseEstimate,
    SmoothingState,
)
from .services.registry import MarkerRegistry

__all__ = [
    "CameraIntrinsics",
    "DetectedMarker",
    "MarkerRegistry",
    "MarkerWorldEntry",
    "Point2D",
    "Point3D",
    "PoseEstimate",
    "PositionEstimationEngine",
    "SmoothingState",
]
