import logging
import math
from typing import Optional

from ..pe_types import CameraIntrinsics, DetectedMarker, Point3D, PoseEstimate
from ..transforms import wall_facing_heading
from .base import PoseSolver, is_degenerate, side_lengths

logger = logging.getLogger(__name__)

GEOMETRIC_CONFIDENCE = 0.6


def apparent_size(marker: DetectedMarker) -> float:
    """Mean side length of the detected quad in pixels."""
    return float(side_lengths(marker.corner_array()).mean())


def estimate_range(size_px: float, edge_length_m: float, focal_length: float) -> float:
    """Pinhole relation: size_px = focal_length * edge_length_m / range."""
    return focal_length * edge_length_m / size_px


def estimate_bearing(marker: DetectedMarker, intrinsics: CameraIntrinsics) -> float:
    center = marker.center
    return math.atan2(center.y - intrinsics.cy, center.x - intrinsics.cx)


class GeometricSolver(PoseSolver):
    """
    Range from apparent size, bearing from the image-center offset.

    Height is not solved: the camera is placed at the marker's surveyed z.
    Orientation is not solved either: the camera is taken to face the
    marker's wall, the same heading convention the perspective solver uses.
    """

    confidence = GEOMETRIC_CONFIDENCE

    def solve(self, marker: DetectedMarker, intrinsics: CameraIntrinsics) -> Optional[PoseEstimate]:
        entry = self.registry.lookup(marker.marker_id)
        if entry is None or is_degenerate(marker):
            return None

        size_px = apparent_size(marker)
        distance = estimate_range(size_px, entry.edge_length_m, intrinsics.focal_length)
        bearing = estimate_bearing(marker, intrinsics)

        pos = entry.position
        position = Point3D(
            pos.x + distance * math.cos(bearing),
            pos.y + distance * math.sin(bearing),
            pos.z,
        )
        logger.debug(
            "geometric solve marker=%d size=%.1fpx range=%.3fm bearing=%.3frad",
            marker.marker_id, size_px, distance, bearing,
        )
        return PoseEstimate(position, wall_facing_heading(), self.confidence)
