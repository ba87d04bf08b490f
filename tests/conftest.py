import pytest

from pose_engine.pe_types import CameraIntrinsics, DetectedMarker, MarkerWorldEntry, Point2D, Point3D
from pose_engine.services.registry import MarkerRegistry


def square_marker(marker_id, cx=320.0, cy=240.0, side=120.0):
    """Axis-aligned square detection centered at (cx, cy), ArUco corner order."""
    h = side / 2.0
    return DetectedMarker(
        marker_id,
        (
            Point2D(cx - h, cy - h),
            Point2D(cx + h, cy - h),
            Point2D(cx + h, cy + h),
            Point2D(cx - h, cy + h),
        ),
    )


@pytest.fixture
def intrinsics():
    return CameraIntrinsics(800.0, 800.0, 320.0, 240.0)


@pytest.fixture
def registry():
    return MarkerRegistry(
        [
            MarkerWorldEntry(0, Point3D(0.0, 0.0, 1.5), 0.15),
            MarkerWorldEntry(1, Point3D(1.0, 0.0, 1.5), 0.15),
            MarkerWorldEntry(2, Point3D(2.0, 0.0, 1.5), 0.15),
            MarkerWorldEntry(3, Point3D(3.0, 0.0, 1.5), 0.15),
            MarkerWorldEntry(4, Point3D(4.0, 0.0, 1.5), 0.15),
            MarkerWorldEntry(5, Point3D(5.0, 0.0, 1.5), 0.15),
        ]
    )
