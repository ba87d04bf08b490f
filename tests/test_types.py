import math

import numpy as np
import pytest

from pose_engine.pe_types import (
    CameraIntrinsics,
    DetectedMarker,
    Frame,
    MarkerWorldEntry,
    Point2D,
    Point3D,
    PoseEstimate,
    SmoothingState,
    normalize_angle,
)

from conftest import square_marker


@pytest.mark.parametrize(
    "angle, expected",
    [
        (0.0, 0.0),
        (math.pi, math.pi),
        (-math.pi, math.pi),
        (1.5 * math.pi, -0.5 * math.pi),
        (-2.5 * math.pi, -0.5 * math.pi),
    ],
)
def test_normalize_angle_range(angle, expected):
    assert normalize_angle(angle) == pytest.approx(expected)


def test_point3d_distance():
    assert Point3D(0, 0, 0).distance_to(Point3D(3, 4, 12)) == pytest.approx(13.0)


def test_marker_entry_rejects_bad_values():
    with pytest.raises(ValueError):
        MarkerWorldEntry(-1, Point3D(0, 0, 0), 0.1)
    with pytest.raises(ValueError):
        MarkerWorldEntry(1, Point3D(0, 0, 0), 0.0)


def test_detected_marker_center_and_array():
    m = square_marker(7, cx=100.0, cy=50.0, side=20.0)
    assert m.center == Point2D(100.0, 50.0)
    assert m.corner_array().shape == (4, 2)


def test_detected_marker_from_opencv_corners():
    corners = np.array([[[0.0, 0.0], [10.0, 0.0], [10.0, 10.0], [0.0, 10.0]]], dtype=np.float32)
    m = DetectedMarker.from_array(np.int32(3), corners)
    assert m.marker_id == 3
    assert m.corners[2] == Point2D(10.0, 10.0)


def test_detected_marker_needs_four_corners():
    with pytest.raises(ValueError):
        DetectedMarker(1, (Point2D(0, 0), Point2D(1, 0), Point2D(1, 1)))


def test_intrinsics_matrix_and_validation():
    intr = CameraIntrinsics(800.0, 700.0, 320.0, 240.0)
    K = intr.camera_matrix()
    assert K[0, 0] == 800.0 and K[1, 1] == 700.0 and K[0, 2] == 320.0
    assert intr.focal_length == 750.0
    assert np.all(intr.dist_array() == 0)

    back = CameraIntrinsics.from_matrix(K, np.zeros((1, 5)))
    assert back.fx == 800.0 and back.cy == 240.0
    assert back.dist_coeffs == (0.0,) * 5

    with pytest.raises(ValueError):
        CameraIntrinsics(0.0, 800.0, 320.0, 240.0)


def test_pose_estimate_normalizes_heading_and_clamps_confidence():
    pose = PoseEstimate(Point3D(0, 0, 0), heading=-math.pi, confidence=1.7)
    assert pose.heading == pytest.approx(math.pi)
    assert pose.confidence == 1.0
    assert PoseEstimate(Point3D(0, 0, 0), 0.0, -0.2).confidence == 0.0


def test_smoothing_state_cold_by_default():
    assert not SmoothingState().is_tracking


def test_frame_release_runs_callback_once():
    calls = []
    f = Frame(1, "ts", None, on_release=calls.append)
    f.release()
    f.release()
    assert calls == [f]
    assert f.released
