"""SE(3) helpers for turning a marker pose in camera space into a camera pose in the room."""

import math

import numpy as np
import cv2
from typing import Tuple

# Marker-local axes -> world axes. Markers are wall-mounted and carry no
# per-marker rotation: marker x = world x, marker up (y) = world z,
# marker face normal (z) = world y.
MARKER_TO_WORLD = np.array(
    [
        [1.0, 0.0, 0.0],
        [0.0, 0.0, 1.0],
        [0.0, 1.0, 0.0],
    ]
)


def rvec_tvec_to_matrix(rvec: np.ndarray, tvec: np.ndarray) -> np.ndarray:
    """
    Convert rotation vector and translation vector to 4x4 transformation matrix.

    Args:
        rvec: Rotation vector (3,) or (3,1)
        tvec: Translation vector (3,) or (3,1)

    Returns:
        4x4 homogeneous transformation matrix
    """
    rvec = np.array(rvec, dtype=np.float64).reshape(3)
    tvec = np.array(tvec, dtype=np.float64).reshape(3)

    R, _ = cv2.Rodrigues(rvec)

    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = tvec

    return T


def invert_transform(T: np.ndarray) -> np.ndarray:
    """
    Invert a 4x4 homogeneous transformation matrix.

    For SE(3): T^-1 = [R^T, -R^T * t; 0, 1]
    """
    T_inv = np.eye(4)
    R = T[:3, :3]
    t = T[:3, 3]

    R_T = R.T
    T_inv[:3, :3] = R_T
    T_inv[:3, 3] = -R_T @ t

    return T_inv


def camera_in_marker_frame(rvec: np.ndarray, tvec: np.ndarray) -> np.ndarray:
    """
    Pose of the camera expressed in the marker's local frame.

    solvePnP gives T_cam_marker (marker in camera space); the camera in
    marker space is its inverse.
    """
    return invert_transform(rvec_tvec_to_matrix(rvec, tvec))


def marker_pose_to_world(
    rvec: np.ndarray, tvec: np.ndarray, marker_position: np.ndarray
) -> Tuple[np.ndarray, float]:
    """
    Camera world position and heading from one marker observation.

    Returns:
        (position (3,), heading in radians) where heading is the direction of
        the camera's optical axis projected on the world floor plane.
    """
    T_marker_cam = camera_in_marker_frame(rvec, tvec)
    offset_world = MARKER_TO_WORLD @ T_marker_cam[:3, 3]
    position = np.asarray(marker_position, dtype=np.float64).reshape(3) + offset_world

    forward_world = MARKER_TO_WORLD @ T_marker_cam[:3, 2]
    heading = math.atan2(forward_world[1], forward_world[0])
    return position, heading


def wall_facing_heading() -> float:
    """Heading of a camera looking straight at a marker: against the marker's face normal."""
    into_wall = MARKER_TO_WORLD @ np.array([0.0, 0.0, -1.0])
    return math.atan2(into_wall[1], into_wall[0])
