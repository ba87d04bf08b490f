from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import numpy as np


def normalize_angle(angle: float) -> float:
    """Wrap an angle in radians into (-pi, pi]."""
    if -math.pi < angle <= math.pi:
        return angle
    wrapped = math.fmod(angle + math.pi, 2.0 * math.pi)
    if wrapped <= 0.0:
        wrapped += 2.0 * math.pi
    return wrapped - math.pi


@dataclass(frozen=True)
class Point2D:
    x: float
    y: float


@dataclass(frozen=True)
class Point3D:
    x: float
    y: float
    z: float = 0.0

    def distance_to(self, other: "Point3D") -> float:
        return math.sqrt(
            (self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2
        )

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    @classmethod
    def from_array(cls, values) -> "Point3D":
        a = np.asarray(values, dtype=np.float64).reshape(-1)
        return cls(float(a[0]), float(a[1]), float(a[2]))


@dataclass(frozen=True)
class MarkerWorldEntry:
    marker_id: int
    position: Point3D
    edge_length_m: float

    def __post_init__(self):
        if self.marker_id < 0:
            raise ValueError(f"marker_id must be non-negative, got {self.marker_id}")
        if not self.edge_length_m > 0:
            raise ValueError(
                f"edge_length_m must be positive for marker {self.marker_id}, "
                f"got {self.edge_length_m}"
            )


@dataclass(frozen=True)
class DetectedMarker:
    """One marker seen in one frame: id plus four image corners in winding order."""

    marker_id: int
    corners: tuple  # 4 x Point2D

    def __post_init__(self):
        if len(self.corners) != 4:
            raise ValueError(f"DetectedMarker needs exactly 4 corners, got {len(self.corners)}")

    @property
    def center(self) -> Point2D:
        return Point2D(
            sum(c.x for c in self.corners) / 4.0,
            sum(c.y for c in self.corners) / 4.0,
        )

    def corner_array(self) -> np.ndarray:
        return np.array([[c.x, c.y] for c in self.corners], dtype=np.float64)

    @classmethod
    def from_array(cls, marker_id: int, corners: Any) -> "DetectedMarker":
        """Build from an OpenCV corner array shaped (1,4,2) or (4,2)."""
        pts = np.asarray(corners, dtype=np.float64).reshape(-1, 2)
        return cls(int(marker_id), tuple(Point2D(float(x), float(y)) for x, y in pts))


@dataclass(frozen=True)
class CameraIntrinsics:
    fx: float
    fy: float
    cx: float
    cy: float
    dist_coeffs: Optional[tuple] = None

    def __post_init__(self):
        if not (self.fx > 0 and self.fy > 0):
            raise ValueError(f"focal lengths must be positive, got fx={self.fx} fy={self.fy}")

    @property
    def focal_length(self) -> float:
        return (self.fx + self.fy) / 2.0

    def camera_matrix(self) -> np.ndarray:
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )

    def dist_array(self) -> np.ndarray:
        if not self.dist_coeffs:
            return np.zeros((5, 1), dtype=np.float64)
        return np.array(self.dist_coeffs, dtype=np.float64).reshape(-1, 1)

    @classmethod
    def from_matrix(cls, K: Any, dist: Any = None) -> "CameraIntrinsics":
        K = np.asarray(K, dtype=np.float64)
        coeffs = None
        if dist is not None:
            coeffs = tuple(float(v) for v in np.asarray(dist, dtype=np.float64).reshape(-1))
        return cls(float(K[0, 0]), float(K[1, 1]), float(K[0, 2]), float(K[1, 2]), coeffs)


@dataclass(frozen=True)
class PoseEstimate:
    position: Point3D
    heading: float = 0.0  # radians, (-pi, pi]
    confidence: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "heading", normalize_angle(float(self.heading)))
        object.__setattr__(self, "confidence", min(1.0, max(0.0, float(self.confidence))))

    def with_confidence(self, confidence: float) -> "PoseEstimate":
        return PoseEstimate(self.position, self.heading, confidence)


@dataclass(frozen=True)
class SmoothingState:
    last_pose: Optional[PoseEstimate] = None
    last_update: Optional[float] = None

    @property
    def is_tracking(self) -> bool:
        return self.last_pose is not None and self.last_update is not None


@dataclass
class Frame:
    idx: int
    ts_iso: str
    image: Any  # numpy array
    on_release: Optional[Callable[["Frame"], None]] = field(default=None, repr=False)
    released: bool = field(default=False, repr=False)

    def release(self) -> None:
        """Hand the buffer back to its source; repeated calls are no-ops."""
        if self.released:
            return
        self.released = True
        if self.on_release is not None:
            self.on_release(self)
