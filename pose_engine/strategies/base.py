from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from ..pe_types import CameraIntrinsics, DetectedMarker, PoseEstimate
from ..services.registry import MarkerRegistry

MIN_APPARENT_SIZE_PX = 1e-6


def side_lengths(corners: np.ndarray) -> np.ndarray:
    """Lengths of the four quad sides c0-c1, c1-c2, c2-c3, c3-c0."""
    return np.linalg.norm(np.roll(corners, -1, axis=0) - corners, axis=1)


def is_degenerate(marker: DetectedMarker) -> bool:
    """True when the corners cannot describe a square: repeated points or zero size."""
    pts = marker.corner_array()
    if not np.all(np.isfinite(pts)):
        return True
    if len({(float(x), float(y)) for x, y in pts}) < 4:
        return True
    return float(side_lengths(pts).mean()) <= MIN_APPARENT_SIZE_PX


class PoseSolver(ABC):
    """Strategy: one detected marker -> candidate camera pose, or None."""

    confidence: float = 1.0

    def __init__(self, registry: MarkerRegistry):
        self.registry = registry

    @abstractmethod
    def solve(
        self, marker: DetectedMarker, intrinsics: CameraIntrinsics
    ) -> Optional[PoseEstimate]: ...
