"""Per-observation quality: big, square-looking markers are trusted more."""

import numpy as np

from .pe_types import DetectedMarker
from .strategies.base import side_lengths

# 100 x 100 px marker saturates the size score
REFERENCE_AREA_PX = 10000.0


def bounding_box_area(marker: DetectedMarker) -> float:
    pts = marker.corner_array()
    span = pts.max(axis=0) - pts.min(axis=0)
    return float(span[0] * span[1])


def size_score(marker: DetectedMarker, reference_area: float = REFERENCE_AREA_PX) -> float:
    return float(np.clip(bounding_box_area(marker) / reference_area, 0.0, 1.0))


def shape_score(marker: DetectedMarker) -> float:
    """1.0 for equal sides, falling towards 0 as the quad skews."""
    sides = side_lengths(marker.corner_array())
    avg = float(sides.mean())
    if avg <= 0.0:
        return 0.0
    max_dev = float(np.abs(sides - avg).max())
    return max(0.0, 1.0 - max_dev / avg)


def score_observation(marker: DetectedMarker, reference_area: float = REFERENCE_AREA_PX) -> float:
    return (size_score(marker, reference_area) + shape_score(marker)) / 2.0
