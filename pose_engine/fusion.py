from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import numpy as np

from .pe_types import CameraIntrinsics, DetectedMarker, Point3D, PoseEstimate, normalize_angle
from .quality import score_observation
from .strategies.base import PoseSolver

logger = logging.getLogger(__name__)

DEFAULT_MAX_OBSERVATIONS = 4

SINGLE_MARKER_CEILING = 0.85
DUAL_MARKER_CEILING = 0.90
MULTI_MARKER_CEILING = 0.95

_COLLAPSE_EPS = 1e-9


def confidence_ceiling(count: int) -> float:
    if count <= 1:
        return SINGLE_MARKER_CEILING
    if count == 2:
        return DUAL_MARKER_CEILING
    return MULTI_MARKER_CEILING


def angle_difference(target: float, source: float) -> float:
    """Signed shortest rotation taking ``source`` to ``target``."""
    return normalize_angle(target - source)


def circular_mean(angles: Sequence[float], weights: Optional[Sequence[float]] = None) -> float:
    """
    Weighted mean of headings via unit-vector summation.

    Opposite headings of equal weight cancel out; the mean is then ambiguous
    and the far-side bisector (antipode of the arithmetic mean) is returned,
    so {pi/2, -pi/2} averages to pi rather than 0.
    """
    a = np.asarray(angles, dtype=np.float64)
    if a.size == 0:
        raise ValueError("circular_mean of an empty sequence")
    w = np.ones_like(a) if weights is None else np.asarray(weights, dtype=np.float64)
    if w.sum() <= 0:
        w = np.ones_like(a)

    s = float(np.sum(w * np.sin(a)))
    c = float(np.sum(w * np.cos(a)))
    if math.hypot(s, c) <= _COLLAPSE_EPS * float(w.sum()):
        arithmetic = float(np.sum(w * a) / w.sum())
        return normalize_angle(arithmetic + math.pi)
    return normalize_angle(math.atan2(s, c))


@dataclass(frozen=True)
class Candidate:
    marker_id: int
    pose: PoseEstimate
    quality: float

    @property
    def weight(self) -> float:
        return self.pose.confidence * self.quality


def combine(candidates: Sequence[Candidate]) -> Optional[PoseEstimate]:
    """Confidence-weighted fusion of already-solved candidates."""
    if not candidates:
        return None

    weights = np.array([c.weight for c in candidates], dtype=np.float64)
    ceiling = confidence_ceiling(len(candidates))

    if len(candidates) == 1:
        only = candidates[0]
        return only.pose.with_confidence(min(only.weight, ceiling))

    norm = weights if weights.sum() > 0 else np.ones_like(weights)
    positions = np.array([c.pose.position.as_array() for c in candidates])
    fused_position = (norm[:, None] * positions).sum(axis=0) / norm.sum()
    heading = circular_mean([c.pose.heading for c in candidates], norm)
    confidence = min(float(weights.mean()), ceiling)

    return PoseEstimate(Point3D.from_array(fused_position), heading, confidence)


class PoseFusion:
    """Solve each registered marker of a frame and fuse the candidates."""

    def __init__(
        self,
        solver: PoseSolver,
        intrinsics: CameraIntrinsics,
        max_observations: int = DEFAULT_MAX_OBSERVATIONS,
        scorer: Callable[[DetectedMarker], float] = score_observation,
    ):
        if max_observations < 1:
            raise ValueError("max_observations must be >= 1")
        self.solver = solver
        self.intrinsics = intrinsics
        self.max_observations = max_observations
        self.scorer = scorer

    def select(self, markers: Sequence[DetectedMarker]) -> list[DetectedMarker]:
        """Stable subset of at most ``max_observations`` markers (lowest ids first)."""
        ordered = sorted(markers, key=lambda m: m.marker_id)
        if len(ordered) > self.max_observations:
            logger.debug(
                "capping observations %d -> %d", len(ordered), self.max_observations
            )
        return ordered[: self.max_observations]

    def candidates(self, markers: Sequence[DetectedMarker]) -> list[Candidate]:
        out = []
        for marker in self.select(markers):
            pose = self.solver.solve(marker, self.intrinsics)
            if pose is None:
                logger.debug("no candidate for marker %d", marker.marker_id)
                continue
            out.append(Candidate(marker.marker_id, pose, self.scorer(marker)))
        return out

    def fuse(self, markers: Sequence[DetectedMarker]) -> Optional[PoseEstimate]:
        return combine(self.candidates(markers))
