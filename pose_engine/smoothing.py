"""
Time-adaptive exponential smoothing of fused poses.

``update`` is a pure transition over ``SmoothingState`` so it can be driven
with explicit timestamps. ``TemporalSmoother`` wraps it for the pipeline.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from .pe_types import Point3D, PoseEstimate, SmoothingState
from .fusion import angle_difference

DEFAULT_STALENESS_S = 1.0
DEFAULT_TIME_CONSTANT_S = 0.2


@dataclass(frozen=True)
class SmoothingConfig:
    staleness_s: float = DEFAULT_STALENESS_S
    time_constant_s: float = DEFAULT_TIME_CONSTANT_S


def blend_factor(elapsed: float, time_constant_s: float = DEFAULT_TIME_CONSTANT_S) -> float:
    """Weight of the new measurement; grows with the age of the previous pose."""
    if time_constant_s <= 0:
        return 1.0
    alpha = 1.0 - math.exp(-max(0.0, elapsed) / time_constant_s)
    return min(1.0, max(0.0, alpha))


def blend(previous: PoseEstimate, new: PoseEstimate, alpha: float) -> PoseEstimate:
    p, n = previous.position, new.position
    position = Point3D(
        p.x + alpha * (n.x - p.x),
        p.y + alpha * (n.y - p.y),
        p.z + alpha * (n.z - p.z),
    )
    heading = previous.heading + alpha * angle_difference(new.heading, previous.heading)
    return PoseEstimate(position, heading, max(previous.confidence, new.confidence))


def reset() -> SmoothingState:
    return SmoothingState()


def update(
    state: SmoothingState,
    new_pose: PoseEstimate,
    now: float,
    config: SmoothingConfig = SmoothingConfig(),
) -> Tuple[SmoothingState, PoseEstimate]:
    if not state.is_tracking:
        return SmoothingState(new_pose, now), new_pose

    elapsed = now - state.last_update
    if elapsed > config.staleness_s:
        return SmoothingState(new_pose, now), new_pose

    emitted = blend(state.last_pose, new_pose, blend_factor(elapsed, config.time_constant_s))
    return SmoothingState(emitted, now), emitted


class TemporalSmoother:
    def __init__(self, config: Optional[SmoothingConfig] = None, clock=time.monotonic):
        self.config = config or SmoothingConfig()
        self._clock = clock
        self._state = SmoothingState()
        self._lock = threading.Lock()

    @property
    def state(self) -> SmoothingState:
        return self._state

    def update(self, pose: PoseEstimate, now: Optional[float] = None) -> PoseEstimate:
        with self._lock:
            ts = self._clock() if now is None else now
            self._state, emitted = update(self._state, pose, ts, self.config)
            return emitted

    def reset(self) -> None:
        with self._lock:
            self._state = reset()
