import logging
from typing import Optional, Sequence

from .fusion import DEFAULT_MAX_OBSERVATIONS, PoseFusion
from .pe_types import CameraIntrinsics, DetectedMarker, PoseEstimate
from .services.registry import MarkerRegistry
from .smoothing import SmoothingConfig, TemporalSmoother
from .strategies.base import PoseSolver
from .strategies.solve_geometric import GeometricSolver
from .strategies.solve_pnp import PerspectiveSolver

logger = logging.getLogger(__name__)


class PositionEstimationEngine:
    """
    Registry lookup -> per-marker solve -> quality score -> fusion -> smoothing.

    The registry and intrinsics are fixed for the lifetime of the engine;
    build a new engine after re-surveying the room.
    """

    def __init__(
        self,
        registry: MarkerRegistry,
        intrinsics: CameraIntrinsics,
        solver: Optional[PoseSolver] = None,
        max_observations: int = DEFAULT_MAX_OBSERVATIONS,
        smoothing: Optional[SmoothingConfig] = None,
    ):
        if intrinsics is None:
            raise ValueError("camera intrinsics are required")
        if registry is None or len(registry) == 0:
            raise ValueError("marker registry is empty")

        self.registry = registry
        self.intrinsics = intrinsics
        self.solver = solver or PerspectiveSolver(registry, fallback=GeometricSolver(registry))
        self.fusion = PoseFusion(self.solver, intrinsics, max_observations)
        self.smoother = TemporalSmoother(smoothing)

    def known_markers(self, markers: Sequence[DetectedMarker]) -> list[DetectedMarker]:
        known = [m for m in markers if self.registry.lookup(m.marker_id) is not None]
        if len(known) < len(markers):
            logger.debug(
                "ignoring unregistered markers: %s",
                sorted({m.marker_id for m in markers} - {m.marker_id for m in known}),
            )
        return known

    def estimate(self, markers: Sequence[DetectedMarker]) -> Optional[PoseEstimate]:
        """Fused pose for one frame, without temporal smoothing."""
        return self.fusion.fuse(self.known_markers(markers))

    def update(
        self, markers: Sequence[DetectedMarker], now: Optional[float] = None
    ) -> Optional[PoseEstimate]:
        fused = self.estimate(markers)
        if fused is None:
            return None
        return self.smoother.update(fused, now)

    def reset(self) -> None:
        self.smoother.reset()
