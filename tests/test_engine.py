from unittest.mock import patch

import pytest

from pose_engine.engine import PositionEstimationEngine
from pose_engine.fusion import SINGLE_MARKER_CEILING
from pose_engine.pe_types import CameraIntrinsics, MarkerWorldEntry, Point3D
from pose_engine.services.registry import MarkerRegistry
from pose_engine.strategies.solve_geometric import GEOMETRIC_CONFIDENCE, GeometricSolver
from pose_engine.strategies.solve_pnp import PerspectiveSolver

from conftest import square_marker


@pytest.fixture
def room():
    return MarkerRegistry([MarkerWorldEntry(0, Point3D(0.0, 0.0, 1.5), 0.15)])


def test_engine_rejects_missing_configuration(room, intrinsics):
    with pytest.raises(ValueError):
        PositionEstimationEngine(MarkerRegistry([]), intrinsics)
    with pytest.raises(ValueError):
        PositionEstimationEngine(room, None)


def test_default_solver_is_perspective_with_fallback(room, intrinsics):
    engine = PositionEstimationEngine(room, intrinsics)
    assert isinstance(engine.solver, PerspectiveSolver)
    assert isinstance(engine.solver.fallback, GeometricSolver)


def test_single_marker_scenario(room, intrinsics):
    """Square, centered, well-sized detection of marker 0 at (0, 0, 1.5)."""
    engine = PositionEstimationEngine(room, intrinsics)
    pose = engine.update([square_marker(0, side=120.0)], now=0.0)

    assert pose is not None
    assert pose.position.z == pytest.approx(1.5, abs=1e-5)
    assert pose.confidence == SINGLE_MARKER_CEILING


def test_single_marker_fallback_confidence(room, intrinsics):
    engine = PositionEstimationEngine(room, intrinsics)
    with patch("pose_engine.strategies.solve_pnp.pnp_solutions", return_value=[]):
        pose = engine.estimate([square_marker(0, side=120.0)])
    assert pose.confidence == GEOMETRIC_CONFIDENCE
    assert pose.position.z == 1.5


def test_unknown_marker_yields_no_pose(room, intrinsics):
    engine = PositionEstimationEngine(room, intrinsics)
    assert engine.known_markers([square_marker(17)]) == []
    assert engine.update([square_marker(17)], now=0.0) is None
    assert not engine.smoother.state.is_tracking


def test_update_smooths_between_frames(room, intrinsics):
    engine = PositionEstimationEngine(room, intrinsics)
    near = engine.update([square_marker(0, side=150.0)], now=0.0)
    far_raw = engine.estimate([square_marker(0, side=100.0)])
    smoothed = engine.update([square_marker(0, side=100.0)], now=0.1)

    assert near.position.y < smoothed.position.y < far_raw.position.y

    engine.reset()
    assert engine.update([square_marker(0, side=100.0)], now=0.2) == far_raw
