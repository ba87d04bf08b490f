import math
from unittest.mock import patch

import pytest

from pose_engine.fusion import (
    DUAL_MARKER_CEILING,
    MULTI_MARKER_CEILING,
    SINGLE_MARKER_CEILING,
    Candidate,
    PoseFusion,
    angle_difference,
    circular_mean,
    combine,
    confidence_ceiling,
)
from pose_engine.pe_types import Point3D, PoseEstimate
from pose_engine.strategies.solve_geometric import GEOMETRIC_CONFIDENCE, GeometricSolver
from pose_engine.strategies.solve_pnp import PERSPECTIVE_CONFIDENCE, PerspectiveSolver

from conftest import square_marker


class FixedSolver:
    """Returns a canned pose per marker id and records calls."""

    def __init__(self, poses):
        self.poses = poses
        self.calls = []

    def solve(self, marker, intrinsics):
        self.calls.append(marker.marker_id)
        return self.poses.get(marker.marker_id)


def _pose(x, heading=0.0, conf=1.0):
    return PoseEstimate(Point3D(x, 0.0, 1.5), heading, conf)


def test_circular_mean_same_headings():
    assert circular_mean([0.0, 0.0]) == pytest.approx(0.0)


def test_circular_mean_opposite_headings_wraps_to_pi():
    result = circular_mean([math.pi / 2, -math.pi / 2], [1.0, 1.0])
    assert abs(result) == pytest.approx(math.pi)


def test_circular_mean_across_boundary():
    result = circular_mean([math.pi - 0.1, -math.pi + 0.1])
    assert abs(result) == pytest.approx(math.pi)


def test_circular_mean_weighted():
    result = circular_mean([0.0, math.pi / 2], [1.0, 0.0])
    assert result == pytest.approx(0.0)


def test_angle_difference_shortest_path():
    assert angle_difference(-math.pi + 0.1, math.pi - 0.1) == pytest.approx(0.2)


def test_ceilings_increase_with_count():
    assert confidence_ceiling(1) == SINGLE_MARKER_CEILING
    assert confidence_ceiling(2) == DUAL_MARKER_CEILING
    assert confidence_ceiling(5) == MULTI_MARKER_CEILING
    assert SINGLE_MARKER_CEILING < DUAL_MARKER_CEILING < MULTI_MARKER_CEILING < 1.0


def test_fusion_confidence_non_decreasing_in_count(intrinsics):
    poses = {i: _pose(float(i)) for i in range(4)}
    markers = [square_marker(i, side=200.0) for i in range(4)]
    confs = []
    for n in (1, 2, 3):
        fusion = PoseFusion(FixedSolver(poses), intrinsics, scorer=lambda m: 1.0)
        confs.append(fusion.fuse(markers[:n]).confidence)
    assert confs == [SINGLE_MARKER_CEILING, DUAL_MARKER_CEILING, MULTI_MARKER_CEILING]


def test_fusion_low_quality_stays_below_ceiling(intrinsics):
    poses = {0: _pose(0.0), 1: _pose(1.0)}
    fusion = PoseFusion(FixedSolver(poses), intrinsics, scorer=lambda m: 0.5)
    fused = fusion.fuse([square_marker(0), square_marker(1)])
    assert fused.confidence == pytest.approx(0.5)


def test_fusion_weights_pull_towards_better_candidate():
    fused = combine(
        [
            Candidate(0, _pose(0.0), 1.0),
            Candidate(1, _pose(4.0), 0.25),
        ]
    )
    assert fused.position.x == pytest.approx(0.8)


def test_fusion_zero_weights_fall_back_to_equal():
    fused = combine([Candidate(0, _pose(0.0), 0.0), Candidate(1, _pose(2.0), 0.0)])
    assert fused.position.x == pytest.approx(1.0)
    assert fused.confidence == 0.0


def test_fusion_empty_and_failed_solves(intrinsics):
    fusion = PoseFusion(FixedSolver({}), intrinsics)
    assert fusion.fuse([]) is None
    assert fusion.fuse([square_marker(0)]) is None


def test_fusion_caps_observations_stably(intrinsics):
    poses = {i: _pose(float(i)) for i in range(6)}
    solver = FixedSolver(poses)
    fusion = PoseFusion(solver, intrinsics, max_observations=4)
    markers = [square_marker(i) for i in (5, 3, 1, 4, 0, 2)]
    fusion.fuse(markers)
    assert solver.calls == [0, 1, 2, 3]


def test_fusion_rejects_bad_cap(intrinsics):
    with pytest.raises(ValueError):
        PoseFusion(FixedSolver({}), intrinsics, max_observations=0)


def test_two_markers_straddling_camera_fuse_to_midpoint(registry, intrinsics):
    solver = PerspectiveSolver(registry)
    left = square_marker(0, cx=220.0)
    right = square_marker(1, cx=420.0)

    a = solver.solve(left, intrinsics)
    b = solver.solve(right, intrinsics)
    fused = PoseFusion(solver, intrinsics).fuse([left, right])

    assert fused.position.x == pytest.approx((a.position.x + b.position.x) / 2)
    assert fused.position.y == pytest.approx((a.position.y + b.position.y) / 2)
    assert fused.position.z == pytest.approx((a.position.z + b.position.z) / 2)
    assert fused.position.x == pytest.approx(0.5, abs=1e-4)


def test_mixed_perspective_and_fallback_frame(registry, intrinsics):
    """One marker solved in full, the other by the geometric fallback."""
    solve_pnp = PerspectiveSolver.solve_pnp

    def marker_1_fails(self, marker, edge_length_m, intr):
        if marker.marker_id == 1:
            return None
        return solve_pnp(self, marker, edge_length_m, intr)

    solver = PerspectiveSolver(registry, fallback=GeometricSolver(registry))
    markers = [square_marker(0, cx=220.0), square_marker(1, cx=420.0)]
    with patch.object(PerspectiveSolver, "solve_pnp", marker_1_fails):
        fused = PoseFusion(solver, intrinsics).fuse(markers)

    assert fused.heading == pytest.approx(-math.pi / 2, abs=1e-5)
    assert fused.confidence == pytest.approx((PERSPECTIVE_CONFIDENCE + GEOMETRIC_CONFIDENCE) / 2)
    assert fused.position.z == pytest.approx(1.5, abs=1e-5)
