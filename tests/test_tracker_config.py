import json
from pathlib import Path

import pytest

from pose_engine.strategies.solve_geometric import GeometricSolver
from pose_engine.strategies.solve_pnp import PerspectiveSolver
from room_tracker.config import (
    TrackerConfig,
    build_engine,
    build_intrinsics,
    build_registry,
    load_config,
)


def test_load_config_json(tmp_path: Path):
    cfg_path = tmp_path / "room.json"
    cfg_path.write_text(
        json.dumps(
            {
                "camera_name": "hall",
                "device": 2,
                "fps": 20,
                "intrinsics": {"fx": 900, "fy": 905, "cx": 330, "cy": 250},
                "marker_length_m": 0.2,
                "markers": {"0": {"position": [0, 0, 1.5]}, "3": [1, 2, 1.4]},
                "solver": "geometric",
                "staleness_s": 0.5,
                "mqtt": {"enabled": True, "broker_ip": "10.0.0.2"},
            }
        ),
        encoding="utf-8",
    )

    cfg = load_config(cfg_path)
    assert cfg.camera_name == "hall"
    assert cfg.device == 2
    assert cfg.intrinsics.fx == 900.0 and cfg.intrinsics.cy == 250.0
    assert sorted(cfg.markers) == [0, 3]
    assert cfg.solver == "geometric"
    assert cfg.mqtt.enabled and cfg.mqtt.broker_ip == "10.0.0.2"

    cfg.apply_overrides(camera_name="lobby", fps=None)
    assert cfg.camera_name == "lobby"
    assert cfg.fps == 20

    engine = build_engine(cfg)
    assert isinstance(engine.solver, GeometricSolver)
    assert engine.registry.lookup(3).edge_length_m == 0.2
    assert engine.smoother.config.staleness_s == 0.5


def test_load_config_yaml(tmp_path: Path):
    cfg_path = tmp_path / "room.yaml"
    cfg_path.write_text("camera_name: yamlcam\nmax_observations: 6\n", encoding="utf-8")
    cfg = load_config(cfg_path)
    assert cfg.camera_name == "yamlcam"
    assert cfg.max_observations == 6


def test_load_config_errors(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.json")

    bad = tmp_path / "list.json"
    bad.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(bad)


def test_defaults_build_perspective_engine():
    cfg = TrackerConfig()
    engine = build_engine(cfg)
    assert isinstance(engine.solver, PerspectiveSolver)
    assert engine.registry.all_known_ids() == list(range(10))
    assert build_intrinsics(cfg).fx == 800.0


def test_empty_registry_is_fatal():
    cfg = TrackerConfig(markers={})
    assert len(build_registry(cfg)) == 0
    with pytest.raises(ValueError):
        build_engine(cfg)


def test_unknown_solver_is_fatal():
    with pytest.raises(ValueError):
        build_engine(TrackerConfig(solver="magic"))


def test_missing_intrinsics_is_fatal():
    with pytest.raises(ValueError):
        build_intrinsics(TrackerConfig(intrinsics=None))


def test_boolean_strings_are_parsed(tmp_path: Path):
    cfg_path = tmp_path / "flags.json"
    cfg_path.write_text(
        json.dumps({"dry_run": "false", "no_detect": "yes", "mqtt": {"enabled": "off"}}),
        encoding="utf-8",
    )
    cfg = load_config(cfg_path)
    assert cfg.dry_run is False
    assert cfg.no_detect is True
    assert cfg.mqtt.enabled is False

    cfg_path.write_text(json.dumps({"dry_run": "maybe"}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(cfg_path)
