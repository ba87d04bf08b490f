from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Optional

from pose_engine.engine import PositionEstimationEngine
from pose_engine.factory import SolverFactory
from pose_engine.pe_types import CameraIntrinsics
from pose_engine.services.calib import load_intrinsics
from pose_engine.services.registry import (
    DEFAULT_EDGE_LENGTH_M,
    DEFAULT_ROOM_LAYOUT,
    MarkerRegistry,
    load_registry,
)
from pose_engine.smoothing import SmoothingConfig


@dataclass
class IntrinsicsConfig:
    """Pinhole intrinsics used when no calibration file is given."""

    fx: float = 800.0
    fy: float = 800.0
    cx: float = 320.0
    cy: float = 240.0
    dist_coeffs: Optional[list[float]] = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MqttConfig:
    enabled: bool = False
    broker_ip: str = "127.0.0.1"
    broker_port: int = 1883
    topic: str = "room_tracker/pose"
    client_id: str = "room-tracker"

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TrackerConfig:
    camera_name: str = "cam"
    device: int | str = 0
    fps: int = 15
    width: int = 640
    height: int = 480
    calibration_path: Optional[str] = None
    intrinsics: IntrinsicsConfig = field(default_factory=IntrinsicsConfig)
    session_root: str = "data/sessions"
    duration_sec: float = 30.0
    max_frames: Optional[int] = None
    aruco_dict: str = "6x6_250"
    marker_length_m: float = DEFAULT_EDGE_LENGTH_M
    markers: Optional[dict[int, Any]] = field(default_factory=lambda: dict(DEFAULT_ROOM_LAYOUT))
    registry_path: Optional[str] = None
    solver: str = "perspective"
    max_observations: int = 4
    staleness_s: float = 1.0
    time_constant_s: float = 0.2
    max_read_failures: int = 50
    dry_run: bool = False
    no_detect: bool = False
    mqtt: MqttConfig = field(default_factory=MqttConfig)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "TrackerConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _as_bool(value: Any) -> bool:
    """YAML gives real booleans, JSON or env-templated files may give strings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _read_mapping(path: Path) -> dict[str, Any]:
    if path.suffix.lower() in {".yaml", ".yml"}:
        try:
            import yaml  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                f"{path} is YAML but PyYAML is not installed (pip install pyyaml)"
            ) from exc
        with path.open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}
    else:
        with path.open("r", encoding="utf-8") as fp:
            data = json.load(fp)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: config root must be a mapping")
    return data


# top-level keys copied straight onto TrackerConfig, with their coercion
_SCALAR_FIELDS = {
    "camera_name": str,
    "fps": int,
    "width": int,
    "height": int,
    "session_root": str,
    "duration_sec": float,
    "aruco_dict": str,
    "marker_length_m": float,
    "solver": str,
    "max_observations": int,
    "staleness_s": float,
    "time_constant_s": float,
    "max_read_failures": int,
    "dry_run": _as_bool,
    "no_detect": _as_bool,
}
# keys whose None is meaningful
_OPTIONAL_FIELDS = {"calibration_path": str, "registry_path": str, "max_frames": int}


def _intrinsics_from(raw: Any, base: IntrinsicsConfig) -> IntrinsicsConfig:
    if raw is None:
        return base
    if not isinstance(raw, dict):
        raise ValueError("intrinsics must be a mapping with fx, fy, cx, cy")
    dist = raw.get("dist_coeffs", base.dist_coeffs)
    return IntrinsicsConfig(
        fx=float(raw.get("fx", base.fx)),
        fy=float(raw.get("fy", base.fy)),
        cx=float(raw.get("cx", base.cx)),
        cy=float(raw.get("cy", base.cy)),
        dist_coeffs=[float(v) for v in dist] if dist is not None else None,
    )


def _mqtt_from(raw: Any, base: MqttConfig) -> MqttConfig:
    if not isinstance(raw, dict):
        return base
    return MqttConfig(
        enabled=_as_bool(raw.get("enabled", base.enabled)),
        broker_ip=str(raw.get("broker_ip", base.broker_ip)),
        broker_port=int(raw.get("broker_port", base.broker_port)),
        topic=str(raw.get("topic", base.topic)),
        client_id=str(raw.get("client_id", base.client_id)),
    )


def load_config(path: str | Path) -> TrackerConfig:
    """Read a JSON or YAML tracker config; unknown keys are ignored."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")
    raw = _read_mapping(p)

    cfg = TrackerConfig()
    for key, cast in _SCALAR_FIELDS.items():
        if key in raw:
            setattr(cfg, key, cast(raw[key]))
    for key, cast in _OPTIONAL_FIELDS.items():
        if key in raw:
            setattr(cfg, key, None if raw[key] is None else cast(raw[key]))
    if "device" in raw:
        cfg.device = raw["device"]

    cfg.intrinsics = _intrinsics_from(raw.get("intrinsics"), cfg.intrinsics)
    cfg.mqtt = _mqtt_from(raw.get("mqtt"), cfg.mqtt)

    if "markers" in raw:
        markers = raw["markers"]
        if markers is not None and not isinstance(markers, dict):
            raise ValueError("markers must be a mapping of marker_id -> entry")
        cfg.markers = {int(k): v for k, v in markers.items()} if markers is not None else None
    return cfg


def build_registry(cfg: TrackerConfig) -> MarkerRegistry:
    if cfg.registry_path:
        return load_registry(cfg.registry_path, cfg.marker_length_m)
    return MarkerRegistry.from_mapping(cfg.markers or {}, cfg.marker_length_m)


def build_intrinsics(cfg: TrackerConfig) -> CameraIntrinsics:
    if cfg.calibration_path:
        return load_intrinsics(cfg.calibration_path)
    if cfg.intrinsics is None:
        raise ValueError("no calibration_path and no inline intrinsics configured")
    i = cfg.intrinsics
    dist = tuple(i.dist_coeffs) if i.dist_coeffs else None
    return CameraIntrinsics(i.fx, i.fy, i.cx, i.cy, dist)


def build_engine(cfg: TrackerConfig) -> PositionEstimationEngine:
    registry = build_registry(cfg)
    intrinsics = build_intrinsics(cfg)
    return PositionEstimationEngine(
        registry,
        intrinsics,
        solver=SolverFactory.from_config(cfg, registry),
        max_observations=cfg.max_observations,
        smoothing=SmoothingConfig(cfg.staleness_s, cfg.time_constant_s),
    )
