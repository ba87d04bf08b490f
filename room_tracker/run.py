import argparse
import signal
import sys

from .config import TrackerConfig, load_config
from .worker import TrackerWorker

# CLI dest -> TrackerConfig field, for flags whose value is copied as-is
_FIELD_FLAGS = {
    "camera_name": "camera_name",
    "device": "device",
    "fps": "fps",
    "width": "width",
    "height": "height",
    "calib": "calibration_path",
    "registry": "registry_path",
    "out": "session_root",
    "duration": "duration_sec",
    "dict": "aruco_dict",
    "marker_length_m": "marker_length_m",
    "solver": "solver",
    "max_observations": "max_observations",
    "staleness": "staleness_s",
    "max_frames": "max_frames",
}


def _device(value: str) -> int | str:
    return int(value) if value.isdigit() else value


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Track camera position from surveyed ArUco markers")
    ap.add_argument("--config", help="Path to JSON/YAML config")

    cam = ap.add_argument_group("camera")
    cam.add_argument("--camera-name")
    cam.add_argument("--device", type=_device, help="Index, /dev/videoN or stream URL")
    cam.add_argument("--fps", type=int)
    cam.add_argument("--width", type=int)
    cam.add_argument("--height", type=int)
    cam.add_argument("--calib", help="OpenCV FileStorage calibration (camera_matrix, dist_coeffs)")

    est = ap.add_argument_group("estimation")
    est.add_argument("--registry", help="Marker survey file (JSON/YAML)")
    est.add_argument("--dict", help="ArUco dictionary, e.g. 6x6_250")
    est.add_argument("--marker-length-m", type=float)
    est.add_argument("--solver", choices=["perspective", "geometric"])
    est.add_argument("--max-observations", type=int)
    est.add_argument("--staleness", type=float, help="Seconds before smoothing restarts")

    run = ap.add_argument_group("session")
    run.add_argument("--out", help="Session root directory")
    run.add_argument("--duration", type=float)
    run.add_argument("--max-frames", type=int)
    run.add_argument("--no-detect", action="store_true")
    run.add_argument("--dry-run", action="store_true")
    run.add_argument("--publish", action="store_true", help="Publish poses over MQTT (broker from config)")
    return ap


def _apply_args(cfg: TrackerConfig, args: argparse.Namespace) -> TrackerConfig:
    cfg.apply_overrides(**{field: getattr(args, dest) for dest, field in _FIELD_FLAGS.items()})
    # store_true flags only ever switch things on
    if args.no_detect:
        cfg.no_detect = True
    if args.dry_run:
        cfg.dry_run = True
    if args.publish:
        cfg.mqtt.enabled = True
    return cfg


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)
    cfg = _apply_args(load_config(args.config) if args.config else TrackerConfig(), args)
    worker = TrackerWorker(cfg)

    def _handle_signal(_sig, _frame):
        worker.stop()

    for name in ("SIGINT", "SIGTERM"):
        if hasattr(signal, name):
            signal.signal(getattr(signal, name), _handle_signal)

    print(worker.run())
    return 0


if __name__ == "__main__":
    sys.exit(main())
