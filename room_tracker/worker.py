from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pose_engine.engine import PositionEstimationEngine
from pose_engine.pe_types import Frame, PoseEstimate

from .capture import BaseCapture, SyntheticCapture, USBOpenCVCapture
from .config import TrackerConfig, build_engine
from .controller import FramePipeline
from .detect import ArucoDetector
from .logging_utils import add_file_handler, setup_logger
from .output import CsvOutput, MqttOutput, OutputSink
from .storage import SessionStorage

READ_RETRY_DELAY_S = 0.01


@dataclass
class SessionSummary:
    session_path: str
    frames_processed: int
    frames_with_pose: int
    csv_path: str
    log_path: str
    avg_fps: float
    errors: int


class NoDetect:
    def detect(self, f: Frame) -> list:
        return []


def default_outputs(config: TrackerConfig, logger) -> list[OutputSink]:
    outputs: list[OutputSink] = [CsvOutput()]
    mq = config.mqtt
    if mq.enabled:
        outputs.append(MqttOutput(mq.broker_ip, mq.broker_port, mq.topic, mq.client_id, logger=logger))
    return outputs


class TrackerWorker:
    """Runs one capture session: frames in, one pose row per processed frame out."""

    def __init__(
        self,
        config: TrackerConfig,
        logger=None,
        outputs: Optional[list[OutputSink]] = None,
        capture: Optional[BaseCapture] = None,
        detector=None,
        engine: Optional[PositionEstimationEngine] = None,
    ):
        self.config = config
        self.logger = logger or setup_logger(config.camera_name)
        # bad registry / intrinsics / solver names fail here, before the camera opens
        self.engine = engine or build_engine(config)
        self.outputs = outputs if outputs is not None else default_outputs(config, self.logger)
        self.capture = capture
        self.detector = detector
        self.pipeline: Optional[FramePipeline] = None
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def reset_tracking(self) -> None:
        if self.pipeline is not None:
            self.pipeline.reset()
        else:
            self.engine.reset()

    def _build_capture(self) -> BaseCapture:
        if self.capture is not None:
            return self.capture
        c = self.config
        if c.dry_run:
            return SyntheticCapture(c.fps, c.width, c.height)
        return USBOpenCVCapture(c.device, c.fps, c.width, c.height)

    def _build_detector(self):
        if self.detector is not None:
            return self.detector
        if self.config.no_detect or self.config.dry_run:
            return NoDetect()
        return ArucoDetector(self.config.aruco_dict)

    def _finished(self, started: float, frames: int) -> bool:
        c = self.config
        if self._stop_event.is_set():
            return True
        if c.duration_sec and time.time() - started >= c.duration_sec:
            return True
        return bool(c.max_frames) and frames >= c.max_frames

    def _log_frame(self, idx: int, marker_count: int, pose: Optional[PoseEstimate]) -> None:
        if pose is None:
            self.logger.info("frame=%d markers=%d no pose", idx, marker_count)
            return
        p = pose.position
        self.logger.info(
            "frame=%d markers=%d pos=(%.3f, %.3f, %.3f) heading=%.3f conf=%.2f",
            idx, marker_count, p.x, p.y, p.z, pose.heading, pose.confidence,
        )

    def _shutdown(self, cap: Optional[BaseCapture]) -> None:
        if cap is not None:
            try:
                cap.stop()
            except Exception as e:
                self.logger.warning("capture stop failed: %s", e)
        for out in self.outputs:
            try:
                out.close()
            except Exception as e:
                self.logger.warning("output close failed: %s", e)

    def run(self) -> SessionSummary:
        storage = SessionStorage(self.config.session_root, name=f"{self.config.camera_name}_session")
        session_path = storage.begin()
        storage.write_manifest(self.config.as_dict())
        log_file = str(storage.logs_dir / "session.log")
        file_handler = add_file_handler(self.logger, self.config.camera_name, log_file)

        cap: Optional[BaseCapture] = None
        frames = with_pose = errors = misses = 0
        started = time.time()
        try:
            for out in self.outputs:
                out.open(storage.session_dir)

            cap = self._build_capture()
            self.pipeline = FramePipeline(self.engine, self._build_detector(), self.logger)
            self.logger.info("session started: %s", session_path)
            self.logger.info("registered markers: %s", self.engine.registry.all_known_ids())

            cap.start()
            started = time.time()
            while not self._finished(started, frames):
                f = cap.next_frame()
                if f is None:
                    errors += 1
                    misses += 1
                    if misses >= self.config.max_read_failures:
                        self.logger.warning("capture returned no frame %d times in a row, stopping", misses)
                        break
                    self._stop_event.wait(READ_RETRY_DELAY_S)
                    continue
                misses = 0
                idx = f.idx
                if not self.pipeline.process_frame(f):
                    continue

                pose = self.pipeline.latest_pose
                marker_count = len(self.pipeline.latest_detections)
                stamp = time.time()
                for out in self.outputs:
                    out.write_pose(stamp, idx, marker_count, pose)
                self._log_frame(idx, marker_count, pose)
                frames += 1
                with_pose += pose is not None

            avg_fps = frames / max(1e-6, time.time() - started)
            self.logger.info(
                "summary frames=%d with_pose=%d avg_fps=%.2f errors=%d dropped=%d",
                frames, with_pose, avg_fps, errors, self.pipeline.frames_dropped,
            )
        finally:
            self._shutdown(cap)
            # the logger outlives the session; later sessions must not write here
            self.logger.removeHandler(file_handler)
            file_handler.close()

        return SessionSummary(
            session_path=session_path,
            frames_processed=frames,
            frames_with_pose=with_pose,
            csv_path=str(Path(storage.session_dir) / "poses.csv"),
            log_path=log_file,
            avg_fps=avg_fps,
            errors=errors,
        )
