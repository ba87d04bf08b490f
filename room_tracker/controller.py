from __future__ import annotations

import logging
import threading
from typing import Optional

from pose_engine.engine import PositionEstimationEngine
from pose_engine.pe_types import DetectedMarker, Frame, PoseEstimate


class FramePipeline:
    """
    Detect -> estimate -> smooth, one frame at a time.

    Frames offered while another is being processed are dropped, not queued.
    Every frame handed to ``process_frame`` is released exactly once.
    """

    def __init__(self, engine: PositionEstimationEngine, detector, logger: Optional[logging.Logger] = None):
        self.engine = engine
        self.detector = detector
        self.log = logger or logging.getLogger(__name__)
        self._busy = threading.Lock()
        self._latest_pose: Optional[PoseEstimate] = None
        self._latest_detections: list[DetectedMarker] = []
        self.frames_dropped = 0

    @property
    def latest_pose(self) -> Optional[PoseEstimate]:
        return self._latest_pose

    @property
    def latest_detections(self) -> list[DetectedMarker]:
        return list(self._latest_detections)

    def process_frame(self, frame: Frame, now: Optional[float] = None) -> bool:
        """Return False when the frame was dropped because the pipeline was busy."""
        if not self._busy.acquire(blocking=False):
            self.frames_dropped += 1
            frame.release()
            return False
        try:
            self._run(frame, now)
        finally:
            frame.release()
            self._busy.release()
        return True

    def _run(self, frame: Frame, now: Optional[float]) -> None:
        try:
            detections = self.detector.detect(frame)
            self._latest_detections = list(detections)

            known = self.engine.known_markers(detections)
            if not known:
                self._latest_pose = None
                self._latest_detections = []
                return

            self._latest_pose = self.engine.update(known, now)
        except Exception:
            self.log.exception("frame=%d estimation failed", frame.idx)
            self._latest_pose = None

    def reset(self) -> None:
        # waits for an in-flight frame to finish
        with self._busy:
            self.engine.reset()
            self._latest_pose = None
