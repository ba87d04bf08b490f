import re
import time
from abc import ABC, abstractmethod
from typing import Any

import cv2
import numpy as np

from pose_engine.pe_types import Frame

_VIDEO_NODE = re.compile(r"^/dev/video(\d+)$")


def open_video_device(device: int | str) -> Any:
    """Open a V4L2 index or /dev/videoN node; anything else goes to OpenCV as a URL/path."""
    if isinstance(device, int):
        return cv2.VideoCapture(device, cv2.CAP_V4L2)
    node = _VIDEO_NODE.match(str(device))
    if node:
        return cv2.VideoCapture(int(node.group(1)), cv2.CAP_V4L2)
    return cv2.VideoCapture(str(device))


class BaseCapture(ABC):
    """
    Frame source. Every frame handed out must come back through
    ``Frame.release()``; ``outstanding`` counts the ones that have not.
    """

    issued = 0
    returned = 0

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def read(self) -> Any | None:
        """Grab one image, or None when the source has nothing."""

    @abstractmethod
    def stop(self) -> None: ...

    def next_frame(self) -> Frame | None:
        img = self.read()
        if img is None:
            return None
        self.issued += 1
        return Frame(
            self.issued,
            time.strftime("%Y-%m-%dT%H:%M:%S"),
            img,
            on_release=self._on_release,
        )

    def _on_release(self, frame: Frame) -> None:
        self.returned += 1

    @property
    def outstanding(self) -> int:
        return self.issued - self.returned


class USBOpenCVCapture(BaseCapture):
    def __init__(self, device: int | str, fps: int, width: int, height: int):
        self.device = device
        self.fps = fps
        self.size = (width, height)
        self.cap: Any = None

    def start(self) -> None:
        self.cap = open_video_device(self.device)
        width, height = self.size
        for prop, value in (
            (cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*"MJPG")),
            (cv2.CAP_PROP_FRAME_WIDTH, width),
            (cv2.CAP_PROP_FRAME_HEIGHT, height),
            (cv2.CAP_PROP_FPS, self.fps),
        ):
            self.cap.set(prop, value)
        if not self.cap.isOpened():
            raise RuntimeError(f"camera {self.device!r} could not be opened")

    def read(self) -> Any | None:
        if self.cap is None:
            return None
        ok, img = self.cap.read()
        return img if ok else None

    def stop(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None


class SyntheticCapture(BaseCapture):
    """Blank frames paced to the configured rate; used for dry runs."""

    def __init__(self, fps: int, width: int, height: int):
        self.period = 1.0 / fps if fps > 0 else 0.0
        self.shape = (height, width, 3)
        self._next_due = 0.0

    def start(self) -> None:
        self._next_due = time.monotonic()

    def read(self) -> Any | None:
        delay = self._next_due - time.monotonic()
        if delay > 0:
            time.sleep(delay)
        self._next_due = max(self._next_due, time.monotonic()) + self.period
        return np.zeros(self.shape, dtype=np.uint8)

    def stop(self) -> None:
        return None
