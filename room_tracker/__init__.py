"""Live room localization from a camera and surveyed ArUco markers."""

from .config import TrackerConfig
from .controller import FramePipeline
from .worker import TrackerWorker

__all__ = ["FramePipeline", "TrackerConfig", "TrackerWorker"]
