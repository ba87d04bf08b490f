from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import paho.mqtt.client as mqtt

from pose_engine.pe_types import PoseEstimate
from pose_engine.services.csv_writer import CsvWriter


class OutputSink(ABC):
    @abstractmethod
    def open(self, session_dir: Path) -> None: ...

    @abstractmethod
    def write_pose(
        self,
        ts_unix: float,
        frame_idx: int,
        marker_count: int,
        pose: Optional[PoseEstimate],
    ) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class CsvOutput(OutputSink):
    def __init__(self, filename: str = "poses.csv"):
        self.filename = filename
        self._writer: Optional[CsvWriter] = None

    def open(self, session_dir: Path) -> None:
        path = session_dir / self.filename
        self._writer = CsvWriter(str(path))
        self._writer.open()

    def write_pose(self, ts_unix, frame_idx, marker_count, pose) -> None:
        if self._writer is None:
            return
        self._writer.append(ts_unix, frame_idx, marker_count, pose)

    def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None


class MqttOutput(OutputSink):
    """Publish each pose row as a CSV line; the header goes out once per session."""

    def __init__(
        self,
        broker_ip: str,
        broker_port: int = 1883,
        topic: str = "room_tracker/pose",
        client_id: str = "room-tracker",
        logger: Optional[logging.Logger] = None,
    ):
        self.broker_ip = broker_ip
        self.broker_port = broker_port
        self.topic = topic
        self.client_id = client_id
        self.log = logger or logging.getLogger(__name__)
        self._client = None
        self._published_header = False

    def open(self, session_dir: Path) -> None:
        self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=self.client_id)
        self._client.connect(self.broker_ip, self.broker_port, 60)
        self._client.loop_start()
        self._published_header = False

    def _publish(self, line: str) -> None:
        try:
            self._client.publish(self.topic, line)
        except Exception as e:
            self.log.warning("MQTT publish failed: %s", e)

    def write_pose(self, ts_unix, frame_idx, marker_count, pose) -> None:
        if self._client is None:
            return
        if not self._published_header:
            self._publish(",".join(CsvWriter.HEADER))
            self._published_header = True
        self._publish(CsvWriter.to_csv_line(ts_unix, frame_idx, marker_count, pose))

    def close(self) -> None:
        if self._client is not None:
            self._client.loop_stop()
            self._client.disconnect()
            self._client = None


class NullOutput(OutputSink):
    def open(self, session_dir: Path) -> None:
        return None

    def write_pose(self, ts_unix, frame_idx, marker_count, pose) -> None:
        return None

    def close(self) -> None:
        return None
