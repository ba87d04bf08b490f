from __future__ import annotations

import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Optional

from ..pe_types import MarkerWorldEntry, Point3D

DEFAULT_EDGE_LENGTH_M = 0.15

# 4m x 3m room, tags at 1.5m height. Measure your own room and override.
DEFAULT_ROOM_LAYOUT: dict[int, list[float]] = {
    0: [0.0, 0.0, 1.5],  # corner 1
    1: [4.0, 0.0, 1.5],  # corner 2
    2: [4.0, 3.0, 1.5],  # corner 3
    3: [0.0, 3.0, 1.5],  # corner 4
    4: [2.0, 1.5, 1.5],  # center reference
    5: [1.0, 0.0, 1.5],
    6: [3.0, 0.0, 1.5],
    7: [4.0, 1.5, 1.5],
    8: [3.0, 3.0, 1.5],
    9: [1.0, 3.0, 1.5],
}


class MarkerRegistry:
    """Read-only table of surveyed markers: id -> world position and edge length."""

    def __init__(self, entries: Iterable[MarkerWorldEntry]):
        table: dict[int, MarkerWorldEntry] = {}
        for entry in entries:
            if entry.marker_id in table:
                raise ValueError(f"duplicate marker id in registry: {entry.marker_id}")
            table[entry.marker_id] = entry
        self._entries = MappingProxyType(table)

    def lookup(self, marker_id: int) -> Optional[MarkerWorldEntry]:
        return self._entries.get(int(marker_id))

    def all_known_ids(self) -> list[int]:
        return sorted(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, marker_id: object) -> bool:
        return marker_id in self._entries

    @classmethod
    def from_mapping(
        cls, raw: dict[Any, Any], default_edge_length_m: float = DEFAULT_EDGE_LENGTH_M
    ) -> "MarkerRegistry":
        """
        Build a registry from {id: {"position": [x, y, z], "edge_length_m": L}}.
        A bare [x, y, z] list is accepted as the value as well.
        """
        if not isinstance(raw, dict):
            raise ValueError("markers must be a mapping of marker_id -> entry")
        entries = []
        for key, value in raw.items():
            if isinstance(value, dict):
                pos = value.get("position")
                length = float(value.get("edge_length_m", default_edge_length_m))
            else:
                pos = value
                length = float(default_edge_length_m)
            if not isinstance(pos, (list, tuple)) or len(pos) != 3:
                raise ValueError(f"marker {key}: position must be [x, y, z]")
            entries.append(
                MarkerWorldEntry(int(key), Point3D(*(float(v) for v in pos)), length)
            )
        return cls(entries)


def load_registry(
    path: str | Path, default_edge_length_m: float = DEFAULT_EDGE_LENGTH_M
) -> MarkerRegistry:
    """Load a survey file (JSON or YAML) holding the marker mapping, optionally under a "markers" key."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Marker survey not found: {p}")
    if p.suffix.lower() in {".yaml", ".yml"}:
        import yaml

        with p.open("r", encoding="utf-8") as fp:
            raw = yaml.safe_load(fp) or {}
    else:
        with p.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)
    if isinstance(raw, dict) and "markers" in raw:
        default_edge_length_m = float(raw.get("marker_length_m", default_edge_length_m))
        raw = raw["markers"]
    return MarkerRegistry.from_mapping(raw, default_edge_length_m)
