import csv
import io


class CsvWriter:
    """One row per processed frame; pose columns are NaN when no pose was produced."""

    HEADER = [
        "recorded_at",
        "frame_idx", "marker_count",
        "x", "y", "z",
        "heading", "confidence",
    ]

    def __init__(self, csv_path: str):
        self.csv_path = csv_path
        self._fh = None
        self._rows = None

    def open(self):
        self._fh = open(self.csv_path, "w", newline="")
        self._rows = csv.writer(self._fh)
        self._rows.writerow(self.HEADER)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc):
        self.close()

    @staticmethod
    def _row(ts_unix, frame_idx, marker_count, pose):
        if pose is None:
            values = [float("nan")] * 5
        else:
            p = pose.position
            values = [p.x, p.y, p.z, pose.heading, pose.confidence]
        return [f"{ts_unix:.6f}", frame_idx, marker_count, *values]

    def append(self, ts_unix, frame_idx, marker_count, pose):
        self._rows.writerow(self._row(ts_unix, frame_idx, marker_count, pose))

    @classmethod
    def to_csv_line(cls, ts_unix, frame_idx, marker_count, pose):
        """Same row as ``append`` would write, as a single line without terminator."""
        out = io.StringIO()
        csv.writer(out, lineterminator="").writerow(cls._row(ts_unix, frame_idx, marker_count, pose))
        return out.getvalue()

    def close(self):
        if self._fh is not None:
            self._fh.close()
        self._fh = None
        self._rows = None
