import json
from pathlib import Path
from time import strftime
from typing import Optional


class SessionStorage:
    """<root>/<name>_<timestamp>/ holding logs/, config.json and the sink files."""

    def __init__(self, root: str, name: str = "session"):
        self.root = Path(root)
        self.name = name
        self.session_dir: Optional[Path] = None

    @property
    def logs_dir(self) -> Optional[Path]:
        return self.session_dir / "logs" if self.session_dir else None

    def begin(self) -> str:
        self.session_dir = self.root / f"{self.name}_{strftime('%Y%m%d_%H%M%S')}"
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        return str(self.session_dir)

    def write_manifest(self, meta: dict) -> Path:
        path = self.session_dir / "config.json"
        path.write_text(json.dumps(meta, indent=2, default=str), encoding="utf-8")
        return path
