"""Application preferences (persisted to disk)."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from ..core.job import DEFAULT_RESOLUTION
from ..core.toolpath.raster import DEFAULT_CLEARANCE, DEFAULT_POINTS_PER_LINE


@dataclass
class AppSettings:
    """User preferences, serialized to ~/.stockcarve/settings.json."""

    default_tool: int = 1
    grid_resolution: int = DEFAULT_RESOLUTION
    step_over_fraction: float = 0.7
    clearance: float = DEFAULT_CLEARANCE
    points_per_line: int = DEFAULT_POINTS_PER_LINE
    backend: str = "vectorized"
    log_level: str = "INFO"

    @staticmethod
    def _path() -> Path:
        return Path.home() / ".stockcarve" / "settings.json"

    def save(self, path: Optional[Path] = None) -> None:
        p = Path(path) if path is not None else self._path()
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps(asdict(self), indent=2))

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "AppSettings":
        p = Path(path) if path is not None else cls._path()
        if p.exists():
            data = json.loads(p.read_text())
            return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        return cls()
