"""Core toolpath data structures."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Iterator, Optional

import numpy as np


@dataclass
class ToolpathPoint:
    """A single position the tool tip must pass through."""
    x: float
    y: float
    z: float

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def as_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}


@dataclass
class ToolpathPass:
    """A connected run of points, typically one scan line."""
    points: list[ToolpathPoint] = field(default_factory=list)
    label: str = ""

    def append(self, pt: ToolpathPoint) -> None:
        self.points.append(pt)

    def is_empty(self) -> bool:
        return len(self.points) == 0

    def __len__(self) -> int:
        return len(self.points)


@dataclass
class Toolpath:
    """An ordered collection of passes making up one operation."""
    passes: list[ToolpathPass] = field(default_factory=list)
    tool_number: int = 1
    operation_name: str = ""

    def add_pass(self, tp_pass: ToolpathPass) -> None:
        self.passes.append(tp_pass)

    def iter_points(self) -> Iterator[ToolpathPoint]:
        for tp_pass in self.passes:
            yield from tp_pass.points

    @property
    def total_points(self) -> int:
        return sum(len(p.points) for p in self.passes)

    @property
    def is_empty(self) -> bool:
        return all(p.is_empty() for p in self.passes)

    def as_array(self) -> np.ndarray:
        """All points in order as an ``(n, 3)`` float array."""
        return as_point_array(self)

    def z_range(self) -> Optional[tuple[float, float]]:
        if self.is_empty:
            return None
        zs = self.as_array()[:, 2]
        return float(zs.min()), float(zs.max())

    def to_passes(self) -> list[list[dict[str, float]]]:
        """Plain ``[[{x, y, z}, ...], ...]`` form for external serialisers."""
        return [[pt.as_dict() for pt in p.points] for p in self.passes]

    @classmethod
    def from_passes(
        cls,
        passes: list[list],
        tool_number: int = 1,
        operation_name: str = "",
    ) -> Toolpath:
        toolpath = cls(tool_number=tool_number, operation_name=operation_name)
        for i, raw in enumerate(passes):
            tp_pass = ToolpathPass(label=f"pass {i}")
            for x, y, z in as_point_array(raw).tolist():
                tp_pass.append(ToolpathPoint(x, y, z))
            toolpath.add_pass(tp_pass)
        return toolpath


def _collect(item, out: list) -> None:
    if isinstance(item, ToolpathPoint):
        out.append(item.as_tuple())
    elif isinstance(item, (Toolpath, ToolpathPass)):
        points = item.iter_points() if isinstance(item, Toolpath) else item.points
        out.extend(p.as_tuple() for p in points)
    elif isinstance(item, Mapping):
        out.append((item["x"], item["y"], item["z"]))
    elif isinstance(item, np.ndarray):
        out.extend(map(tuple, item.reshape(-1, 3).tolist()))
    else:
        seq = list(item)
        if len(seq) == 3 and all(np.isscalar(v) for v in seq):
            out.append(tuple(seq))
        else:
            for sub in seq:
                _collect(sub, out)


def as_point_array(toolpath) -> np.ndarray:
    """Flatten any supported toolpath form to an ``(n, 3)`` float64 array.

    Accepts a Toolpath, passes, ToolpathPoints, ``{"x", "y", "z"}``
    mappings, 3-sequences, nested lists of those, or an array whose size is
    a multiple of three.
    """
    if isinstance(toolpath, np.ndarray):
        if toolpath.size % 3 != 0:
            raise ValueError(
                f"Toolpath array size {toolpath.size} is not a multiple of 3"
            )
        return np.asarray(toolpath, dtype=np.float64).reshape(-1, 3)
    out: list[tuple[float, float, float]] = []
    _collect(toolpath, out)
    if not out:
        return np.empty((0, 3), dtype=np.float64)
    return np.asarray(out, dtype=np.float64)
