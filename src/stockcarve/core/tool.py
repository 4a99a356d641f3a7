"""Cutting tool definitions, radial profiles and JSON tool library.

Each :class:`ToolKind` has exactly one depth function in ``_PROFILES``.
Adding a tool shape means adding an enum member and its function there.
"""

from __future__ import annotations

import json
import math
import numbers
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import numpy as np

from .exceptions import ToolDefinitionError

# Distances up to radius + this still count as inside the cutter
RADIUS_TOLERANCE = 1e-6


class ToolKind(Enum):
    FLAT = "flat"
    BALL = "ball"
    VBIT = "vbit"


# Smallest accepted tan(v_angle / 2)
MIN_TAN_HALF_ANGLE = 1e-8


def _flat_depth(distance: float, radius: float, tan_half_angle: float) -> Optional[float]:
    return 0.0


def _ball_depth(distance: float, radius: float, tan_half_angle: float) -> Optional[float]:
    return radius - math.sqrt(max(0.0, radius * radius - distance * distance))


def _vbit_depth(distance: float, radius: float, tan_half_angle: float) -> Optional[float]:
    if tan_half_angle <= MIN_TAN_HALF_ANGLE:
        return None
    return distance / tan_half_angle


_PROFILES: dict[ToolKind, Callable[[float, float, float], Optional[float]]] = {
    ToolKind.FLAT: _flat_depth,
    ToolKind.BALL: _ball_depth,
    ToolKind.VBIT: _vbit_depth,
}


def _positive(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ToolDefinitionError(f"{name} must be a number, got {value!r}")
    value = float(value)
    if not math.isfinite(value) or value <= 0:
        raise ToolDefinitionError(f"{name} must be a positive number, got {value}")
    return value


@dataclass(frozen=True)
class ToolStencil:
    """Tool depth offsets sampled on the grid around the tool axis.

    ``depths[i, j]`` belongs to the grid offset
    ``(i - radius_x, j - radius_y)``; NaN marks cells outside the cutter.
    """

    depths: np.ndarray
    radius_x: int
    radius_y: int

    @property
    def mask(self) -> np.ndarray:
        return ~np.isnan(self.depths)

    def offsets(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Defined entries as ``(dx, dy, dz)`` arrays."""
        i, j = np.nonzero(self.mask)
        return i - self.radius_x, j - self.radius_y, self.depths[i, j]


@dataclass
class Tool:
    """A validated cutting tool.

    Dimensions are in the job's units (mm throughout the kernel).  The
    tool zero is the centre of the tip.  ``v_angle`` is the included angle
    of a V-bit in degrees and is only meaningful for ``ToolKind.VBIT``.
    Construction raises ToolDefinitionError for bad input, so any Tool
    instance is safe to hand to the simulator.
    """

    kind: ToolKind
    cutter_diameter: float
    v_angle: Optional[float] = None
    number: int = 1
    name: str = ""
    shank_diameter: Optional[float] = None
    overall_length: Optional[float] = None
    length_of_cut: Optional[float] = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, ToolKind):
            try:
                self.kind = ToolKind(self.kind)
            except ValueError:
                raise ToolDefinitionError(
                    f"Unsupported tool kind: {self.kind!r}",
                    {"supported": [k.value for k in ToolKind]},
                ) from None
        self.cutter_diameter = _positive("cutter_diameter", self.cutter_diameter)
        for attr in ("shank_diameter", "overall_length", "length_of_cut"):
            value = getattr(self, attr)
            if value is not None:
                setattr(self, attr, _positive(attr, value))

        if self.kind is ToolKind.VBIT:
            if self.v_angle is None:
                raise ToolDefinitionError("v_angle is required for a vbit")
            angle = _positive("v_angle", self.v_angle)
            if angle >= 180.0 or math.tan(math.radians(angle) / 2.0) <= MIN_TAN_HALF_ANGLE:
                raise ToolDefinitionError(
                    f"v_angle must be in (0, 180) for vbit, got {angle}"
                )
            self.v_angle = angle
        if not self.name:
            self.name = f"{self.cutter_diameter:g}mm {self.kind.value}"

    @property
    def radius(self) -> float:
        return self.cutter_diameter / 2.0

    @property
    def tan_half_angle(self) -> float:
        if self.kind is not ToolKind.VBIT:
            return 0.0
        return math.tan(math.radians(self.v_angle) / 2.0)

    def elevation(self, distance: float) -> Optional[float]:
        """Depth offset above the tip at *distance* from the axis.

        None when *distance* lies outside the cutter radius.
        """
        distance = abs(distance)
        if distance > self.radius + RADIUS_TOLERANCE:
            return None
        return _PROFILES[self.kind](distance, self.radius, self.tan_half_angle)

    def stencil(self, step_x: float, step_y: Optional[float] = None) -> ToolStencil:
        """Sample :meth:`elevation` on a grid with the given spacing.

        With a single *step_x* the stencil is square,
        ``(2*ceil(r/step)+1)`` cells on a side.
        """
        if step_y is None:
            step_y = step_x
        step_x = _positive("step_x", step_x)
        step_y = _positive("step_y", step_y)
        radius_x = math.ceil(self.radius / step_x)
        radius_y = math.ceil(self.radius / step_y)
        depths = np.full((2 * radius_x + 1, 2 * radius_y + 1), np.nan)
        for i in range(2 * radius_x + 1):
            ox = (i - radius_x) * step_x
            for j in range(2 * radius_y + 1):
                oy = (j - radius_y) * step_y
                dz = self.elevation(math.sqrt(ox * ox + oy * oy))
                if dz is not None:
                    depths[i, j] = dz
        return ToolStencil(depths=depths, radius_x=radius_x, radius_y=radius_y)

    def is_single_cell(self, step: float) -> bool:
        """True for a flat tool no wider than one grid cell."""
        return (self.kind is ToolKind.FLAT
                and self.cutter_diameter <= step + RADIUS_TOLERANCE)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["kind"] = self.kind.value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Tool:
        d = dict(d)
        if "kind" not in d:
            raise ToolDefinitionError("Tool definition is missing 'kind'")
        known = cls.__dataclass_fields__
        unknown = sorted(k for k in d if k not in known)
        if unknown:
            raise ToolDefinitionError(f"Unknown tool fields: {unknown}")
        return cls(**d)


class ToolLibrary:
    """Persistent tool library backed by a JSON file."""

    def __init__(self, path: Optional[Path] = None):
        if path is None:
            path = Path.home() / ".stockcarve" / "tools.json"
        self._path = path
        self._tools: dict[int, Tool] = {}
        if self._path is not None and self._path.exists():
            self.load()

    @classmethod
    def in_memory(cls, tools: Optional[list[Tool]] = None) -> ToolLibrary:
        """A library with no backing file."""
        lib = cls.__new__(cls)
        lib._path = None
        lib._tools = {}
        for t in tools or []:
            lib.add(t)
        return lib

    def add(self, tool: Tool) -> None:
        self._tools[tool.number] = tool

    def remove(self, number: int) -> None:
        self._tools.pop(number, None)

    def get(self, number: int) -> Optional[Tool]:
        return self._tools.get(number)

    def list_tools(self) -> list[Tool]:
        return sorted(self._tools.values(), key=lambda t: t.number)

    def save(self) -> None:
        if self._path is None:
            raise RuntimeError("In-memory tool library has no file to save to")
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = [t.to_dict() for t in self.list_tools()]
        self._path.write_text(json.dumps(data, indent=2))

    def load(self) -> None:
        data = json.loads(self._path.read_text())
        self._tools = {}
        for d in data:
            tool = Tool.from_dict(d)
            self._tools[tool.number] = tool
