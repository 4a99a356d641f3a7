"""Machining operation parameter containers.

An Operation binds a strategy (carve/facing) to a tool and a set of
parameters.  The Job orchestrator iterates over operations to produce
toolpaths.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .tool import Tool
from .toolpath.raster import DEFAULT_CLEARANCE, DEFAULT_POINTS_PER_LINE


class StrategyType(Enum):
    CARVE = "carve"
    FACING = "facing"


@dataclass
class Operation:
    """Parameters for a single machining operation."""

    name: str
    strategy: StrategyType
    tool: Tool

    # Radial step (fraction of tool diameter)
    step_over_fraction: float = 0.7

    # Carve
    clearance: float = DEFAULT_CLEARANCE
    points_per_line: int = DEFAULT_POINTS_PER_LINE
    gouge_protection: bool = False   # lift points to the gouge-free Z

    # Facing
    facing_depth: float = 0.0        # below the stock top
    raster_angle: float = 0.0        # degrees

    @property
    def step_over(self) -> float:
        """Absolute step-over distance (XY)."""
        return self.tool.cutter_diameter * self.step_over_fraction
