"""Sanity checks run before planning or simulating.

Problems are collected as ValidationIssue objects rather than raised, so
callers can show every warning at once and decide what to do with them.
"""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass, field
from typing import Optional, Sequence

from .heightmap import GridSpec, HeightmapGrid
from .logging import get_logger
from .tool import Tool, ToolKind
from .toolpath.base import Toolpath, ToolpathPoint

logger = get_logger(__name__)


@dataclass
class ValidationIssue:
    """A single problem found while validating."""

    severity: str  # "error" or "warning"
    message: str
    point: Optional[ToolpathPoint] = None


@dataclass
class ValidationResult:
    """Collected issues from one or more checks."""

    issues: list[ValidationIssue] = field(default_factory=list)

    def error(self, message: str, point: Optional[ToolpathPoint] = None) -> None:
        self.issues.append(ValidationIssue("error", message, point))

    def warning(self, message: str, point: Optional[ToolpathPoint] = None) -> None:
        self.issues.append(ValidationIssue("warning", message, point))

    def merge(self, other: ValidationResult) -> ValidationResult:
        self.issues.extend(other.issues)
        return self

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def has_errors(self) -> bool:
        return any(i.severity == "error" for i in self.issues)

    @property
    def has_warnings(self) -> bool:
        return any(i.severity == "warning" for i in self.issues)

    @property
    def is_ok(self) -> bool:
        return len(self.issues) == 0

    def emit_warnings(self, stacklevel: int = 3) -> None:
        """Re-issue every warning through :func:`warnings.warn` and the log."""
        for issue in self.warnings:
            logger.warning("validation_warning", message=issue.message)
            warnings.warn(issue.message, UserWarning, stacklevel=stacklevel)


def validate_sampling(tool: Tool, spacing_x: float, spacing_y: float) -> ValidationResult:
    """Check that the grid resolves the cutter.

    A tool that is not wider than a grid cell degenerates to cutting single
    grid points, which is rarely what the caller wanted.
    """
    result = ValidationResult()
    spacing = max(spacing_x, spacing_y)
    if tool.cutter_diameter <= spacing:
        detail = ("only the nearest grid point is cut"
                  if tool.kind is ToolKind.FLAT
                  else "its profile is not resolved")
        result.warning(
            f"Tool diameter {tool.cutter_diameter:g} is not wider than the "
            f"grid spacing {spacing:g}; {detail}. Increase the resolution."
        )
    elif tool.kind is not ToolKind.FLAT and tool.radius < 2 * spacing:
        result.warning(
            f"Tool radius {tool.radius:g} spans fewer than two grid cells "
            f"({spacing:g}); the {tool.kind.value} profile is coarsely sampled."
        )
    return result


def validate_raster_plan(
    tool: Tool,
    spec: GridSpec,
    step_over_fraction: float,
) -> ValidationResult:
    """Checks run by the raster planner before any point is generated."""
    result = ValidationResult()
    if not math.isfinite(step_over_fraction) or step_over_fraction <= 0:
        result.error(
            f"step_over_fraction must be a positive number, got "
            f"{step_over_fraction}"
        )
        return result

    result.merge(validate_sampling(tool, spec.cell_x, spec.cell_y))

    step_over = tool.cutter_diameter * step_over_fraction
    if step_over < spec.cell_y:
        result.warning(
            f"Step-over {step_over:g} is finer than the grid cell "
            f"{spec.cell_y:g}; passes are placed one cell apart."
        )
    if step_over_fraction > 1.0:
        result.warning(
            f"Step-over fraction {step_over_fraction:g} exceeds the tool "
            "diameter; material will be left between passes."
        )
    return result


def validate_toolpaths(
    toolpaths: Sequence[Toolpath],
    bounds_2d: tuple[float, float, float, float],
    tolerance: float = 1e-6,
) -> ValidationResult:
    """Check *toolpaths* against the stock footprint *bounds_2d*.

    Checks performed:
    - All coordinates finite (error)
    - XY inside ``(xmin, ymin, xmax, ymax)`` (warning; the cut is clipped)
    - At least one toolpath is non-empty (warning)
    """
    xmin, ymin, xmax, ymax = bounds_2d
    result = ValidationResult()

    all_empty = True
    for tp in toolpaths:
        if tp.is_empty:
            continue
        all_empty = False
        outside = 0
        for pt in tp.iter_points():
            if not (math.isfinite(pt.x) and math.isfinite(pt.y)
                    and math.isfinite(pt.z)):
                result.error(
                    f"Non-finite point ({pt.x}, {pt.y}, {pt.z}) in "
                    f"'{tp.operation_name}'",
                    pt,
                )
                continue
            if (pt.x < xmin - tolerance or pt.x > xmax + tolerance
                    or pt.y < ymin - tolerance or pt.y > ymax + tolerance):
                outside += 1
        if outside:
            result.warning(
                f"{outside} points of '{tp.operation_name}' lie outside the "
                f"stock footprint [{xmin:g}, {xmax:g}] x [{ymin:g}, {ymax:g}]"
            )

    if all_empty:
        result.warning("All toolpaths are empty; nothing will be cut")

    return result


def validate_simulation(tool: Tool, grid: HeightmapGrid) -> ValidationResult:
    """Sampling check against the stock grid the simulation will mutate."""
    return validate_sampling(tool, grid.grid_size_x, grid.grid_size_y)
