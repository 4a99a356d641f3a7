"""Constant-depth facing (flatten) raster over the stock footprint.

Algorithm
---------
1. Cover the footprint's bounding box with parallel raster lines spaced at
   the step-over (optionally rotated by *raster_angle*).
2. Clip each raster line to the footprint polygon.
3. Resample each clipped segment every half step-over; the simulator only
   cuts at toolpath points, so sparse points would leave scallops along
   the line.
4. Reverse every other line for a zig-zag.
"""

from __future__ import annotations

from dataclasses import dataclass

from shapely.geometry import MultiPolygon, Polygon

from ..exceptions import ToolpathPlanningError
from ..logging import get_logger
from ..tool import Tool
from .base import Toolpath, ToolpathPass, ToolpathPoint
from .utils import densify, ensure_polygon, iter_lines, raster_lines_in_bounds

logger = get_logger(__name__)


@dataclass
class FacingParams:
    """Parameters for the facing strategy."""

    z: float                    # tip height of the faced surface
    step_over_fraction: float   # pass spacing as a fraction of tool diameter
    raster_angle: float = 0.0   # degrees, 0 means X-direction lines
    margin: float = 0.0         # grow the footprint so the edges are cleared


def plan_facing_toolpath(
    footprint: Polygon | MultiPolygon,
    tool: Tool,
    params: FacingParams,
) -> Toolpath:
    """Generate a zig-zag facing toolpath at ``params.z`` over *footprint*."""
    if params.step_over_fraction <= 0:
        raise ToolpathPlanningError(
            f"step_over_fraction must be positive, got {params.step_over_fraction}"
        )
    region = footprint.buffer(params.margin) if params.margin else footprint
    region = ensure_polygon(region)
    toolpath = Toolpath(tool_number=tool.number, operation_name="facing")
    if region.is_empty:
        return toolpath

    step_over = tool.cutter_diameter * params.step_over_fraction
    spacing = step_over / 2.0
    xmin, ymin, xmax, ymax = region.bounds
    rasters = raster_lines_in_bounds(
        xmin, xmax, ymin, ymax,
        step_over=step_over,
        angle_deg=params.raster_angle,
    )

    line_no = 0
    for line in rasters:
        clipped = line.intersection(region)
        for segment in iter_lines(clipped):
            coords = densify([(x, y) for x, y in segment.coords], spacing)
            if line_no % 2 == 1:
                coords.reverse()
            tp_pass = ToolpathPass(label=f"face z={params.z:.4f}")
            for x, y in coords:
                tp_pass.append(ToolpathPoint(x, y, params.z))
            toolpath.add_pass(tp_pass)
            line_no += 1

    logger.debug("facing_planned", passes=len(toolpath.passes),
                 points=toolpath.total_points, z=params.z)
    return toolpath
