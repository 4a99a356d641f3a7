"""Boustrophedon raster carving over a rasterised height field.

Algorithm
---------
1. Validate the plan (step-over, sampling density); errors raise, warnings
   are emitted before any point is produced.
2. Pick scan rows every ``round(step_over / cell_y)`` cells, always
   finishing with the last row so the far edge is covered.
3. Along each row, sample every ``res_x // points_per_line`` cells (again
   always including the last column) at the cell centre.
4. Each point rides ``clearance`` above the raster height; unset cells fall
   back to ``fallback_z``.
5. Odd rows are reversed so the tool zig-zags without retracting.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from ..exceptions import ToolpathPlanningError
from ..heightmap import GridSpec
from ..logging import get_logger
from ..tool import Tool
from ..validate import validate_raster_plan
from .base import Toolpath, ToolpathPass, ToolpathPoint
from .utils import strided_indices

logger = get_logger(__name__)

DEFAULT_CLEARANCE = 0.001
DEFAULT_POINTS_PER_LINE = 200


def plan_raster_toolpath(
    heights: np.ndarray,
    spec: GridSpec,
    tool: Tool,
    step_over_fraction: float,
    clearance: float = DEFAULT_CLEARANCE,
    fallback_z: Optional[float] = None,
    points_per_line: int = DEFAULT_POINTS_PER_LINE,
) -> Toolpath:
    """Plan a zig-zag raster over *heights*.

    Parameters
    ----------
    heights:
        ``(res_x, res_y)`` raster from the rasteriser; ``-inf`` is unset.
    spec:
        The grid spec *heights* was rasterised on.
    tool:
        Cutter; its diameter sets the step-over distance.
    step_over_fraction:
        Pass spacing as a fraction of the cutter diameter.
    clearance:
        Height added above the surface at each point.
    fallback_z:
        Z for unset cells.  Defaults to the lowest set height in *heights*
        (the bottom of the source geometry when it touches the grid).
    points_per_line:
        Target samples per scan line.  Columns are taken every
        ``res_x // points_per_line`` cells (at least 1) plus the last
        column, so a line can hold up to ``2 * points_per_line - 1``
        samples, or all ``res_x`` when ``res_x < 2 * points_per_line``.

    Returns
    -------
    A Toolpath with one pass per scan line.
    """
    heights = np.asarray(heights, dtype=np.float64)
    if heights.shape != spec.shape:
        raise ToolpathPlanningError(
            f"Height raster shape {heights.shape} does not match grid spec "
            f"{spec.shape}"
        )
    if points_per_line < 1:
        raise ToolpathPlanningError("points_per_line must be at least 1")
    if not math.isfinite(clearance):
        raise ToolpathPlanningError(f"clearance must be finite, got {clearance}")

    validation = validate_raster_plan(tool, spec, step_over_fraction)
    if validation.has_errors:
        raise ToolpathPlanningError(
            "; ".join(i.message for i in validation.errors)
        )
    validation.emit_warnings()

    finite = np.isfinite(heights)
    if fallback_z is None:
        if not finite.any():
            raise ToolpathPlanningError(
                "No raster cell is set and no fallback_z was given"
            )
        fallback_z = float(heights[finite].min())

    step_over = tool.cutter_diameter * step_over_fraction
    row_stride = max(1, round(step_over / spec.cell_y))
    col_stride = max(1, spec.res_x // points_per_line)
    rows = strided_indices(spec.res_y, row_stride)
    cols = strided_indices(spec.res_x, col_stride)

    xs = spec.cell_centers_x()[cols]
    surface = np.where(finite, heights + clearance, fallback_z)

    toolpath = Toolpath(tool_number=tool.number, operation_name="carve")
    for line_no, iy in enumerate(rows):
        y = spec.min_y + (iy + 0.5) * spec.cell_y
        zs = surface[cols, iy]
        tp_pass = ToolpathPass(label=f"raster y={y:.4f}")
        line = [ToolpathPoint(float(x), y, float(z)) for x, z in zip(xs, zs)]
        if line_no % 2 == 1:
            line.reverse()
        tp_pass.points = line
        toolpath.add_pass(tp_pass)

    logger.debug(
        "raster_planned",
        passes=len(toolpath.passes),
        points=toolpath.total_points,
        row_stride=row_stride,
        col_stride=col_stride,
    )
    return toolpath
