"""Heightmap material removal for 2.5D milling.

Assumptions
-----------
- The tool zero is the centre of the tip at ``(x, y, z)``.
- A grid point is only ever lowered: after a toolpath point, a cell within
  the cutter holds ``min(old, z + depth(distance))``.
- Flat: flat-bottomed cylinder at ``z``.
- Ball: hemisphere, surface at ``z + r - sqrt(r^2 - d^2)``.
- V-bit: cone, surface at ``z + d / tan(v_angle / 2)``.

Removal is a pointwise minimum, so the final grid does not depend on the
order of the toolpath points and replaying a toolpath changes nothing.
That is what lets :func:`simulate_material_removal_vectorized` apply all
points in one batched ``numpy.minimum.at``.
"""

from __future__ import annotations

import numpy as np

from .heightmap import HeightmapGrid, grid_index
from .logging import get_logger
from .tool import Tool, ToolStencil
from .toolpath.base import Toolpath, ToolpathPass, ToolpathPoint, as_point_array

logger = get_logger(__name__)

# Upper bound on (points x stencil cells) materialised per batch
_BATCH_CELLS = 4_000_000


def _require_tool(tool) -> Tool:
    if not isinstance(tool, Tool):
        raise TypeError(
            f"Material removal needs a validated Tool, got {type(tool).__name__}"
        )
    return tool


def _grid_stencil(grid: HeightmapGrid, tool: Tool) -> ToolStencil:
    return tool.stencil(grid.grid_size_x, grid.grid_size_y)


def _batches(n_points: int, stencil_cells: int):
    size = max(1, _BATCH_CELLS // max(1, stencil_cells))
    for start in range(0, n_points, size):
        yield slice(start, min(n_points, start + size))


def _finite_points(toolpath) -> np.ndarray:
    points = as_point_array(toolpath)
    finite = np.isfinite(points).all(axis=1)
    if not finite.all():
        logger.warning("non_finite_points_skipped",
                       skipped=int(np.count_nonzero(~finite)))
        points = points[finite]
    return points


def simulate_material_removal(grid: HeightmapGrid, tool: Tool, toolpath) -> int:
    """Lower *grid* in place wherever the tool passes below its surface.

    *toolpath* may be a Toolpath, a sequence of passes or points, or an
    ``(n, 3)`` array.  Points with a non-finite coordinate are skipped.
    Returns the number of grid points that were lowered.
    """
    tool = _require_tool(tool)
    points = _finite_points(toolpath)
    if len(points) == 0:
        logger.info("simulation_skipped", reason="empty toolpath")
        return 0

    heights = grid.heights
    before = heights.copy()

    if tool.is_single_cell(grid.min_spacing):
        # Narrow flat tool: only the nearest grid point is cut
        for x, y, z in points.tolist():
            idx = grid.to_index(x, y)
            if idx is not None and heights[idx] > z:
                heights[idx] = z
    else:
        stencil = _grid_stencil(grid, tool)
        dxs, dys, dzs = stencil.offsets()
        offsets = list(zip(dxs.tolist(), dys.tolist(), dzs.tolist()))
        nx, ny = grid.nx, grid.ny
        for x, y, z in points.tolist():
            center = grid.nearest_index(x, y)
            if center is None:
                continue
            cx, cy = center
            for dx, dy, dz in offsets:
                ix = cx + dx
                iy = cy + dy
                if ix < 0 or iy < 0 or ix >= nx or iy >= ny:
                    continue
                candidate = z + dz
                if heights[ix, iy] > candidate:
                    heights[ix, iy] = candidate

    lowered = int(np.count_nonzero(heights < before))
    logger.debug("simulation_done", points=len(points), lowered=lowered)
    return lowered


def simulate_material_removal_vectorized(grid: HeightmapGrid, tool: Tool, toolpath) -> int:
    """Batched equivalent of :func:`simulate_material_removal`."""
    tool = _require_tool(tool)
    points = _finite_points(toolpath)
    if len(points) == 0:
        logger.info("simulation_skipped", reason="empty toolpath")
        return 0

    flat = grid.flat()
    before = flat.copy()

    if tool.is_single_cell(grid.min_spacing):
        ix, iy, valid = grid.to_indices(points[:, 0], points[:, 1])
        np.minimum.at(flat, grid_index(ix[valid], iy[valid], grid.ny),
                      points[valid, 2])
    else:
        stencil = _grid_stencil(grid, tool)
        dxs, dys, dzs = stencil.offsets()
        margin = max(stencil.radius_x, stencil.radius_y)
        cx, cy, finite = grid.nearest_indices(points[:, 0], points[:, 1], margin)
        for sl in _batches(len(points), len(dzs)):
            ix = cx[sl, None] + dxs[None, :]
            iy = cy[sl, None] + dys[None, :]
            candidate = points[sl, 2, None] + dzs[None, :]
            valid = ((ix >= 0) & (iy >= 0) & (ix < grid.nx) & (iy < grid.ny)
                     & finite[sl, None])
            np.minimum.at(flat, grid_index(ix[valid], iy[valid], grid.ny),
                          candidate[valid])

    lowered = int(np.count_nonzero(flat < before))
    logger.debug("simulation_done", points=len(points), lowered=lowered,
                 mode="vectorized")
    return lowered


def compute_safe_z(grid: HeightmapGrid, tool: Tool, xy_points) -> np.ndarray:
    """Lowest tip Z at each XY that keeps the whole cutter on or above *grid*.

    For every defined stencil cell the tip must sit at least at
    ``height(cell) - depth``; the safe Z is the largest such bound.  NaN
    where the cutter footprint misses the grid entirely.
    """
    tool = _require_tool(tool)
    xy = np.asarray(xy_points, dtype=np.float64)
    if xy.size == 0:
        return np.empty(0, dtype=np.float64)
    xy = xy.reshape(-1, xy.shape[-1])[:, :2]
    flat = grid.flat()
    result = np.full(len(xy), np.nan)

    if tool.is_single_cell(grid.min_spacing):
        ix, iy, valid = grid.to_indices(xy[:, 0], xy[:, 1])
        result[valid] = flat[grid_index(ix[valid], iy[valid], grid.ny)]
        return result

    stencil = _grid_stencil(grid, tool)
    dxs, dys, dzs = stencil.offsets()
    margin = max(stencil.radius_x, stencil.radius_y)
    cx, cy, finite = grid.nearest_indices(xy[:, 0], xy[:, 1], margin)
    for sl in _batches(len(xy), len(dzs)):
        ix = cx[sl, None] + dxs[None, :]
        iy = cy[sl, None] + dys[None, :]
        valid = ((ix >= 0) & (iy >= 0) & (ix < grid.nx) & (iy < grid.ny)
                 & finite[sl, None])
        offsets = np.where(valid, grid_index(ix, iy, grid.ny), 0)
        required = np.where(valid, flat[offsets] - dzs[None, :], -np.inf)
        best = required.max(axis=1)
        best[~valid.any(axis=1)] = np.nan
        result[sl] = best
    return result


def compensate_toolpath(
    toolpath: Toolpath,
    grid: HeightmapGrid,
    tool: Tool,
    clearance: float = 0.0,
) -> Toolpath:
    """Copy of *toolpath* with every point lifted to its safe Z + *clearance*.

    Points already above that height, or off the grid, keep their Z.
    """
    compensated = Toolpath(tool_number=toolpath.tool_number,
                           operation_name=toolpath.operation_name)
    for tp_pass in toolpath.passes:
        if tp_pass.is_empty():
            continue
        xyz = np.array([p.as_tuple() for p in tp_pass.points])
        safe = compute_safe_z(grid, tool, xyz[:, :2]) + clearance
        lift = np.isfinite(safe) & (safe > xyz[:, 2])
        xyz[lift, 2] = safe[lift]
        new_pass = ToolpathPass(label=tp_pass.label)
        for x, y, z in xyz.tolist():
            new_pass.append(ToolpathPoint(x, y, z))
        compensated.add_pass(new_pass)
    return compensated
