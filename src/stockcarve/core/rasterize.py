"""Triangle mesh -> top-surface height raster.

Each triangle is projected onto the XY plane.  Every raster cell whose
centre falls inside the projection (with a small tolerance, so centres on
shared edges and vertices are never dropped) receives the triangle's
interpolated Z, and a cell keeps the highest Z written to it.  Cells no
triangle covers stay at ``-inf``.

Two implementations share the same arithmetic: :func:`rasterize_mesh`
walks candidate cells one at a time, :func:`rasterize_mesh_vectorized`
tests a triangle's candidate cells as numpy arrays.  Both produce the same
raster.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from .heightmap import GridSpec
from .logging import get_logger

logger = get_logger(__name__)

# Tolerance on normalised barycentric coordinates
BARYCENTRIC_EPS = 1e-7

# Projected triangles with |2 * signed area| below this are degenerate
DEGENERATE_AREA = 1e-12


def as_triangle_array(triangles) -> np.ndarray:
    """Coerce *triangles* to a float64 ``(n, 3, 3)`` array."""
    arr = np.asarray(triangles, dtype=np.float64)
    if arr.size == 0:
        return arr.reshape(0, 3, 3)
    if arr.shape[-1] != 3 or arr.size % 9 != 0:
        raise ValueError(
            f"Triangles must reshape to (n, 3, 3), got shape {arr.shape}"
        )
    return arr.reshape(-1, 3, 3)


def signed_area2(a, b, c) -> float:
    """Twice the signed XY area of triangle *abc* (positive when CCW)."""
    return (b[0] - a[0]) * (c[1] - a[1]) - (c[0] - a[0]) * (b[1] - a[1])


def barycentric(px: float, py: float, a, b, c) -> Optional[tuple[float, float, float]]:
    """Barycentric weights of ``(px, py)`` in the XY projection of *abc*.

    None for a degenerate triangle.
    """
    d = signed_area2(a, b, c)
    if abs(d) < DEGENERATE_AREA:
        return None
    w0 = ((b[0] - px) * (c[1] - py) - (c[0] - px) * (b[1] - py)) / d
    w1 = ((c[0] - px) * (a[1] - py) - (a[0] - px) * (c[1] - py)) / d
    return w0, w1, 1.0 - w0 - w1


def point_in_triangle(px: float, py: float, a, b, c, eps: float = BARYCENTRIC_EPS) -> bool:
    weights = barycentric(px, py, a, b, c)
    if weights is None:
        return False
    return all(w >= -eps for w in weights)


def interpolate_z(px: float, py: float, a, b, c) -> Optional[float]:
    weights = barycentric(px, py, a, b, c)
    if weights is None:
        return None
    w0, w1, w2 = weights
    return w0 * a[2] + w1 * b[2] + w2 * c[2]


def _cell_range(lo: float, hi: float, origin: float, cell: float, res: int) -> tuple[int, int]:
    """Inclusive index range of cells overlapping ``[lo, hi]``, clamped."""
    i0 = max(0, math.floor((lo - origin) / cell))
    i1 = min(res - 1, math.floor((hi - origin) / cell))
    return i0, i1


def _cell_of(value: float, origin: float, cell: float, res: int) -> Optional[int]:
    """Index of the cell containing *value* (the far edge belongs to the last cell)."""
    i = math.floor((value - origin) / cell)
    if i == res and value <= origin + res * cell:
        i = res - 1
    if i < 0 or i >= res:
        return None
    return i


def _rasterize_degenerate(tri: np.ndarray, spec: GridSpec, out: np.ndarray) -> None:
    """A zero-area projection touches at most the cell under its centroid."""
    cx = float(tri[:, 0].mean())
    cy = float(tri[:, 1].mean())
    ix = _cell_of(cx, spec.min_x, spec.cell_x, spec.res_x)
    iy = _cell_of(cy, spec.min_y, spec.cell_y, spec.res_y)
    if ix is None or iy is None:
        return
    z = float(tri[:, 2].max())
    if z > out[ix, iy]:
        out[ix, iy] = z


def _prepare(triangles, spec: GridSpec):
    tris = as_triangle_array(triangles)
    finite = np.isfinite(tris).all(axis=(1, 2))
    skipped = int((~finite).sum())
    if skipped:
        logger.warning("rasterize_skipped_nonfinite", triangles=skipped)
    return tris[finite], spec.empty_raster()


def rasterize_mesh(triangles, spec: GridSpec) -> np.ndarray:
    """Rasterise *triangles* onto *spec*, one cell at a time.

    Returns a ``(res_x, res_y)`` array of top-surface heights with ``-inf``
    where nothing projects.
    """
    tris, out = _prepare(triangles, spec)
    cell_x = spec.cell_x
    cell_y = spec.cell_y

    for tri in tris:
        a, b, c = tri
        if abs(signed_area2(a, b, c)) < DEGENERATE_AREA:
            _rasterize_degenerate(tri, spec, out)
            continue

        ix0, ix1 = _cell_range(tri[:, 0].min(), tri[:, 0].max(),
                               spec.min_x, cell_x, spec.res_x)
        iy0, iy1 = _cell_range(tri[:, 1].min(), tri[:, 1].max(),
                               spec.min_y, cell_y, spec.res_y)
        for ix in range(ix0, ix1 + 1):
            px = spec.min_x + (ix + 0.5) * cell_x
            for iy in range(iy0, iy1 + 1):
                py = spec.min_y + (iy + 0.5) * cell_y
                weights = barycentric(px, py, a, b, c)
                if weights is None or min(weights) < -BARYCENTRIC_EPS:
                    continue
                w0, w1, w2 = weights
                z = w0 * a[2] + w1 * b[2] + w2 * c[2]
                if z > out[ix, iy]:
                    out[ix, iy] = z

    logger.debug("rasterize_done", triangles=len(tris), shape=out.shape,
                 covered=int(np.isfinite(out).sum()))
    return out


def rasterize_mesh_vectorized(triangles, spec: GridSpec) -> np.ndarray:
    """Same result as :func:`rasterize_mesh`, testing cells as arrays."""
    tris, out = _prepare(triangles, spec)
    cell_x = spec.cell_x
    cell_y = spec.cell_y
    centers_x = spec.cell_centers_x()
    centers_y = spec.cell_centers_y()

    for tri in tris:
        a, b, c = tri
        d = signed_area2(a, b, c)
        if abs(d) < DEGENERATE_AREA:
            _rasterize_degenerate(tri, spec, out)
            continue

        ix0, ix1 = _cell_range(tri[:, 0].min(), tri[:, 0].max(),
                               spec.min_x, cell_x, spec.res_x)
        iy0, iy1 = _cell_range(tri[:, 1].min(), tri[:, 1].max(),
                               spec.min_y, cell_y, spec.res_y)
        if ix0 > ix1 or iy0 > iy1:
            continue

        px = centers_x[ix0:ix1 + 1, None]
        py = centers_y[None, iy0:iy1 + 1]
        w0 = ((b[0] - px) * (c[1] - py) - (c[0] - px) * (b[1] - py)) / d
        w1 = ((c[0] - px) * (a[1] - py) - (a[0] - px) * (c[1] - py)) / d
        w2 = 1.0 - w0 - w1
        inside = ((w0 >= -BARYCENTRIC_EPS) & (w1 >= -BARYCENTRIC_EPS)
                  & (w2 >= -BARYCENTRIC_EPS))
        if not inside.any():
            continue
        z = w0 * a[2] + w1 * b[2] + w2 * c[2]
        window = out[ix0:ix1 + 1, iy0:iy1 + 1]
        np.maximum(window, np.where(inside, z, -np.inf), out=window)

    logger.debug("rasterize_done", triangles=len(tris), shape=out.shape,
                 covered=int(np.isfinite(out).sum()))
    return out
