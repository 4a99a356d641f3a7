"""Geometry helper utilities shared across toolpath strategies."""

from __future__ import annotations

import math

import numpy as np
from shapely.geometry import (
    GeometryCollection,
    LineString,
    MultiLineString,
    MultiPolygon,
    Polygon,
)
from shapely.ops import unary_union
from shapely.validation import make_valid


def ensure_polygon(geom) -> Polygon | MultiPolygon:
    """Coerce *geom* to a valid areal geometry; anything else becomes empty."""
    if geom is None or geom.is_empty:
        return Polygon()
    geom = geom if geom.is_valid else make_valid(geom)
    if isinstance(geom, (Polygon, MultiPolygon)):
        return geom
    if isinstance(geom, GeometryCollection):
        areas = [g for g in geom.geoms if isinstance(g, (Polygon, MultiPolygon))]
        if areas:
            return unary_union(areas)
    return Polygon()


def iter_lines(geom):
    """Yield the non-empty LineStrings of a clipping result."""
    if geom is None or geom.is_empty:
        return
    if isinstance(geom, LineString):
        yield geom
        return
    parts = geom.geoms if isinstance(geom, (MultiLineString, GeometryCollection)) else []
    for part in parts:
        # Clipping along a boundary can also return points
        if isinstance(part, LineString) and not part.is_empty:
            yield part


def strided_indices(count: int, stride: int) -> list[int]:
    """``0, stride, 2*stride, ...`` below *count*, always ending at ``count-1``."""
    if count <= 0:
        return []
    indices = list(range(0, count, max(1, stride)))
    if indices[-1] != count - 1:
        indices.append(count - 1)
    return indices


def densify(coords: list[tuple[float, float]], spacing: float) -> list[tuple[float, float]]:
    """Resample a polyline so consecutive points are at most *spacing* apart.

    The original vertices are kept; both ends are always included.
    """
    if len(coords) < 2 or spacing <= 0:
        return list(coords)
    out = [coords[0]]
    for (x0, y0), (x1, y1) in zip(coords[:-1], coords[1:]):
        n = max(1, math.ceil(math.hypot(x1 - x0, y1 - y0) / spacing))
        for k in range(1, n + 1):
            t = k / n
            out.append((x0 + (x1 - x0) * t, y0 + (y1 - y0) * t))
    return out


def _closed_offsets(lo: float, hi: float, step: float) -> np.ndarray:
    """``lo, lo+step, ...`` strictly below *hi*, then *hi* itself."""
    count = max(0, math.ceil((hi - lo) / step - 1e-9))
    return np.append(lo + step * np.arange(count), hi)


def raster_lines_in_bounds(
    xmin: float,
    xmax: float,
    ymin: float,
    ymax: float,
    step_over: float,
    angle_deg: float = 0.0,
) -> list[LineString]:
    """Parallel raster lines *step_over* apart covering the bounding box.

    At 0 degrees the lines run along X from *ymin* and the last one lies on
    *ymax*.  Rotated lines are centred on the box, long enough to cross it
    at any angle, and must be clipped by the caller.
    """
    if step_over <= 0:
        raise ValueError("step_over must be positive")

    if angle_deg == 0.0:
        return [
            LineString([(xmin, y), (xmax, y)])
            for y in _closed_offsets(ymin, ymax, step_over).tolist()
        ]

    half = math.hypot(xmax - xmin, ymax - ymin)
    cx = (xmin + xmax) / 2
    cy = (ymin + ymax) / 2
    theta = math.radians(angle_deg)
    along = np.array([math.cos(theta), math.sin(theta)])
    across = np.array([-along[1], along[0]])

    n = math.ceil(half / step_over) + 1
    lines = []
    for offset in step_over * np.arange(-n, n + 1):
        mid = np.array([cx, cy]) + offset * across
        lines.append(LineString([mid - half * along, mid + half * along]))
    return lines
