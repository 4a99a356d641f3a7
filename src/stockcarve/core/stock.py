"""The uncut blank the job carves from."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from shapely.geometry import Polygon, box

from .heightmap import GridSpec, HeightmapGrid


@dataclass
class Stock:
    """Axis-aligned block given by its low corner and its size.

    ``corner`` is the (x, y, z) of the bottom-left-front vertex and
    ``size`` the (dx, dy, dz) extent; every component of ``size`` must be
    positive.
    """

    size: tuple[float, float, float]
    corner: tuple[float, float, float] = (0.0, 0.0, 0.0)

    def __post_init__(self) -> None:
        self.size = tuple(float(v) for v in self.size)
        self.corner = tuple(float(v) for v in self.corner)
        for axis, extent in zip("xyz", self.size):
            if not extent > 0:
                raise ValueError(f"Stock {axis} size must be positive, got {extent}")

    @property
    def z_top(self) -> float:
        return self.corner[2] + self.size[2]

    @property
    def z_bottom(self) -> float:
        return self.corner[2]

    @property
    def bounds_2d(self) -> tuple[float, float, float, float]:
        x0, y0, _ = self.corner
        dx, dy, _ = self.size
        return (x0, y0, x0 + dx, y0 + dy)

    def footprint(self) -> Polygon:
        return box(*self.bounds_2d)

    def grid_spec(self, resolution: int) -> GridSpec:
        """Raster layout over the footprint, *resolution* cells on the long side."""
        return GridSpec.from_bounds(*self.bounds_2d, resolution)

    def create_grid(self, resolution: int) -> HeightmapGrid:
        """Uncut grid at ``z_top`` sampled at the cell centres of :meth:`grid_spec`.

        Toolpaths planned on the same layout land exactly on grid points.
        """
        layout = self.grid_spec(resolution)
        return HeightmapGrid.from_raster(
            np.full(layout.shape, self.z_top, dtype=np.float64), layout
        )

    @classmethod
    def from_model_bounds(
        cls,
        bounds,
        margin: float = 0.0,
        z_top: float | None = None,
    ) -> Stock:
        """Block around a ``(2, 3)`` bounds array, grown by *margin* in XY.

        The bottom sits at the model's lowest point; the top defaults to
        its highest.
        """
        lo = np.asarray(bounds[0], dtype=np.float64)
        hi = np.asarray(bounds[1], dtype=np.float64)
        top = hi[2] if z_top is None else float(z_top)
        grow = np.array([margin, margin, 0.0])
        corner = lo - grow
        size = np.array([hi[0], hi[1], top]) + grow - corner
        return cls(size=tuple(size), corner=tuple(corner))
