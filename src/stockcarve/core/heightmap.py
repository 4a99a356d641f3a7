"""Regular 2D height field with world-to-grid coordinate mapping.

Storage convention
------------------
Heights live in a float64 numpy array of shape ``(nx, ny)`` indexed
``[ix, iy]`` in C order, so the flattened position of a grid point is
``ix * ny + iy``.  Every component that flattens or unflattens a buffer
(solid mesh vertices, backends, exported arrays) goes through
:func:`grid_index`; rasters produced by the rasteriser use the same
``[ix, iy]`` layout.

World coordinates map to the *nearest* grid point (round, not floor), so a
"cell" and its sample point coincide.  Queries outside the grid return
:data:`NO_DATA` (``None``), never a number.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .exceptions import GridSizeError

#: Returned by :meth:`HeightmapGrid.get_height` outside the mapped range.
NO_DATA = None

#: Largest number of grid points a single grid (or raster) may hold.
MAX_GRID_POINTS = 16_000_000


def grid_index(ix: int, iy: int, ny: int) -> int:
    """Flat buffer offset of grid point ``(ix, iy)`` in a grid with *ny* rows."""
    return ix * ny + iy


def _check_point_count(nx: int, ny: int, what: str) -> None:
    if nx * ny > MAX_GRID_POINTS:
        raise GridSizeError(
            f"{what} of {nx} x {ny} = {nx * ny} points exceeds the limit "
            f"of {MAX_GRID_POINTS}. Reduce the resolution.",
            {"nx": nx, "ny": ny, "limit": MAX_GRID_POINTS},
        )


@dataclass(frozen=True)
class GridSpec:
    """Extent and cell resolution of a rasterisation target.

    ``res_x`` and ``res_y`` count *cells*.  Cell ``(ix, iy)`` covers
    ``[min_x + ix*cell_x, min_x + (ix+1)*cell_x]`` in X (likewise in Y) and
    is sampled at its centre.
    """

    min_x: float
    max_x: float
    min_y: float
    max_y: float
    res_x: int
    res_y: int

    def __post_init__(self) -> None:
        if self.res_x < 1 or self.res_y < 1:
            raise GridSizeError(
                f"Grid resolution must be at least 1 x 1, got "
                f"{self.res_x} x {self.res_y}"
            )
        if not (math.isfinite(self.min_x) and math.isfinite(self.max_x)
                and math.isfinite(self.min_y) and math.isfinite(self.max_y)):
            raise GridSizeError("Grid extent must be finite")
        if self.max_x <= self.min_x or self.max_y <= self.min_y:
            raise GridSizeError(
                f"Grid extent is empty: x [{self.min_x}, {self.max_x}], "
                f"y [{self.min_y}, {self.max_y}]"
            )
        _check_point_count(self.res_x, self.res_y, "Raster")

    @property
    def cell_x(self) -> float:
        return (self.max_x - self.min_x) / self.res_x

    @property
    def cell_y(self) -> float:
        return (self.max_y - self.min_y) / self.res_y

    @property
    def shape(self) -> tuple[int, int]:
        return (self.res_x, self.res_y)

    def cell_center(self, ix: int, iy: int) -> tuple[float, float]:
        return (
            self.min_x + (ix + 0.5) * self.cell_x,
            self.min_y + (iy + 0.5) * self.cell_y,
        )

    def cell_centers_x(self) -> np.ndarray:
        return self.min_x + (np.arange(self.res_x) + 0.5) * self.cell_x

    def cell_centers_y(self) -> np.ndarray:
        return self.min_y + (np.arange(self.res_y) + 0.5) * self.cell_y

    def empty_raster(self) -> np.ndarray:
        """A ``(res_x, res_y)`` array filled with the unset value ``-inf``."""
        return np.full(self.shape, -np.inf, dtype=np.float64)

    @classmethod
    def from_bounds(
        cls,
        min_x: float,
        min_y: float,
        max_x: float,
        max_y: float,
        resolution: int,
    ) -> "GridSpec":
        """Spec with *resolution* cells along the longer side.

        The shorter side gets a proportional cell count so cells stay
        close to square, but never fewer than two cells so the raster can
        be folded into a :class:`HeightmapGrid`.
        """
        width = max_x - min_x
        height = max_y - min_y
        if width >= height:
            res_x = resolution
            res_y = max(2, round(height / width * resolution)) if width > 0 else 2
        else:
            res_y = resolution
            res_x = max(2, round(width / height * resolution))
        return cls(min_x, max_x, min_y, max_y, int(res_x), int(res_y))


class HeightmapGrid:
    """A ``width x height`` region sampled on ``nx x ny`` grid points.

    Use :meth:`create` (or :meth:`from_raster`) rather than the constructor
    so that the size guards run.
    """

    def __init__(
        self,
        width: float,
        height: float,
        heights: np.ndarray,
        origin_x: float = 0.0,
        origin_y: float = 0.0,
    ):
        heights = np.ascontiguousarray(heights, dtype=np.float64)
        if heights.ndim != 2:
            raise GridSizeError(
                f"Height array must be 2D (nx, ny), got shape {heights.shape}"
            )
        nx, ny = heights.shape
        if nx < 2 or ny < 2:
            raise GridSizeError(
                f"Grid needs at least 2 x 2 points, got {nx} x {ny}",
                {"nx": nx, "ny": ny},
            )
        if not (math.isfinite(width) and width > 0
                and math.isfinite(height) and height > 0):
            raise GridSizeError(
                f"Grid width and height must be positive, got "
                f"{width} x {height}"
            )
        _check_point_count(nx, ny, "Grid")

        self.width = float(width)
        self.height = float(height)
        self.origin_x = float(origin_x)
        self.origin_y = float(origin_y)
        self.nx = nx
        self.ny = ny
        self.grid_size_x = self.width / (nx - 1)
        self.grid_size_y = self.height / (ny - 1)
        self._heights = heights

    @classmethod
    def create(
        cls,
        width: float,
        height: float,
        nx: int,
        ny: int,
        initial_height: float,
        origin_x: float = 0.0,
        origin_y: float = 0.0,
    ) -> "HeightmapGrid":
        """Create a grid with every point at *initial_height*."""
        if nx < 2 or ny < 2:
            raise GridSizeError(
                f"Grid needs at least 2 x 2 points, got {nx} x {ny}",
                {"nx": nx, "ny": ny},
            )
        _check_point_count(nx, ny, "Grid")
        if not math.isfinite(initial_height):
            raise GridSizeError(
                f"Initial height must be finite, got {initial_height}"
            )
        heights = np.full((nx, ny), float(initial_height), dtype=np.float64)
        return cls(width, height, heights, origin_x, origin_y)

    @classmethod
    def from_raster(
        cls,
        raster: np.ndarray,
        spec: GridSpec,
        fill: Optional[float] = None,
    ) -> "HeightmapGrid":
        """Fold a rasteriser output into a grid whose points are cell centres.

        Unset (``-inf``) cells take *fill*.  Raises GridSizeError when unset
        cells exist and no *fill* is given.
        """
        raster = np.asarray(raster, dtype=np.float64)
        if raster.shape != spec.shape:
            raise GridSizeError(
                f"Raster shape {raster.shape} does not match spec {spec.shape}"
            )
        heights = raster.copy()
        unset = ~np.isfinite(heights)
        if unset.any():
            if fill is None:
                raise GridSizeError(
                    f"{int(unset.sum())} raster cells are unset and no fill "
                    "height was given"
                )
            heights[unset] = fill
        x0, y0 = spec.cell_center(0, 0)
        return cls(
            width=(spec.res_x - 1) * spec.cell_x,
            height=(spec.res_y - 1) * spec.cell_y,
            heights=heights,
            origin_x=x0,
            origin_y=y0,
        )

    # ------------------------------------------------------------------
    # Coordinate mapping
    # ------------------------------------------------------------------

    def nearest_index(self, x: float, y: float) -> Optional[tuple[int, int]]:
        """Nearest grid lattice index to ``(x, y)``, which may lie off the grid.

        None only for non-finite input.
        """
        fx = (x - self.origin_x) / self.grid_size_x
        fy = (y - self.origin_y) / self.grid_size_y
        if not (math.isfinite(fx) and math.isfinite(fy)):
            return None
        # Ties round up, matching nearest_indices
        return math.floor(fx + 0.5), math.floor(fy + 0.5)

    def to_index(self, x: float, y: float) -> Optional[tuple[int, int]]:
        """Nearest grid point to world ``(x, y)``, or None when out of range."""
        idx = self.nearest_index(x, y)
        if idx is None:
            return None
        ix, iy = idx
        if ix < 0 or iy < 0 or ix >= self.nx or iy >= self.ny:
            return None
        return ix, iy

    def nearest_indices(
        self, xs: np.ndarray, ys: np.ndarray, margin: int = 0
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Vectorised :meth:`nearest_index`.

        Indices are clamped to ``margin + 1`` lattice steps beyond the grid,
        which keeps them in int64 range without changing anything a stencil
        of radius *margin* can reach.  Returns ``(ix, iy, finite)``.
        """
        fx = (np.asarray(xs, dtype=np.float64) - self.origin_x) / self.grid_size_x
        fy = (np.asarray(ys, dtype=np.float64) - self.origin_y) / self.grid_size_y
        finite = np.isfinite(fx) & np.isfinite(fy)
        lo = -float(margin) - 1.0
        fx = np.clip(np.where(finite, fx, lo), lo, float(self.nx + margin))
        fy = np.clip(np.where(finite, fy, lo), lo, float(self.ny + margin))
        ix = np.floor(fx + 0.5).astype(np.int64)
        iy = np.floor(fy + 0.5).astype(np.int64)
        return ix, iy, finite

    def to_indices(
        self, xs: np.ndarray, ys: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Vectorised :meth:`to_index`.

        Returns ``(ix, iy, valid)``; entries where *valid* is False are out
        of range and their indices are meaningless.
        """
        ix, iy, finite = self.nearest_indices(xs, ys)
        valid = finite & (ix >= 0) & (iy >= 0) & (ix < self.nx) & (iy < self.ny)
        return ix, iy, valid

    def point_at(self, ix: int, iy: int) -> tuple[float, float]:
        """World coordinates of grid point ``(ix, iy)``."""
        return (
            self.origin_x + ix * self.grid_size_x,
            self.origin_y + iy * self.grid_size_y,
        )

    def xs(self) -> np.ndarray:
        return self.origin_x + np.arange(self.nx) * self.grid_size_x

    def ys(self) -> np.ndarray:
        return self.origin_y + np.arange(self.ny) * self.grid_size_y

    # ------------------------------------------------------------------
    # Height access
    # ------------------------------------------------------------------

    def get_height(self, x: float, y: float) -> Optional[float]:
        idx = self.to_index(x, y)
        if idx is None:
            return NO_DATA
        return float(self._heights[idx])

    def set_height(self, x: float, y: float, z: float) -> None:
        idx = self.to_index(x, y)
        if idx is None:
            return
        self._heights[idx] = z

    @property
    def heights(self) -> np.ndarray:
        """The backing ``(nx, ny)`` array (mutable, not a copy)."""
        return self._heights

    def flat(self) -> np.ndarray:
        """1D view of the heights in ``ix * ny + iy`` order."""
        return self._heights.reshape(-1)

    @property
    def shape(self) -> tuple[int, int]:
        return (self.nx, self.ny)

    @property
    def bounds_2d(self) -> tuple[float, float, float, float]:
        """(xmin, ymin, xmax, ymax) of the sampled region."""
        return (
            self.origin_x,
            self.origin_y,
            self.origin_x + self.width,
            self.origin_y + self.height,
        )

    @property
    def min_spacing(self) -> float:
        return min(self.grid_size_x, self.grid_size_y)

    def copy(self) -> "HeightmapGrid":
        return HeightmapGrid(
            self.width, self.height, self._heights.copy(),
            self.origin_x, self.origin_y,
        )

    def __repr__(self) -> str:
        return (
            f"HeightmapGrid({self.nx}x{self.ny}, "
            f"size={self.width:g}x{self.height:g}, "
            f"origin=({self.origin_x:g}, {self.origin_y:g}))"
        )
