"""Extrude a height grid into a closed solid triangle mesh.

Vertex layout (``n = nx * ny``, each block in ``ix * ny + iy`` order):

- ``[0, n)``       top surface, z from the grid
- ``[n, 2n)``      bottom, z = ``min_z``
- ``[2n, 3n)``     copy of the top surface used only by the side walls

The side walls reference the copy so that smoothing vertex normals never
averages a top face with a wall; the top-to-wall edge stays sharp.  With
the copy mapped back onto the top block, every edge of the result borders
exactly two triangles and all faces wind outward.  This holds even where
the surface touches ``min_z`` and a wall triangle has zero area.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional
from pathlib import Path

import numpy as np
import trimesh

from .exceptions import MeshSizeError
from .heightmap import HeightmapGrid, grid_index
from .logging import get_logger

logger = get_logger(__name__)

MAX_MESH_VERTICES = 50_000_000
MAX_MESH_TRIANGLES = 160_000_000


@dataclass
class SolidMesh:
    """Indexed triangle mesh with per-vertex normals."""

    positions: np.ndarray  # (V, 3) float64
    normals: np.ndarray    # (V, 3) float64, unit length
    indices: np.ndarray    # (T, 3) int64
    # First vertex of a block that repeats the block starting at 0
    alias_start: Optional[int] = None

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        return len(self.indices)

    def face_normals(self) -> np.ndarray:
        """Unit normal of every triangle, from its winding."""
        normals = _face_cross(self.positions, self.indices)
        length = np.linalg.norm(normals, axis=1, keepdims=True)
        return np.divide(normals, length, out=np.zeros_like(normals),
                         where=length > 1e-12)

    def welded_indices(self, decimals: int = 9) -> np.ndarray:
        """Triangle indices with duplicated vertices merged.

        Uses ``alias_start`` when known, otherwise merges vertices whose
        positions agree to *decimals* places.
        """
        if self.alias_start is not None:
            return np.where(self.indices >= self.alias_start,
                            self.indices - self.alias_start, self.indices)
        rounded = np.round(self.positions, decimals)
        _, inverse = np.unique(rounded, axis=0, return_inverse=True)
        return inverse.reshape(-1)[self.indices]

    def edge_use_counts(self) -> np.ndarray:
        """How many triangles use each undirected (welded) edge."""
        faces = self.welded_indices()
        edges = np.concatenate(
            [faces[:, [0, 1]], faces[:, [1, 2]], faces[:, [2, 0]]]
        )
        edges.sort(axis=1)
        _, counts = np.unique(edges, axis=0, return_counts=True)
        return counts

    def is_closed(self) -> bool:
        """True when every welded edge borders exactly two triangles."""
        return bool(np.all(self.edge_use_counts() == 2))

    def to_trimesh(self) -> trimesh.Trimesh:
        return trimesh.Trimesh(
            vertices=self.positions,
            faces=self.indices,
            vertex_normals=self.normals,
            process=False,
        )

    def export(self, path: Path) -> None:
        """Write the mesh in any format trimesh infers from the suffix."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_trimesh().export(str(path))


def projected_size(nx: int, ny: int) -> tuple[int, int]:
    """(vertices, triangles) :func:`build_solid_mesh` emits for an nx x ny grid."""
    vertices = 3 * nx * ny
    cells = (nx - 1) * (ny - 1)
    walls = 2 * (nx - 1) + 2 * (ny - 1)
    return vertices, 4 * cells + 2 * walls


def _face_cross(positions: np.ndarray, indices: np.ndarray) -> np.ndarray:
    a = positions[indices[:, 0]]
    b = positions[indices[:, 1]]
    c = positions[indices[:, 2]]
    return np.cross(b - a, c - a)


def _vertex_normals(positions: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """Area-weighted average of the face normals around each vertex."""
    face = _face_cross(positions, indices)
    normals = np.zeros_like(positions)
    for k in range(3):
        np.add.at(normals, indices[:, k], face)
    length = np.linalg.norm(normals, axis=1, keepdims=True)
    return np.divide(normals, length, out=np.zeros_like(normals),
                     where=length > 1e-12)


def _wall(top: np.ndarray, bottom: np.ndarray, reverse: bool) -> np.ndarray:
    """Two triangles per segment between a top row and the bottom row below it.

    *reverse* flips the winding; which one faces outward depends on the
    direction the rows run along the boundary.
    """
    ta, tb = top[:-1], top[1:]
    ba, bb = bottom[:-1], bottom[1:]
    if reverse:
        first = np.stack([ta, ba, tb], axis=1)
        second = np.stack([tb, ba, bb], axis=1)
    else:
        first = np.stack([ta, tb, ba], axis=1)
        second = np.stack([ba, tb, bb], axis=1)
    return np.concatenate([first, second])


def build_solid_mesh(grid: HeightmapGrid, min_z: float) -> SolidMesh:
    """Extrude *grid* down to *min_z* into a closed, outward-facing mesh.

    Raises MeshSizeError before allocating anything when the mesh would
    exceed MAX_MESH_VERTICES or MAX_MESH_TRIANGLES.
    """
    if not math.isfinite(min_z):
        raise ValueError(f"min_z must be finite, got {min_z}")
    nx, ny = grid.nx, grid.ny
    n_vertices, n_triangles = projected_size(nx, ny)
    if n_vertices > MAX_MESH_VERTICES:
        raise MeshSizeError(
            f"Grid too fine: the solid would have {n_vertices} vertices "
            f"(limit {MAX_MESH_VERTICES}). Reduce the grid resolution.",
            {"nx": nx, "ny": ny},
        )
    if n_triangles > MAX_MESH_TRIANGLES:
        raise MeshSizeError(
            f"Grid too fine: the solid would have {n_triangles} triangles "
            f"(limit {MAX_MESH_TRIANGLES}). Reduce the grid resolution.",
            {"nx": nx, "ny": ny},
        )

    n = nx * ny
    gx, gy = np.meshgrid(grid.xs(), grid.ys(), indexing="ij")
    top = np.column_stack([gx.reshape(-1), gy.reshape(-1), grid.flat()])
    bottom = top.copy()
    bottom[:, 2] = min_z
    positions = np.concatenate([top, bottom, top])

    ix, iy = np.meshgrid(np.arange(nx - 1), np.arange(ny - 1), indexing="ij")
    ix = ix.reshape(-1)
    iy = iy.reshape(-1)
    a = grid_index(ix, iy, ny)
    b = grid_index(ix + 1, iy, ny)
    c = grid_index(ix + 1, iy + 1, ny)
    d = grid_index(ix, iy + 1, ny)

    top_faces = np.concatenate([np.stack([a, b, d], axis=1),
                                np.stack([b, c, d], axis=1)])
    bottom_faces = np.concatenate([np.stack([a, d, b], axis=1),
                                   np.stack([b, d, c], axis=1)]) + n

    cols = np.arange(nx)
    rows = np.arange(ny)
    side_top = 2 * n
    walls = [
        # ix = 0, outward -X
        _wall(side_top + grid_index(0, rows, ny), n + grid_index(0, rows, ny),
              reverse=False),
        # ix = nx - 1, outward +X
        _wall(side_top + grid_index(nx - 1, rows, ny),
              n + grid_index(nx - 1, rows, ny), reverse=True),
        # iy = 0, outward -Y
        _wall(side_top + grid_index(cols, 0, ny), n + grid_index(cols, 0, ny),
              reverse=True),
        # iy = ny - 1, outward +Y
        _wall(side_top + grid_index(cols, ny - 1, ny),
              n + grid_index(cols, ny - 1, ny), reverse=False),
    ]

    indices = np.concatenate([top_faces, bottom_faces, *walls]).astype(np.int64)
    normals = _vertex_normals(positions, indices)

    logger.debug("solid_mesh_built", vertices=len(positions),
                 triangles=len(indices))
    return SolidMesh(positions=positions, normals=normals, indices=indices,
                     alias_start=side_top)
