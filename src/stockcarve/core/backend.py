"""Interchangeable kernel implementations.

A backend bundles the three heavy kernel calls.  Callers pick one
explicitly (or by name from settings) and hand it to the Job; nothing is
selected globally.  Both backends produce identical rasters and stock
grids for the same input.
"""

from __future__ import annotations

from typing import Protocol

import numpy as np

from .heightmap import GridSpec, HeightmapGrid
from .rasterize import rasterize_mesh, rasterize_mesh_vectorized
from .simulate import simulate_material_removal, simulate_material_removal_vectorized
from .solid import SolidMesh, build_solid_mesh
from .tool import Tool


class KernelBackend(Protocol):
    name: str

    def rasterize_mesh(self, triangles, spec: GridSpec) -> np.ndarray: ...

    def simulate_material_removal(self, grid: HeightmapGrid, tool: Tool, toolpath) -> int: ...

    def build_solid_mesh(self, grid: HeightmapGrid, min_z: float) -> SolidMesh: ...


class ReferenceBackend:
    """Straightforward per-triangle and per-point loops."""

    name = "reference"

    def rasterize_mesh(self, triangles, spec: GridSpec) -> np.ndarray:
        return rasterize_mesh(triangles, spec)

    def simulate_material_removal(self, grid: HeightmapGrid, tool: Tool, toolpath) -> int:
        return simulate_material_removal(grid, tool, toolpath)

    def build_solid_mesh(self, grid: HeightmapGrid, min_z: float) -> SolidMesh:
        return build_solid_mesh(grid, min_z)


class VectorizedBackend:
    """numpy-batched rasterisation and removal."""

    name = "vectorized"

    def rasterize_mesh(self, triangles, spec: GridSpec) -> np.ndarray:
        return rasterize_mesh_vectorized(triangles, spec)

    def simulate_material_removal(self, grid: HeightmapGrid, tool: Tool, toolpath) -> int:
        return simulate_material_removal_vectorized(grid, tool, toolpath)

    def build_solid_mesh(self, grid: HeightmapGrid, min_z: float) -> SolidMesh:
        # Already array-based
        return build_solid_mesh(grid, min_z)


BACKENDS: dict[str, type] = {
    ReferenceBackend.name: ReferenceBackend,
    VectorizedBackend.name: VectorizedBackend,
}


def get_backend(name: str) -> KernelBackend:
    """Instantiate the backend registered under *name*."""
    try:
        return BACKENDS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown backend {name!r}; choose from {sorted(BACKENDS)}"
        ) from None
