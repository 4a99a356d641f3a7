"""Tests for kernel backend selection."""

import numpy as np
import pytest

from stockcarve.core.backend import ReferenceBackend, VectorizedBackend, get_backend
from stockcarve.core.heightmap import GridSpec, HeightmapGrid
from stockcarve.core.solid import SolidMesh
from stockcarve.core.tool import Tool, ToolKind


class TestGetBackend:
    @pytest.mark.parametrize("name,cls", [
        ("reference", ReferenceBackend),
        ("vectorized", VectorizedBackend),
    ])
    def test_known_names(self, name, cls):
        backend = get_backend(name)
        assert isinstance(backend, cls)
        assert backend.name == name

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown backend"):
            get_backend("gpu")

    def test_fresh_instance_each_call(self):
        assert get_backend("reference") is not get_backend("reference")


@pytest.mark.parametrize("backend", [ReferenceBackend(), VectorizedBackend()])
class TestKernelContract:
    def test_rasterize(self, backend):
        spec = GridSpec(0.0, 1.0, 0.0, 1.0, 2, 2)
        out = backend.rasterize_mesh([[[0, 0, 1], [1, 0, 2], [0, 1, 3]]], spec)
        assert out.shape == (2, 2)
        assert out[0, 0] == pytest.approx(1.75)

    def test_simulate(self, backend):
        grid = HeightmapGrid.create(10.0, 10.0, 11, 11, 5.0)
        tool = Tool(kind=ToolKind.FLAT, cutter_diameter=2.0)
        assert backend.simulate_material_removal(grid, tool, [(5, 5, 2)]) == 5
        assert grid.get_height(5, 5) == pytest.approx(2.0)

    def test_build_solid(self, backend):
        grid = HeightmapGrid.create(4.0, 4.0, 5, 5, 1.0)
        mesh = backend.build_solid_mesh(grid, 0.0)
        assert isinstance(mesh, SolidMesh)
        assert mesh.is_closed()
        assert np.all(np.isfinite(mesh.normals))
