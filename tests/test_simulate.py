"""Tests for heightmap material removal and gouge-free Z."""

import math

import numpy as np
import pytest

from stockcarve.core.heightmap import HeightmapGrid
from stockcarve.core.simulate import (
    compensate_toolpath,
    compute_safe_z,
    simulate_material_removal,
    simulate_material_removal_vectorized,
)
from stockcarve.core.tool import Tool, ToolKind
from stockcarve.core.toolpath.base import Toolpath, ToolpathPass, ToolpathPoint

SIMULATORS = [simulate_material_removal, simulate_material_removal_vectorized]


@pytest.fixture
def stock() -> HeightmapGrid:
    """10x10 mm, 11x11 points, top at 5 mm."""
    return HeightmapGrid.create(10.0, 10.0, 11, 11, 5.0)


@pytest.fixture
def flat2() -> Tool:
    return Tool(kind=ToolKind.FLAT, cutter_diameter=2.0)


@pytest.fixture
def ball4() -> Tool:
    return Tool(kind=ToolKind.BALL, cutter_diameter=4.0)


@pytest.fixture
def vbit60() -> Tool:
    return Tool(kind=ToolKind.VBIT, cutter_diameter=2.0, v_angle=60.0)


def _zigzag(n: int = 40, seed: int = 3) -> np.ndarray:
    rng = np.random.default_rng(seed)
    xs = rng.uniform(-1.0, 11.0, n)
    ys = rng.uniform(-1.0, 11.0, n)
    zs = rng.uniform(1.0, 6.0, n)
    return np.column_stack([xs, ys, zs])


# ---------------------------------------------------------------------------
# Tool scenarios
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("simulate", SIMULATORS)
class TestScenarios:
    def test_flat_tool(self, simulate, stock, flat2):
        lowered = simulate(stock, flat2, [(5.0, 5.0, 2.0)])
        assert stock.get_height(5, 5) == pytest.approx(2.0)
        assert stock.get_height(6, 5) == pytest.approx(2.0)
        assert stock.get_height(6, 6) == pytest.approx(5.0)
        assert stock.get_height(0, 0) == pytest.approx(5.0)
        assert lowered == 5

    def test_ball_tool(self, simulate, stock, ball4):
        simulate(stock, ball4, [(5.0, 5.0, 3.0)])
        assert stock.get_height(5, 5) == pytest.approx(3.0)
        assert stock.get_height(6, 5) == pytest.approx(3.0 + (2.0 - math.sqrt(3.0)))
        assert stock.get_height(8, 5) == pytest.approx(5.0)

    def test_vbit(self, simulate, stock, vbit60):
        simulate(stock, vbit60, [(5.0, 5.0, 2.0)])
        assert stock.get_height(5, 5) == pytest.approx(2.0)
        assert stock.get_height(6, 5) == pytest.approx(2.0 + 1.0 / math.tan(math.radians(30.0)))

    def test_tool_above_surface_cuts_nothing(self, simulate, stock, ball4):
        assert simulate(stock, ball4, [(5.0, 5.0, 6.0)]) == 0
        assert np.all(stock.heights == 5.0)

    def test_footprint_overlapping_edge(self, simulate, stock, ball4):
        simulate(stock, ball4, [(-1.0, 5.0, 3.0)])
        assert stock.get_height(0, 5) == pytest.approx(3.0 + (2.0 - math.sqrt(3.0)))
        assert stock.get_height(2, 5) == pytest.approx(5.0)

    def test_fully_off_grid_point(self, simulate, stock, flat2):
        assert simulate(stock, flat2, [(50.0, 50.0, 0.0)]) == 0

    def test_single_cell_flat_tool(self, simulate, stock):
        narrow = Tool(kind=ToolKind.FLAT, cutter_diameter=0.5)
        lowered = simulate(stock, narrow, [(3.2, 4.1, 1.0)])
        assert lowered == 1
        assert stock.heights[3, 4] == pytest.approx(1.0)

    def test_empty_toolpath(self, simulate, stock, flat2):
        assert simulate(stock, flat2, []) == 0

    def test_accepts_toolpath_objects(self, simulate, stock, flat2):
        tp = Toolpath.from_passes([[{"x": 5.0, "y": 5.0, "z": 2.0}]])
        simulate(stock, flat2, tp)
        assert stock.get_height(5, 5) == pytest.approx(2.0)

    def test_requires_tool(self, simulate, stock):
        with pytest.raises(TypeError, match="validated Tool"):
            simulate(stock, {"kind": "flat", "cutter_diameter": 2.0}, [(5, 5, 2)])


# ---------------------------------------------------------------------------
# Removal properties
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("simulate", SIMULATORS)
class TestRemovalProperties:
    def test_never_raises_material(self, simulate, stock, ball4):
        before = stock.heights.copy()
        simulate(stock, ball4, _zigzag())
        assert np.all(stock.heights <= before)

    def test_idempotent(self, simulate, stock, ball4):
        path = _zigzag()
        simulate(stock, ball4, path)
        once = stock.heights.copy()
        assert simulate(stock, ball4, path) == 0
        assert np.array_equal(stock.heights, once)

    def test_order_independent(self, simulate, stock, vbit60):
        path = _zigzag()
        other = stock.copy()
        simulate(stock, vbit60, path)
        simulate(other, vbit60, path[::-1])
        assert np.array_equal(stock.heights, other.heights)

    def test_lowered_count(self, simulate, stock, ball4):
        before = stock.heights.copy()
        lowered = simulate(stock, ball4, _zigzag())
        assert lowered == int(np.count_nonzero(stock.heights < before))


class TestBackendEquivalence:
    @pytest.mark.parametrize("kind,diameter", [
        (ToolKind.FLAT, 3.0), (ToolKind.BALL, 2.5), (ToolKind.VBIT, 4.0),
    ])
    def test_identical_grids(self, kind, diameter):
        tool = Tool(kind=kind, cutter_diameter=diameter,
                    v_angle=90.0 if kind is ToolKind.VBIT else None)
        a = HeightmapGrid.create(12.0, 8.0, 49, 33, 5.0, origin_x=-1.0)
        b = a.copy()
        path = _zigzag(200, seed=11)
        na = simulate_material_removal(a, tool, path)
        nb = simulate_material_removal_vectorized(b, tool, path)
        assert na == nb
        assert np.array_equal(a.heights, b.heights)

    @pytest.mark.parametrize("bad_z", [math.nan, math.inf, -math.inf])
    def test_non_finite_points_skipped(self, ball4, bad_z):
        a = HeightmapGrid.create(10.0, 10.0, 11, 11, 5.0)
        b = a.copy()
        path = [(5.0, 5.0, bad_z), (2.0, 2.0, 4.0)]
        na = simulate_material_removal(a, ball4, path)
        nb = simulate_material_removal_vectorized(b, ball4, path)
        assert na == nb > 0
        assert np.all(np.isfinite(b.heights))
        assert np.array_equal(a.heights, b.heights)
        assert a.get_height(5.0, 5.0) == pytest.approx(5.0)


# ---------------------------------------------------------------------------
# Safe Z
# ---------------------------------------------------------------------------


class TestSafeZ:
    def test_flat_surface(self, stock, ball4):
        safe = compute_safe_z(stock, ball4, [(5.0, 5.0)])
        assert safe[0] == pytest.approx(5.0)

    def test_bump_lifts_tool(self, stock, flat2):
        stock.set_height(6.0, 5.0, 7.0)
        safe = compute_safe_z(stock, flat2, [(5.0, 5.0), (2.0, 2.0)])
        assert safe == pytest.approx([7.0, 5.0])

    def test_off_grid_is_nan(self, stock, ball4):
        safe = compute_safe_z(stock, ball4, [(50.0, 50.0)])
        assert np.isnan(safe[0])

    def test_safe_z_never_gouges(self, stock, ball4):
        rng = np.random.default_rng(5)
        stock.heights[:] = rng.uniform(0.0, 3.0, stock.shape)
        xy = rng.uniform(0.0, 10.0, (30, 2))
        safe = compute_safe_z(stock, ball4, xy)
        before = stock.heights.copy()
        assert simulate_material_removal(stock, ball4, np.column_stack([xy, safe + 1e-9])) == 0
        assert np.array_equal(stock.heights, before)

    def test_compensate_toolpath(self, stock, flat2):
        stock.set_height(6.0, 5.0, 7.0)
        tp = Toolpath(tool_number=3, operation_name="carve")
        tp.add_pass(ToolpathPass(points=[
            ToolpathPoint(5.0, 5.0, 1.0),
            ToolpathPoint(2.0, 2.0, 6.0),
            ToolpathPoint(50.0, 50.0, 1.0),
        ]))
        out = compensate_toolpath(tp, stock, flat2, clearance=0.5)
        zs = [p.z for p in out.iter_points()]
        assert zs == pytest.approx([7.5, 6.0, 1.0])
        assert out.tool_number == 3
        assert [p.z for p in tp.iter_points()] == [1.0, 6.0, 1.0]
