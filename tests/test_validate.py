"""Tests for sampling, plan and toolpath validation."""

import math
import warnings

import pytest

from stockcarve.core.heightmap import GridSpec, HeightmapGrid
from stockcarve.core.tool import Tool, ToolKind
from stockcarve.core.toolpath.base import Toolpath, ToolpathPass, ToolpathPoint
from stockcarve.core.validate import (
    ValidationResult,
    validate_raster_plan,
    validate_sampling,
    validate_simulation,
    validate_toolpaths,
)

STOCK_BOUNDS = (0.0, 0.0, 10.0, 6.0)


def _make_tp(points: list[ToolpathPoint]) -> Toolpath:
    return Toolpath(passes=[ToolpathPass(points=points)], operation_name="test")


class TestToolpathValidation:
    def test_valid_toolpath_passes(self):
        tp = _make_tp([ToolpathPoint(1.0, 1.0, -0.05)])
        assert validate_toolpaths([tp], STOCK_BOUNDS).is_ok

    def test_x_outside_stock_is_warning(self):
        tp = _make_tp([ToolpathPoint(15.0, 1.0, -0.05)])
        result = validate_toolpaths([tp], STOCK_BOUNDS)
        assert result.has_warnings
        assert not result.has_errors

    def test_y_outside_stock_is_warning(self):
        tp = _make_tp([ToolpathPoint(1.0, -0.5, -0.05)])
        assert validate_toolpaths([tp], STOCK_BOUNDS).has_warnings

    def test_edge_within_tolerance(self):
        tp = _make_tp([ToolpathPoint(10.0 + 1e-9, 6.0, 0.0)])
        assert validate_toolpaths([tp], STOCK_BOUNDS).is_ok

    def test_non_finite_is_error(self):
        tp = _make_tp([ToolpathPoint(1.0, 1.0, math.nan)])
        result = validate_toolpaths([tp], STOCK_BOUNDS)
        assert result.has_errors
        assert result.errors[0].point is not None

    def test_empty_toolpath_is_warning(self):
        tp = Toolpath(passes=[], operation_name="empty")
        result = validate_toolpaths([tp], STOCK_BOUNDS)
        assert result.has_warnings

    def test_one_warning_per_toolpath(self):
        tp = _make_tp([ToolpathPoint(20.0, 1.0, 0.0), ToolpathPoint(30.0, 1.0, 0.0)])
        result = validate_toolpaths([tp], STOCK_BOUNDS)
        assert len(result.warnings) == 1
        assert "2 points" in result.warnings[0].message


class TestSamplingValidation:
    def test_wide_tool_is_ok(self):
        tool = Tool(kind=ToolKind.FLAT, cutter_diameter=6.0)
        assert validate_sampling(tool, 0.5, 0.5).is_ok

    def test_tool_narrower_than_cell(self):
        tool = Tool(kind=ToolKind.FLAT, cutter_diameter=0.4)
        result = validate_sampling(tool, 0.5, 0.25)
        assert result.has_warnings
        assert "nearest grid point" in result.warnings[0].message

    def test_coarse_vbit(self):
        tool = Tool(kind=ToolKind.VBIT, cutter_diameter=1.5, v_angle=90.0)
        result = validate_sampling(tool, 0.5, 0.5)
        assert "vbit profile" in result.warnings[0].message

    def test_simulation_uses_grid_spacing(self):
        grid = HeightmapGrid.create(10.0, 10.0, 3, 3, 0.0)
        tool = Tool(kind=ToolKind.BALL, cutter_diameter=4.0)
        assert validate_simulation(tool, grid).has_warnings


class TestRasterPlanValidation:
    @pytest.fixture
    def spec(self) -> GridSpec:
        return GridSpec(0.0, 10.0, 0.0, 10.0, 20, 20)

    def test_reasonable_plan(self, spec):
        tool = Tool(kind=ToolKind.FLAT, cutter_diameter=3.0)
        assert validate_raster_plan(tool, spec, 0.5).is_ok

    def test_non_positive_fraction_is_error(self, spec):
        tool = Tool(kind=ToolKind.FLAT, cutter_diameter=3.0)
        assert validate_raster_plan(tool, spec, 0.0).has_errors

    def test_step_over_finer_than_cell(self, spec):
        tool = Tool(kind=ToolKind.FLAT, cutter_diameter=3.0)
        result = validate_raster_plan(tool, spec, 0.1)
        assert any("finer than the grid cell" in i.message for i in result.warnings)

    def test_fraction_above_one(self, spec):
        tool = Tool(kind=ToolKind.FLAT, cutter_diameter=3.0)
        result = validate_raster_plan(tool, spec, 1.5)
        assert any("exceeds the tool" in i.message for i in result.warnings)


class TestValidationResult:
    def test_merge(self):
        a = ValidationResult()
        a.warning("first")
        b = ValidationResult()
        b.error("second")
        a.merge(b)
        assert a.has_errors and a.has_warnings
        assert [i.message for i in a.issues] == ["first", "second"]

    def test_emit_warnings(self):
        result = ValidationResult()
        result.warning("check the grid")
        result.error("not emitted")
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            result.emit_warnings()
        assert [str(w.message) for w in caught] == ["check the grid"]
        assert caught[0].category is UserWarning
