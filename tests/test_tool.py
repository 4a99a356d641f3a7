"""Tests for tool definitions, radial profiles and the tool library."""

import math

import numpy as np
import pytest

from stockcarve.config.defaults import build_default_tool_library
from stockcarve.core.exceptions import ToolDefinitionError
from stockcarve.core.tool import Tool, ToolKind, ToolLibrary


@pytest.fixture
def flat() -> Tool:
    return Tool(kind=ToolKind.FLAT, cutter_diameter=2.0)


@pytest.fixture
def ball() -> Tool:
    return Tool(kind=ToolKind.BALL, cutter_diameter=4.0)


@pytest.fixture
def vbit() -> Tool:
    return Tool(kind=ToolKind.VBIT, cutter_diameter=2.0, v_angle=60.0)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestToolDefinition:
    def test_kind_from_string(self):
        tool = Tool(kind="ball", cutter_diameter=3.0)
        assert tool.kind is ToolKind.BALL

    def test_unknown_kind(self):
        with pytest.raises(ToolDefinitionError, match="Unsupported tool kind"):
            Tool(kind="drill", cutter_diameter=3.0)

    @pytest.mark.parametrize("diameter", [0.0, -1.0, float("nan"), float("inf")])
    def test_bad_diameter(self, diameter):
        with pytest.raises(ToolDefinitionError, match="cutter_diameter"):
            Tool(kind=ToolKind.FLAT, cutter_diameter=diameter)

    def test_diameter_must_be_number(self):
        with pytest.raises(ToolDefinitionError, match="must be a number"):
            Tool(kind=ToolKind.FLAT, cutter_diameter="6")

    def test_vbit_needs_angle(self):
        with pytest.raises(ToolDefinitionError, match="v_angle is required"):
            Tool(kind=ToolKind.VBIT, cutter_diameter=6.0)

    @pytest.mark.parametrize("angle", [0.0, 1e-7, 180.0, 200.0])
    def test_vbit_angle_range(self, angle):
        with pytest.raises(ToolDefinitionError, match="v_angle"):
            Tool(kind=ToolKind.VBIT, cutter_diameter=6.0, v_angle=angle)

    def test_optional_dimensions_validated(self):
        with pytest.raises(ToolDefinitionError, match="shank_diameter"):
            Tool(kind=ToolKind.FLAT, cutter_diameter=6.0, shank_diameter=-6.0)

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            Tool(kind=ToolKind.FLAT, cutter_diameter=-1.0)

    def test_default_name(self, ball):
        assert ball.name == "4mm ball"


# ---------------------------------------------------------------------------
# Radial profiles
# ---------------------------------------------------------------------------


class TestElevation:
    def test_flat_is_zero_inside(self, flat):
        assert flat.elevation(0.0) == 0.0
        assert flat.elevation(1.0) == 0.0

    def test_outside_radius_is_none(self, flat, ball, vbit):
        assert flat.elevation(1.01) is None
        assert ball.elevation(2.5) is None
        assert vbit.elevation(1.5) is None

    def test_radius_tolerance(self, flat):
        assert flat.elevation(1.0 + 1e-7) == 0.0

    def test_ball_profile(self, ball):
        assert ball.elevation(0.0) == pytest.approx(0.0)
        assert ball.elevation(1.0) == pytest.approx(2.0 - math.sqrt(3.0))
        assert ball.elevation(2.0) == pytest.approx(2.0)

    def test_vbit_profile(self, vbit):
        assert vbit.elevation(0.0) == pytest.approx(0.0)
        assert vbit.elevation(1.0) == pytest.approx(1.0 / math.tan(math.radians(30.0)))

    def test_negative_distance_is_symmetric(self, ball):
        assert ball.elevation(-1.0) == pytest.approx(ball.elevation(1.0))

    def test_depth_never_negative(self, flat, ball, vbit):
        for tool in (flat, ball, vbit):
            for d in np.linspace(0.0, tool.radius, 11):
                assert tool.elevation(float(d)) >= 0.0


# ---------------------------------------------------------------------------
# Stencils
# ---------------------------------------------------------------------------


class TestStencil:
    def test_square_stencil_shape(self, ball):
        stencil = ball.stencil(1.0)
        assert stencil.depths.shape == (5, 5)
        assert stencil.radius_x == stencil.radius_y == 2

    def test_per_axis_spacing(self, ball):
        stencil = ball.stencil(1.0, 0.5)
        assert stencil.depths.shape == (5, 9)

    def test_corners_outside_cutter(self, ball):
        stencil = ball.stencil(1.0)
        assert np.isnan(stencil.depths[0, 0])
        assert stencil.depths[2, 2] == pytest.approx(0.0)

    def test_offsets_cover_defined_cells(self, flat):
        dx, dy, dz = flat.stencil(1.0).offsets()
        assert sorted(zip(dx.tolist(), dy.tolist())) == [
            (-1, 0), (0, -1), (0, 0), (0, 1), (1, 0),
        ]
        assert np.all(dz == 0.0)

    def test_single_cell_flat(self):
        narrow = Tool(kind=ToolKind.FLAT, cutter_diameter=0.5)
        assert narrow.is_single_cell(1.0)
        assert not Tool(kind=ToolKind.BALL, cutter_diameter=0.5).is_single_cell(1.0)

    def test_bad_step(self, flat):
        with pytest.raises(ToolDefinitionError):
            flat.stencil(0.0)


# ---------------------------------------------------------------------------
# Library
# ---------------------------------------------------------------------------


class TestToolLibrary:
    def test_json_round_trip(self, tmp_path, vbit):
        path = tmp_path / "tools.json"
        lib = ToolLibrary(path)
        vbit.number = 7
        lib.add(vbit)
        lib.add(Tool(kind=ToolKind.FLAT, cutter_diameter=3.175, number=2,
                     length_of_cut=12.0))
        lib.save()

        reloaded = ToolLibrary(path)
        assert [t.number for t in reloaded.list_tools()] == [2, 7]
        assert reloaded.get(7) == vbit
        assert reloaded.get(2).length_of_cut == pytest.approx(12.0)

    def test_unknown_field_rejected(self):
        with pytest.raises(ToolDefinitionError, match="Unknown tool fields"):
            Tool.from_dict({"kind": "flat", "cutter_diameter": 1.0, "flutes": 2})

    def test_missing_kind_rejected(self):
        with pytest.raises(ToolDefinitionError, match="missing 'kind'"):
            Tool.from_dict({"cutter_diameter": 1.0})

    def test_remove(self, flat):
        lib = ToolLibrary.in_memory([flat])
        lib.remove(flat.number)
        assert lib.get(flat.number) is None

    def test_in_memory_cannot_save(self):
        with pytest.raises(RuntimeError):
            ToolLibrary.in_memory().save()

    def test_default_library(self):
        lib = build_default_tool_library()
        kinds = {t.kind for t in lib.list_tools()}
        assert kinds == {ToolKind.FLAT, ToolKind.BALL, ToolKind.VBIT}
        assert lib.get(1).kind is ToolKind.FLAT
