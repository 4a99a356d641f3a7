"""Default tool definitions.

Metric starter tools; users should adjust to their specific tooling.
"""

from ..core.tool import Tool, ToolKind, ToolLibrary


def build_default_tool_library() -> ToolLibrary:
    """Return an in-memory ToolLibrary with common flat, ball and V-bit tools."""
    tools = [
        Tool(
            number=1,
            name="6 mm Flat Endmill",
            kind=ToolKind.FLAT,
            cutter_diameter=6.0,
            shank_diameter=6.0,
            length_of_cut=20.0,
            overall_length=60.0,
        ),
        Tool(
            number=2,
            name="3.175 mm Flat Endmill",
            kind=ToolKind.FLAT,
            cutter_diameter=3.175,
            shank_diameter=3.175,
            length_of_cut=12.0,
            overall_length=38.0,
        ),
        Tool(
            number=3,
            name="6 mm Ball Endmill",
            kind=ToolKind.BALL,
            cutter_diameter=6.0,
            shank_diameter=6.0,
            length_of_cut=20.0,
            overall_length=60.0,
        ),
        Tool(
            number=4,
            name="3.175 mm Ball Endmill",
            kind=ToolKind.BALL,
            cutter_diameter=3.175,
            shank_diameter=3.175,
            length_of_cut=12.0,
            overall_length=38.0,
        ),
        Tool(
            number=5,
            name="60 deg V-bit",
            kind=ToolKind.VBIT,
            cutter_diameter=6.35,
            v_angle=60.0,
            shank_diameter=6.35,
            overall_length=50.0,
        ),
        Tool(
            number=6,
            name="90 deg V-bit",
            kind=ToolKind.VBIT,
            cutter_diameter=12.7,
            v_angle=90.0,
            shank_diameter=6.35,
            overall_length=50.0,
        ),
    ]
    return ToolLibrary.in_memory(tools)
