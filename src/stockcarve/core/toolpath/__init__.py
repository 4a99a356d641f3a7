"""Toolpath generation package."""

from .base import Toolpath, ToolpathPass, ToolpathPoint, as_point_array

__all__ = ["Toolpath", "ToolpathPass", "ToolpathPoint", "as_point_array"]
