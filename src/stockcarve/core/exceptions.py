"""Exceptions raised by the stockcarve kernel.

All errors derive from StockCarveError.  The input-validation errors also
derive from ValueError so plain ``except ValueError`` keeps working.
"""

from __future__ import annotations

from typing import Any, Optional


class StockCarveError(Exception):
    """Base exception for all stockcarve errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class GridSizeError(StockCarveError, ValueError):
    """Raised when a height grid is malformed or exceeds the size cap."""


class MeshSizeError(StockCarveError, ValueError):
    """Raised when a solid mesh would exceed the vertex/triangle cap."""


class ToolDefinitionError(StockCarveError, ValueError):
    """Raised for unknown tool kinds or out-of-range tool dimensions."""


class ToolpathPlanningError(StockCarveError, ValueError):
    """Raised when a toolpath cannot be planned from the given inputs."""
