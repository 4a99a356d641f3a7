"""Job orchestrator: ties model + stock + operations together.

The Job class is the top-level entry point for the CLI.  A run goes
mesh -> raster -> toolpaths -> validation -> material removal on the stock
grid -> solid mesh.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import numpy as np

from .backend import KernelBackend, ReferenceBackend
from .exceptions import ToolpathPlanningError
from .heightmap import GridSpec, HeightmapGrid
from .logging import get_logger
from .model import MeshModel, load_mesh
from .operation import Operation, StrategyType
from .simulate import compensate_toolpath
from .solid import SolidMesh
from .stock import Stock
from .toolpath.base import Toolpath
from .toolpath.facing import FacingParams, plan_facing_toolpath
from .toolpath.raster import plan_raster_toolpath
from .validate import ValidationResult, validate_simulation, validate_toolpaths

logger = get_logger(__name__)

DEFAULT_RESOLUTION = 2000


@dataclass
class JobResult:
    """Everything a run produces."""

    toolpaths: list[Toolpath]
    stock_grid: HeightmapGrid
    solid: SolidMesh
    validation: ValidationResult
    lowered: dict[str, int] = field(default_factory=dict)


@dataclass
class Job:
    """Represents a complete job: model + stock + operations."""

    name: str = "Untitled"
    model: Optional[MeshModel] = None
    stock: Optional[Stock] = None
    operations: list[Operation] = field(default_factory=list)
    resolution: int = DEFAULT_RESOLUTION
    backend: KernelBackend = field(default_factory=ReferenceBackend)

    def load_model(self, path: Path) -> MeshModel:
        self.model = load_mesh(path)
        return self.model

    def _require_inputs(self) -> tuple[MeshModel, Stock]:
        if self.model is None:
            raise RuntimeError("No model loaded")
        if self.stock is None:
            raise RuntimeError("Stock not defined")
        return self.model, self.stock

    def grid_spec(self) -> GridSpec:
        _, stock = self._require_inputs()
        return stock.grid_spec(self.resolution)

    def _fallback_z(self) -> float:
        # Cells the model does not cover are cut down to its base
        return max(self.model.z_min, self.stock.z_bottom)

    def compute_toolpaths(self) -> list[Toolpath]:
        """Run all operations and return the resulting toolpaths.

        Raises
        ------
        RuntimeError:
            If model or stock have not been set before calling.
        """
        model, stock = self._require_inputs()
        spec = stock.grid_spec(self.resolution)

        raster = None
        surface = None
        toolpaths: list[Toolpath] = []

        for op in self.operations:
            if op.strategy is StrategyType.CARVE:
                if raster is None:
                    raster = self.backend.rasterize_mesh(model.triangles, spec)
                tp = plan_raster_toolpath(
                    raster, spec, op.tool,
                    step_over_fraction=op.step_over_fraction,
                    clearance=op.clearance,
                    fallback_z=self._fallback_z(),
                    points_per_line=op.points_per_line,
                )
                if op.gouge_protection:
                    if surface is None:
                        surface = HeightmapGrid.from_raster(
                            raster, spec, fill=self._fallback_z()
                        )
                    tp = compensate_toolpath(tp, surface, op.tool, op.clearance)
            else:
                params = FacingParams(
                    z=stock.z_top - op.facing_depth,
                    step_over_fraction=op.step_over_fraction,
                    raster_angle=op.raster_angle,
                )
                tp = plan_facing_toolpath(stock.footprint(), op.tool, params)

            tp.tool_number = op.tool.number
            tp.operation_name = op.name
            toolpaths.append(tp)

        return toolpaths

    def run(self, validate: bool = True) -> JobResult:
        """Plan, validate, simulate and rebuild the carved stock.

        Raises
        ------
        RuntimeError:
            If model or stock have not been set before calling.
        ToolpathPlanningError:
            If *validate* is set and validation finds errors.
        """
        _, stock = self._require_inputs()
        toolpaths = self.compute_toolpaths()
        stock_grid = stock.create_grid(self.resolution)

        validation = ValidationResult()
        if validate:
            validation.merge(validate_toolpaths(toolpaths, stock.bounds_2d))
            for op in self.operations:
                validation.merge(validate_simulation(op.tool, stock_grid))
            if validation.has_errors:
                raise ToolpathPlanningError(
                    "; ".join(i.message for i in validation.errors),
                    {"job": self.name},
                )
            validation.emit_warnings()

        lowered: dict[str, int] = {}
        for op, tp in zip(self.operations, toolpaths):
            lowered[op.name] = self.backend.simulate_material_removal(
                stock_grid, op.tool, tp
            )
            logger.info("operation_simulated", job=self.name, operation=op.name,
                        points=tp.total_points, lowered=lowered[op.name])

        solid = self.backend.build_solid_mesh(stock_grid, stock.z_bottom)
        logger.info(
            "job_complete",
            job=self.name,
            backend=self.backend.name,
            operations=len(toolpaths),
            surface_min_z=float(np.min(stock_grid.heights)),
            triangles=solid.triangle_count,
        )
        return JobResult(
            toolpaths=toolpaths,
            stock_grid=stock_grid,
            solid=solid,
            validation=validation,
            lowered=lowered,
        )
