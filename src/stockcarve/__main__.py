"""CLI entry point: ``python -m stockcarve input.stl -o carved.stl``"""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from pathlib import Path

from .config.defaults import build_default_tool_library
from .config.settings import AppSettings
from .core.backend import BACKENDS, get_backend
from .core.exceptions import StockCarveError
from .core.job import Job
from .core.logging import configure_logging, get_logger
from .core.model import load_mesh
from .core.operation import Operation, StrategyType
from .core.stock import Stock

logger = get_logger(__name__)


def _build_parser(settings: AppSettings) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="stockcarve",
        description="Simulate 2.5-axis raster carving of a mesh and write "
                    "the carved stock as a solid mesh.",
    )
    p.add_argument("input", type=Path, help="Input mesh (STL, OBJ, PLY, ...)")
    p.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Carved solid output (default: <input>_carved.stl)",
    )
    p.add_argument("--toolpath-json", type=Path, default=None,
                   help="Also write the toolpath passes as JSON")

    # Tool parameters
    p.add_argument("--tool-number", type=int, default=settings.default_tool,
                   help=f"Tool number (default: {settings.default_tool})")
    p.add_argument("--tool-diameter", type=float, default=None,
                   help="Tool diameter (overrides default library)")

    # Grid and raster parameters
    p.add_argument("--resolution", type=int, default=settings.grid_resolution,
                   help=f"Cells along the longer stock side "
                        f"(default: {settings.grid_resolution})")
    p.add_argument("--step-over", type=float, default=settings.step_over_fraction,
                   help=f"Step-over as fraction of tool diameter "
                        f"(default: {settings.step_over_fraction})")
    p.add_argument("--clearance", type=float, default=settings.clearance,
                   help=f"Height above the surface for carve points "
                        f"(default: {settings.clearance})")
    p.add_argument("--points-per-line", type=int, default=settings.points_per_line,
                   help=f"Samples per raster line "
                        f"(default: {settings.points_per_line})")
    p.add_argument("--gouge-protection", action="store_true",
                   help="Lift carve points so the whole cutter clears the part")

    # Stock (optional)
    p.add_argument("--stock-margin", type=float, default=0.0,
                   help="XY margin around model for auto stock (default: 0)")

    # Operation mode
    p.add_argument("--strategy", choices=["carve", "facing", "both"],
                   default="carve", help="Toolpath strategy (default: carve)")
    p.add_argument("--facing-depth", type=float, default=0.0,
                   help="Facing depth below the stock top (default: 0)")

    # Runtime
    p.add_argument("--backend", choices=sorted(BACKENDS), default=settings.backend,
                   help=f"Kernel implementation (default: {settings.backend})")
    p.add_argument("--log-level", default=settings.log_level,
                   help=f"Log level (default: {settings.log_level})")
    p.add_argument("--log-json", action="store_true",
                   help="Emit JSON log lines")

    # Validation
    p.add_argument("--skip-validate", action="store_true",
                   help="Skip toolpath and sampling validation")

    return p


def _write_toolpath_json(path: Path, job: Job, toolpaths) -> None:
    data = {
        "job": job.name,
        "toolpaths": [
            {
                "operation": tp.operation_name,
                "tool_number": tp.tool_number,
                "passes": tp.to_passes(),
            }
            for tp in toolpaths
        ],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


def main(argv: list[str] | None = None) -> int:
    settings = AppSettings.load()
    args = _build_parser(settings).parse_args(argv)
    configure_logging(level=args.log_level, json_output=args.log_json)

    output: Path = args.output or args.input.with_name(f"{args.input.stem}_carved.stl")

    # Tool setup
    lib = build_default_tool_library()
    tool = lib.get(args.tool_number)
    if tool is None:
        print(f"Error: tool T{args.tool_number} not found in default library",
              file=sys.stderr)
        return 1

    try:
        if args.tool_diameter is not None:
            tool = dataclasses.replace(tool, cutter_diameter=args.tool_diameter)

        print(f"Loading {args.input} ...")
        model = load_mesh(args.input)
        if model.was_repaired:
            print("  Warning: mesh was repaired (may not be watertight)")
        print(f"  Bounds: {model.bounds[0]} -> {model.bounds[1]}")

        print(f"Tool: T{tool.number} {tool.name} "
              f"({tool.kind.value}, dia={tool.cutter_diameter:g})")

        stock = Stock.from_model_bounds(model.bounds, margin=args.stock_margin)
        print("Stock: " + " x ".join(f"{v:.3f}" for v in stock.size))

        job = Job(
            name=args.input.stem,
            model=model,
            stock=stock,
            resolution=args.resolution,
            backend=get_backend(args.backend),
        )

        if args.strategy in ("facing", "both"):
            job.operations.append(Operation(
                name="Facing",
                strategy=StrategyType.FACING,
                tool=tool,
                step_over_fraction=args.step_over,
                facing_depth=args.facing_depth,
            ))

        if args.strategy in ("carve", "both"):
            job.operations.append(Operation(
                name="Carve",
                strategy=StrategyType.CARVE,
                tool=tool,
                step_over_fraction=args.step_over,
                clearance=args.clearance,
                points_per_line=args.points_per_line,
                gouge_protection=args.gouge_protection,
            ))

        print(f"Running {len(job.operations)} operations "
              f"({job.backend.name} backend) ...")
        result = job.run(validate=not args.skip_validate)
    except (StockCarveError, FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    for issue in result.validation.warnings:
        print(f"  Warning: {issue.message}")
    total_points = sum(tp.total_points for tp in result.toolpaths)
    print(f"  Generated {len(result.toolpaths)} operations, "
          f"{total_points} total points")
    for name, count in result.lowered.items():
        print(f"  {name}: {count} grid points lowered")

    result.solid.export(output)
    print(f"Wrote {output} ({result.solid.triangle_count} triangles)")

    if args.toolpath_json is not None:
        _write_toolpath_json(args.toolpath_json, job, result.toolpaths)
        print(f"Wrote {args.toolpath_json}")

    logger.info("cli_done", output=str(output))
    return 0


if __name__ == "__main__":
    sys.exit(main())
