"""Target surface input: read a mesh file and hand its triangles to the rasteriser."""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import trimesh

from .logging import get_logger

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = frozenset(
    {".stl", ".obj", ".ply", ".off", ".glb", ".gltf", ".3mf"}
)


@dataclass
class MeshModel:
    """A triangle mesh plus where it came from."""

    mesh: trimesh.Trimesh
    source_path: Path | None = None
    was_repaired: bool = False

    @property
    def bounds(self) -> np.ndarray:
        """``[[xmin, ymin, zmin], [xmax, ymax, zmax]]``."""
        return self.mesh.bounds

    @property
    def z_min(self) -> float:
        return float(self.bounds[0][2])

    @property
    def z_max(self) -> float:
        return float(self.bounds[1][2])

    @property
    def triangles(self) -> np.ndarray:
        """``(n, 3, 3)`` vertex coordinates, ready for the rasteriser."""
        return np.asarray(self.mesh.triangles, dtype=np.float64)

    def translate_to_origin(self) -> None:
        lo = self.bounds[0].copy()
        self.mesh.apply_translation(-lo)


def repair_mesh(mesh: trimesh.Trimesh, label: str = "mesh") -> bool:
    """Try to close *mesh* in place; True when a repair was needed.

    Only the top surface is rasterised, so a mesh that stays open is
    still usable. That case is logged and raised as a ``UserWarning``.
    """
    if mesh.is_watertight:
        return False
    for fix in (trimesh.repair.fill_holes, trimesh.repair.fix_winding,
                trimesh.repair.fix_normals):
        fix(mesh)
    if mesh.is_watertight:
        logger.info("mesh_repaired", mesh=label)
    else:
        logger.warning("mesh_not_watertight", mesh=label)
        warnings.warn(
            f"Mesh '{label}' is still open after repair; the rasterised "
            "surface may have gaps under the holes.",
            UserWarning,
            stacklevel=3,
        )
    return True


def load_mesh(path, repair: bool = True) -> MeshModel:
    """Read *path* with trimesh, optionally repairing it.

    ``FileNotFoundError`` when the file is missing, ``ValueError`` when the
    extension is not in :data:`SUPPORTED_EXTENSIONS` or the file holds no
    triangles.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"No mesh file at {path}")
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        raise ValueError(
            f"Unsupported mesh format '{suffix}'; expected one of "
            f"{', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )

    loaded = trimesh.load(str(path), force="mesh")
    if not isinstance(loaded, trimesh.Trimesh) or loaded.faces.shape[0] == 0:
        raise ValueError(f"{path} does not contain a triangle mesh")

    repaired = repair and repair_mesh(loaded, path.name)
    logger.info("mesh_loaded", path=str(path), faces=int(loaded.faces.shape[0]),
                repaired=repaired)
    return MeshModel(mesh=loaded, source_path=path, was_repaired=repaired)
