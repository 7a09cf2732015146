"""
Mesh loading for ReliefCAM.

Reads triangle meshes with trimesh and flattens them into the plain
vertex/index buffers the carve pipeline consumes.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Tuple

import numpy as np
import trimesh

from reliefcam.core.exceptions import GeometryError

Vec3 = Tuple[float, float, float]


@dataclass
class MeshData:
    """
    Triangle soup ready for rasterization.

    Attributes:
        vertices: (N, 3) float64 positions
        indices: Flat int64 triangle indices, length 3 * faces
        bounds_min: Minimum AABB corner
        bounds_max: Maximum AABB corner
        name: Source file stem
    """

    vertices: np.ndarray
    indices: np.ndarray
    bounds_min: Vec3
    bounds_max: Vec3
    name: str = ""

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    @property
    def extents(self) -> Vec3:
        return (
            self.bounds_max[0] - self.bounds_min[0],
            self.bounds_max[1] - self.bounds_min[1],
            self.bounds_max[2] - self.bounds_min[2],
        )


def mesh_data_from_trimesh(mesh: trimesh.Trimesh, name: str = "") -> MeshData:
    """Flatten a trimesh mesh into vertex/index buffers."""
    vertices = np.asarray(mesh.vertices, dtype=np.float64)
    indices = np.asarray(mesh.faces, dtype=np.int64).reshape(-1)
    if len(vertices) == 0 or len(indices) < 3:
        raise GeometryError("Mesh has no triangles", details={"name": name})
    lo, hi = vertices.min(axis=0), vertices.max(axis=0)
    return MeshData(
        vertices=vertices,
        indices=indices,
        bounds_min=(float(lo[0]), float(lo[1]), float(lo[2])),
        bounds_max=(float(hi[0]), float(hi[1]), float(hi[2])),
        name=name,
    )


class GeometryLoader:
    """
    Loads triangle meshes from disk.

    Supports STL, OBJ, PLY and OFF via trimesh. Scenes are merged into a
    single mesh.
    """

    SUPPORTED_FORMATS = {".stl", ".obj", ".ply", ".off"}

    @classmethod
    def load(cls, file_path: str | Path, **kwargs: Any) -> MeshData:
        """
        Load a mesh file.

        Args:
            file_path: Path to geometry file
            **kwargs: Additional arguments passed to trimesh.load

        Returns:
            MeshData buffers

        Raises:
            GeometryError: If the file is missing, unsupported, or unreadable
        """
        path = Path(file_path)

        if not path.exists():
            raise GeometryError(f"File not found: {path}")

        if path.suffix.lower() not in cls.SUPPORTED_FORMATS:
            raise GeometryError(
                f"Unsupported format: {path.suffix}. "
                f"Supported formats: {sorted(cls.SUPPORTED_FORMATS)}"
            )

        try:
            loaded = trimesh.load(str(path), **kwargs)
        except Exception as e:
            raise GeometryError(f"Failed to load geometry from {path}: {e}") from e

        if isinstance(loaded, trimesh.Scene):
            # dump() applies each node transform from the scene graph.
            meshes = [g for g in loaded.dump() if isinstance(g, trimesh.Trimesh)]
            if not meshes:
                raise GeometryError(f"Scene contains no triangle meshes: {path}")
            mesh = trimesh.util.concatenate(meshes)
        elif isinstance(loaded, trimesh.Trimesh):
            mesh = loaded
        else:
            raise GeometryError(f"Unexpected geometry type: {type(loaded)}")

        return mesh_data_from_trimesh(mesh, name=path.stem)
