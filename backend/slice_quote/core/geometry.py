# core/geometry.py

import logging
import os
from typing import Optional

import numpy as np
import trimesh

from .common_types import BoundingBox, FileExtension, ModelSummary

logger = logging.getLogger(__name__)

# Formats trimesh can read without optional extras; .fbx is not supported
SUMMARY_FILE_TYPES = {
    FileExtension.STL: "stl",
    FileExtension.OBJ: "obj",
    FileExtension.THREE_MF: "3mf",
    FileExtension.GLTF: "gltf",
    FileExtension.GLB: "glb",
}


def load_mesh(file_path: str, extension: FileExtension) -> trimesh.Trimesh:
    """
    Loads a model file as a single Trimesh, concatenating scene geometry if needed.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the format is unsupported or the mesh is empty.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Input file not found: {file_path}")

    file_type = SUMMARY_FILE_TYPES.get(extension)
    if file_type is None:
        raise ValueError(f"Mesh summary is not supported for '{extension.value}' files.")

    mesh = trimesh.load(file_path, file_type=file_type, force="mesh")
    if not isinstance(mesh, trimesh.Trimesh):
        raise ValueError(f"Loaded object from '{os.path.basename(file_path)}' is not a Trimesh instance.")
    if len(mesh.vertices) == 0 or len(mesh.faces) == 0:
        raise ValueError(f"Mesh loaded from '{os.path.basename(file_path)}' has no vertices or faces.")
    return mesh


def get_model_summary(mesh: trimesh.Trimesh) -> ModelSummary:
    """Computes triangle count, volume, area and bounding box of a mesh (units assumed mm)."""
    extents = np.asarray(mesh.extents, dtype=float)
    return ModelSummary(
        triangle_count=int(len(mesh.faces)),
        volume_cm3=float(abs(mesh.volume)) / 1000.0,
        surface_area_cm2=float(mesh.area) / 100.0,
        bounding_box=BoundingBox(size_x=float(extents[0]), size_y=float(extents[1]), size_z=float(extents[2])),
        is_watertight=bool(mesh.is_watertight),
    )


def summarize_model_file(file_path: str, extension: FileExtension) -> Optional[ModelSummary]:
    """
    Best-effort summary used at upload time. Returns None when the file cannot
    be read as a mesh; upload acceptance never depends on it.
    """
    try:
        mesh = load_mesh(file_path, extension)
        summary = get_model_summary(mesh)
        logger.info(f"Model summary for {os.path.basename(file_path)}: {summary.triangle_count} triangles, "
                    f"{summary.volume_cm3:.2f} cm³, watertight={summary.is_watertight}")
        return summary
    except Exception as e:
        logger.warning(f"Could not summarize model '{os.path.basename(file_path)}': {e}")
        return None
