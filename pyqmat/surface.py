"""
Reference surface helpers
"""

import logging
from typing import Optional

import numpy as np
import trimesh

# Module-level logger
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def example_surface(
    kind: str = "cylinder",
    *,
    # Cylinder params
    radius: float = 0.5,
    height: float = 2.0,
    sections: int | None = 64,
    # Sphere params
    subdivisions: int = 3,
    # Common
    transform: np.ndarray | None = None,
    **kwargs,
) -> trimesh.Trimesh:
    """Create a simple watertight surface using trimesh primitives.

    Parameters
    ----------
    kind : {"cylinder", "sphere"}
        Type of primitive to generate. Default "cylinder".
    radius : float
        Cylinder or sphere radius. Default 0.5.
    height : float
        Cylinder height (when kind="cylinder"). Default 2.0.
    sections : int or None
        Cylinder radial resolution (pie wedges). Default 64.
    subdivisions : int
        Icosphere subdivision level (when kind="sphere"). Default 3.
    transform : (4,4) float array, optional
        Transform applied after creation.
    **kwargs : dict
        Passed through to the trimesh.creation helpers.

    Returns
    -------
    trimesh.Trimesh
        Generated primitive mesh.

    Examples
    --------
    >>> m = example_surface("cylinder", radius=0.4, height=1.5)
    >>> s = example_surface("sphere", radius=1.0)
    """
    k = (kind or "cylinder").lower()
    if k == "cylinder":
        return trimesh.creation.cylinder(
            radius=float(radius),
            height=float(height),
            sections=None if sections is None else int(sections),
            transform=transform,
            **kwargs,
        )
    elif k == "sphere":
        mesh = trimesh.creation.icosphere(subdivisions=int(subdivisions), radius=float(radius), **kwargs)
        if transform is not None:
            mesh.apply_transform(transform)
        return mesh
    else:
        raise ValueError("example_surface kind must be 'cylinder' or 'sphere'")


def load_surface(filepath: str, file_format: Optional[str] = None) -> trimesh.Trimesh:
    """
    Load a surface mesh from file (OFF, OBJ, PLY, STL, ...).

    Args:
        filepath: Path to mesh file
        file_format: Optional format specification (auto-detected if None)

    Returns:
        Loaded trimesh object
    """
    try:
        if file_format:
            mesh = trimesh.load(filepath, file_type=file_format)
        else:
            mesh = trimesh.load(filepath)

        # Ensure we have a single mesh
        if isinstance(mesh, trimesh.Scene):
            geometries = [g for g in mesh.geometry.values() if isinstance(g, trimesh.Trimesh)]
            if not geometries:
                raise ValueError("No geometry found in mesh scene")
            mesh = trimesh.util.concatenate(geometries)

        if not isinstance(mesh, trimesh.Trimesh):
            raise ValueError(f"Loaded object is not a mesh: {type(mesh)}")
    except Exception as e:
        raise ValueError(f"Failed to load mesh from {filepath}: {str(e)}") from e

    logger.info("Loaded surface: %d vertices, %d faces", len(mesh.vertices), len(mesh.faces))
    if not mesh.is_watertight:
        logger.warning("Surface %s is not watertight; error audit may be unreliable", filepath)
    return mesh


def describe_surface(mesh: trimesh.Trimesh) -> dict:
    """
    Summarise the properties of a reference surface that matter for the
    error audit. Pure analysis, the mesh is not modified.
    """
    results = {
        "face_count": len(mesh.faces),
        "vertex_count": len(mesh.vertices),
        "bounds": mesh.bounds.tolist(),
        "diagonal": float(np.linalg.norm(mesh.bounds[1] - mesh.bounds[0])),
        "is_watertight": mesh.is_watertight,
        "is_winding_consistent": mesh.is_winding_consistent,
        "issues": [],
    }

    if not mesh.is_watertight:
        results["issues"].append("Surface is not watertight")
    else:
        results["volume"] = float(mesh.volume)
        if mesh.volume < 0:
            results["issues"].append(
                "Negative volume detected - face normals may be inverted"
            )

    degenerate_count = int(np.sum(mesh.area_faces < 1e-12))
    results["degenerate_faces"] = degenerate_count
    if degenerate_count > 0:
        results["issues"].append(f"Found {degenerate_count} degenerate faces")

    return results
