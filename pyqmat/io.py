"""Reading and writing the ``.ma`` skeletal-mesh interchange format.

::

    nv ne nf
    v x y z r          (nv lines)
    e i j              (ne lines, 0-based sphere indices)
    f i j k            (nf lines)

Optional records may follow the core block and are skipped by readers that do
not know them: ``b i`` (boundary sphere), ``vn i nx ny nz`` (sphere normal),
``fn i nx ny nz`` (slab normal) and ``ec i ax ay az half_angle`` (edge cone).
Raw and simplified graphs use the same format, so an export can be read back
as the input of a later run.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import numpy as np

from .errors import InputError
from .graph import SkeletalGraph

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

PathLike = Union[str, Path]


def _fmt(x: float) -> str:
    return f"{float(x):.17g}"


def read_ma(path: PathLike, *, one_based: bool = False) -> SkeletalGraph:
    """Load a skeletal graph from a ``.ma`` file.

    Raises
    ------
    InputError
        If the file is empty, malformed, its counts do not match the records,
        or a record references a missing sphere.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise InputError(f"Failed to read {path}: {exc}") from exc

    header = None
    spheres, edges, faces, boundary = [], [], [], []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split()
        try:
            if header is None:
                if len(parts) != 3:
                    raise InputError(f"{path}:{lineno}: header must be 'nv ne nf'")
                header = tuple(int(p) for p in parts)
                continue
            tag = parts[0]
            if tag == "v":
                if len(parts) != 5:
                    raise InputError(f"{path}:{lineno}: vertex record needs x y z r")
                spheres.append([float(p) for p in parts[1:5]])
            elif tag == "e":
                if len(parts) != 3:
                    raise InputError(f"{path}:{lineno}: edge record needs two indices")
                edges.append([int(p) for p in parts[1:3]])
            elif tag == "f":
                if len(parts) != 4:
                    raise InputError(f"{path}:{lineno}: face record needs three indices")
                faces.append([int(p) for p in parts[1:4]])
            elif tag == "b":
                if len(parts) != 2:
                    raise InputError(f"{path}:{lineno}: boundary record needs one index")
                boundary.append(int(parts[1]))
            # vn / fn / ec and unknown records are derived data
        except InputError:
            raise
        except ValueError as exc:
            raise InputError(f"{path}:{lineno}: {exc}") from exc

    if header is None:
        raise InputError(f"{path} is empty")
    nv, ne, nf = header
    if (len(spheres), len(edges), len(faces)) != (nv, ne, nf):
        raise InputError(
            f"{path}: header declares {nv}/{ne}/{nf} records, found {len(spheres)}/{len(edges)}/{len(faces)}"
        )
    if nv == 0:
        raise InputError(f"{path} contains no spheres")

    graph = SkeletalGraph.from_arrays(
        np.asarray(spheres, dtype=float),
        np.asarray(edges, dtype=int).reshape(-1, 2),
        np.asarray(faces, dtype=int).reshape(-1, 3),
        boundary=np.asarray(boundary, dtype=int) if boundary else None,
        one_based=one_based,
    )
    logger.debug("Read %s: %d spheres, %d edges, %d faces", path, nv, ne, nf)
    return graph


def write_ma(graph: SkeletalGraph, path: PathLike, *, attributes: bool = True) -> Path:
    """Write the live part of ``graph`` to ``path``.

    With ``attributes=True`` the boundary marking and any post-pass results
    (normals, cones) are appended as optional records.
    """
    path = Path(path)
    arrays = graph.to_arrays()
    spheres, edges, faces = arrays["spheres"], arrays["edges"], arrays["faces"]

    lines = [f"{len(spheres)} {len(edges)} {len(faces)}"]
    lines.extend("v " + " ".join(_fmt(x) for x in s) for s in spheres)
    lines.extend(f"e {i} {j}" for i, j in edges)
    lines.extend(f"f {i} {j} {k}" for i, j, k in faces)

    if attributes:
        for i, flag in enumerate(arrays["boundary"]):
            if flag:
                lines.append(f"b {i}")
        for i, vid in enumerate(arrays["vertex_ids"]):
            n = graph.vertices[vid].normal
            if n is not None:
                lines.append("vn %d %s" % (i, " ".join(_fmt(x) for x in n)))
        for i, fid in enumerate(arrays["face_ids"]):
            n = graph.faces[fid].normal
            if n is not None:
                lines.append("fn %d %s" % (i, " ".join(_fmt(x) for x in n)))
        for i, eid in enumerate(arrays["edge_ids"]):
            cone = graph.edges[eid].cone
            if cone is not None:
                lines.append("ec %d %s %s" % (i, " ".join(_fmt(x) for x in cone.axis), _fmt(cone.half_angle)))

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    logger.debug("Wrote %s", path)
    return path


def export_name(prefix: PathLike, graph: SkeletalGraph) -> Path:
    return Path(f"{prefix}___v_{graph.num_vertices}___e_{graph.num_edges}___f_{graph.num_faces}.ma")


def export(graph: SkeletalGraph, prefix: PathLike, *, attributes: bool = True) -> Path:
    """Write ``{prefix}___v_{nv}___e_{ne}___f_{nf}.ma`` and return its path."""
    return write_ma(graph, export_name(prefix, graph), attributes=attributes)
