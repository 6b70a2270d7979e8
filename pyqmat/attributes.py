"""Per-entity attributes recomputed after simplification.

These are read-only with respect to the collapse costs: they feed export and
rendering only.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from .errors import DegenerateGeometry
from .graph import SkeletalGraph
from .primitives import slab_tangent_planes, sphere_cone, tangent_triangle, triangle_area, triangle_normal

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass
class PostPassReport:
    degenerate_faces: list[int] = field(default_factory=list)
    degenerate_cones: list[int] = field(default_factory=list)
    faces_without_envelope: list[int] = field(default_factory=list)
    vertices_without_normal: list[int] = field(default_factory=list)


def compute_face_normals(graph: SkeletalGraph) -> list[int]:
    """Unit normal from the three sphere centers; returns the degenerate face ids."""
    degenerate = []
    for fid in graph.valid_faces():
        f = graph.faces[fid]
        pts = [graph.vertices[v].center for v in f.vertices]
        try:
            f.normal = triangle_normal(*pts)
            f.degenerate = False
        except DegenerateGeometry:
            f.normal = None
            f.degenerate = True
            degenerate.append(fid)
    return degenerate


def compute_vertex_normals(graph: SkeletalGraph) -> list[int]:
    """Area-weighted mean of incident face normals.

    Spheres without a usable incident face get ``None``; their ids are
    returned.
    """
    missing = []
    for vid in graph.valid_vertices():
        v = graph.vertices[vid]
        acc = np.zeros(3)
        for fid in v.faces:
            f = graph.faces[fid]
            if f.normal is None:
                continue
            pts = [graph.vertices[u].center for u in f.vertices]
            acc += triangle_area(*pts) * f.normal
        length = float(np.linalg.norm(acc))
        if length > 1e-12:
            v.normal = acc / length
        else:
            v.normal = None
            missing.append(vid)
    return missing


def compute_edge_cones(graph: SkeletalGraph) -> list[int]:
    """Tangent cone per edge; returns ids of edges where one sphere swallows the other."""
    degenerate = []
    for eid in graph.valid_edges():
        e = graph.edges[eid]
        u, v = e.vertices
        try:
            e.cone = sphere_cone(graph.sphere(u), graph.sphere(v))
        except DegenerateGeometry:
            e.cone = None
            degenerate.append(eid)
    return degenerate


def compute_face_simple_triangles(graph: SkeletalGraph) -> list[int]:
    """Two tangent triangles per slab, one on each side of the medial sheet.

    Returns the ids of slabs whose spheres have no common tangent plane.
    """
    missing = []
    for fid in graph.valid_faces():
        f = graph.faces[fid]
        spheres = np.array([graph.sphere(v) for v in f.vertices])
        try:
            (n_up, _), (n_lo, _) = slab_tangent_planes(*spheres)
        except DegenerateGeometry:
            f.simple_triangles = None
            missing.append(fid)
            continue
        f.simple_triangles = np.stack([tangent_triangle(spheres, n_up), tangent_triangle(spheres, n_lo)])
    return missing


def recompute_attributes(graph: SkeletalGraph, *, verbose: bool = False) -> PostPassReport:
    """Face normals, vertex normals, edge cones and slab triangles in one pass."""
    report = PostPassReport(
        degenerate_faces=compute_face_normals(graph),
        vertices_without_normal=compute_vertex_normals(graph),
        degenerate_cones=compute_edge_cones(graph),
        faces_without_envelope=compute_face_simple_triangles(graph),
    )
    if verbose:
        logger.info(
            "Post-pass: %d degenerate slabs, %d degenerate cones, %d slabs without envelope",
            len(report.degenerate_faces), len(report.degenerate_cones), len(report.faces_without_envelope),
        )
    return report
