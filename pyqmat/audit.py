from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import trimesh as tm
from scipy.spatial import cKDTree

from .graph import SkeletalGraph

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass
class ErrorReport:
    surface_to_envelope_max: float
    surface_to_envelope_mean: float
    envelope_to_surface_max: float
    hausdorff: float
    diagonal: float

    @property
    def relative_hausdorff(self) -> float:
        return self.hausdorff / self.diagonal if self.diagonal > 0 else 0.0


def envelope_spheres(graph: SkeletalGraph, samples: int = 6) -> np.ndarray:
    """Spheres sampled along the envelope: every sphere, interpolated spheres
    inside each segment and a barycentric grid inside each slab. Returns (S, 4).
    """
    out = [graph.sphere(v) for v in graph.valid_vertices()]
    ts = np.linspace(0.0, 1.0, samples)[1:-1]
    for eid in graph.valid_edges():
        u, v = graph.edges[eid].vertices
        s0, s1 = graph.sphere(u), graph.sphere(v)
        out.extend((1.0 - t) * s0 + t * s1 for t in ts)
    for fid in graph.valid_faces():
        s0, s1, s2 = (graph.sphere(v) for v in graph.faces[fid].vertices)
        for i in range(1, samples - 1):
            for j in range(1, samples - 1 - i):
                a = i / (samples - 1)
                b = j / (samples - 1)
                out.append((1.0 - a - b) * s0 + a * s1 + b * s2)
    return np.asarray(out, dtype=float).reshape(-1, 4)


def envelope_distance(points: np.ndarray, spheres: np.ndarray, *, chunk: int = 2048) -> np.ndarray:
    """Unsigned distance from points to the boundary of a union of spheres."""
    P = np.asarray(points, dtype=float)
    out = np.empty(P.shape[0], dtype=float)
    C = spheres[:, :3]
    R = spheres[:, 3]
    for start in range(0, P.shape[0], chunk):
        block = P[start:start + chunk]
        D = np.linalg.norm(block[:, None, :] - C[None, :, :], axis=2) - R[None, :]
        dmin = D.min(axis=1)
        depth = (-D).max(axis=1)
        out[start:start + chunk] = np.where(dmin < 0.0, depth, dmin)
    return out


def approximation_error(
    graph: SkeletalGraph,
    surface: tm.Trimesh,
    *,
    samples: int = 6,
    surface_samples: int = 2000,
    seed: int = 0,
) -> ErrorReport:
    """Two-sided deviation between the slab envelope and the surface.

    Surface to envelope: surface vertices plus area-weighted samples against
    the union of sampled envelope spheres. Envelope to surface: how far each
    sampled sphere is from touching the surface, ``|dist(c, S) - r|``, with
    the surface represented by its samples in a KD-tree.
    """
    spheres = envelope_spheres(graph, samples)
    if spheres.shape[0] == 0:
        raise ValueError("skeletal graph has no spheres to audit")
    pts = np.asarray(surface.vertices, dtype=float)
    if surface_samples > 0 and len(surface.faces):
        sampled, _ = tm.sample.sample_surface(surface, surface_samples, seed=seed)
        pts = np.vstack([pts, np.asarray(sampled, dtype=float)])

    s2e = envelope_distance(pts, spheres)
    tree = cKDTree(pts)
    dist, _ = tree.query(spheres[:, :3])
    e2s = np.abs(dist - spheres[:, 3])

    diagonal = float(np.linalg.norm(surface.bounds[1] - surface.bounds[0]))
    report = ErrorReport(
        surface_to_envelope_max=float(s2e.max()),
        surface_to_envelope_mean=float(s2e.mean()),
        envelope_to_surface_max=float(e2s.max()),
        hausdorff=float(max(s2e.max(), e2s.max())),
        diagonal=diagonal,
    )
    logger.debug("Approximation error: %s", report)
    return report
