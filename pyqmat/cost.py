from __future__ import annotations

import logging
from collections import Counter
from typing import Optional

import numpy as np

from .config import BoundaryPreservation, SimplifyConfig
from .errors import DegenerateGeometry
from .graph import SkeletalGraph
from . import quadric as q
from .primitives import closest_point_on_segment

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class CostModel:
    """Collapse cost of slab edges.

    Every sphere carries two quadrics: the approximation quadric (slab
    tangent planes, segment lines for slab-less edges and the ball term
    ``k * |m - m0|^2``) and a boundary quadric (squared distance of the center
    to the sheet-boundary segments it touches). The cost of edge ``(a, b)`` is

        min_m  (Qa + Qb)(m) + boundary_weight * (Ba + Bb)(m)

    The boundary part is zero for purely interior edges.
    """

    def __init__(self, config: Optional[SimplifyConfig] = None):
        self.config = config or SimplifyConfig()
        self.degeneracies: Counter = Counter()

    # -----------------------------------------------------------------
    # Per-sphere quadrics
    # -----------------------------------------------------------------

    def face_quadric(self, graph: SkeletalGraph, fid: int) -> np.ndarray:
        s0, s1, s2 = (graph.sphere(v) for v in graph.faces[fid].vertices)
        try:
            return q.slab_quadric(s0, s1, s2, self.config.weighting_scheme)
        except DegenerateGeometry as exc:
            self.degeneracies["slab_without_tangent_planes"] += 1
            logger.debug("face %d: %s; using segment quadrics", fid, exc)
            return q.slab_fallback_quadric(s0, s1, s2)

    def initialize(self, graph: SkeletalGraph) -> None:
        """Fold slab, segment, ball and boundary terms into every live sphere."""
        k = float(self.config.scale_factor)
        for vid in graph.valid_vertices():
            v = graph.vertices[vid]
            v.quadric = q.ball_quadric(v.sphere, k)
            v.boundary_quadric = q.zero_quadric()

        for fid in graph.valid_faces():
            Q = self.face_quadric(graph, fid)
            for vid in graph.faces[fid].vertices:
                graph.vertices[vid].quadric += Q

        for eid in graph.valid_edges():
            e = graph.edges[eid]
            u, v = e.vertices
            if not e.faces:
                Q = q.line_quadric(graph.sphere(u), graph.sphere(v))
                graph.vertices[u].quadric += Q
                graph.vertices[v].quadric += Q
            if e.boundary:
                B = q.line_quadric(graph.vertices[u].center, graph.vertices[v].center, dims=3)
                graph.vertices[u].boundary_quadric += B
                graph.vertices[v].boundary_quadric += B

        if self.degeneracies:
            logger.debug("Quadric initialisation fallbacks: %s", dict(self.degeneracies))

    # -----------------------------------------------------------------
    # Edge cost
    # -----------------------------------------------------------------

    def is_admissible(self, graph: SkeletalGraph, eid: int) -> bool:
        u, v = graph.edges[eid].vertices
        if self.config.boundary_mode is BoundaryPreservation.FROZEN:
            return not (graph.vertices[u].boundary or graph.vertices[v].boundary)
        return True

    def _boundary_projection(self, graph: SkeletalGraph, a: int, b: int, center: np.ndarray) -> np.ndarray:
        """Nearest point of the boundary curve around ``a`` and ``b``."""
        segments = []
        for vid in (a, b):
            for xid in graph.vertices[vid].edges:
                x = graph.edges[xid]
                if x.boundary:
                    segments.append(x.vertices)
        if segments:
            candidates = [
                closest_point_on_segment(center, graph.vertices[s].center, graph.vertices[t].center)
                for s, t in sorted(set(segments))
            ]
        else:
            candidates = [graph.vertices[vid].center for vid in (a, b) if graph.vertices[vid].boundary]
        if not candidates:
            return center
        dists = [float(np.linalg.norm(p - center)) for p in candidates]
        return np.asarray(candidates[int(np.argmin(dists))], dtype=float)

    def combined_quadric(self, graph: SkeletalGraph, a: int, b: int) -> np.ndarray:
        va, vb = graph.vertices[a], graph.vertices[b]
        return (va.quadric + vb.quadric) + self.config.boundary_weight * (va.boundary_quadric + vb.boundary_quadric)

    def merged_sphere(self, graph: SkeletalGraph, eid: int) -> tuple[np.ndarray, float]:
        """Representative sphere for collapsing ``eid`` and its cost."""
        a, b = graph.edges[eid].vertices
        sa, sb = graph.sphere(a), graph.sphere(b)
        Q = self.combined_quadric(graph, a, b)
        sphere, cost = q.minimize(Q, (sa, sb, 0.5 * (sa + sb)))

        if self.config.boundary_mode is BoundaryPreservation.PROJECTED and (
            graph.vertices[a].boundary or graph.vertices[b].boundary
        ):
            center = self._boundary_projection(graph, a, b, sphere[:3])
            radius = q.optimal_radius(Q, center, fallback=sphere[3])
            sphere = np.array([center[0], center[1], center[2], radius], dtype=float)
            cost = q.evaluate(Q, sphere)
        return sphere, cost

    def edge_cost(self, graph: SkeletalGraph, eid: int) -> float:
        """Compute and cache the cost of ``eid``; ``inf`` when inadmissible."""
        e = graph.edges[eid]
        if not self.is_admissible(graph, eid):
            e.cost, e.target = float("inf"), None
            return e.cost
        sphere, cost = self.merged_sphere(graph, eid)
        e.cost, e.target = float(cost), sphere
        return e.cost
