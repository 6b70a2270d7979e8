"""Non-manifold skeletal graph of medial spheres.

Vertices are spheres, edges are slab segments (cones) and faces are slab
patches. Entities live in growable arenas indexed by id; removed entities are
tombstoned (``valid = False``) and their ids are never reused, so priority
queue entries keyed by id stay addressable for a whole run.

Adjacency is kept in both directions (vertex -> edges/faces, edge -> faces,
face -> vertices/edges). Only :class:`pyqmat.simplify.CollapseEngine` calls
the private contraction helpers at the bottom of :class:`SkeletalGraph`.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional, Sequence

import networkx as nx
import numpy as np

from .errors import InputError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def _edge_key(u: int, v: int) -> tuple[int, int]:
    return (u, v) if u < v else (v, u)


def _face_key(vertices: Sequence[int]) -> tuple[int, int, int]:
    return tuple(sorted(vertices))  # type: ignore[return-value]


@dataclass(eq=False)
class SkeletalVertex:
    id: int
    center: np.ndarray
    radius: float
    boundary: bool = False
    valid: bool = True
    edges: set[int] = field(default_factory=set)
    faces: set[int] = field(default_factory=set)
    quadric: Optional[np.ndarray] = None
    boundary_quadric: Optional[np.ndarray] = None
    normal: Optional[np.ndarray] = None

    @property
    def sphere(self) -> np.ndarray:
        return np.array([self.center[0], self.center[1], self.center[2], self.radius], dtype=float)

    @property
    def is_isolated(self) -> bool:
        return not self.edges and not self.faces


@dataclass(eq=False)
class SkeletalEdge:
    id: int
    vertices: tuple[int, int]
    faces: set[int] = field(default_factory=set)
    boundary: bool = False
    valid: bool = True
    cost: Optional[float] = None
    target: Optional[np.ndarray] = None  # merged sphere for the cached cost
    version: int = 0
    cone: Optional[object] = None  # EdgeCone after the post-pass

    def other(self, vid: int) -> int:
        u, v = self.vertices
        if vid == u:
            return v
        if vid == v:
            return u
        raise KeyError(f"vertex {vid} is not an endpoint of edge {self.id}")


@dataclass(eq=False)
class SkeletalFace:
    id: int
    vertices: tuple[int, int, int]
    edges: tuple[int, int, int]
    valid: bool = True
    normal: Optional[np.ndarray] = None
    degenerate: bool = False
    simple_triangles: Optional[np.ndarray] = None  # (2, 3, 3) after the post-pass


class SkeletalGraph:
    """Spheres connected by slab segments and slab patches."""

    def __init__(self):
        self.vertices: list[SkeletalVertex] = []
        self.edges: list[SkeletalEdge] = []
        self.faces: list[SkeletalFace] = []
        self._edge_index: dict[tuple[int, int], int] = {}
        self._face_index: dict[tuple[int, int, int], int] = {}

    # =================================================================
    # CONSTRUCTION
    # =================================================================

    def add_vertex(self, center, radius: float, boundary: bool = False) -> int:
        c = np.asarray(center, dtype=float).ravel()
        if c.shape != (3,) or not np.all(np.isfinite(c)):
            raise InputError(f"sphere center must be 3 finite coordinates, got {center!r}")
        r = float(radius)
        if not np.isfinite(r) or r < 0.0:
            raise InputError(f"sphere radius must be finite and non-negative, got {radius!r}")
        vid = len(self.vertices)
        self.vertices.append(SkeletalVertex(id=vid, center=c.copy(), radius=r, boundary=bool(boundary)))
        return vid

    def _require_vertex(self, vid: int) -> SkeletalVertex:
        if not self.is_valid(vid):
            raise InputError(f"reference to missing sphere {vid}")
        return self.vertices[vid]

    def add_edge(self, u: int, v: int) -> int:
        """Connect two spheres; returns the existing id for a repeated pair."""
        u, v = int(u), int(v)
        if u == v:
            raise InputError(f"edge ({u}, {v}) joins a sphere to itself")
        self._require_vertex(u)
        self._require_vertex(v)
        key = _edge_key(u, v)
        existing = self._edge_index.get(key)
        if existing is not None:
            return existing
        eid = len(self.edges)
        self.edges.append(SkeletalEdge(id=eid, vertices=key))
        self._edge_index[key] = eid
        self.vertices[u].edges.add(eid)
        self.vertices[v].edges.add(eid)
        return eid

    def add_face(self, u: int, v: int, w: int) -> int:
        """Add a slab patch, creating any missing edges among its spheres."""
        tri = (int(u), int(v), int(w))
        if len(set(tri)) != 3:
            raise InputError(f"face {tri} repeats a sphere")
        for vid in tri:
            self._require_vertex(vid)
        key = _face_key(tri)
        existing = self._face_index.get(key)
        if existing is not None:
            return existing
        eids = (self.add_edge(tri[0], tri[1]), self.add_edge(tri[1], tri[2]), self.add_edge(tri[2], tri[0]))
        fid = len(self.faces)
        self.faces.append(SkeletalFace(id=fid, vertices=tri, edges=eids))
        self._face_index[key] = fid
        for eid in eids:
            self.edges[eid].faces.add(fid)
        for vid in tri:
            self.vertices[vid].faces.add(fid)
        return fid

    @classmethod
    def from_arrays(
        cls,
        spheres,
        edges=None,
        faces=None,
        *,
        boundary=None,
        one_based: bool = False,
    ) -> "SkeletalGraph":
        """Build a graph from upstream extraction output.

        Parameters
        ----------
        spheres : (n, 4) array-like
            Center coordinates and radius per sphere.
        edges : (m, 2) int array-like, optional
        faces : (k, 3) int array-like, optional
        boundary : (n,) bool mask or sequence of sphere indices, optional
            Spheres tracing back to the surface's boundary/feature curves.
        one_based : bool, default False
            Indices in ``edges``, ``faces`` and ``boundary`` start at 1.
        """
        S = np.asarray(spheres, dtype=float)
        if S.size == 0:
            raise InputError("skeletal graph has no spheres")
        if S.ndim != 2 or S.shape[1] != 4:
            raise InputError(f"spheres must have shape (n, 4), got {S.shape}")
        offset = 1 if one_based else 0
        n = S.shape[0]

        flags = np.zeros(n, dtype=bool)
        if boundary is not None:
            b = np.asarray(boundary)
            if b.dtype == bool:
                if b.shape != (n,):
                    raise InputError("boundary mask must have one entry per sphere")
                flags = b.copy()
            elif b.size:
                idx = b.astype(int).ravel() - offset
                if np.any(idx < 0) or np.any(idx >= n):
                    raise InputError("boundary marking references a missing sphere")
                flags[idx] = True

        g = cls()
        for i in range(n):
            g.add_vertex(S[i, :3], S[i, 3], boundary=bool(flags[i]))
        if edges is not None:
            E = np.asarray(edges, dtype=int).reshape(-1, 2) - offset
            for u, v in E:
                g.add_edge(u, v)
        if faces is not None:
            F = np.asarray(faces, dtype=int).reshape(-1, 3) - offset
            for u, v, w in F:
                g.add_face(u, v, w)
        return g

    def copy(self) -> "SkeletalGraph":
        return copy.deepcopy(self)

    # =================================================================
    # QUERIES
    # =================================================================

    def is_valid(self, eid: int, kind: str = "vertex") -> bool:
        arena = {"vertex": self.vertices, "edge": self.edges, "face": self.faces}.get(kind)
        if arena is None:
            raise ValueError(f"Unknown entity kind: {kind}")
        return 0 <= eid < len(arena) and arena[eid].valid

    def neighbors(self, vid: int) -> set[int]:
        """Ids of the edges incident to a sphere."""
        return set(self.vertices[vid].edges)

    def incident_faces(self, eid: int) -> set[int]:
        return set(self.edges[eid].faces)

    def vertex_neighbors(self, vid: int) -> set[int]:
        """Ids of the spheres sharing an edge with ``vid``."""
        return {self.edges[e].other(vid) for e in self.vertices[vid].edges}

    def edge_between(self, u: int, v: int) -> Optional[int]:
        return self._edge_index.get(_edge_key(u, v))

    def face_between(self, u: int, v: int, w: int) -> Optional[int]:
        return self._face_index.get(_face_key((u, v, w)))

    def valid_vertices(self) -> Iterator[int]:
        return (v.id for v in self.vertices if v.valid)

    def valid_edges(self) -> Iterator[int]:
        return (e.id for e in self.edges if e.valid)

    def valid_faces(self) -> Iterator[int]:
        return (f.id for f in self.faces if f.valid)

    @property
    def num_vertices(self) -> int:
        return sum(1 for v in self.vertices if v.valid)

    @property
    def num_edges(self) -> int:
        return sum(1 for e in self.edges if e.valid)

    @property
    def num_faces(self) -> int:
        return sum(1 for f in self.faces if f.valid)

    def sphere(self, vid: int) -> np.ndarray:
        return self.vertices[vid].sphere

    # =================================================================
    # MAINTENANCE
    # =================================================================

    def clean_isolated_vertices(self) -> int:
        """Tombstone spheres with no incident edges or faces; returns the count."""
        removed = 0
        for v in self.vertices:
            if v.valid and v.is_isolated:
                v.valid = False
                removed += 1
        if removed:
            logger.debug("Removed %d isolated spheres", removed)
        return removed

    def mark_boundary(self) -> int:
        """Flag sheet-boundary edges (exactly one slab) and their spheres.

        Sphere flags given at construction are kept. Returns the number of
        boundary edges.
        """
        count = 0
        for e in self.edges:
            if not e.valid:
                continue
            e.boundary = len(e.faces) == 1
            if e.boundary:
                count += 1
                for vid in e.vertices:
                    self.vertices[vid].boundary = True
        return count

    def check_consistency(self) -> None:
        """Raise ``InputError`` if any adjacency invariant is broken."""
        for e in self.edges:
            if not e.valid:
                continue
            u, v = e.vertices
            if u == v or not self.is_valid(u) or not self.is_valid(v):
                raise InputError(f"edge {e.id} references an invalid sphere pair {e.vertices}")
            if self._edge_index.get(_edge_key(u, v)) != e.id:
                raise InputError(f"edge {e.id} is missing from the edge index")
            if e.id not in self.vertices[u].edges or e.id not in self.vertices[v].edges:
                raise InputError(f"edge {e.id} is not registered on its spheres")
            for fid in e.faces:
                if not self.is_valid(fid, "face") or e.id not in self.faces[fid].edges:
                    raise InputError(f"edge {e.id} lists face {fid} which does not use it")
        for f in self.faces:
            if not f.valid:
                continue
            if len(set(f.vertices)) != 3:
                raise InputError(f"face {f.id} repeats a sphere")
            a, b, c = f.vertices
            expected = {self.edge_between(a, b), self.edge_between(b, c), self.edge_between(c, a)}
            if None in expected or expected != set(f.edges):
                raise InputError(f"face {f.id} spheres are not pairwise joined by its edges")
            for eid in f.edges:
                if not self.edges[eid].valid or f.id not in self.edges[eid].faces:
                    raise InputError(f"face {f.id} is missing from edge {eid}")
            for vid in f.vertices:
                if not self.is_valid(vid) or f.id not in self.vertices[vid].faces:
                    raise InputError(f"face {f.id} is not registered on sphere {vid}")
        for v in self.vertices:
            if not v.valid:
                continue
            for eid in v.edges:
                if not self.edges[eid].valid or v.id not in self.edges[eid].vertices:
                    raise InputError(f"sphere {v.id} lists stale edge {eid}")
            for fid in v.faces:
                if not self.faces[fid].valid or v.id not in self.faces[fid].vertices:
                    raise InputError(f"sphere {v.id} lists stale face {fid}")

    # =================================================================
    # EXPORT VIEWS
    # =================================================================

    def to_arrays(self) -> dict:
        """Compact arrays of the live entities, re-indexed from 0.

        Returns a dict with ``spheres`` (n,4), ``edges`` (m,2), ``faces`` (k,3),
        ``boundary`` (n,) bool and the id lists ``vertex_ids``, ``edge_ids``,
        ``face_ids`` mapping rows back to graph ids.
        """
        vertex_ids = list(self.valid_vertices())
        remap = {vid: i for i, vid in enumerate(vertex_ids)}
        edge_ids = list(self.valid_edges())
        face_ids = list(self.valid_faces())
        spheres = np.array([self.vertices[v].sphere for v in vertex_ids], dtype=float).reshape(-1, 4)
        edges = np.array([[remap[u] for u in self.edges[e].vertices] for e in edge_ids], dtype=int).reshape(-1, 2)
        faces = np.array([[remap[u] for u in self.faces[f].vertices] for f in face_ids], dtype=int).reshape(-1, 3)
        boundary = np.array([self.vertices[v].boundary for v in vertex_ids], dtype=bool)
        return {
            "spheres": spheres,
            "edges": edges,
            "faces": faces,
            "boundary": boundary,
            "vertex_ids": vertex_ids,
            "edge_ids": edge_ids,
            "face_ids": face_ids,
        }

    def to_networkx(self) -> nx.Graph:
        G = nx.Graph()
        for vid in self.valid_vertices():
            v = self.vertices[vid]
            G.add_node(vid, pos=v.center.copy(), radius=float(v.radius), boundary=bool(v.boundary))
        for eid in self.valid_edges():
            e = self.edges[eid]
            u, v = e.vertices
            w = float(np.linalg.norm(self.vertices[u].center - self.vertices[v].center))
            G.add_edge(u, v, id=eid, weight=w, faces=len(e.faces))
        return G

    def analyze(self) -> dict:
        """Counts and topology summary of the live graph."""
        nv, ne, nf = self.num_vertices, self.num_edges, self.num_faces
        face_counts = [len(self.edges[e].faces) for e in self.valid_edges()]
        G = self.to_networkx()
        return {
            "vertex_count": nv,
            "edge_count": ne,
            "face_count": nf,
            "euler_characteristic": nv - ne + nf,
            "component_count": nx.number_connected_components(G) if nv else 0,
            "isolated_count": sum(1 for v in self.vertices if v.valid and v.is_isolated),
            "boundary_edge_count": sum(1 for c in face_counts if c == 1),
            "non_manifold_edge_count": sum(1 for c in face_counts if c > 2),
            "segment_edge_count": sum(1 for c in face_counts if c == 0),
        }

    # =================================================================
    # CONTRACTION (collapse engine only)
    # =================================================================

    def _remove_face(self, fid: int) -> None:
        f = self.faces[fid]
        f.valid = False
        key = _face_key(f.vertices)
        if self._face_index.get(key) == fid:
            del self._face_index[key]
        for eid in f.edges:
            self.edges[eid].faces.discard(fid)
        for vid in f.vertices:
            self.vertices[vid].faces.discard(fid)

    def _remove_edge(self, eid: int) -> None:
        e = self.edges[eid]
        for fid in sorted(e.faces):
            self._remove_face(fid)
        e.valid = False
        if self._edge_index.get(e.vertices) == eid:
            del self._edge_index[e.vertices]
        for vid in e.vertices:
            self.vertices[vid].edges.discard(eid)

    def _contract_edge(self, eid: int, keep: int, drop: int) -> dict:
        """Merge sphere ``drop`` into ``keep`` along edge ``eid``.

        Slabs spanning the edge disappear, edges and slabs of ``drop`` are
        re-pointed at ``keep``, and any duplicates produced are merged away.
        Geometry is left to the caller.
        """
        removed_faces = sorted(self.edges[eid].faces)
        self._remove_edge(eid)
        vk = self.vertices[keep]
        vd = self.vertices[drop]

        merged_edges = []
        for xid in sorted(vd.edges):
            x = self.edges[xid]
            c = x.other(drop)
            del self._edge_index[x.vertices]
            existing = self._edge_index.get(_edge_key(keep, c))
            if existing is not None:
                target = self.edges[existing]
                for fid in sorted(x.faces):
                    f = self.faces[fid]
                    f.edges = tuple(existing if e == xid else e for e in f.edges)  # type: ignore[assignment]
                    target.faces.add(fid)
                x.faces.clear()
                x.valid = False
                self.vertices[c].edges.discard(xid)
                merged_edges.append(xid)
            else:
                x.vertices = _edge_key(keep, c)
                self._edge_index[x.vertices] = xid
                vk.edges.add(xid)
        vd.edges.clear()

        duplicate_faces = []
        for fid in sorted(vd.faces):
            f = self.faces[fid]
            old_key = _face_key(f.vertices)
            if self._face_index.get(old_key) == fid:
                del self._face_index[old_key]
            f.vertices = tuple(keep if v == drop else v for v in f.vertices)  # type: ignore[assignment]
            key = _face_key(f.vertices)
            if key in self._face_index:
                self._remove_face(fid)
                duplicate_faces.append(fid)
            else:
                self._face_index[key] = fid
                vk.faces.add(fid)
        vd.faces.clear()
        vd.valid = False

        touched = set(vk.edges)
        for fid in duplicate_faces:
            touched.update(e for e in self.faces[fid].edges if self.edges[e].valid)
        for xid in touched:
            x = self.edges[xid]
            x.boundary = len(x.faces) == 1
            if x.boundary:
                for vid in x.vertices:
                    self.vertices[vid].boundary = True
        vk.boundary = vk.boundary or vd.boundary
        return {
            "removed_faces": removed_faces,
            "merged_edges": merged_edges,
            "duplicate_faces": duplicate_faces,
        }
