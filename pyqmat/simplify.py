from __future__ import annotations

import heapq
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

import numpy as np

from .config import BoundaryPreservation, SimplifyConfig
from .cost import CostModel
from .errors import DegenerateGeometry, InputError, TopologyViolation
from .graph import SkeletalGraph, _face_key
from .primitives import triangle_normal

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class RunState(str, Enum):
    READY = "ready"
    COLLAPSING = "collapsing"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"
    UNDERSHOT = "undershot"  # isolated-sphere cleanup alone went below the target


@dataclass
class CollapseRecord:
    edge: int
    survivor: int
    removed: int
    cost: float
    sphere: np.ndarray


@dataclass
class SimplifyResult:
    state: RunState
    initial_vertices: int
    final_vertices: int
    target: int
    collapses: int = 0
    rejected: int = 0
    isolated_removed: int = 0
    skipped: bool = False
    history: list[CollapseRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    degeneracies: dict[str, int] = field(default_factory=dict)
    approximation_error: Optional[object] = None  # ErrorReport when tracked
    elapsed: float = 0.0

    @property
    def converged(self) -> bool:
        return self.state is RunState.CONVERGED


class CollapseEngine:
    """Greedy slab-edge collapse driven by spherical quadric error.

    The engine owns ``graph`` for its lifetime and mutates it in place. The
    queue holds ``(cost, edge id, version)`` entries; ties in cost are broken
    by the lower edge id, and an entry is superseded as soon as the edge's
    version moves on.

    Parameters
    ----------
    graph : SkeletalGraph
        Raw skeletal graph from medial-axis extraction.
    config : SimplifyConfig, optional
        Run options. Defaults to ``SimplifyConfig()``.
    surface : trimesh.Trimesh, optional
        Reference surface, only needed when
        ``config.track_approximation_error`` is set.
    verbose : bool, default False
        Log progress at INFO level.
    log : logging.Logger, optional
        Custom logger. If None, use module logger.
    """

    def __init__(
        self,
        graph: SkeletalGraph,
        config: Optional[SimplifyConfig] = None,
        *,
        surface=None,
        verbose: bool = False,
        log: Optional[logging.Logger] = None,
    ):
        if graph.num_vertices == 0:
            raise InputError("skeletal graph has no spheres")
        graph.check_consistency()
        self.graph = graph
        self.config = config or SimplifyConfig()
        self.surface = surface
        self.verbose = verbose
        self._log = log or logger
        self.cost_model = CostModel(self.config)
        self.state = RunState.READY
        self.history: list[CollapseRecord] = []
        self.rejected = 0
        self._heap: list[tuple[float, int, int]] = []
        self._initialized = False

    # -----------------------------------------------------------------
    # Queue
    # -----------------------------------------------------------------

    def initialize(self) -> None:
        """Compute sphere quadrics and edge costs and fill the queue."""
        g = self.graph
        n_boundary = g.mark_boundary()
        self.cost_model.initialize(g)
        self._heap = []
        for eid in g.valid_edges():
            self._push(eid)
        self._initialized = True
        if self.verbose:
            self._log.info(
                "Initialised %d spheres, %d edges (%d on the boundary), %d slabs; %d admissible collapses",
                g.num_vertices, g.num_edges, n_boundary, g.num_faces, len(self._heap),
            )

    def _push(self, eid: int) -> None:
        e = self.graph.edges[eid]
        e.version += 1
        cost = self.cost_model.edge_cost(self.graph, eid)
        if np.isfinite(cost):
            heapq.heappush(self._heap, (cost, eid, e.version))

    def _pop(self) -> Optional[int]:
        while self._heap:
            _, eid, version = heapq.heappop(self._heap)
            e = self.graph.edges[eid]
            if not e.valid or version != e.version:
                continue
            if e.cost is None or e.target is None:
                self._push(eid)
                continue
            return eid
        return None

    # -----------------------------------------------------------------
    # Validity
    # -----------------------------------------------------------------

    def validate(self, eid: int) -> None:
        """Raise ``TopologyViolation`` if collapsing ``eid`` is not allowed."""
        g = self.graph
        e = g.edges[eid]
        if not e.valid:
            raise TopologyViolation(eid, "edge was removed")
        a, b = e.vertices
        if not (g.is_valid(a) and g.is_valid(b)):
            raise TopologyViolation(eid, "endpoint was removed")
        if self.config.boundary_mode is BoundaryPreservation.FROZEN and (
            g.vertices[a].boundary or g.vertices[b].boundary
        ):
            raise TopologyViolation(eid, "boundary sphere is frozen")
        if self.config.prevent_inversion and len(e.faces) > 2:
            raise TopologyViolation(eid, "junction edge shared by %d slabs" % len(e.faces))

        spanning = e.faces
        apexes = {v for fid in spanning for v in g.faces[fid].vertices} - {a, b}

        # two surviving slabs would coincide
        keys_a = {_face_key(g.faces[f].vertices) for f in g.vertices[a].faces - spanning}
        for fid in g.vertices[b].faces - spanning:
            moved = tuple(a if v == b else v for v in g.faces[fid].vertices)
            if _face_key(moved) in keys_a:
                raise TopologyViolation(eid, "slab %d would fold onto another slab" % fid)

        # edges a-c and b-c merge; do not create a new non-manifold edge
        common = (g.vertex_neighbors(a) & g.vertex_neighbors(b)) - {a, b}
        for c in sorted(common):
            fa = g.incident_faces(g.edge_between(a, c))
            fb = g.incident_faces(g.edge_between(b, c))
            merged = len(fa - spanning) + len(fb - spanning)
            if merged > 2 and len(fa) <= 2 and len(fb) <= 2:
                kind = "apex" if c in apexes else "pinch"
                raise TopologyViolation(eid, f"merging edges at {kind} sphere {c} gives {merged} slabs")

        if self.config.prevent_inversion:
            self._check_inversion(eid, a, b)

    def _check_inversion(self, eid: int, a: int, b: int) -> None:
        g = self.graph
        e = g.edges[eid]
        if e.target is None:
            self.cost_model.edge_cost(g, eid)
        new_center = e.target[:3]
        threshold = float(self.config.inversion_threshold)
        for fid in sorted((g.vertices[a].faces | g.vertices[b].faces) - e.faces):
            tri = g.faces[fid].vertices
            old = [g.vertices[v].center for v in tri]
            new = [new_center if v in (a, b) else g.vertices[v].center for v in tri]
            try:
                n_old = triangle_normal(*old)
            except DegenerateGeometry:
                continue
            try:
                n_new = triangle_normal(*new)
            except DegenerateGeometry:
                raise TopologyViolation(eid, "slab %d would become degenerate" % fid) from None
            if float(n_old @ n_new) < threshold:
                raise TopologyViolation(eid, "slab %d would flip" % fid)

    # -----------------------------------------------------------------
    # Collapse
    # -----------------------------------------------------------------

    def collapse_edge(self, eid: int) -> CollapseRecord:
        """Validate and apply one collapse atomically."""
        if not self._initialized:
            self.initialize()
        self.validate(eid)
        g = self.graph
        e = g.edges[eid]
        if e.target is None:
            self.cost_model.edge_cost(g, eid)
        sphere = e.target.copy()
        cost = float(e.cost)
        keep, drop = e.vertices  # keys are sorted: survivor has the lower id
        vk, vd = g.vertices[keep], g.vertices[drop]
        quadric = vk.quadric + vd.quadric
        boundary_quadric = vk.boundary_quadric + vd.boundary_quadric

        g._contract_edge(eid, keep, drop)

        vk.center = sphere[:3].copy()
        vk.radius = float(max(0.0, sphere[3]))
        vk.quadric = quadric
        vk.boundary_quadric = boundary_quadric
        for xid in sorted(vk.edges):
            self._push(xid)

        record = CollapseRecord(edge=eid, survivor=keep, removed=drop, cost=cost, sphere=sphere)
        self.history.append(record)
        return record

    def step(self) -> Optional[CollapseRecord]:
        """Apply the cheapest admissible collapse; None once the queue is empty."""
        if not self._initialized:
            self.initialize()
        while True:
            eid = self._pop()
            if eid is None:
                return None
            try:
                return self.collapse_edge(eid)
            except TopologyViolation as exc:
                self.rejected += 1
                self._log.debug("Rejected collapse: %s", exc)

    def run(
        self,
        target: int,
        *,
        progress_callback: Optional[Callable[[float], None]] = None,
        cancel: Optional[Callable[[], bool]] = None,
    ) -> SimplifyResult:
        """Collapse edges until ``target`` spheres remain or nothing is admissible.

        A non-positive target, or one not below the current count, leaves the
        graph untouched and is reported as a skipped run. If removing isolated
        spheres alone drops below the target the run ends UNDERSHOT.
        """
        t0 = time.perf_counter()
        g = self.graph
        target = int(target)
        initial = g.num_vertices
        result = SimplifyResult(state=self.state, initial_vertices=initial, final_vertices=initial, target=target)

        if target <= 0:
            msg = f"Target vertex count ({target}) must be positive. Skipping simplification."
            self._log.warning(msg)
            result.warnings.append(msg)
            result.skipped = True
            return result
        if target >= initial:
            if target > initial:
                msg = f"Target vertex count ({target}) >= current count ({initial}). Skipping simplification."
                self._log.warning(msg)
                result.warnings.append(msg)
                result.skipped = True
            self.state = result.state = RunState.CONVERGED
            return result

        result.isolated_removed = g.clean_isolated_vertices()
        if g.num_vertices < target:
            self.state = result.state = RunState.UNDERSHOT
            result.final_vertices = g.num_vertices
            msg = (
                f"Removing {result.isolated_removed} isolated spheres left {result.final_vertices}, "
                f"below the target ({target}). No collapse applied."
            )
            self._log.warning(msg)
            result.warnings.append(msg)
            result.elapsed = time.perf_counter() - t0
            return result
        if not self._initialized:
            self.initialize()
        self.state = RunState.COLLAPSING
        start = g.num_vertices
        to_remove = max(1, start - target)
        if self.verbose:
            self._log.info("Simplifying from %d to %d spheres (removing %d)", start, target, start - target)

        last_progress = 0.0
        while g.num_vertices > target:
            if cancel is not None and cancel():
                self.state = RunState.CANCELLED
                break
            record = self.step()
            if record is None:
                self.state = RunState.EXHAUSTED
                break
            if progress_callback is not None:
                progress = len(self.history) / to_remove
                if progress - last_progress >= 0.05:
                    progress_callback(min(1.0, progress))
                    last_progress = progress
        else:
            self.state = RunState.CONVERGED

        result.state = self.state
        result.final_vertices = g.num_vertices
        result.collapses = len(self.history)
        result.rejected = self.rejected
        result.history = list(self.history)
        result.degeneracies = dict(self.cost_model.degeneracies)

        if self.state is RunState.EXHAUSTED:
            msg = f"No admissible collapse left; stopped at {result.final_vertices} spheres (target {target})."
            self._log.warning(msg)
            result.warnings.append(msg)
        elif self.state is RunState.CANCELLED:
            msg = f"Simplification cancelled at {result.final_vertices} spheres."
            self._log.warning(msg)
            result.warnings.append(msg)

        if self.config.track_approximation_error:
            if self.surface is None:
                msg = "track_approximation_error is set but no reference surface was given."
                self._log.warning(msg)
                result.warnings.append(msg)
            else:
                from .audit import approximation_error

                result.approximation_error = approximation_error(
                    g, self.surface, samples=self.config.error_samples
                )

        result.elapsed = time.perf_counter() - t0
        if self.verbose:
            self._log.info(
                "Simplification %s: %d -> %d spheres, %d collapses, %d rejected (%.3fs)",
                result.state.value, initial, result.final_vertices, result.collapses,
                result.rejected, result.elapsed,
            )
        return result


def simplify(
    graph: SkeletalGraph,
    target: int,
    config: Optional[SimplifyConfig] = None,
    *,
    surface=None,
    progress_callback: Optional[Callable[[float], None]] = None,
    cancel: Optional[Callable[[], bool]] = None,
    verbose: bool = False,
    log: Optional[logging.Logger] = None,
) -> SimplifyResult:
    """Simplify ``graph`` in place down to ``target`` spheres.

    Convenience wrapper around :class:`CollapseEngine`; see
    :meth:`CollapseEngine.run` for the stopping rules.
    """
    engine = CollapseEngine(graph, config, surface=surface, verbose=verbose, log=log)
    return engine.run(target, progress_callback=progress_callback, cancel=cancel)
