import numpy as np
import pytest

from pyqmat.config import SimplifyConfig
from pyqmat.errors import InputError, TopologyViolation
from pyqmat.graph import SkeletalGraph
from pyqmat.io import write_ma
from pyqmat.simplify import CollapseEngine, RunState, simplify


def _assert_adjacency(g: SkeletalGraph):
    g.check_consistency()
    live_edges = {g.edges[e].vertices for e in g.valid_edges()}
    for eid in g.valid_edges():
        u, v = g.edges[eid].vertices
        assert u != v and g.is_valid(u) and g.is_valid(v)
    for fid in g.valid_faces():
        a, b, c = sorted(g.faces[fid].vertices)
        assert {(a, b), (b, c), (a, c)} <= live_edges


def test_strip_converges_to_target(strip):
    result = simplify(strip, 3)
    assert result.state is RunState.CONVERGED
    assert result.collapses == 3
    assert result.final_vertices == 3
    assert strip.num_vertices == 3
    _assert_adjacency(strip)


def test_every_step_keeps_adjacency_and_count(grid):
    engine = CollapseEngine(grid)
    engine.initialize()
    count = grid.num_vertices
    applied = 0
    while grid.num_vertices > 3:
        record = engine.step()
        if record is None:
            break
        applied += 1
        assert grid.num_vertices == count - 1
        assert not grid.is_valid(record.removed)
        assert grid.is_valid(record.survivor)
        count = grid.num_vertices
        _assert_adjacency(grid)
    assert grid.num_vertices == 25 - applied
    assert applied > 0


def test_target_equal_to_count_is_identity(strip, tmp_path):
    before = tmp_path / "before.ma"
    after = tmp_path / "after.ma"
    write_ma(strip, before)
    result = simplify(strip, strip.num_vertices)
    write_ma(strip, after)

    assert result.state is RunState.CONVERGED
    assert result.collapses == 0
    assert not result.skipped
    assert before.read_bytes() == after.read_bytes()


def test_target_above_count_is_skipped(strip, tmp_path):
    before = tmp_path / "before.ma"
    after = tmp_path / "after.ma"
    write_ma(strip, before)
    result = simplify(strip, 100)
    write_ma(strip, after)

    assert result.skipped
    assert result.collapses == 0
    assert result.warnings
    assert before.read_bytes() == after.read_bytes()


def test_non_positive_target_is_skipped(strip):
    result = simplify(strip, 0)
    assert result.skipped
    assert result.state is RunState.READY
    assert strip.num_vertices == 6


def test_empty_graph_is_an_input_error():
    with pytest.raises(InputError):
        CollapseEngine(SkeletalGraph())


def test_runs_are_deterministic(grid):
    other = grid.copy()
    r1 = simplify(grid, 8)
    r2 = simplify(other, 8)
    assert [h.edge for h in r1.history] == [h.edge for h in r2.history]
    a1, a2 = grid.to_arrays(), other.to_arrays()
    assert a1["vertex_ids"] == a2["vertex_ids"]
    assert np.array_equal(a1["spheres"], a2["spheres"])
    assert np.array_equal(a1["faces"], a2["faces"])


def test_target_bound(grid):
    engine = CollapseEngine(grid)
    result = engine.run(5)
    if result.state is RunState.CONVERGED:
        assert result.final_vertices == 5
    else:
        assert result.state is RunState.EXHAUSTED
        assert result.final_vertices > 5
        assert engine.step() is None
    assert result.final_vertices == 25 - result.collapses


def test_ties_break_on_lower_edge_id(strip):
    engine = CollapseEngine(strip)

    def flat_cost(graph, eid):
        e = graph.edges[eid]
        u, v = e.vertices
        e.cost, e.target = 1.0, 0.5 * (graph.sphere(u) + graph.sphere(v))
        return e.cost

    engine.cost_model.edge_cost = flat_cost
    engine.initialize()
    record = engine.step()
    assert record.edge == 0


def test_frozen_boundary_is_never_collapsed(grid):
    originals = {v.id: v.center.copy() for v in grid.vertices}
    config = SimplifyConfig(boundary_mode="frozen")
    result = simplify(grid, 1, config)

    assert result.state is RunState.EXHAUSTED
    assert result.warnings
    # the 16 rim spheres of the 5x5 sheet survive untouched
    rim = [j * 5 + i for j in range(5) for i in range(5) if i in (0, 4) or j in (0, 4)]
    for vid in rim:
        assert grid.is_valid(vid)
        assert np.array_equal(grid.vertices[vid].center, originals[vid])
    assert result.final_vertices >= 16


def test_frozen_strip_is_exhausted_immediately(strip):
    result = simplify(strip, 2, SimplifyConfig(boundary_mode="frozen"))
    assert result.state is RunState.EXHAUSTED
    assert result.collapses == 0
    assert result.final_vertices == 6


def test_projected_mode_keeps_merged_sphere_on_boundary(grid):
    engine = CollapseEngine(grid, SimplifyConfig(boundary_mode="projected"))
    engine.initialize()
    eid = grid.edge_between(1, 2)  # on the y = 0 rim
    sphere, _ = engine.cost_model.merged_sphere(grid, eid)
    assert sphere[1] == pytest.approx(0.0, abs=1e-9)
    assert sphere[2] == pytest.approx(0.0, abs=1e-9)
    assert -1e-9 <= sphere[0] <= 3.0 + 1e-9


def test_boundary_weight_raises_rim_cost(grid):
    low = CollapseEngine(grid.copy(), SimplifyConfig(boundary_weight=0.0))
    high = CollapseEngine(grid.copy(), SimplifyConfig(boundary_weight=100.0))
    low.initialize()
    high.initialize()
    # a rim-to-interior edge: the boundary penalty pulls it up
    eid = low.graph.edge_between(2, 7)
    assert high.graph.edges[eid].cost > low.graph.edges[eid].cost
    # purely interior edge: no boundary penalty at all
    inner = low.graph.edge_between(7, 12)
    assert high.graph.edges[inner].cost == pytest.approx(low.graph.edges[inner].cost)


def test_junction_edge_rejected_with_prevent_inversion(fan):
    config = SimplifyConfig(prevent_inversion=True, scale_factor=10.0)
    engine = CollapseEngine(fan, config)
    engine.initialize()
    hinge = fan.edge_between(0, 1)
    with pytest.raises(TopologyViolation, match="junction"):
        engine.validate(hinge)

    while fan.num_vertices > 3:
        was_junction = fan.edges[hinge].valid and len(fan.edges[hinge].faces) > 2
        record = engine.step()
        if record is None:
            break
        assert not (record.edge == hinge and was_junction)
        _assert_adjacency(fan)
    assert len(engine.history) >= 1
    assert fan.num_vertices < 5


def test_junction_edge_allowed_without_prevent_inversion(fan):
    engine = CollapseEngine(fan)
    engine.initialize()
    engine.validate(fan.edge_between(0, 1))


def test_prevent_inversion_rejects_flipping_slab():
    spheres = np.array([[0, 0, 0, 0.3], [1, 0, 0, 0.3], [1, 1, 0, 0.3], [0, 1, 0, 0.3]], dtype=float)
    faces = [[0, 1, 2], [0, 2, 3]]
    g = SkeletalGraph.from_arrays(spheres, faces=faces)
    engine = CollapseEngine(g, SimplifyConfig(prevent_inversion=True))
    engine.initialize()
    eid = g.edge_between(2, 3)
    # pulling sphere 2 below the 0-1 edge flips slab (0, 1, 2)
    g.edges[eid].target = np.array([0.5, -1.0, 0.0, 0.3])
    with pytest.raises(TopologyViolation, match="flip"):
        engine.validate(eid)

    relaxed = CollapseEngine(g, SimplifyConfig(prevent_inversion=False))
    relaxed.validate(eid)


def test_face_fold_is_rejected():
    # closed tetrahedron of slabs: any collapse folds two slabs onto each other
    spheres = np.array([[0, 0, 0, 0.1], [1, 0, 0, 0.1], [0, 1, 0, 0.1], [0, 0, 1, 0.1]], dtype=float)
    faces = [[0, 1, 2], [0, 3, 1], [1, 3, 2], [0, 2, 3]]
    g = SkeletalGraph.from_arrays(spheres, faces=faces)
    engine = CollapseEngine(g)
    engine.initialize()
    with pytest.raises(TopologyViolation):
        engine.validate(g.edge_between(0, 1))
    result = engine.run(2)
    assert result.state is RunState.EXHAUSTED
    assert result.final_vertices == 4
    assert result.rejected == 6


def test_segment_chain_collapses(chain):
    result = simplify(chain, 2)
    assert result.converged
    assert chain.num_vertices == 2
    assert chain.num_edges == 1
    # the survivors stay on the axis with the common radius
    for vid in chain.valid_vertices():
        v = chain.vertices[vid]
        assert np.allclose(v.center[:2], 0.0, atol=1e-6)
        assert v.radius == pytest.approx(0.5, abs=1e-3)


def test_isolated_spheres_cleaned_before_collapse(strip):
    strip.add_vertex([5.0, 5.0, 5.0], 0.1)
    result = simplify(strip, 4)
    assert result.isolated_removed == 1
    assert result.collapses == 2
    assert strip.num_vertices == 4


def test_cancel_between_collapses(grid):
    calls = {"n": 0}

    def cancel():
        calls["n"] += 1
        return calls["n"] > 2

    result = simplify(grid, 3, cancel=cancel)
    assert result.state is RunState.CANCELLED
    assert result.collapses == 2
    assert grid.num_vertices == 23
    _assert_adjacency(grid)


def test_progress_callback_reports_fractions(grid):
    seen = []
    simplify(grid, 10, progress_callback=seen.append)
    assert seen
    assert all(0.0 < p <= 1.0 for p in seen)
    assert seen == sorted(seen)


def test_track_error_without_surface_warns(chain):
    result = simplify(chain, 3, SimplifyConfig(track_approximation_error=True))
    assert result.approximation_error is None
    assert any("surface" in w for w in result.warnings)


def _with_isolated(g, count):
    for i in range(count):
        g.add_vertex([10.0 + i, 10.0, 10.0], 0.1)
    return g


def test_cleanup_below_target_is_undershot(strip):
    _with_isolated(strip, 4)
    result = simplify(strip, 8)
    assert result.state is RunState.UNDERSHOT
    assert not result.converged
    assert result.isolated_removed == 4
    assert result.collapses == 0
    assert result.final_vertices == 6
    assert any("isolated" in w for w in result.warnings)


def test_cleanup_landing_on_target_converges(strip):
    _with_isolated(strip, 4)
    result = simplify(strip, 6)
    assert result.state is RunState.CONVERGED
    assert result.final_vertices == result.target == 6
    assert result.collapses == 0


def test_near_collinear_slab_falls_back():
    spheres = [[0, 0, 0, 0.1], [1, 0, 0, 0.1], [2, 3e-12, 0, 0.1], [1, 1, 0, 0.1]]
    g = SkeletalGraph.from_arrays(spheres, faces=[[0, 1, 2], [0, 1, 3]])
    result = simplify(g, 2)
    assert result.state in (RunState.CONVERGED, RunState.EXHAUSTED)
    assert result.degeneracies["slab_without_tangent_planes"] >= 1
    g.check_consistency()
