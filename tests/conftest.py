import numpy as np
import pytest

from pyqmat.graph import SkeletalGraph


def strip_graph() -> SkeletalGraph:
    # 6 spheres, 9 edges, 4 slabs: a zig-zag strip in the z=0 plane
    spheres = np.array([
        [0.0, 0.0, 0.0, 0.30],
        [0.5, 1.0, 0.0, 0.32],
        [1.0, 0.0, 0.0, 0.35],
        [1.5, 1.0, 0.0, 0.33],
        [2.0, 0.0, 0.0, 0.30],
        [2.5, 1.0, 0.0, 0.28],
    ])
    edges = np.array([[0, 1], [1, 2], [0, 2], [1, 3], [2, 3], [3, 4], [2, 4], [3, 5], [4, 5]])
    faces = np.array([[0, 1, 2], [1, 3, 2], [2, 3, 4], [3, 5, 4]])
    return SkeletalGraph.from_arrays(spheres, edges, faces)


def grid_graph(n: int = 5) -> SkeletalGraph:
    # n x n spheres on the z=0 plane, two slabs per cell
    g = SkeletalGraph()
    for j in range(n):
        for i in range(n):
            g.add_vertex([float(i), float(j), 0.0], 0.3 + 0.02 * i)
    for j in range(n - 1):
        for i in range(n - 1):
            a, b, c, d = j * n + i, j * n + i + 1, (j + 1) * n + i + 1, (j + 1) * n + i
            g.add_face(a, b, c)
            g.add_face(a, c, d)
    return g


def fan_graph() -> SkeletalGraph:
    # three slabs hinged on the edge (0, 1): a non-manifold junction
    spheres = np.array([
        [0.0, 0.0, 0.0, 0.2],
        [1.0, 0.0, 0.0, 0.2],
        [0.5, 1.0, 0.0, 0.2],
        [0.5, -0.5, 0.8, 0.2],
        [0.5, -0.5, -0.8, 0.2],
    ])
    faces = np.array([[0, 1, 2], [0, 1, 3], [0, 1, 4]])
    return SkeletalGraph.from_arrays(spheres, faces=faces)


def chain_graph(n: int = 11, radius: float = 0.5) -> SkeletalGraph:
    # spheres along the z axis joined by segments only
    zs = np.linspace(-0.5, 0.5, n)
    spheres = np.column_stack([np.zeros(n), np.zeros(n), zs, np.full(n, radius)])
    edges = np.column_stack([np.arange(n - 1), np.arange(1, n)])
    return SkeletalGraph.from_arrays(spheres, edges)


@pytest.fixture
def strip():
    return strip_graph()


@pytest.fixture
def grid():
    return grid_graph()


@pytest.fixture
def fan():
    return fan_graph()


@pytest.fixture
def chain():
    return chain_graph()
