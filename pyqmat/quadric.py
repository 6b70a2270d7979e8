"""Spherical quadric error metrics over (x, y, z, r).

A quadric is a symmetric 5x5 matrix ``Q`` acting on the homogeneous sphere
vector ``m = [x, y, z, r, 1]``; the error of a sphere is ``m^T Q m``. For a
plane ``n . x + d = 0`` the sphere error is the squared amount by which the
sphere misses tangency, ``(n . c + d - r)^2``, i.e. ``Q = p p^T`` with
``p = [n, -1, d]``. Quadrics add, so the error of merging two spheres is the
sum of their quadrics evaluated at the merged sphere.
"""
from __future__ import annotations

import logging
import warnings
from typing import Iterable, Optional

import numpy as np

from .config import WeightingScheme
from .errors import DegenerateGeometry
from .primitives import edge_slope, slab_tangent_planes, triangle_area

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# slope clamp keeps the hyperbolic weight finite (h <= ~7.1)
MAX_SLOPE = 0.99
COND_LIMIT = 1e10


def homogeneous(sphere: np.ndarray) -> np.ndarray:
    return np.array([sphere[0], sphere[1], sphere[2], sphere[3], 1.0], dtype=float)


def zero_quadric() -> np.ndarray:
    return np.zeros((5, 5), dtype=float)


def plane_quadric(n: np.ndarray, d: float) -> np.ndarray:
    p = np.array([n[0], n[1], n[2], -1.0, d], dtype=float)
    return np.outer(p, p)


def ball_quadric(sphere: np.ndarray, k: float) -> np.ndarray:
    """``k * |m - m0|^2`` in the 4D (center, radius) space."""
    m0 = np.asarray(sphere, dtype=float)[:4]
    Q = zero_quadric()
    Q[:4, :4] = k * np.eye(4)
    Q[:4, 4] = -k * m0
    Q[4, :4] = -k * m0
    Q[4, 4] = k * float(m0 @ m0)
    return Q


def line_quadric(p0: np.ndarray, p1: np.ndarray, dims: int = 4) -> np.ndarray:
    """Squared distance to the line through ``p0`` and ``p1``.

    ``dims=4`` measures in (center, radius) space, ``dims=3`` only the center.
    Coincident points give the squared distance to that point.
    """
    a = np.asarray(p0, dtype=float)[:dims]
    b = np.asarray(p1, dtype=float)[:dims]
    direction = b - a
    length = float(np.linalg.norm(direction))
    P = np.eye(dims)
    if length > 1e-12:
        direction = direction / length
        P -= np.outer(direction, direction)
    Q = zero_quadric()
    Q[:dims, :dims] = P
    off = -P @ a
    Q[:dims, 4] = off
    Q[4, :dims] = off
    Q[4, 4] = float(a @ P @ a)
    return Q


def radius_quadric(r0: float) -> np.ndarray:
    """``(r - r0)^2``."""
    Q = zero_quadric()
    Q[3, 3] = 1.0
    Q[3, 4] = Q[4, 3] = -float(r0)
    Q[4, 4] = float(r0) ** 2
    return Q


def evaluate(Q: np.ndarray, sphere: np.ndarray) -> float:
    m = homogeneous(sphere)
    return max(0.0, float(m @ Q @ m))


def hyperbolic_weight(spheres: Iterable[np.ndarray]) -> float:
    """``1 / sqrt(1 - s^2)`` for the steepest radius slope ``s`` among the spheres."""
    sph = list(spheres)
    s = 0.0
    for i in range(len(sph)):
        for j in range(i + 1, len(sph)):
            s = max(s, edge_slope(sph[i], sph[j]))
    s = min(s, MAX_SLOPE)
    return 1.0 / np.sqrt(1.0 - s * s)


def slab_quadric(s0: np.ndarray, s1: np.ndarray, s2: np.ndarray,
                 scheme: WeightingScheme = WeightingScheme.HYPERBOLIC_RADIUS) -> np.ndarray:
    """Quadric contributed by one slab to each of its three spheres.

    Raises ``DegenerateGeometry`` if the slab has no tangent planes; callers
    fall back to :func:`slab_fallback_quadric`.
    """
    (n_up, d_up), (n_lo, d_lo) = slab_tangent_planes(s0, s1, s2)
    Q = plane_quadric(n_up, d_up) + plane_quadric(n_lo, d_lo)

    if scheme is WeightingScheme.ISOTROPIC:
        return Q
    if scheme is WeightingScheme.AREA:
        return triangle_area(s0[:3], s1[:3], s2[:3]) * Q

    h = hyperbolic_weight((s0, s1, s2))
    Q = h * Q
    if scheme is WeightingScheme.HYPERBOLIC_RADIUS and h > 1.0:
        extra = (radius_quadric(s0[3]) + radius_quadric(s1[3]) + radius_quadric(s2[3])) / 3.0
        Q = Q + (h - 1.0) * extra
    return Q


def slab_fallback_quadric(s0: np.ndarray, s1: np.ndarray, s2: np.ndarray) -> np.ndarray:
    """Sum of the three segment quadrics, used for slabs without tangent planes."""
    return line_quadric(s0, s1) + line_quadric(s1, s2) + line_quadric(s2, s0)


def minimize(Q: np.ndarray, candidates: Iterable[np.ndarray]) -> tuple[np.ndarray, float]:
    """Sphere minimising ``Q`` and its error.

    Solves the homogeneous system with its last row replaced by ``[0 0 0 0 1]``
    when well conditioned and the resulting radius is non-negative; otherwise
    returns the best of ``candidates``.
    """
    A = Q.copy()
    A[4, :] = [0.0, 0.0, 0.0, 0.0, 1.0]
    b = np.array([0.0, 0.0, 0.0, 0.0, 1.0])
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            if np.linalg.cond(A) < COND_LIMIT:
                m = np.linalg.solve(A, b)[:4]
                if m[3] >= 0.0 and np.all(np.isfinite(m)):
                    return m, evaluate(Q, m)
    except np.linalg.LinAlgError:
        pass

    best: Optional[np.ndarray] = None
    best_err = float("inf")
    for cand in candidates:
        cand = np.asarray(cand, dtype=float)
        err = evaluate(Q, cand)
        if err < best_err:
            best, best_err = cand, err
    if best is None:
        raise DegenerateGeometry("no candidate spheres to minimise over")
    return best.copy(), best_err


def optimal_radius(Q: np.ndarray, center: np.ndarray, fallback: float) -> float:
    """Radius minimising ``Q`` with the center held fixed (clamped at 0)."""
    a = float(Q[3, 3])
    if a <= 1e-15:
        return max(0.0, float(fallback))
    r = -(float(Q[3, :3] @ center) + float(Q[3, 4])) / a
    return max(0.0, r)
