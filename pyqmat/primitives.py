"""Sphere, cone and slab geometry.

A sphere is stored as a length-4 array ``(x, y, z, r)``. Slabs are the convex
hulls of three spheres; their envelope is bounded by the two planes tangent to
all three spheres.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import DegenerateGeometry

EPS = 1e-12
COLLINEAR_SIN = 1e-9


def triangle_area(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray) -> float:
    return 0.5 * float(np.linalg.norm(np.cross(p1 - p0, p2 - p0)))


def triangle_normal(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray) -> np.ndarray:
    """Unit normal of a triangle, following the right-hand rule on (p0, p1, p2)."""
    n = np.cross(p1 - p0, p2 - p0)
    length = float(np.linalg.norm(n))
    if length < EPS:
        raise DegenerateGeometry("collinear or coincident triangle corners")
    return n / length


def edge_slope(s0: np.ndarray, s1: np.ndarray) -> float:
    """|dr| / |dc| between two spheres; 1.0 or more when one contains the other."""
    dc = float(np.linalg.norm(s1[:3] - s0[:3]))
    dr = abs(float(s1[3] - s0[3]))
    if dc < EPS:
        return 0.0 if dr < EPS else 1.0
    return dr / dc


def slab_tangent_planes(s0: np.ndarray, s1: np.ndarray, s2: np.ndarray) -> tuple[tuple[np.ndarray, float], tuple[np.ndarray, float]]:
    """Return the two planes tangent to three spheres.

    Each plane is ``(n, d)`` with unit normal ``n`` such that every center lies
    on the positive side at distance equal to its radius, i.e.
    ``n . c_i + d = r_i``. The tangent point of sphere ``i`` is ``c_i - r_i n``.

    Raises
    ------
    DegenerateGeometry
        If the centers are collinear or no common tangent plane exists (one
        sphere swallows the slab).
    """
    c0, c1, c2 = s0[:3], s1[:3], s2[:3]
    u = c1 - c0
    v = c2 - c0
    w = np.cross(u, v)
    wn = float(np.linalg.norm(w))
    # sine of the corner angle at c0; below this the Gram system is numerically singular
    if wn < COLLINEAR_SIN * float(np.linalg.norm(u)) * float(np.linalg.norm(v)) or wn < EPS:
        raise DegenerateGeometry("slab centers are collinear")

    # n = x u + y v + t w with n.u = r1 - r0, n.v = r2 - r0
    G = np.array([[u @ u, u @ v], [u @ v, v @ v]])
    rhs = np.array([s1[3] - s0[3], s2[3] - s0[3]])
    try:
        x, y = np.linalg.solve(G, rhs)
    except np.linalg.LinAlgError:
        raise DegenerateGeometry("slab centers are collinear") from None
    n0 = x * u + y * v
    rem = 1.0 - float(n0 @ n0)
    if rem < 0.0:
        raise DegenerateGeometry("spheres admit no common tangent plane")
    t = np.sqrt(rem) / wn

    planes = []
    for sign in (1.0, -1.0):
        n = n0 + sign * t * w
        n = n / np.linalg.norm(n)
        d = float(s0[3] - n @ c0)
        planes.append((n, d))
    return planes[0], planes[1]


def tangent_triangle(spheres: np.ndarray, n: np.ndarray) -> np.ndarray:
    """Tangent points of three spheres on a plane with normal ``n``.

    The corners are ordered so the triangle faces away from the spheres (-n).
    """
    pts = spheres[:, :3] - spheres[:, 3:4] * n[None, :]
    if np.cross(pts[1] - pts[0], pts[2] - pts[0]) @ n > 0:
        pts = pts[[0, 2, 1]]
    return pts


@dataclass
class EdgeCone:
    """Truncated cone tangent to the two spheres of an edge."""

    axis: np.ndarray            # unit vector from the first to the second center
    half_angle: float           # angle between the generator and the axis (radians)
    base_center: np.ndarray     # tangent circle on the first sphere
    base_radius: float
    top_center: np.ndarray      # tangent circle on the second sphere
    top_radius: float
    apex: Optional[np.ndarray] = None
    is_cylinder: bool = False


def sphere_cone(s0: np.ndarray, s1: np.ndarray, *, rtol: float = 1e-9) -> EdgeCone:
    """Cone enveloping two spheres.

    With equal radii the cone degenerates to a cylinder (no apex). Raises
    ``DegenerateGeometry`` when one sphere contains the other.
    """
    c0, c1 = s0[:3], s1[:3]
    r0, r1 = float(s0[3]), float(s1[3])
    diff = c1 - c0
    length = float(np.linalg.norm(diff))
    if length < EPS or length <= abs(r1 - r0):
        raise DegenerateGeometry("one sphere contains the other")
    axis = diff / length
    sin_a = (r0 - r1) / length
    cos_a = np.sqrt(max(0.0, 1.0 - sin_a * sin_a))
    is_cylinder = abs(r0 - r1) <= rtol * max(1.0, r0, r1)
    apex = None
    if not is_cylinder:
        apex = c0 + axis * (r0 * length / (r0 - r1))
    return EdgeCone(
        axis=axis,
        half_angle=float(np.arcsin(np.clip(sin_a, -1.0, 1.0))),
        base_center=c0 + axis * (r0 * sin_a),
        base_radius=r0 * cos_a,
        top_center=c1 + axis * (r1 * sin_a),
        top_radius=r1 * cos_a,
        apex=apex,
        is_cylinder=bool(is_cylinder),
    )


def closest_point_on_segment(p: np.ndarray, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    ab = b - a
    denom = float(ab @ ab)
    if denom < EPS:
        return a.copy()
    t = float(np.clip((p - a) @ ab / denom, 0.0, 1.0))
    return a + t * ab
