#!/usr/bin/env python3
"""
Demo script for pyqmat: build (or load) a slab mesh, simplify it with the
spherical quadric error, report the deviation from a reference surface and
export the result.

Usage:
  python scripts/demo_simplify.py [--ma PATH] [--surface PATH] [--target N] [--outdir PATH]

Without --ma a synthetic medial sheet of a flat box is generated, together with
the box itself as reference surface.
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path

import numpy as np
import trimesh as tm

from pyqmat import SimplifyConfig, SkeletalGraph, export, read_ma, recompute_attributes, simplify
from pyqmat.surface import describe_surface, load_surface


def box_sheet(nx: int = 12, ny: int = 8, size=(3.0, 2.0), thickness: float = 0.4) -> SkeletalGraph:
    """Medial sheet of a box: spheres of radius thickness/2 on its mid-plane."""
    g = SkeletalGraph()
    xs = np.linspace(-size[0] / 2 + thickness / 2, size[0] / 2 - thickness / 2, nx)
    ys = np.linspace(-size[1] / 2 + thickness / 2, size[1] / 2 - thickness / 2, ny)
    for y in ys:
        for x in xs:
            g.add_vertex([x, y, 0.0], thickness / 2)
    for j in range(ny - 1):
        for i in range(nx - 1):
            a, b, c, d = j * nx + i, j * nx + i + 1, (j + 1) * nx + i + 1, (j + 1) * nx + i
            g.add_face(a, b, c)
            g.add_face(a, c, d)
    return g


def main() -> None:
    ap = argparse.ArgumentParser(description="pyqmat demo")
    ap.add_argument("--ma", type=str, default=None, help="Input .ma file")
    ap.add_argument("--surface", type=str, default=None, help="Reference surface mesh")
    ap.add_argument("--target", type=int, default=20, help="Target sphere count")
    ap.add_argument("--outdir", type=str, default="demo_out", help="Output directory")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if args.ma:
        graph = read_ma(args.ma)
        surface = load_surface(args.surface) if args.surface else None
    else:
        graph = box_sheet()
        surface = tm.creation.box(extents=(3.0, 2.0, 0.4))
    if surface is not None:
        print("Surface:", describe_surface(surface))
    print("Slab mesh:", graph.analyze())

    config = SimplifyConfig(track_approximation_error=surface is not None)
    result = simplify(graph, args.target, config, surface=surface, verbose=True)
    print(f"State: {result.state.value}, {result.initial_vertices} -> {result.final_vertices} spheres")
    if result.approximation_error is not None:
        err = result.approximation_error
        print(f"Hausdorff: {err.hausdorff:.4g} ({100 * err.relative_hausdorff:.2f}% of diagonal)")

    report = recompute_attributes(graph)
    print(f"Degenerate slabs: {len(report.degenerate_faces)}, degenerate cones: {len(report.degenerate_cones)}")

    outdir = Path(args.outdir)
    outdir.mkdir(parents=True, exist_ok=True)
    out = export(graph, outdir / "demo")
    print(f"Exported: {out}")


if __name__ == "__main__":
    main()
