"""
Command line entry point: simplify a medial axis stored as ``.ma``.

Usage:
  pyqmat-simplify <input.ma> [--simplify N] [--k VALUE] [--output PREFIX]
                  [--surface MESH] [--track-error] [--verbose]

Without ``--simplify`` the graph is only checked and summarised.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .attributes import recompute_attributes
from .config import BoundaryPreservation, SimplifyConfig, WeightingScheme
from .io import export, read_ma
from .simplify import CollapseEngine
from .surface import load_surface


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {text!r}") from None
    if value <= 0:
        raise argparse.ArgumentTypeError("value must be positive")
    return value


def _positive_float(text: str) -> float:
    try:
        value = float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {text!r}") from None
    if value <= 0:
        raise argparse.ArgumentTypeError("value must be positive")
    return value


def default_prefix(input_file: str) -> str:
    p = str(input_file)
    return p[:-3] if p.endswith(".ma") else p


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="pyqmat-simplify",
        description="Simplify a medial axis (slab mesh) to a target sphere count.",
    )
    ap.add_argument("input", type=str, help="Input .ma file (raw or previously simplified medial axis)")
    ap.add_argument("--simplify", type=_positive_int, default=None, help="Simplify to N spheres")
    ap.add_argument("--k", type=_positive_float, default=1e-5, help="Scale factor of the ball term (default: 1e-5)")
    ap.add_argument("--output", type=str, default=None, help="Output prefix (default: input path without .ma)")
    ap.add_argument("--surface", type=str, default=None, help="Reference surface mesh for the error audit")
    ap.add_argument("--boundary-weight", type=float, default=1.0, help="Boundary penalty weight (default: 1.0)")
    ap.add_argument(
        "--weighting",
        type=str,
        default=WeightingScheme.HYPERBOLIC_RADIUS.value,
        choices=[m.value for m in WeightingScheme],
        help="Slab quadric weighting scheme",
    )
    ap.add_argument(
        "--boundary-mode",
        type=str,
        default=BoundaryPreservation.UNCONSTRAINED.value,
        choices=[m.value for m in BoundaryPreservation],
        help="Boundary sphere handling",
    )
    ap.add_argument("--prevent-inversion", action="store_true", help="Reject collapses that flip a slab")
    ap.add_argument("--track-error", action="store_true", help="Measure envelope/surface deviation (needs --surface)")
    ap.add_argument("--verbose", "-v", action="store_true", help="Log progress")
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    prefix = args.output or default_prefix(args.input)

    print(f"Input file: {args.input}")
    print(f"Output prefix: {prefix}")
    print(f"K value: {args.k}")

    try:
        graph = read_ma(args.input)
        config = SimplifyConfig(
            scale_factor=args.k,
            boundary_weight=args.boundary_weight,
            weighting_scheme=args.weighting,
            boundary_mode=args.boundary_mode,
            prevent_inversion=args.prevent_inversion,
            track_approximation_error=args.track_error,
        )
        surface = load_surface(args.surface) if args.surface else None
        engine = CollapseEngine(graph, config, surface=surface, verbose=args.verbose)
    except ValueError as e:
        # InputError, ConfigError and surface loading failures
        print(f"Error: {e}", file=sys.stderr)
        return 1

    summary = graph.analyze()
    print(
        f"Loaded slab mesh with {summary['vertex_count']} vertices, "
        f"{summary['edge_count']} edges, {summary['face_count']} faces "
        f"({summary['component_count']} components)"
    )
    if args.simplify is None:
        return 0

    current = summary["vertex_count"]
    if args.simplify >= current:
        print(
            f"Warning: Target vertex count ({args.simplify}) >= current count ({current}). "
            "Skipping simplification."
        )
        return 0

    print(f"Simplifying from {current} to {args.simplify} vertices (removing {current - args.simplify})")
    result = engine.run(args.simplify)

    print(f"  Final vertex count: {result.final_vertices} ({result.state.value}, {result.collapses} collapses)")
    for w in result.warnings:
        print(f"Warning: {w}")
    if result.approximation_error is not None:
        err = result.approximation_error
        print(f"  Hausdorff error: {err.hausdorff:.6g} ({100.0 * err.relative_hausdorff:.3f}% of diagonal)")

    recompute_attributes(graph, verbose=args.verbose)
    Path(prefix).parent.mkdir(parents=True, exist_ok=True)
    out = export(graph, prefix)
    print(f"  Simplified MA exported to: {out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
