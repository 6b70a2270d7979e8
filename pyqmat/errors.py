"""Exception types raised by pyqmat.

``InputError`` and ``ConfigError`` derive from ``ValueError`` so callers that
already guard on bad arguments keep working.
"""
from __future__ import annotations


class QMATError(Exception):
    """Base class for all pyqmat errors."""


class InputError(QMATError, ValueError):
    """Malformed or empty skeletal graph (dangling references, no spheres)."""


class ConfigError(QMATError, ValueError):
    """Invalid configuration value or simplification target."""


class TopologyViolation(QMATError):
    """A candidate collapse would break manifoldness or invert a slab."""

    def __init__(self, edge_id: int, reason: str):
        super().__init__(f"edge {edge_id}: {reason}")
        self.edge_id = edge_id
        self.reason = reason


class DegenerateGeometry(QMATError, ArithmeticError):
    """Zero-area slab, coincident spheres, or a sphere swallowing its neighbour."""
