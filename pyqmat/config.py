from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from .errors import ConfigError


class WeightingScheme(str, Enum):
    """How a slab's contribution is folded into its spheres' quadrics."""

    ISOTROPIC = "isotropic"
    AREA = "area"
    HYPERBOLIC = "hyperbolic"
    HYPERBOLIC_RADIUS = "hyperbolic_radius"


class BoundaryPreservation(str, Enum):
    """Treatment of spheres lying on the skeleton's boundary curves."""

    UNCONSTRAINED = "unconstrained"
    FROZEN = "frozen"
    PROJECTED = "projected"


def _coerce(enum_cls, value, name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"Unknown {name}: {value!r} (expected one of {choices})") from None


@dataclass(frozen=True)
class SimplifyConfig:
    """Options for one simplification run.

    Parameters
    ----------
    scale_factor : float, default 1e-5
        Weight ``k`` of the ball term ``k * |m - m0|^2`` anchoring every sphere
        (center and radius) to its initial value. Small values let the slab
        tangent-plane terms dominate.
    boundary_weight : float, default 1.0
        Multiplier of the boundary penalty.
    weighting_scheme : WeightingScheme or str, default "hyperbolic_radius"
        Per-slab weighting of the quadric contribution.
    boundary_mode : BoundaryPreservation or str, default "unconstrained"
        "frozen" never collapses an edge touching a boundary sphere,
        "projected" snaps merged boundary spheres back onto the boundary curve.
    prevent_inversion : bool, default False
        Reject collapses that flip an incident slab or fold a junction edge.
    inversion_threshold : float, default 0.0
        Minimum cosine between a slab normal before and after the collapse.
    track_approximation_error : bool, default False
        Measure envelope-to-surface deviation at the end of the run. Needs a
        reference surface.
    error_samples : int, default 6
        Envelope samples per segment/slab side used by the error audit.
    """

    scale_factor: float = 1e-5
    boundary_weight: float = 1.0
    weighting_scheme: WeightingScheme = WeightingScheme.HYPERBOLIC_RADIUS
    boundary_mode: BoundaryPreservation = BoundaryPreservation.UNCONSTRAINED
    prevent_inversion: bool = False
    inversion_threshold: float = 0.0
    track_approximation_error: bool = False
    error_samples: int = 6

    def __post_init__(self):
        # frozen: go through object.__setattr__ for the coerced enums
        object.__setattr__(
            self, "weighting_scheme", _coerce(WeightingScheme, self.weighting_scheme, "weighting_scheme")
        )
        object.__setattr__(
            self, "boundary_mode", _coerce(BoundaryPreservation, self.boundary_mode, "boundary_mode")
        )
        if not float(self.scale_factor) > 0.0:
            raise ConfigError("scale_factor must be positive")
        if float(self.boundary_weight) < 0.0:
            raise ConfigError("boundary_weight must be non-negative")
        if not -1.0 <= float(self.inversion_threshold) <= 1.0:
            raise ConfigError("inversion_threshold must lie in [-1, 1]")
        if int(self.error_samples) < 2:
            raise ConfigError("error_samples must be at least 2")

    def replace(self, **changes) -> "SimplifyConfig":
        return replace(self, **changes)
