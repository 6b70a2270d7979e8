"""pyqmat: Medial axis (slab mesh) simplification with spherical quadric error.

Public API:
- SkeletalGraph.from_arrays(spheres, edges, faces, boundary=None)
- SimplifyConfig(scale_factor=1e-5, boundary_weight=1.0, weighting_scheme=..., boundary_mode=...)
- simplify(graph, target, config=None, surface=None)
- CollapseEngine(graph, config).run(target)
- recompute_attributes(graph)
- approximation_error(graph, surface)
- read_ma(path), write_ma(graph, path), export(graph, prefix)

"""
from .config import BoundaryPreservation, SimplifyConfig, WeightingScheme
from .errors import ConfigError, DegenerateGeometry, InputError, QMATError, TopologyViolation
from .graph import SkeletalGraph
from .cost import CostModel
from .simplify import CollapseEngine, RunState, SimplifyResult, simplify
from .attributes import recompute_attributes
from .audit import ErrorReport, approximation_error
from .io import export, read_ma, write_ma

__all__ = [
    "BoundaryPreservation",
    "SimplifyConfig",
    "WeightingScheme",
    "ConfigError",
    "DegenerateGeometry",
    "InputError",
    "QMATError",
    "TopologyViolation",
    "SkeletalGraph",
    "CostModel",
    "CollapseEngine",
    "RunState",
    "SimplifyResult",
    "simplify",
    "recompute_attributes",
    "ErrorReport",
    "approximation_error",
    "export",
    "read_ma",
    "write_ma",
]
