import numpy as np
import pytest

from pyqmat.audit import approximation_error, envelope_distance, envelope_spheres
from pyqmat.config import SimplifyConfig
from pyqmat.simplify import simplify
from pyqmat.surface import example_surface


def test_envelope_distance_inside_and_outside():
    spheres = np.array([[0.0, 0.0, 0.0, 1.0]])
    pts = np.array([[2.0, 0.0, 0.0], [0.5, 0.0, 0.0], [0.0, 1.0, 0.0]])
    d = envelope_distance(pts, spheres)
    assert d == pytest.approx([1.0, 0.5, 0.0])


def test_envelope_samples_cover_segments(chain):
    S = envelope_spheres(chain, samples=6)
    # 11 spheres plus 4 interior samples on each of the 10 segments
    assert S.shape == (11 + 40, 4)
    assert np.allclose(S[:, :2], 0.0)


def test_capsule_inside_cylinder(chain):
    surface = example_surface("cylinder", radius=0.5, height=2.0)
    report = approximation_error(chain, surface)
    # worst case is the cylinder rim against the capsule ends
    assert 0.0 < report.hausdorff < 0.5
    assert report.surface_to_envelope_max == pytest.approx(np.sqrt(0.5) - 0.5, abs=0.05)
    assert report.surface_to_envelope_mean <= report.surface_to_envelope_max
    assert 0.0 < report.relative_hausdorff < 1.0


def test_engine_attaches_error_report(chain):
    surface = example_surface("cylinder", radius=0.5, height=2.0)
    config = SimplifyConfig(track_approximation_error=True)
    result = simplify(chain, 3, config, surface=surface)
    assert result.converged
    err = result.approximation_error
    assert err is not None
    assert np.isfinite(err.hausdorff)
    assert err.relative_hausdorff < 0.5
