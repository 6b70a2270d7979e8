import numpy as np
import pytest

from pyqmat.attributes import recompute_attributes
from pyqmat.errors import InputError
from pyqmat.io import export, export_name, read_ma, write_ma
from pyqmat.simplify import RunState, simplify


def test_write_read_roundtrip(strip, tmp_path):
    path = write_ma(strip, tmp_path / "strip.ma")
    g = read_ma(path)
    a, b = strip.to_arrays(), g.to_arrays()
    assert np.array_equal(a["spheres"], b["spheres"])
    assert np.array_equal(a["edges"], b["edges"])
    assert np.array_equal(a["faces"], b["faces"])


def test_header_and_records(strip, tmp_path):
    path = write_ma(strip, tmp_path / "strip.ma", attributes=False)
    lines = path.read_text().splitlines()
    assert lines[0] == "6 9 4"
    assert sum(1 for ln in lines if ln.startswith("v ")) == 6
    assert sum(1 for ln in lines if ln.startswith("e ")) == 9
    assert sum(1 for ln in lines if ln.startswith("f ")) == 4
    assert lines[1] == "v 0 0 0 0.29999999999999999"


def test_boundary_marking_survives(strip, tmp_path):
    strip.mark_boundary()
    g = read_ma(write_ma(strip, tmp_path / "b.ma"))
    assert all(g.vertices[v].boundary for v in g.valid_vertices())


def test_export_name(strip, tmp_path):
    assert str(export_name("out/model", strip)) == "out/model___v_6___e_9___f_4.ma"
    path = export(strip, tmp_path / "sub" / "model")
    assert path.name == "model___v_6___e_9___f_4.ma"
    assert path.exists()


def test_one_based_indices(tmp_path):
    path = tmp_path / "one.ma"
    path.write_text("3 3 1\nv 0 0 0 0.1\nv 1 0 0 0.1\nv 0 1 0 0.1\ne 1 2\ne 2 3\ne 1 3\nf 1 2 3\n")
    g = read_ma(path, one_based=True)
    assert (g.num_vertices, g.num_edges, g.num_faces) == (3, 3, 1)


@pytest.mark.parametrize(
    "text",
    [
        "",
        "# only a comment\n",
        "2 0 0\nv 0 0 0\nv 1 0 0 0.1\n",
        "2 0 0\nv 0 0 0 0.1\n",
        "1 0 0\nv a b c d\n",
        "2 1 0\nv 0 0 0 0.1\nv 1 0 0 0.1\ne 0 5\n",
        "3 0 1\nv 0 0 0 0.1\nv 1 0 0 0.1\nv 0 1 0 0.1\nf 0 1 1\n",
        "0 0 0\n",
        "1 0 0\nv 0 0 0 -1\n",
    ],
)
def test_malformed_files_raise(tmp_path, text):
    path = tmp_path / "bad.ma"
    path.write_text(text)
    with pytest.raises(InputError):
        read_ma(path)


def test_missing_file_raises(tmp_path):
    with pytest.raises(InputError):
        read_ma(tmp_path / "nope.ma")


def test_attribute_records_are_skipped_on_read(strip, tmp_path):
    recompute_attributes(strip)
    path = write_ma(strip, tmp_path / "attrs.ma")
    text = path.read_text()
    assert "\nvn " in text and "\nfn " in text and "\nec " in text
    g = read_ma(path)
    assert (g.num_vertices, g.num_edges, g.num_faces) == (6, 9, 4)


def test_export_can_be_simplified_again(grid, tmp_path):
    simplify(grid, 12)
    recompute_attributes(grid)
    path = export(grid, tmp_path / "grid")
    again = read_ma(path)
    assert again.num_vertices == 12
    result = simplify(again, 6)
    assert result.state in (RunState.CONVERGED, RunState.EXHAUSTED)
    assert result.final_vertices <= 12
