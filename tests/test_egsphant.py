import os
import stat

import numpy as np
import pytest

from ctphantom import geo
from ctphantom.egsphant import read_egsphant, with_egsphant_suffix, write_egsphant
from ctphantom.material import MaterialDefinition, MaterialTable
from ctphantom.vol import Phantom, PhantomSlice


@pytest.fixture
def small_phantom():
    s = PhantomSlice(
        materials=np.array([[1, 2], [3, 4]]),
        densities=np.array([[0.01, 0.30], [0.50, 1.00]]),
        position=geo.point(0, 0, 0),
        voxel_size=geo.vector(1, 1, 2),
    )
    return Phantom([s])


def test_file_layout(tmp_path, small_phantom):
    path = write_egsphant(small_phantom, tmp_path / "small.egsphant")
    lines = path.read_text().split("\n")

    assert lines[:6] == [
        " 5",
        "AIR700ICRU",
        "LUNG700ICRU",
        "ICRUTISSUE700ICRU",
        "ICRPBONE700ICRU",
        "H2O700ICRU",
    ]
    assert lines[6] == "  1.0000000E+00" * 5
    assert lines[7] == "    2    2    1"
    assert lines[8:14] == [
        "   0.000000   0.100000   0.200000",
        "",
        "   0.000000   0.100000   0.200000",
        "",
        "   0.000000   0.200000",
        "",
    ]
    assert lines[14:17] == ["12", "34", ""]
    assert lines[17:20] == ["   0.010000   0.300000", "   0.500000   1.000000", ""]


def test_round_trip(tmp_path, small_phantom):
    path = write_egsphant(small_phantom, tmp_path / "small.egsphant")
    contents = read_egsphant(path)

    assert contents.material_names == MaterialTable.default().names()
    assert contents.size == (2, 2, 1)
    np.testing.assert_array_equal(contents.materials, [[[1, 2], [3, 4]]])
    np.testing.assert_allclose(contents.densities, [[[0.01, 0.30], [0.50, 1.00]]], atol=1e-6)
    np.testing.assert_allclose(contents.position, [0, 0, 0], atol=1e-6)
    np.testing.assert_allclose(contents.voxel_size, [1, 1, 2], atol=1e-6)


def test_round_trip_wrapped_rows(tmp_path):
    # 7 voxels per row, so each row of densities spans two lines
    rng = np.random.default_rng(0)
    hu = rng.integers(1, 5000, size=(2, 3, 7))
    hu[1, 2, 6] = 0
    phantom = Phantom.from_hu(hu, geo.point(-12.5, 30.0, -4.0), geo.vector(2.5, 1.25, 3.0))

    contents = read_egsphant(write_egsphant(phantom, tmp_path / "wrapped.egsphant"))

    assert contents.size == (7, 3, 2)
    np.testing.assert_array_equal(contents.materials, phantom.materials)
    np.testing.assert_allclose(contents.densities, phantom.densities, atol=1e-6)
    assert contents.materials[1, 2, 6] == 0
    np.testing.assert_allclose(contents.edges[0], (-12.5 + 2.5 * np.arange(8)) / 10, atol=1e-6)
    np.testing.assert_allclose(contents.edges[2], [-0.4, -0.1, 0.2], atol=1e-6)


def test_index_too_large(tmp_path, small_phantom):
    s = small_phantom[0]
    materials = np.array(s.materials)
    materials[0, 0] = 10
    phantom = Phantom([PhantomSlice(materials, s.densities, s.position, s.voxel_size)])

    with pytest.raises(ValueError):
        write_egsphant(phantom, tmp_path / "bad.egsphant")
    assert list(tmp_path.iterdir()) == []


def test_table_too_large(tmp_path, small_phantom):
    table = MaterialTable([MaterialDefinition(f"M{i}") for i in range(10)])
    with pytest.raises(ValueError):
        write_egsphant(small_phantom, tmp_path / "bad.egsphant", table)
    assert list(tmp_path.iterdir()) == []


def test_failed_write_keeps_existing_file(tmp_path, small_phantom):
    path = tmp_path / "small.egsphant"
    path.write_text("previous\n")

    table = MaterialTable([MaterialDefinition("AIR700ICRU")])
    with pytest.raises(ValueError):
        write_egsphant(small_phantom, path, table)

    assert path.read_text() == "previous\n"
    assert list(tmp_path.iterdir()) == [path]


def test_overwrite(tmp_path, small_phantom):
    path = tmp_path / "small.egsphant"
    path.write_text("previous\n")
    write_egsphant(small_phantom, path)
    assert read_egsphant(path).size == (2, 2, 1)
    assert list(tmp_path.iterdir()) == [path]


def test_truncated_file(tmp_path, small_phantom):
    path = write_egsphant(small_phantom, tmp_path / "small.egsphant")
    text = path.read_text()
    path.write_text(text[: len(text) // 2])
    with pytest.raises(ValueError):
        read_egsphant(path)


def test_suffix(tmp_path):
    assert with_egsphant_suffix(tmp_path / "case") == tmp_path / "case.egsphant"
    assert with_egsphant_suffix(tmp_path / "case.egsphant") == tmp_path / "case.egsphant"


def test_file_mode_follows_umask(tmp_path, small_phantom):
    mask = os.umask(0o022)
    try:
        path = write_egsphant(small_phantom, tmp_path / "small.egsphant")
        plain = tmp_path / "plain.txt"
        plain.write_text("plain\n")
    finally:
        os.umask(mask)

    mode = stat.S_IMODE(path.stat().st_mode)
    assert mode == stat.S_IMODE(plain.stat().st_mode)
    assert mode == 0o644


def test_header_keeps_material_name_case(tmp_path, small_phantom):
    table = MaterialTable(
        [
            MaterialDefinition("Air521icru"),
            MaterialDefinition("Lung521icru"),
            MaterialDefinition("Tissue521icru"),
            MaterialDefinition("Bone521icru"),
        ]
    )
    path = write_egsphant(small_phantom, tmp_path / "custom.egsphant", table)
    assert read_egsphant(path).material_names == [
        "Air521icru",
        "Lung521icru",
        "Tissue521icru",
        "Bone521icru",
    ]
