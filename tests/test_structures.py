import numpy as np
import pytest

from ctphantom import geo
from ctphantom.exceptions import UnknownStructureError
from ctphantom.structures import StructureSet
from ctphantom.vol import Phantom


@pytest.fixture
def structure_set(structure_dataset):
    ds = structure_dataset(
        {
            "BODY": [
                [-10, -20, 0, 10, -20, 0, 10, 20, 0, -10, 20, 0],
                [-12, -18, 4, 12, -18, 4, 0, 22, 4],
            ],
            "PTV": [[5, 6, 2, 7, 6, 2, 7, 9, 2]],
        },
        empty=["COUCH"],
    )
    return StructureSet.from_dataset(ds)


def test_from_dataset(structure_set):
    assert structure_set.names() == ["BODY", "PTV", "COUCH"]
    assert len(structure_set) == 3
    assert structure_set["PTV"].number == 2
    assert structure_set["BODY"].points.shape == (7, 3)
    assert structure_set["COUCH"].bounding_box is None


def test_bounding_boxes(structure_set):
    boxes = structure_set.bounding_boxes()

    assert set(boxes) == {"BODY", "PTV"}
    assert boxes["BODY"].lower == geo.point(-12, -20, 0)
    assert boxes["BODY"].upper == geo.point(12, 22, 4)

    # the true extent of the contours, not stretched to the origin
    assert boxes["PTV"].lower == geo.point(5, 6, 2)
    assert boxes["PTV"].upper == geo.point(7, 9, 2)


def test_unknown_structure(structure_set):
    assert "PTV" in structure_set
    assert "GTV" not in structure_set
    with pytest.raises(UnknownStructureError):
        structure_set["GTV"]


def test_from_dicom(tmp_path, structure_dataset):
    path = tmp_path / "RS.test.dcm"
    structure_dataset({"PTV": [[5, 6, 2, 7, 6, 2, 7, 9, 2]]}, path=path).save_as(str(path))

    structure_set = StructureSet.from_dicom(path)

    assert structure_set.names() == ["PTV"]
    assert structure_set.bounding_boxes()["PTV"].upper == geo.point(7, 9, 2)


def test_crop_phantom_to_structure(structure_set):
    hu = np.full((4, 10, 10), 1000)
    phantom = Phantom.from_hu(hu, geo.point(0, 0, 0), geo.vector(1, 1, 1))

    cropped = phantom.resize_to_structure("PTV", structure_set.bounding_boxes())

    assert cropped.size == (2, 3, 1)
    assert cropped.position == geo.point(5, 6, 2)

    with pytest.raises(UnknownStructureError):
        phantom.resize_to_structure("COUCH", structure_set.bounding_boxes())
