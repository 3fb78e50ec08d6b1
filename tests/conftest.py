from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pytest
from pydicom.dataset import Dataset, FileDataset, FileMetaDataset
from pydicom.sequence import Sequence as DicomSequence
from pydicom.uid import ExplicitVRLittleEndian, generate_uid

CT_IMAGE_STORAGE = "1.2.840.10008.5.1.4.1.1.2"
RT_STRUCTURE_SET_STORAGE = "1.2.840.10008.5.1.4.1.1.481.3"


def _file_dataset(path: Path, sop_class_uid: str) -> FileDataset:
    meta = FileMetaDataset()
    meta.MediaStorageSOPClassUID = sop_class_uid
    meta.MediaStorageSOPInstanceUID = generate_uid()
    meta.TransferSyntaxUID = ExplicitVRLittleEndian

    # encoding matches the TransferSyntaxUID above
    ds = FileDataset(
        str(path),
        {},
        file_meta=meta,
        preamble=b"\0" * 128,
        is_implicit_VR=False,
        is_little_endian=True,
    )
    ds.SOPClassUID = sop_class_uid
    ds.SOPInstanceUID = meta.MediaStorageSOPInstanceUID
    return ds


def make_ct_dataset(
    pixels: np.ndarray,
    z: float,
    path: Path = Path("CT.dcm"),
    position_xy=(0.0, 0.0),
    pixel_spacing=(1.0, 1.0),
    slice_thickness: Optional[float] = 2.0,
    intercept: float = -1024.0,
    slope: float = 1.0,
) -> FileDataset:
    """A CT image dataset with int16 pixel data. `pixel_spacing` is (row, column) as in DICOM."""
    pixels = np.asarray(pixels, dtype=np.int16)
    ds = _file_dataset(path, CT_IMAGE_STORAGE)
    ds.Modality = "CT"
    ds.Rows, ds.Columns = pixels.shape
    ds.PixelSpacing = [float(v) for v in pixel_spacing]
    if slice_thickness is not None:
        ds.SliceThickness = slice_thickness
    ds.ImagePositionPatient = [float(position_xy[0]), float(position_xy[1]), float(z)]
    ds.RescaleIntercept = intercept
    ds.RescaleSlope = slope
    ds.SamplesPerPixel = 1
    ds.PhotometricInterpretation = "MONOCHROME2"
    ds.BitsAllocated = 16
    ds.BitsStored = 16
    ds.HighBit = 15
    ds.PixelRepresentation = 1
    ds.PixelData = pixels.tobytes()
    return ds


def make_structure_dataset(
    contours: Dict[str, List[Sequence[float]]],
    path: Path = Path("RS.dcm"),
    empty: Sequence[str] = (),
) -> FileDataset:
    """An RTSTRUCT dataset. `contours` maps ROI names to lists of flat (x, y, z, x, y, z, ...) contours."""
    ds = _file_dataset(path, RT_STRUCTURE_SET_STORAGE)
    ds.Modality = "RTSTRUCT"

    rois = []
    roi_contours = []
    for number, name in enumerate(list(contours) + list(empty), start=1):
        roi = Dataset()
        roi.ROINumber = number
        roi.ROIName = name
        rois.append(roi)
        if name not in contours:
            continue

        roi_contour = Dataset()
        roi_contour.ReferencedROINumber = number
        items = []
        for data in contours[name]:
            contour = Dataset()
            contour.ContourGeometricType = "CLOSED_PLANAR"
            contour.NumberOfContourPoints = len(data) // 3
            contour.ContourData = [float(v) for v in data]
            items.append(contour)
        roi_contour.ContourSequence = DicomSequence(items)
        roi_contours.append(roi_contour)

    # contours listed in reverse to check pairing by number, not by position
    ds.StructureSetROISequence = DicomSequence(rois)
    ds.ROIContourSequence = DicomSequence(roi_contours[::-1])
    return ds


@pytest.fixture
def ct_series(tmp_path):
    """Write a small CT series and return its directory.

    Three 4 x 3 slices (rows x columns) at z = 0, 2, 4, written out of order. Stored values are
    offset by the -1024 intercept, so the CT numbers are (value - 24).
    """

    def write(directory: Path = tmp_path / "patient01", zs=(4.0, 0.0, 2.0)) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        for i, z in enumerate(zs):
            pixels = np.full((4, 3), 24 + 1000, dtype=np.int16)
            pixels[0, 0] = 24 + 25  # air
            pixels[0, 1] = 24 + 100  # lung
            pixels[3, 2] = 24 + 2000  # bone
            path = directory / f"CT.{i}.dcm"
            ds = make_ct_dataset(pixels, z, path=path, pixel_spacing=(0.5, 0.8))
            ds.save_as(str(path))
        return directory

    return write


@pytest.fixture
def ct_dataset():
    return make_ct_dataset


@pytest.fixture
def structure_dataset():
    return make_structure_dataset
