"""Loading CT slices from DICOM files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pydicom
from pydicom.dataset import Dataset

from . import geo
from .exceptions import ConsistencyError

log = logging.getLogger(__name__)


# EGSnrc CT numbers put water at 1000, so air is near 0.
DEFAULT_CT_NUMBER_OFFSET = 1000

MANIFEST_NAME = "File_names"


class CTImage:
    """A single CT slice, calibrated, with its geometry.

    Attributes:
        hu_values (np.ndarray): [rows, columns] calibrated CT numbers, int32.
        position (geo.Point3D): ImagePositionPatient, in mm.
        voxel_size (geo.Vector3D): (column spacing, row spacing, slice thickness), in mm.
        path (Optional[Path]): the file the image was read from.
    """

    def __init__(
        self,
        hu_values: np.ndarray,
        position: geo.Point3D,
        voxel_size: geo.Vector3D,
        path: Optional[Path] = None,
    ) -> None:
        self.hu_values = np.asarray(hu_values)
        if self.hu_values.ndim != 2:
            raise ValueError(f"CT image must be 2D, got shape {self.hu_values.shape}")
        self.position = geo.point(position)
        self.voxel_size = geo.vector(voxel_size)
        self.path = None if path is None else Path(path)

    @classmethod
    def from_dataset(
        cls,
        ds: Dataset,
        path: Optional[Path] = None,
        ct_number_offset: int = DEFAULT_CT_NUMBER_OFFSET,
        slice_thickness: Optional[float] = None,
    ) -> CTImage:
        """Make a CT image from a pydicom dataset.

        Args:
            ds (Dataset): a CT image dataset.
            path (Path, optional): the file it came from.
            ct_number_offset (int, optional): added after the rescale, to move from HU to the CT
                number scale of the ramp. Defaults to 1000.
            slice_thickness (float, optional): used if the dataset has no SliceThickness.
        """
        # PixelSpacing is (row spacing, column spacing), i.e. (y, x)
        spacing_y, spacing_x = (float(v) for v in ds.PixelSpacing)
        if hasattr(ds, "SliceThickness") and ds.SliceThickness not in (None, ""):
            thickness = float(ds.SliceThickness)
        elif slice_thickness is not None:
            log.debug(f"{path}: no SliceThickness, using {slice_thickness}")
            thickness = float(slice_thickness)
        else:
            raise ValueError(
                f"{path}: image has no SliceThickness; please provide it manually"
            )

        position = geo.point([float(v) for v in ds.ImagePositionPatient])

        slope = float(getattr(ds, "RescaleSlope", 1) or 1)
        intercept = float(getattr(ds, "RescaleIntercept", 0) or 0)
        pixels = ds.pixel_array.astype(np.float64)
        hu_values = np.rint(pixels * slope + intercept + ct_number_offset).astype(np.int32)

        rows, columns = int(ds.Rows), int(ds.Columns)
        if hu_values.shape != (rows, columns):
            raise ValueError(
                f"{path}: pixel data shape {hu_values.shape} does not match Rows x Columns = {(rows, columns)}"
            )

        return cls(hu_values, position, geo.vector(spacing_x, spacing_y, thickness), path)

    @classmethod
    def from_file(cls, path: Union[str, Path], **kwargs) -> CTImage:
        path = Path(path)
        log.debug(f"reading {path}")
        ds = pydicom.dcmread(path)
        return cls.from_dataset(ds, path=path, **kwargs)

    @property
    def size(self) -> Tuple[int, int]:
        """Image size in pixels, (width, height) == (columns, rows)."""
        return (self.hu_values.shape[1], self.hu_values.shape[0])

    def __repr__(self):
        return f"CTImage(path={self.path}, position={self.position!r}, size={self.size})"


def sort_by_z(images: Iterable[CTImage]) -> List[CTImage]:
    """Sort images by ascending z.

    Raises:
        ConsistencyError: if two images share a z position.
    """
    images = sorted(images, key=lambda img: img.position.z)
    for a, b in zip(images[:-1], images[1:]):
        if a.position.z == b.position.z:
            raise ConsistencyError(
                f"two CT images at z = {a.position.z}: {a.path} and {b.path}"
            )
    return images


def find_ct_files(directory: Union[str, Path], pattern: str = "CT*.dcm") -> List[Path]:
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"{directory} is not a directory.")

    paths = sorted(directory.glob(pattern))
    if len(paths) == 0:
        raise FileNotFoundError(f"No CT images matching {pattern} found in {directory}")
    return paths


def load_ct_images(
    directory: Union[str, Path],
    pattern: str = "CT*.dcm",
    ct_number_offset: int = DEFAULT_CT_NUMBER_OFFSET,
    slice_thickness: Optional[float] = None,
) -> List[CTImage]:
    """Load all CT images in a directory, sorted by ascending z.

    Args:
        directory: the case folder holding the CT images.
        pattern (str, optional): glob for the CT files. Defaults to "CT*.dcm".
        ct_number_offset (int, optional): see `CTImage.from_dataset`. Defaults to 1000.
        slice_thickness (float, optional): for images without a SliceThickness.

    Returns:
        List[CTImage]: the images, by ascending z.
    """
    paths = find_ct_files(directory, pattern)
    log.info(f"loading {len(paths)} CT images from {directory}")
    images = [
        CTImage.from_file(
            p, ct_number_offset=ct_number_offset, slice_thickness=slice_thickness
        )
        for p in paths
    ]
    return sort_by_z(images)


def write_file_list(
    images: Sequence[CTImage],
    path: Union[str, Path],
    prefix: str = "MC_",
) -> Path:
    """Write the list of CT image files, sorted by z, one per line.

    Each line is `prefix + filename`. The order matches the phantom's slice order.
    """
    path = Path(path)
    if path.is_dir():
        path = path / MANIFEST_NAME

    lines = []
    for img in sort_by_z(images):
        if img.path is None:
            raise ValueError(f"{img!r} has no file name to list")
        lines.append(f"{prefix}{img.path.name}\n")

    with open(path, "w") as f:
        f.writelines(lines)
    log.debug(f"wrote {len(lines)} file names to {path}")
    return path
