"""Named regions of interest from a DICOM RT structure set, reduced to their bounding boxes."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

import numpy as np
import pydicom
from pydicom.dataset import Dataset

from . import geo
from .exceptions import UnknownStructureError

log = logging.getLogger(__name__)


class Structure:
    """One ROI and its contour points.

    Attributes:
        name (str): the ROIName.
        number (int): the ROINumber.
        points (np.ndarray): [N, 3] contour points in mm, from every contour of the ROI.
    """

    def __init__(self, name: str, number: int, points: np.ndarray) -> None:
        self.name = name
        self.number = number
        self.points = np.asarray(points, dtype=np.float64).reshape(-1, 3)

    @property
    def bounding_box(self) -> Optional[geo.BoundingBox]:
        """Smallest box holding every contour point, or None if the ROI has no contours."""
        if self.points.shape[0] == 0:
            return None
        return geo.BoundingBox.from_points(self.points)

    def __repr__(self):
        return f"Structure(name={self.name!r}, number={self.number}, num_points={self.points.shape[0]})"


class StructureSet:
    def __init__(self, structures: List[Structure]) -> None:
        self.structures = {s.name: s for s in structures}

    @classmethod
    def from_dataset(cls, ds: Dataset) -> StructureSet:
        """Pair each StructureSetROISequence item with its ROIContourSequence item by ROI number."""
        contours: Dict[int, List[np.ndarray]] = {}
        for roi_contour in getattr(ds, "ROIContourSequence", []):
            number = int(roi_contour.ReferencedROINumber)
            for contour in getattr(roi_contour, "ContourSequence", []):
                data = np.array([float(v) for v in contour.ContourData]).reshape(-1, 3)
                contours.setdefault(number, []).append(data)

        structures = []
        for roi in getattr(ds, "StructureSetROISequence", []):
            number = int(roi.ROINumber)
            name = str(roi.ROIName)
            if number in contours:
                points = np.concatenate(contours[number], axis=0)
            else:
                log.debug(f"structure {name} (ROI {number}) has no contours")
                points = np.zeros((0, 3))
            structures.append(Structure(name, number, points))

        log.debug(f"read {len(structures)} structures")
        return cls(structures)

    @classmethod
    def from_dicom(cls, path: Union[str, Path]) -> StructureSet:
        path = Path(path)
        log.info(f"reading structure set {path}")
        return cls.from_dataset(pydicom.dcmread(path))

    def names(self) -> List[str]:
        return list(self.structures.keys())

    def bounding_boxes(self) -> Dict[str, geo.BoundingBox]:
        """Bounding boxes of the structures that have contours, by name."""
        boxes = {}
        for name, structure in self.structures.items():
            bbox = structure.bounding_box
            if bbox is not None:
                boxes[name] = bbox
        return boxes

    def __getitem__(self, name: str) -> Structure:
        if name not in self.structures:
            raise UnknownStructureError(f"No such structure: {name}")
        return self.structures[name]

    def __contains__(self, name: object) -> bool:
        return name in self.structures

    def __iter__(self) -> Iterator[Structure]:
        return iter(self.structures.values())

    def __len__(self) -> int:
        return len(self.structures)
