"""Axis-aligned geometry in patient space.

All lengths are in millimeters, in the DICOM patient coordinate system. Only axis-aligned shapes are
needed here, so points and vectors are plain 3-vectors rather than homogeneous coordinates.

"""

from __future__ import annotations

import logging
from typing import Any, Iterator, List, NamedTuple, Tuple, Union

import numpy as np

log = logging.getLogger(__name__)


class PointOrVector:
    """A 3-vector wrapping a single array called `data`."""

    dtype = np.float64
    data: np.ndarray

    def __init__(self, data: Any) -> None:
        data = data.data if isinstance(data, PointOrVector) else np.array(data)
        data = data.astype(self.dtype).reshape(-1)
        if data.shape != (3,):
            raise ValueError(f"expected 3 components, got {data.shape}")
        self.data = data
        self.data.flags.writeable = False

    @property
    def x(self) -> float:
        return float(self.data[0])

    @property
    def y(self) -> float:
        return float(self.data[1])

    @property
    def z(self) -> float:
        return float(self.data[2])

    def __array__(self, *args, **kwargs):
        return np.array(self.data, *args, **kwargs)

    def __getitem__(self, key):
        return self.data.__getitem__(key)

    def __iter__(self) -> Iterator[float]:
        return iter(self.data.tolist())

    def __len__(self) -> int:
        return 3

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PointOrVector):
            return NotImplemented
        return type(self) is type(other) and np.array_equal(self.data, other.data)

    def __hash__(self) -> int:
        return hash((type(self).__name__, tuple(self.data.tolist())))

    def __str__(self):
        return f"{self.__class__.__name__[0]}{np.array_str(self.data, suppress_small=True)}"

    def __repr__(self):
        return f"{self.__class__.__name__}({self.x}, {self.y}, {self.z})"

    def tolist(self) -> List[float]:
        return self.data.tolist()

    def isclose(self, other: PointOrVector, atol: float = 1e-6) -> bool:
        return bool(np.allclose(self.data, np.array(other), rtol=0, atol=atol))


class Point3D(PointOrVector):
    def __add__(self, other: Vector3D) -> Point3D:
        if isinstance(other, Point3D):
            raise TypeError("cannot add two points")
        return Point3D(self.data + np.array(other))

    def __sub__(self, other: Union[Point3D, Vector3D]) -> Union[Point3D, Vector3D]:
        if isinstance(other, Point3D):
            return Vector3D(self.data - other.data)
        return Point3D(self.data - np.array(other))

    def with_xy(self, x: float, y: float) -> Point3D:
        """Get a copy of the point with the in-plane coordinates replaced."""
        return Point3D([x, y, self.z])


class Vector3D(PointOrVector):
    def __add__(self, other: Vector3D) -> Vector3D:
        if isinstance(other, Point3D):
            return Point3D(self.data + other.data)
        return Vector3D(self.data + np.array(other))

    def __mul__(self, other: Any) -> Vector3D:
        return Vector3D(self.data * np.array(other))

    __rmul__ = __mul__


def point(*args) -> Point3D:
    """Make a Point3D from (x, y, z), an array, or another point."""
    if len(args) == 1:
        return Point3D(args[0])
    elif len(args) == 3:
        return Point3D(args)
    else:
        raise TypeError(f"invalid arguments for point: {args}")


def vector(*args) -> Vector3D:
    """Make a Vector3D from (x, y, z), an array, or another vector."""
    if len(args) == 1:
        return Vector3D(args[0])
    elif len(args) == 3:
        return Vector3D(args)
    else:
        raise TypeError(f"invalid arguments for vector: {args}")


class Rect(NamedTuple):
    """An in-plane rectangle: origin (x, y) and extent (width, height), in mm."""

    x: float
    y: float
    width: float
    height: float

    @property
    def origin(self) -> Tuple[float, float]:
        return (self.x, self.y)

    @property
    def size(self) -> Tuple[float, float]:
        return (self.width, self.height)


class BoundingBox(NamedTuple):
    """Axis-aligned box given by its lower and upper corners.

    Unpacks as `lower, upper`, like the corner tuples returned elsewhere in the package.

    """

    lower: Point3D
    upper: Point3D

    @classmethod
    def from_corners(cls, lower: Any, upper: Any) -> BoundingBox:
        """Make a box from any two opposite corners, sorting each axis."""
        a = np.array(point(lower))
        b = np.array(point(upper))
        return cls(point(np.minimum(a, b)), point(np.maximum(a, b)))

    @classmethod
    def from_points(cls, points: np.ndarray) -> BoundingBox:
        """Smallest box containing an [N, 3] array of points."""
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if points.shape[0] == 0:
            raise ValueError("cannot bound an empty set of points")
        return cls(point(points.min(axis=0)), point(points.max(axis=0)))

    @property
    def extent(self) -> Vector3D:
        return self.upper - self.lower

    def xy_rect(self) -> Rect:
        """The in-plane footprint of the box."""
        extent = self.extent
        return Rect(self.lower.x, self.lower.y, extent.x, extent.y)

    def contains_z(self, z: float) -> bool:
        return self.lower.z <= z <= self.upper.z

    def get_config(self) -> dict:
        return {"lower": self.lower.tolist(), "upper": self.upper.tolist()}

    def __str__(self):
        return f"BoundingBox(lower={self.lower}, upper={self.upper})"
