"""One classified CT cross-section."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

import numpy as np

from .. import geo
from ..exceptions import OutOfRangeError, ResizeError
from ..ramp import HUClassifier

if TYPE_CHECKING:
    from ..load_dicom import CTImage

log = logging.getLogger(__name__)


# decimal places kept before flooring mm -> pixel conversions
_PIXEL_DECIMALS = 6


def _floor(x: float) -> int:
    """Floor, forgiving floating-point error below 1e-6 pixels."""
    return int(math.floor(round(x, _PIXEL_DECIMALS)))


def _readonly(a: np.ndarray, dtype) -> np.ndarray:
    a = np.array(a, dtype=dtype)
    a.flags.writeable = False
    return a


class PhantomSlice:
    """One slice of a phantom, corresponding to a CT slice.

    The material and density arrays are dense, row-major and indexed `[row, column]`, i.e. `[y, x]`,
    on the pixel grid of the source image. Both are read-only: operations return new slices.

    Attributes:
        materials (np.ndarray): [height, width] material indices. 0 where classification failed.
        densities (np.ndarray): [height, width] mass densities in g/cm^3.
        position (geo.Point3D): position of the first pixel, in mm.
        voxel_size (geo.Vector3D): pixel spacing along x and y, and slice thickness along z, in mm.
        failed_pixels (np.ndarray): [k, 2] array of (row, column) pixels that could not be classified.
    """

    materials: np.ndarray
    densities: np.ndarray
    position: geo.Point3D
    voxel_size: geo.Vector3D
    failed_pixels: np.ndarray

    def __init__(
        self,
        materials: np.ndarray,
        densities: np.ndarray,
        position: geo.Point3D,
        voxel_size: geo.Vector3D,
        failed_pixels: Optional[np.ndarray] = None,
    ) -> None:
        materials = np.asarray(materials)
        densities = np.asarray(densities)
        if materials.ndim != 2:
            raise ValueError(f"slice arrays must be 2D, got shape {materials.shape}")
        if materials.shape != densities.shape:
            raise ValueError(
                f"material and density arrays differ in shape: {materials.shape} != {densities.shape}"
            )

        self.materials = _readonly(materials, np.uint16)
        self.densities = _readonly(densities, np.float32)
        self.position = geo.point(position)
        self.voxel_size = geo.vector(voxel_size)
        if np.any(np.array(self.voxel_size)[:2] <= 0):
            raise ValueError(f"in-plane voxel size must be positive: {self.voxel_size}")

        if failed_pixels is None:
            failed_pixels = np.zeros((0, 2), dtype=np.int64)
        self.failed_pixels = _readonly(np.reshape(failed_pixels, (-1, 2)), np.int64)

    @classmethod
    def from_hu(
        cls,
        hu_values: np.ndarray,
        position: geo.Point3D,
        voxel_size: geo.Vector3D,
        classifier: Optional[HUClassifier] = None,
        strict: bool = False,
    ) -> PhantomSlice:
        """Classify every pixel of a CT image.

        Pixels that fall outside every ramp are recorded in `failed_pixels` and left as material 0,
        density 0.0.

        Args:
            hu_values (np.ndarray): [height, width] CT numbers.
            position (geo.Point3D): image position in mm.
            voxel_size (geo.Vector3D): (pixel spacing x, pixel spacing y, slice thickness) in mm.
            classifier (HUClassifier, optional): Defaults to the standard ramp on the default material table.
            strict (bool, optional): raise instead of recording failures. Defaults to False.

        Raises:
            OutOfRangeError: if `strict` and any pixel failed.
        """
        if classifier is None:
            classifier = HUClassifier.default()

        hu_values = np.asarray(hu_values)
        if hu_values.ndim != 2:
            raise ValueError(f"CT image must be 2D, got shape {hu_values.shape}")

        materials, densities, failed_pixels = classifier.classify_array(hu_values)
        position = geo.point(position)
        if len(failed_pixels) > 0:
            row, col = failed_pixels[0]
            first = hu_values[row, col]
            if strict:
                raise OutOfRangeError(
                    first,
                    f"{len(failed_pixels)} pixels out of bounds in slice at z = {position.z}, "
                    f"first at (row, column) = ({row}, {col}): Hounsfield number {first}",
                )
            log.warning(
                f"{len(failed_pixels)} pixels could not be classified in slice at z = {position.z} "
                f"(first at ({row}, {col}), value {first})"
            )

        return cls(materials, densities, position, voxel_size, failed_pixels)

    @classmethod
    def from_ct_image(
        cls,
        ct_image: CTImage,
        classifier: Optional[HUClassifier] = None,
        strict: bool = False,
    ) -> PhantomSlice:
        """Convert a loaded CT image into a phantom slice."""
        return cls.from_hu(
            ct_image.hu_values,
            ct_image.position,
            ct_image.voxel_size,
            classifier=classifier,
            strict=strict,
        )

    @property
    def width(self) -> int:
        return self.materials.shape[1]

    @property
    def height(self) -> int:
        return self.materials.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        """Size of the slice in pixels, (width, height) == (x, y)."""
        return (self.width, self.height)

    @property
    def z(self) -> float:
        return self.position.z

    @property
    def num_failures(self) -> int:
        return int(self.failed_pixels.shape[0])

    @property
    def physical_size(self) -> Tuple[float, float]:
        """Size of the slice in mm, (x, y)."""
        return (self.width * self.voxel_size.x, self.height * self.voxel_size.y)

    def pixel_rect(self, rect: geo.Rect) -> Tuple[int, int, int, int]:
        """Convert a rectangle in mm to (column, row, width, height) in pixels of this slice."""
        rect = geo.Rect(*rect)
        column = _floor((rect.x - self.position.x) / self.voxel_size.x)
        row = _floor((rect.y - self.position.y) / self.voxel_size.y)
        width = _floor(rect.width / self.voxel_size.x)
        height = _floor(rect.height / self.voxel_size.y)
        return column, row, width, height

    def resize(self, rect: geo.Rect) -> PhantomSlice:
        """Crop the slice to the given rectangle.

        The rectangle specifies location and dimensions in mm. The new slice is positioned at the
        rectangle's origin, with z unchanged.

        Args:
            rect (geo.Rect): (x, y, width, height) in mm.

        Returns:
            PhantomSlice: the cropped slice.

        Raises:
            ResizeError: if the rectangle is empty in pixels, or not contained in the slice.
        """
        rect = geo.Rect(*rect)
        column, row, width, height = self.pixel_rect(rect)
        log.debug(
            f"cropping slice at z = {self.z} to {rect}: pixels (column={column}, row={row}, width={width}, height={height})"
        )

        if width <= 0 or height <= 0:
            raise ResizeError(
                f"crop of {rect} is empty in pixels ({width} x {height}) for slice at z = {self.z}"
            )
        if (
            column < 0
            or row < 0
            or column + width > self.width
            or row + height > self.height
        ):
            raise ResizeError(
                f"crop of {rect} (pixels column={column}, row={row}, {width} x {height}) "
                f"is outside the {self.width} x {self.height} slice at z = {self.z}"
            )

        materials = self.materials[row : row + height, column : column + width]
        densities = self.densities[row : row + height, column : column + width]

        failed = self.failed_pixels
        inside = (
            (failed[:, 0] >= row)
            & (failed[:, 0] < row + height)
            & (failed[:, 1] >= column)
            & (failed[:, 1] < column + width)
        )
        failed = failed[inside] - np.array([row, column])

        return type(self)(
            materials,
            densities,
            position=self.position.with_xy(rect.x, rect.y),
            voxel_size=self.voxel_size,
            failed_pixels=failed,
        )

    def get_config(self) -> Dict[str, Any]:
        """Get the configuration of the slice. Does not include voxel data."""
        return {
            "position": self.position.tolist(),
            "voxel_size": self.voxel_size.tolist(),
            "size": list(self.size),
            "num_failures": self.num_failures,
        }

    def __str__(self):
        px, py = self.physical_size
        return (
            f"PhantomSlice -- position (mm): {self.position.tolist()}; "
            f"size (mm): ({px}, {py}); "
            f"dimensions (no. of voxels): {self.size}; "
            f"voxel size (mm): {self.voxel_size.tolist()}"
        )

    def __repr__(self):
        return f"PhantomSlice(position={self.position!r}, size={self.size}, voxel_size={self.voxel_size!r})"
