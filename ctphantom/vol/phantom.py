"""The phantom: a z-ordered stack of classified slices.

For now, only regular voxelization is supported: every slice has the same pixel dimensions and the
same in-plane voxel size. There is no resampling across z; slices are never interpolated.

"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

import numpy as np
from rich.progress import Progress

from .. import geo
from ..exceptions import (
    ConsistencyError,
    ConversionCancelled,
    EmptyResultError,
    ResizeError,
    UnknownStructureError,
)
from ..ramp import HUClassifier
from .slice import PhantomSlice

if TYPE_CHECKING:
    from ..load_dicom import CTImage

log = logging.getLogger(__name__)


class Phantom:
    """A 3D voxel grid of (material, density), made of slices sorted by ascending z.

    Phantoms are values. `resize` returns a new phantom and leaves this one unchanged, and the slices
    (with their read-only arrays) may be shared between the two.

    Attributes:
        slices (Tuple[PhantomSlice, ...]): the slices, by ascending z.
    """

    slices: Tuple[PhantomSlice, ...]

    def __init__(self, slices: Iterable[PhantomSlice]) -> None:
        """Assemble slices into a phantom.

        Args:
            slices (Iterable[PhantomSlice]): the classified slices, in any order. They are sorted by z.

        Raises:
            ValueError: if there are no slices.
            ConsistencyError: if two slices share a z position, or differ from the lowest-z slice
                in pixel dimensions or in-plane voxel size.
        """
        slices = sorted(slices, key=lambda s: s.z)
        if len(slices) == 0:
            raise ValueError("a phantom needs at least one slice")

        first = slices[0]
        for prev, s in zip(slices[:-1], slices[1:]):
            if s.z == prev.z:
                raise ConsistencyError(f"two slices at z = {s.z}")

        for s in slices[1:]:
            if s.size != first.size:
                raise ConsistencyError(
                    f"slice at z = {s.z} has size {s.size}, expected {first.size}"
                )
            if not np.allclose(
                np.array(s.voxel_size)[:2],
                np.array(first.voxel_size)[:2],
                rtol=0,
                atol=1e-6,
            ):
                raise ConsistencyError(
                    f"slice at z = {s.z} has voxel size {s.voxel_size}, expected {first.voxel_size}"
                )

        self.slices = tuple(slices)

    @classmethod
    def from_hu(
        cls,
        hu_values: np.ndarray,
        origin: geo.Point3D,
        voxel_size: geo.Vector3D,
        classifier: Optional[HUClassifier] = None,
        strict: bool = False,
    ) -> Phantom:
        """Make a phantom from a regular [nz, ny, nx] block of CT numbers.

        Slice k is placed at `origin + (0, 0, k * voxel_size.z)`.
        """
        hu_values = np.asarray(hu_values)
        if hu_values.ndim != 3:
            raise ValueError(f"CT volume must be 3D, got shape {hu_values.shape}")

        origin = geo.point(origin)
        voxel_size = geo.vector(voxel_size)
        slices = [
            PhantomSlice.from_hu(
                hu_values[k],
                origin + geo.vector(0, 0, k * voxel_size.z),
                voxel_size,
                classifier=classifier,
                strict=strict,
            )
            for k in range(hu_values.shape[0])
        ]
        return cls(slices)

    @classmethod
    def from_ct_images(
        cls,
        ct_images: Sequence[CTImage],
        classifier: Optional[HUClassifier] = None,
        strict: bool = False,
        max_workers: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
        progress: bool = False,
    ) -> Phantom:
        """Classify CT images into slices, in parallel, and assemble them.

        Each image is classified by its own worker; the material table and classifier are only
        read. Assembly waits for every slice.

        Args:
            ct_images (Sequence[CTImage]): the loaded CT images.
            classifier (HUClassifier, optional): Defaults to the standard ramp.
            strict (bool, optional): fail the whole conversion on any unclassifiable pixel. Defaults to False.
            max_workers (int, optional): number of worker threads. Defaults to the executor's default.
            cancel (threading.Event, optional): when set, pending slices raise ConversionCancelled.
            progress (bool, optional): show a progress bar. Defaults to False.

        Raises:
            ConversionCancelled: if `cancel` was set before every slice was classified.
        """
        if classifier is None:
            classifier = HUClassifier.default()

        def process_image(ct_image: CTImage) -> PhantomSlice:
            if cancel is not None and cancel.is_set():
                raise ConversionCancelled(
                    f"conversion cancelled before slice at z = {ct_image.position.z}"
                )
            return PhantomSlice.from_ct_image(ct_image, classifier, strict=strict)

        slices: List[PhantomSlice] = []
        with Progress(disable=not progress) as bar:
            task = bar.add_task("Classifying slices", total=len(ct_images))
            with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
                futures = [executor.submit(process_image, img) for img in ct_images]
                try:
                    for future in concurrent.futures.as_completed(futures):
                        slices.append(future.result())
                        bar.advance(task)
                except BaseException:
                    for future in futures:
                        future.cancel()
                    raise

        phantom = cls(slices)
        log.info(f"assembled phantom of size {phantom.size} at {phantom.position.tolist()}")
        return phantom

    @property
    def size(self) -> Tuple[int, int, int]:
        """Number of voxels along each axis (x, y, z) == (width, height, number of slices)."""
        width, height = self.slices[0].size
        return (width, height, len(self.slices))

    @property
    def position(self) -> geo.Point3D:
        """Position of the "first" corner of the phantom, i.e. of the lowest-z slice."""
        return self.slices[0].position

    @property
    def voxel_size(self) -> geo.Vector3D:
        """Voxel size of the lowest-z slice, taken as representative of the phantom."""
        return self.slices[0].voxel_size

    @property
    def materials(self) -> np.ndarray:
        """[nz, ny, nx] material indices."""
        return np.stack([s.materials for s in self.slices])

    @property
    def densities(self) -> np.ndarray:
        """[nz, ny, nx] mass densities in g/cm^3."""
        return np.stack([s.densities for s in self.slices])

    @property
    def failures(self) -> Dict[float, int]:
        """Number of unclassified pixels in each slice that has any, keyed by z."""
        return {s.z: s.num_failures for s in self.slices if s.num_failures > 0}

    def count_classified_voxels(self) -> int:
        """Number of voxels with an actual material (non-zero index)."""
        return int(sum(np.count_nonzero(s.materials) for s in self.slices))

    def get_bounding_box(self) -> geo.BoundingBox:
        """Get the box covering the whole phantom.

        The upper corner is the top slice's position plus the in-plane extent. Its z is the top
        slice's z, without that slice's thickness.

        Returns:
            geo.BoundingBox: lower and upper corners, in mm.
        """
        width, height, _ = self.size
        extent = geo.vector(width * self.voxel_size.x, height * self.voxel_size.y, 0)
        lower = self.position
        upper = self.slices[-1].position + extent
        return geo.BoundingBox(lower, upper)

    def resize(self, bbox: geo.BoundingBox) -> Phantom:
        """Crop the phantom to a bounding box.

        First, slices with z outside [lower.z, upper.z] are dropped. Then every remaining slice is
        cropped to the box's x-y rectangle.

        Args:
            bbox (geo.BoundingBox): lower and upper corners, in mm.

        Returns:
            Phantom: the cropped phantom.

        Raises:
            EmptyResultError: if no slice lies in the z range, or no slice can be cropped.
            ResizeError: if some, but not all, of the slices cannot be cropped.
            ConsistencyError: if the cropped slices no longer agree in size.
        """
        lower, upper = bbox
        bbox = geo.BoundingBox(geo.point(lower), geo.point(upper))
        rect = bbox.xy_rect()

        kept = [s for s in self.slices if bbox.contains_z(s.z)]
        if len(kept) == 0:
            raise EmptyResultError(
                f"no slices within z = [{bbox.lower.z}, {bbox.upper.z}]; "
                f"phantom spans z = [{self.slices[0].z}, {self.slices[-1].z}]"
            )
        log.debug(f"resize to {bbox}: keeping {len(kept)} of {len(self.slices)} slices")

        cropped: List[PhantomSlice] = []
        errors: List[ResizeError] = []
        for s in kept:
            try:
                cropped.append(s.resize(rect))
            except ResizeError as e:
                errors.append(e)

        if len(cropped) == 0:
            raise EmptyResultError(
                f"cropping to {rect} failed for all {len(kept)} slices"
            ) from errors[0]
        if len(errors) > 0:
            raise errors[0]

        phantom = type(self)(cropped)
        log.info(f"resized phantom to {phantom.size} at {phantom.position.tolist()}")
        return phantom

    def resize_to_structure(
        self,
        structure_name: str,
        structures: Mapping[str, geo.BoundingBox],
    ) -> Phantom:
        """Crop the phantom down to the bounding box of a named structure.

        Args:
            structure_name (str): name of the structure (ROI).
            structures (Mapping[str, geo.BoundingBox]): bounding boxes by structure name,
                e.g. `StructureSet.bounding_boxes()`.

        Raises:
            UnknownStructureError: if there is no such structure.
        """
        if structure_name not in structures:
            raise UnknownStructureError(f"No such structure: {structure_name}")

        return self.resize(structures[structure_name])

    def get_config(self) -> Dict[str, Any]:
        """Get the configuration of the phantom. Does not include voxel data."""
        return {
            "size": list(self.size),
            "position": self.position.tolist(),
            "voxel_size": self.voxel_size.tolist(),
            "bounding_box": self.get_bounding_box().get_config(),
            "slice_z": [s.z for s in self.slices],
            "failures": {str(z): n for z, n in self.failures.items()},
        }

    def __len__(self) -> int:
        return len(self.slices)

    def __iter__(self) -> Iterator[PhantomSlice]:
        return iter(self.slices)

    def __getitem__(self, index: int) -> PhantomSlice:
        return self.slices[index]

    def __str__(self):
        return (
            f"Phantom -- size (no. of voxels): {self.size}; "
            f"position (mm): {self.position.tolist()}; "
            f"voxel size (mm): {self.voxel_size.tolist()}"
        )
