"""Conversion of CT numbers to material index and mass density.

The conversion is the piecewise-linear "ramp" used by EGSnrc's ctcreate: each medium owns a bracket
of CT numbers [lo, hi), and within it the density is interpolated linearly between the medium's
density bracket.

    CT number range    Density range    Medium
    1-50               0.001-0.044      AIR700ICRU
    50-300             0.044-0.302      LUNG700ICRU
    300-1125           0.302-1.101      ICRUTISSUE700ICRU
    1125-5000          1.101-3.1408     ICRPBONE700ICRU

Real patient CTs reach CT numbers above ctcreate's limit of 3000, so the bone ramp is extended to
5000 (and its density bracket with it). These brackets are deliberately not the ones documented in
the material table.

"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from .exceptions import OutOfRangeError
from .material import MaterialTable

log = logging.getLogger(__name__)


class Ramp(NamedTuple):
    """One linear segment of the conversion: CT numbers [hu_lo, hu_hi) -> densities [rho_lo, rho_hi]."""

    material: str
    hu_lo: int
    hu_hi: int
    rho_lo: float
    rho_hi: float

    def density(self, hu):
        """Linear interpolation of the density. Works on scalars and arrays."""
        return self.rho_lo + (hu - self.hu_lo) * (self.rho_hi - self.rho_lo) / (
            self.hu_hi - self.hu_lo
        )

    def contains(self, hu):
        return (self.hu_lo <= hu) & (hu < self.hu_hi)


DEFAULT_RAMPS: Tuple[Ramp, ...] = (
    Ramp("AIR700ICRU", 1, 50, 0.001, 0.044),
    Ramp("LUNG700ICRU", 50, 300, 0.044, 0.302),
    Ramp("ICRUTISSUE700ICRU", 300, 1125, 0.302, 1.101),
    Ramp("ICRPBONE700ICRU", 1125, 5000, 1.101, 3.1408),
)


class Classification(NamedTuple):
    material: int
    density: float


class ClassifiedArray(NamedTuple):
    """Result of classifying an image.

    Attributes:
        materials (np.ndarray): material indices, same shape as the input. 0 where classification failed.
        densities (np.ndarray): float32 mass densities in g/cm^3. 0.0 where classification failed.
        failed_pixels (np.ndarray): [k, ndim] array of the indices that failed, in row-major order.
    """

    materials: np.ndarray
    densities: np.ndarray
    failed_pixels: np.ndarray


class HUClassifier:
    """Maps CT numbers to (material index, density) with a set of ramps.

    The ramps refer to materials by name; indices come from the material table passed in, which
    is held by reference and never modified.
    """

    def __init__(
        self,
        ramps: Sequence[Ramp] = DEFAULT_RAMPS,
        material_table: Optional[MaterialTable] = None,
    ) -> None:
        self.material_table = (
            MaterialTable.default() if material_table is None else material_table
        )
        ramps = [Ramp(*r) for r in ramps]
        if len(ramps) == 0:
            raise ValueError("classifier needs at least one ramp")

        for ramp in ramps:
            if ramp.hu_hi <= ramp.hu_lo:
                raise ValueError(f"empty CT number bracket in {ramp}")

        ordered = sorted(ramps, key=lambda r: r.hu_lo)
        for a, b in zip(ordered[:-1], ordered[1:]):
            if b.hu_lo < a.hu_hi:
                raise ValueError(f"overlapping ramps: {a} and {b}")

        self.ramps: Tuple[Ramp, ...] = tuple(ramps)

        # raises NotFoundError for ramps naming an unknown material
        self.indices: Tuple[int, ...] = tuple(
            self.material_table.lookup(r.material) for r in self.ramps
        )

    @classmethod
    def default(cls) -> HUClassifier:
        return cls(DEFAULT_RAMPS, MaterialTable.default())

    def classify(self, hu: int) -> Classification:
        """Classify a single CT number.

        Raises:
            OutOfRangeError: if `hu` is in none of the brackets.
        """
        for ramp, index in zip(self.ramps, self.indices):
            if ramp.hu_lo <= hu < ramp.hu_hi:
                return Classification(index, float(ramp.density(float(hu))))

        raise OutOfRangeError(hu)

    def classify_array(self, hu_values: np.ndarray) -> ClassifiedArray:
        """Classify every element of an array.

        Failures do not raise. They are left as material 0, density 0.0 and reported in `failed_pixels`.

        Args:
            hu_values (np.ndarray): CT numbers, any shape.

        Returns:
            ClassifiedArray: the materials, densities and failed indices.
        """
        hu = np.asarray(hu_values, dtype=np.float64)

        materials = np.zeros(hu.shape, dtype=np.uint16)
        densities = np.zeros(hu.shape, dtype=np.float32)
        classified = np.zeros(hu.shape, dtype=bool)
        for ramp, index in zip(self.ramps, self.indices):
            mask = ramp.contains(hu)
            materials[mask] = index
            densities[mask] = ramp.density(hu[mask])
            classified |= mask

        failed_pixels = np.argwhere(~classified)
        return ClassifiedArray(materials, densities, failed_pixels)

    def __call__(self, hu: int) -> Classification:
        return self.classify(hu)

    def get_config(self) -> Dict[str, Any]:
        return {
            "ramps": [r._asdict() for r in self.ramps],
            "material_table": self.material_table.get_config(),
        }

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        material_table: Optional[MaterialTable] = None,
    ) -> HUClassifier:
        """Make a classifier from a config dict, e.g. loaded from JSON.

        Args:
            config: dict with a "ramps" list of {material, hu_lo, hu_hi, rho_lo, rho_hi} entries,
                and optionally a "material_table" as written by `MaterialTable.get_config()`.
            material_table: table to use. Overrides one given in the config. If neither, the default table.

        Raises:
            ValueError: if the config is missing entries or has the wrong shape.
        """
        try:
            if material_table is None and "material_table" in config:
                material_table = MaterialTable.from_config(config["material_table"])

            ramps: List[Ramp] = [
                Ramp(
                    material=r["material"],
                    hu_lo=int(r["hu_lo"]),
                    hu_hi=int(r["hu_hi"]),
                    rho_lo=float(r["rho_lo"]),
                    rho_hi=float(r["rho_hi"]),
                )
                for r in config["ramps"]
            ]
        except (KeyError, TypeError) as e:
            raise ValueError(f"malformed classifier config: missing or invalid {e}") from e
        return cls(ramps, material_table)

    def __repr__(self):
        return f"HUClassifier(ramps={list(self.ramps)})"
