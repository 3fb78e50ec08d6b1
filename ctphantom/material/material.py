from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from ..exceptions import NotFoundError

log = logging.getLogger(__name__)


class MaterialDefinition:
    """
    A medium in an egsphant phantom.

    Attributes:
        name (str): Name of the medium, as written to the egsphant header (e.g. "AIR700ICRU").
        hu_range (Optional[Tuple[int, int]]): Documented CT number bracket [lo, hi), if any.
        density_range (Optional[Tuple[float, float]]): Documented mass density bracket [lo, hi) in g/cm^3, if any.
        index (int): 1-based serialization index. Assigned by the table from declaration order.
    """

    name: str
    hu_range: Optional[Tuple[int, int]]
    density_range: Optional[Tuple[float, float]]
    index: int

    def __init__(
        self,
        name: str,
        hu_range: Optional[Tuple[int, int]] = None,
        density_range: Optional[Tuple[float, float]] = None,
        index: int = 0,
    ):
        if not name or any(c.isspace() for c in name):
            raise ValueError(f"material name must be a non-empty word: {name!r}")
        self.name = name
        self.hu_range = None if hu_range is None else (int(hu_range[0]), int(hu_range[1]))
        self.density_range = (
            None
            if density_range is None
            else (float(density_range[0]), float(density_range[1]))
        )
        self.index = int(index)

    def __repr__(self):
        return (
            f"MaterialDefinition(name={self.name}, hu_range={self.hu_range}, "
            f"density_range={self.density_range}, index={self.index})"
        )

    def __str__(self):
        return self.name

    def __hash__(self):
        return hash((self.name, self.index))

    def __eq__(self, other):
        if not isinstance(other, MaterialDefinition):
            return NotImplemented
        return (
            self.name == other.name
            and self.index == other.index
            and self.hu_range == other.hu_range
            and self.density_range == other.density_range
        )

    def with_index(self, index: int) -> MaterialDefinition:
        return MaterialDefinition(self.name, self.hu_range, self.density_range, index)

    def get_config(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "hu_range": None if self.hu_range is None else list(self.hu_range),
            "density_range": (
                None if self.density_range is None else list(self.density_range)
            ),
            "index": self.index,
        }


class MaterialTable:
    """An ordered, read-only registry of materials.

    The order of declaration fixes the serialization index of every material (1, 2, ...). It is
    never re-derived by sorting, because an egsphant file written under one order cannot be read
    under another: the header lists the media by index and the raster refers to them by index.

    Use `MaterialTable.default()` for the standard EGSnrc 700ICRU media. The default table is built
    once per process, under a lock, and shared by reference.
    """

    _default: Optional[MaterialTable] = None
    _default_lock = threading.Lock()

    def __init__(self, materials: Iterable[MaterialDefinition]):
        entries: List[MaterialDefinition] = []
        by_name: Dict[str, MaterialDefinition] = {}
        for i, material in enumerate(materials):
            material = material.with_index(i + 1)
            # lookups ignore case, so names differing only in case collide
            key = material.name.upper()
            if key in by_name:
                raise ValueError(f"duplicate material name: {material.name}")
            entries.append(material)
            by_name[key] = material

        if len(entries) == 0:
            raise ValueError("material table must not be empty")

        self._materials: Tuple[MaterialDefinition, ...] = tuple(entries)
        self._by_name = by_name

    @classmethod
    def default(cls) -> MaterialTable:
        """Get the process-wide default table, building it on first use."""
        if cls._default is None:
            with cls._default_lock:
                if cls._default is None:
                    from .MATERIALS import DEFAULT_MATERIALS

                    cls._default = cls(DEFAULT_MATERIALS)
                    log.debug(f"built default material table: {cls._default.names()}")
        return cls._default

    def lookup(self, name: str) -> int:
        """Get the serialization index of the named material.

        Raises:
            NotFoundError: if no material has that name.
        """
        return self[name].index

    def names(self) -> List[str]:
        """Material names in declaration (index) order."""
        return [m.name for m in self._materials]

    def size(self) -> int:
        return len(self._materials)

    def by_index(self, index: int) -> MaterialDefinition:
        if not 1 <= index <= len(self._materials):
            raise NotFoundError(f"no material with index {index}")
        return self._materials[index - 1]

    def __getitem__(self, name: str) -> MaterialDefinition:
        try:
            return self._by_name[name.upper()]
        except KeyError:
            raise NotFoundError(f"Unknown material: {name}") from None

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.upper() in self._by_name

    def __iter__(self) -> Iterator[MaterialDefinition]:
        return iter(self._materials)

    def __len__(self) -> int:
        return len(self._materials)

    def __eq__(self, other):
        if not isinstance(other, MaterialTable):
            return NotImplemented
        return self._materials == other._materials

    def __hash__(self):
        return hash(self._materials)

    def __repr__(self):
        return f"MaterialTable({self.names()})"

    def get_config(self) -> Dict[str, Any]:
        return {"materials": [m.get_config() for m in self._materials]}

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> MaterialTable:
        """Rebuild a table from `get_config()` output. Order in the list is authoritative."""
        materials: Sequence[Dict[str, Any]] = config["materials"]
        return cls(
            MaterialDefinition(
                m["name"],
                hu_range=m.get("hu_range"),
                density_range=m.get("density_range"),
            )
            for m in materials
        )
