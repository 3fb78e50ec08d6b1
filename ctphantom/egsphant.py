#
# Reading and writing EGSnrc egsphant phantom files.
#
# Layout, in order:
#   number of media, then one medium name per line (in material-table order)
#   one dummy ESTEPE value per medium, on one line
#   nx ny nz
#   voxel edges along x, y, z in cm (n + 1 values each, 5 per line), each block followed by a blank line
#   material indices, one line of nx digits per row, ny rows per slice, each slice followed by a blank line
#   densities in g/cm^3, 5 per line, ny rows per slice, each slice followed by a blank line
#
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, Iterator, List, NamedTuple, Optional, Sequence, TextIO, Tuple, Union

import numpy as np
from rich.progress import Progress

from .material import MaterialTable
from .utils import data_utils
from .vol import Phantom

log = logging.getLogger(__name__)


# values per line for voxel edges and densities
WRITE_WIDTH = 5

# material indices are written as single digits with no separator
MAX_MATERIAL_INDEX = 9

ESTEPE_PLACEHOLDER = 1.0

SUFFIX = ".egsphant"


def _wrap(values: Sequence[float], width: int = WRITE_WIDTH) -> Iterator[Sequence[float]]:
    for i in range(0, len(values), width):
        yield values[i : i + width]


def _format_values(values: Iterable[float]) -> str:
    return "".join(f"  {v: .6f}" for v in values)


def default_egsphant_path(patient_id: str) -> Path:
    """Default location of a case's phantom file: `<case dir>/<patient id>.egsphant`."""
    return data_utils.case_dir(patient_id) / f"{patient_id}{SUFFIX}"


def with_egsphant_suffix(path: Union[str, Path]) -> Path:
    """Append the .egsphant suffix if the path does not already end with it."""
    path = Path(path)
    if not path.name.endswith(SUFFIX):
        path = path.with_name(path.name + SUFFIX)
    return path


def _check_materials(phantom: Phantom, material_table: MaterialTable) -> None:
    if len(material_table) > MAX_MATERIAL_INDEX:
        raise ValueError(
            f"egsphant material raster holds single digits; "
            f"cannot write a table of {len(material_table)} materials"
        )

    max_index = max(int(s.materials.max()) for s in phantom)
    if max_index > len(material_table):
        raise ValueError(
            f"phantom refers to material {max_index}, "
            f"but the table has only {len(material_table)} materials"
        )

    n_unclassified = sum(int(np.count_nonzero(s.materials == 0)) for s in phantom)
    if n_unclassified > 0:
        log.warning(f"{n_unclassified} voxels have no material (index 0)")


def _write_header(f: TextIO, material_table: MaterialTable) -> None:
    f.write(f"{len(material_table):2d}\n")

    # must be in order of the material index
    for name in material_table.names():
        f.write(f"{name}\n")

    f.write("".join(f"  {ESTEPE_PLACEHOLDER:.7E}" for _ in material_table) + "\n")


def voxel_edges(phantom: Phantom) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Voxel edges along x, y, z in cm. There are n + 1 edges for n voxels."""
    position = np.array(phantom.position)
    voxel_size = np.array(phantom.voxel_size)
    edges = []
    for axis, n in enumerate(phantom.size):
        # mm -> cm
        edges.append((position[axis] + np.arange(n + 1) * voxel_size[axis]) / 10.0)
    return tuple(edges)


def _write_voxel_edges(f: TextIO, phantom: Phantom) -> None:
    f.write("".join(f"{n:5d}" for n in phantom.size) + "\n")

    for edges in voxel_edges(phantom):
        for chunk in _wrap(edges.tolist()):
            f.write(_format_values(chunk) + "\n")
        f.write("\n")


def _write_material_raster(f: TextIO, phantom: Phantom, progress: Progress, task) -> None:
    for s in phantom:
        for row in s.materials:
            f.write("".join(map(str, row.tolist())) + "\n")
        f.write("\n")
        progress.advance(task)


def _write_density_raster(f: TextIO, phantom: Phantom, progress: Progress, task) -> None:
    for s in phantom:
        for row in s.densities:
            for chunk in _wrap(row.tolist()):
                f.write(_format_values(chunk) + "\n")
        f.write("\n")
        progress.advance(task)


def write_egsphant(
    phantom: Phantom,
    path: Union[str, Path],
    material_table: Optional[MaterialTable] = None,
    progress: bool = False,
) -> Path:
    """Write an EGS-format phantom file.

    The file is written in one pass to a temporary file beside `path`, which replaces `path` only
    once everything is written. On failure, nothing is left at `path`.

    Args:
        phantom (Phantom): the phantom to write.
        path (Union[str, Path]): the destination file. Parent directories are created.
        material_table (MaterialTable, optional): the table the phantom's indices refer to.
            Defaults to the default table.
        progress (bool, optional): show a progress bar. Defaults to False.

    Returns:
        Path: the path written.

    Raises:
        ValueError: if the material indices cannot be written as single digits.
        OSError: if writing fails.
    """
    path = Path(path)
    if material_table is None:
        material_table = MaterialTable.default()

    _check_materials(phantom, material_table)

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    log.debug(f"writing {path} via {tmp_name}")
    try:
        with os.fdopen(fd, "w") as f, Progress(disable=not progress) as bar:
            task = bar.add_task(f"Writing {path.name}", total=2 * len(phantom))
            _write_header(f, material_table)
            _write_voxel_edges(f, phantom)
            _write_material_raster(f, phantom, bar, task)
            _write_density_raster(f, phantom, bar, task)
        # mkstemp creates 0600; give the file the mode a plain open() would
        mask = os.umask(0)
        os.umask(mask)
        os.chmod(tmp_name, 0o666 & ~mask)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    log.info(f"wrote egsphant file {path} with {phantom.size} voxels")
    return path


class EgsPhantContents(NamedTuple):
    """The contents of an egsphant file.

    Attributes:
        material_names (List[str]): media, in index order.
        estepe (np.ndarray): the ESTEPE value for each medium.
        size (Tuple[int, int, int]): (nx, ny, nz).
        edges (Tuple[np.ndarray, np.ndarray, np.ndarray]): voxel edges along x, y, z in cm.
        materials (np.ndarray): [nz, ny, nx] material indices.
        densities (np.ndarray): [nz, ny, nx] mass densities in g/cm^3.
    """

    material_names: List[str]
    estepe: np.ndarray
    size: Tuple[int, int, int]
    edges: Tuple[np.ndarray, np.ndarray, np.ndarray]
    materials: np.ndarray
    densities: np.ndarray

    @property
    def position(self) -> np.ndarray:
        """Lower corner in mm."""
        return np.array([e[0] for e in self.edges]) * 10.0

    @property
    def voxel_size(self) -> np.ndarray:
        """Size of the first voxel along each axis, in mm."""
        return np.array([e[1] - e[0] if len(e) > 1 else 0.0 for e in self.edges]) * 10.0


def read_egsphant(path: Union[str, Path]) -> EgsPhantContents:
    """Read an egsphant file.

    Args:
        path (Union[str, Path]): the file.

    Returns:
        EgsPhantContents: the parsed contents.

    Raises:
        ValueError: if the file is truncated or malformed.
    """
    path = Path(path)
    with open(path, "r") as f:
        tokens = f.read().split()

    pos = 0

    def take(n: int) -> List[str]:
        nonlocal pos
        if pos + n > len(tokens):
            raise ValueError(f"{path} is truncated: expected {n} more values at token {pos}")
        out = tokens[pos : pos + n]
        pos += n
        return out

    n_materials = int(take(1)[0])
    material_names = take(n_materials)
    estepe = np.array(take(n_materials), dtype=np.float64)
    nx, ny, nz = (int(t) for t in take(3))
    edges = tuple(np.array(take(n + 1), dtype=np.float64) for n in (nx, ny, nz))

    rows = take(nz * ny)
    for row in rows:
        if len(row) != nx or not row.isdigit():
            raise ValueError(f"{path}: bad material row {row!r}, expected {nx} digits")
    materials = np.array(
        [[int(c) for c in row] for row in rows], dtype=np.uint16
    ).reshape(nz, ny, nx)

    densities = np.array(take(nz * ny * nx), dtype=np.float32).reshape(nz, ny, nx)

    if pos != len(tokens):
        raise ValueError(f"{path}: {len(tokens) - pos} unexpected trailing values")

    log.debug(f"read egsphant file {path}: size {(nx, ny, nz)}")
    return EgsPhantContents(
        material_names=material_names,
        estepe=estepe,
        size=(nx, ny, nz),
        edges=edges,
        materials=materials,
        densities=densities,
    )
