from . import geo, exceptions, utils
from .material import MaterialDefinition, MaterialTable
from .ramp import HUClassifier, Ramp
from .vol import Phantom, PhantomSlice
from .egsphant import write_egsphant, read_egsphant
from .load_dicom import CTImage, load_ct_images, write_file_list
from .structures import Structure, StructureSet
from .logging import setup_log


__all__ = [
    "MaterialDefinition",
    "MaterialTable",
    "HUClassifier",
    "Ramp",
    "Phantom",
    "PhantomSlice",
    "write_egsphant",
    "read_egsphant",
    "CTImage",
    "load_ct_images",
    "write_file_list",
    "Structure",
    "StructureSet",
    "geo",
    "exceptions",
    "utils",
    "setup_log",
]
