from .data_utils import jsonable, save_json, load_json, ctphantom_data_dir, case_dir
from . import data_utils

__all__ = [
    "jsonable",
    "save_json",
    "load_json",
    "ctphantom_data_dir",
    "case_dir",
    "data_utils",
]
