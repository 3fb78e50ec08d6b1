from typing import Any, Union
import os
import logging
import numpy as np
from pathlib import Path
import json

log = logging.getLogger(__name__)


def ctphantom_data_dir() -> Path:
    """Get the base directory holding the per-case folders.

    The base directory is determined by the environment variable `CTPHANTOM_DATA_DIR` if it exists.
    Otherwise, it is the user's home directory.

    Returns:
        Path: The base directory.
    """
    if os.environ.get("CTPHANTOM_DATA_DIR") is not None:
        root = Path(os.environ.get("CTPHANTOM_DATA_DIR")).expanduser()
    else:
        root = Path.home()

    return root


def case_dir(patient_id: str) -> Path:
    """Get the folder for one case, `<base dir>/<patient id>`. Not created."""
    return ctphantom_data_dir() / patient_id


def jsonable(obj: Any):
    """Convert obj to a JSON-ready container or object.
    Args:
        obj ([type]):
    """
    if obj is None:
        return None
    elif isinstance(obj, (str, bool, int, float)):
        return obj
    elif isinstance(obj, np.generic):
        return obj.item()
    elif isinstance(obj, Path):
        return str(obj.resolve())
    elif isinstance(obj, (list, tuple)):
        return list(map(jsonable, obj))
    elif isinstance(obj, dict):
        return {str(k): jsonable(v) for k, v in obj.items()}
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif hasattr(obj, "get_config"):
        return jsonable(obj.get_config())
    elif hasattr(obj, "__array__"):
        return np.array(obj).tolist()
    else:
        raise ValueError(f"Unknown type for JSON: {type(obj)}")


def save_json(path: Union[str, Path], obj: Any):
    obj = jsonable(obj)
    with open(path, "w") as file:
        json.dump(obj, file, indent=4, sort_keys=True)


def load_json(path: Union[str, Path]) -> Any:
    with open(path, "r") as file:
        out = json.load(file)
    return out
