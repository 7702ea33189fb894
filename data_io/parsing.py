"""
File loading shared by the camera and config readers.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Union

import numpy as np

_NUMBER = re.compile(r"[-+]?(?:\d*\.\d+|\d+)(?:[eE][-+]?\d+)?")


def extract_floats(text: str) -> List[float]:
    """All numbers in `text`, in order (ints, decimals, scientific notation)."""
    return [float(x) for x in _NUMBER.findall(text)]


def _read_yaml(path: Path) -> Any:
    try:
        import yaml
    except ImportError as e:
        raise ImportError(
            f"Reading {path.name} needs PyYAML: pip install baseline-sfm[yaml]"
        ) from e
    return yaml.safe_load(path.read_text(encoding="utf-8"))


_READERS: Dict[str, Callable[[Path], Any]] = {
    ".json": lambda p: json.loads(p.read_text(encoding="utf-8")),
    ".yaml": _read_yaml,
    ".yml": _read_yaml,
    ".npy": np.load,
}


def load_data(path: Union[str, Path]) -> Any:
    """
    Parse a file by suffix: JSON/YAML -> dict or list, .npy -> ndarray,
    anything else -> the raw text. Interpretation is left to the caller.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"No such file: {path}")
    reader = _READERS.get(path.suffix.lower())
    if reader is None:
        return path.read_text(encoding="utf-8", errors="ignore")
    return reader(path)


def dump_json(obj: Any, path: Union[str, Path]) -> Path:
    """Write `obj` as indented JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, indent=2), encoding="utf-8")
    return path
