"""SHA-256 hashing for run provenance and reproducibility checks.

Provides:
    - sha256_file(): hash file contents (target images, configs)
    - sha256_array(): hash numpy array values (painted canvas, raster planes)
    - sha256_string(): hash a string
    - hash_dict(): order-independent hash of a (nested) config dict

Used by:
    - scripts/paint.py: logs target, config and result hashes
    - Tests: two runs with the same seed must produce the same painted hash

Array hashes include dtype and shape, so equal values in a different layout
hash differently.

Note: Module named `hashing.py` to avoid shadowing builtin `hash()`.
"""

import hashlib
import json
from pathlib import Path
from typing import Union

import numpy as np


def sha256_file(path: Union[str, Path], chunk_size: int = 1 << 20) -> str:
    """Compute SHA-256 hash of file contents (read in 1 MB chunks).

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    sha256 = hashlib.sha256()
    with open(path, 'rb') as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            sha256.update(chunk)
    return sha256.hexdigest()


def sha256_array(a: np.ndarray) -> str:
    """Compute SHA-256 hash of array values, dtype and shape.

    Examples
    --------
    >>> sha256_array(np.zeros((2, 2), np.uint8)) == sha256_array(np.zeros((2, 2), np.uint8))
    True
    """
    a = np.ascontiguousarray(a)
    sha256 = hashlib.sha256()
    sha256.update(str(a.dtype).encode('utf-8'))
    sha256.update(str(a.shape).encode('utf-8'))
    sha256.update(a.tobytes())
    return sha256.hexdigest()


def sha256_string(s: str) -> str:
    """Compute SHA-256 hash of a UTF-8 string."""
    return hashlib.sha256(s.encode('utf-8')).hexdigest()


def hash_dict(d: dict) -> str:
    """Hash a dict deterministically (keys sorted, tuples treated as lists).

    Examples
    --------
    >>> hash_dict({"a": 1, "b": 2}) == hash_dict({"b": 2, "a": 1})
    True
    """
    return sha256_string(json.dumps(d, sort_keys=True, default=str))
