"""Filesystem helpers for targets, painted results, configs and reports.

Provides:
    - ensure_dir
    - Atomic writes (bytes, text, YAML, images): write to a sibling tmp file, then rename
    - load_yaml (PyYAML safe_load; an empty file is {})
    - load_image into an (H, W, 3) uint8 RGB array (Pillow)

Usage:
    from oilpaint.utils import fs
    target = fs.load_image("portrait.jpg")
    fs.atomic_save_image(simulator.planes.painted, "outputs/portrait_painted.png")
    fs.atomic_yaml_dump(report, "outputs/portrait_report.yaml")
"""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

import numpy as np
import yaml
from PIL import Image

PathLike = Union[str, Path]


def ensure_dir(p: PathLike) -> Path:
    """Create a directory and its parents if missing."""
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


@contextmanager
def _replacing(path: Path, tmp_name: str) -> Iterator[Path]:
    """Yield a tmp path next to ``path``; rename it over ``path`` if the block succeeds.

    Raises
    ------
    RuntimeError
        If the block or the rename fails with OSError/ValueError (the tmp file is removed)
    """
    ensure_dir(path.parent)
    tmp_path = path.with_name(tmp_name)
    try:
        yield tmp_path
        os.replace(tmp_path, path)
    except (OSError, ValueError) as e:
        tmp_path.unlink(missing_ok=True)
        raise RuntimeError(f"Atomic write of {path} failed: {e}") from e


def atomic_write_bytes(path: PathLike, data: bytes) -> None:
    """Write bytes atomically, fsyncing before the rename."""
    path = Path(path)
    with _replacing(path, path.name + ".tmp") as tmp_path:
        with open(tmp_path, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())


def atomic_write_text(path: PathLike, text: str, encoding: str = "utf-8") -> None:
    atomic_write_bytes(path, text.encode(encoding))


def atomic_yaml_dump(obj: Any, path: PathLike) -> None:
    """Dump plain Python data as block-style YAML, keeping key order."""
    text = yaml.safe_dump(obj, default_flow_style=False, sort_keys=False, allow_unicode=True)
    atomic_write_text(path, text)


def load_yaml(path: PathLike) -> Dict[str, Any]:
    """Load a YAML mapping.

    Raises
    ------
    FileNotFoundError
        Missing file
    yaml.YAMLError
        Parse error (the message names the file)
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"YAML file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding='utf-8'))
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e
    return {} if data is None else data


def atomic_save_image(
    img: np.ndarray,
    path: PathLike,
    pil_kwargs: Optional[Dict[str, Any]] = None
) -> None:
    """Save an (H, W), (H, W, 1) or (H, W, 3) array; the format follows the extension.

    Non-uint8 arrays are clipped to [0, 255] before conversion.
    """
    path = Path(path)
    pixels = np.asarray(img)
    if pixels.dtype != np.uint8:
        pixels = np.clip(pixels, 0, 255).astype(np.uint8)
    if pixels.ndim == 3 and pixels.shape[2] == 1:
        pixels = pixels[..., 0]
    image = Image.fromarray(np.ascontiguousarray(pixels))

    # Extension stays last so Pillow picks the format from the tmp name
    with _replacing(path, f"{path.stem}.tmp{path.suffix}") as tmp_path:
        image.save(tmp_path, **(pil_kwargs or {}))


def load_image(path: PathLike) -> np.ndarray:
    """Load any Pillow-readable image as (H, W, 3) uint8 RGB (alpha is dropped).

    Raises
    ------
    FileNotFoundError
        Missing file
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Image not found: {path}")
    with Image.open(path) as image:
        return np.asarray(image.convert("RGB"), dtype=np.uint8).copy()
