"""Canvas backends: the drawable surface the traces are painted on.

Backends:
    - CPUCanvas: numpy surface, bristle segments rasterized with cv2.line (8-connected,
      no anti-aliasing, so results are exact and deterministic)
    - TorchCanvas: torch surface on any device; bristle segments rasterized by distance
      to the segment, all bristles of a step at once

Drawing contract:
    - clear(), load() and stamp_step() only inside a begin()/end() transaction
      (or the drawing() context manager); anything else raises CanvasUnavailableError
    - readback() may be called at any time; mid-trace it shows a partial stroke
    - Within one step, later bristles paint over earlier ones

Surfaces are (H, W, 3) uint8 RGB.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Optional, Sequence

import cv2
import numpy as np
import torch

from oilpaint.utils import color as color_utils
from oilpaint.oil_simulator.errors import CanvasUnavailableError

logger = logging.getLogger(__name__)


class CanvasBackend(ABC):
    """Drawable RGB surface with begin/end drawing transactions."""

    def __init__(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise CanvasUnavailableError(f"Cannot allocate a {width}x{height} canvas")
        self.width = int(width)
        self.height = int(height)
        self._drawing = False

    @property
    def in_transaction(self) -> bool:
        return self._drawing

    def begin(self) -> None:
        if self._drawing:
            raise CanvasUnavailableError("Canvas transaction already open")
        self._drawing = True

    def end(self) -> None:
        if not self._drawing:
            raise CanvasUnavailableError("end() without a matching begin()")
        self._drawing = False

    @contextmanager
    def drawing(self):
        """begin() ... end() as a context manager."""
        self.begin()
        try:
            yield self
        finally:
            self.end()

    def _require_transaction(self, operation: str) -> None:
        if not self._drawing:
            raise CanvasUnavailableError(f"{operation}() called outside begin()/end()")

    def _check_pixels(self, pixels: np.ndarray) -> None:
        if pixels.shape != (self.height, self.width, 3):
            raise ValueError(
                f"Expected ({self.height}, {self.width}, 3) pixels, got {pixels.shape}"
            )

    @abstractmethod
    def clear(self, color: Sequence[int]) -> None:
        """Fill the surface with one color."""

    @abstractmethod
    def load(self, pixels: np.ndarray) -> None:
        """Upload an (H, W, 3) uint8 RGB array to the surface."""

    @abstractmethod
    def stamp_step(self, trace, step: int) -> None:
        """Draw the bristle segments of one trace step with their colors."""

    @abstractmethod
    def readback(self, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Copy the surface into out (allocated when None) and return it."""


class CPUCanvas(CanvasBackend):
    """Canvas backed by a numpy array, drawn with OpenCV."""

    def __init__(self, width: int, height: int):
        super().__init__(width, height)
        try:
            self._surface = np.zeros((self.height, self.width, 3), dtype=np.uint8)
        except MemoryError as e:
            raise CanvasUnavailableError(
                f"Failed to allocate {self.width}x{self.height} canvas: {e}"
            ) from e

    def clear(self, color: Sequence[int]) -> None:
        self._require_transaction("clear")
        self._surface[...] = color_utils.to_rgb_tuple(color)

    def load(self, pixels: np.ndarray) -> None:
        self._require_transaction("load")
        self._check_pixels(pixels)
        self._surface[...] = pixels

    def stamp_step(self, trace, step: int) -> None:
        self._require_transaction("stamp_step")
        starts, ends, colors, thickness = trace.step_segments(step)
        for start, end, color, t in zip(starts, ends, colors, thickness):
            cv2.line(
                self._surface,
                (int(start[0]), int(start[1])),
                (int(end[0]), int(end[1])),
                color_utils.to_rgb_tuple(color),
                thickness=int(t),
                lineType=cv2.LINE_8
            )

    def readback(self, out: Optional[np.ndarray] = None) -> np.ndarray:
        if out is None:
            return self._surface.copy()
        self._check_pixels(out)
        np.copyto(out, self._surface)
        return out


class TorchCanvas(CanvasBackend):
    """Canvas backed by a torch uint8 tensor on any device.

    Parameters
    ----------
    width, height : int
        Surface size in pixels
    device : str or torch.device, optional
        Defaults to "cuda" when available, else "cpu"
    """

    def __init__(self, width: int, height: int, device=None):
        super().__init__(width, height)
        if device is None:
            device = "cuda" if torch.cuda.is_available() else "cpu"
        self.device = torch.device(device)
        if self.device.type == "cuda" and not torch.cuda.is_available():
            raise CanvasUnavailableError("CUDA device requested but not available")

        try:
            self._surface = torch.zeros(
                (self.height, self.width, 3), dtype=torch.uint8, device=self.device
            )
        except (RuntimeError, MemoryError) as e:
            raise CanvasUnavailableError(
                f"Failed to allocate {self.width}x{self.height} canvas on {self.device}: {e}"
            ) from e

        logger.debug(f"TorchCanvas allocated: {self.width}x{self.height} on {self.device}")

    def clear(self, color: Sequence[int]) -> None:
        self._require_transaction("clear")
        self._surface[...] = torch.tensor(
            color_utils.to_rgb_tuple(color), dtype=torch.uint8, device=self.device
        )

    def load(self, pixels: np.ndarray) -> None:
        self._require_transaction("load")
        self._check_pixels(pixels)
        self._surface.copy_(torch.from_numpy(np.ascontiguousarray(pixels)).to(self.device))

    def stamp_step(self, trace, step: int) -> None:
        self._require_transaction("stamp_step")
        starts, ends, colors, thickness = trace.step_segments(step)

        radius = np.asarray(thickness, dtype=np.float32) / 2.0
        r_max = float(radius.max())
        x0 = max(0, int(np.floor(min(starts[:, 0].min(), ends[:, 0].min()) - r_max)))
        x1 = min(self.width, int(np.ceil(max(starts[:, 0].max(), ends[:, 0].max()) + r_max)) + 1)
        y0 = max(0, int(np.floor(min(starts[:, 1].min(), ends[:, 1].min()) - r_max)))
        y1 = min(self.height, int(np.ceil(max(starts[:, 1].max(), ends[:, 1].max()) + r_max)) + 1)
        if x1 <= x0 or y1 <= y0:
            return

        ys, xs = torch.meshgrid(
            torch.arange(y0, y1, dtype=torch.float32, device=self.device),
            torch.arange(x0, x1, dtype=torch.float32, device=self.device),
            indexing='ij'
        )
        p = torch.stack([xs, ys], dim=-1)[None]                             # (1, h, w, 2)
        a = torch.as_tensor(starts, dtype=torch.float32, device=self.device)[:, None, None, :]
        b = torch.as_tensor(ends, dtype=torch.float32, device=self.device)[:, None, None, :]
        ab = b - a
        len2 = (ab ** 2).sum(-1).clamp_min(1e-12)
        t = (((p - a) * ab).sum(-1) / len2).clamp(0.0, 1.0)
        closest = a + t[..., None] * ab
        d2 = ((p - closest) ** 2).sum(-1)                                    # (B, h, w)

        r2 = torch.as_tensor(radius ** 2, device=self.device)[:, None, None]
        covered = d2 <= r2
        any_covered = covered.any(dim=0)
        if not bool(any_covered.any()):
            return

        # Last covering bristle wins
        n_bristles = covered.shape[0]
        last = n_bristles - 1 - torch.argmax(covered.flip(0).to(torch.float32), dim=0)
        colors_t = torch.as_tensor(np.ascontiguousarray(colors), dtype=torch.uint8, device=self.device)
        roi = self._surface[y0:y1, x0:x1]
        roi[any_covered] = colors_t[last][any_covered]

    def readback(self, out: Optional[np.ndarray] = None) -> np.ndarray:
        pixels = self._surface.cpu().numpy()
        if out is None:
            return pixels.copy()
        self._check_pixels(out)
        np.copyto(out, pixels)
        return out


def create_canvas(backend: str, width: int, height: int, device=None) -> CanvasBackend:
    """Allocate a canvas backend by name ("cpu" or "torch")."""
    if backend == "cpu":
        return CPUCanvas(width, height)
    if backend == "torch":
        return TorchCanvas(width, height, device=device)
    raise ValueError(f"Unknown canvas backend: {backend}. Use 'cpu' or 'torch'.")
