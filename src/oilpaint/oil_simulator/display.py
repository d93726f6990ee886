"""Host display targets for the simulator's draw_* calls.

Displays:
    - ArrayDisplay: in-memory RGB framebuffer (headless runs, tests, image export)
    - OpenCVWindowDisplay: ArrayDisplay shown in a cv2 window

A blit copies an (h, w, 3) RGB or (h, w) single-channel plane at an (x, y) offset. Parts
falling outside the framebuffer are clipped. Single-channel planes (visited, similar)
are drawn as gray.
"""

import logging
from abc import ABC, abstractmethod
from typing import Sequence

import cv2
import numpy as np

logger = logging.getLogger(__name__)


def _as_rgb(pixels: np.ndarray) -> np.ndarray:
    pixels = np.asarray(pixels)
    if pixels.ndim == 2:
        return np.repeat(pixels[:, :, np.newaxis], 3, axis=2)
    if pixels.ndim == 3 and pixels.shape[2] == 3:
        return pixels
    raise ValueError(f"Cannot display plane of shape {pixels.shape}")


class HostDisplay(ABC):
    """Anything the simulator can draw its planes onto."""

    @abstractmethod
    def blit(self, pixels: np.ndarray, x: int = 0, y: int = 0) -> None:
        """Copy a plane with its top-left corner at (x, y)."""


class ArrayDisplay(HostDisplay):
    """RGB framebuffer held in a numpy array.

    Parameters
    ----------
    width, height : int
        Framebuffer size
    background : sequence of int
        Initial fill color
    """

    def __init__(self, width: int, height: int, background: Sequence[int] = (0, 0, 0)):
        if width <= 0 or height <= 0:
            raise ValueError(f"Display size must be positive, got {width}x{height}")
        self.width = int(width)
        self.height = int(height)
        self.background = tuple(int(c) for c in background)
        self.framebuffer = np.empty((self.height, self.width, 3), dtype=np.uint8)
        self.clear()

    def clear(self) -> None:
        self.framebuffer[...] = self.background

    def blit(self, pixels: np.ndarray, x: int = 0, y: int = 0) -> None:
        rgb = _as_rgb(pixels)
        h, w = rgb.shape[:2]
        x0, y0 = max(0, x), max(0, y)
        x1, y1 = min(self.width, x + w), min(self.height, y + h)
        if x1 <= x0 or y1 <= y0:
            return
        self.framebuffer[y0:y1, x0:x1] = rgb[y0 - y:y1 - y, x0 - x:x1 - x]


class OpenCVWindowDisplay(ArrayDisplay):
    """ArrayDisplay mirrored to an OpenCV HighGUI window.

    Needs a GUI-capable OpenCV build and a running display server.
    """

    def __init__(self, name: str, width: int, height: int, background: Sequence[int] = (0, 0, 0)):
        super().__init__(width, height, background)
        self.name = name
        cv2.namedWindow(self.name, cv2.WINDOW_AUTOSIZE)

    def show(self, wait_ms: int = 1) -> int:
        """Present the framebuffer; returns the cv2.waitKey code (-1 if no key)."""
        cv2.imshow(self.name, cv2.cvtColor(self.framebuffer, cv2.COLOR_RGB2BGR))
        return cv2.waitKey(wait_ms)

    def close(self) -> None:
        cv2.destroyWindow(self.name)
