"""Raster planes: the pixel bookkeeping shared by the acceptance checks.

Planes (all share the target's width W and height H):
    - target:  (H, W, 3) uint8, the image to paint (read-only after set_target)
    - painted: (H, W, 3) uint8, last readback of the canvas surface
    - visited: (H, W) uint8, saturating counter of bristle visits
    - similar: (H, W) uint8, 255 where painted is within tolerance of target, else 0
    - bad_painted: (N,) int64 flat indices (y * W + x) where similar == 0

Invariants (hold after set_target() and after every refresh_after_trace()):
    - len(bad_painted) == n_bad_painted == count(similar == 0)
    - similar[p] == 255 iff |painted[p] - target[p]| <= max_color_difference per channel
    - 0 <= visited[p] <= 255

Points are (x, y) pairs; pixel coordinates are the floor of the float positions.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from PIL import Image

from oilpaint.utils import color as color_utils
from oilpaint.oil_simulator.errors import InvalidInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PixelGrid:
    """Validated RGB pixel grid, shape (H, W, 3), dtype uint8.

    The wrapped array is a read-only copy of the input.
    """
    pixels: np.ndarray

    def __post_init__(self):
        pixels = self.pixels
        if not isinstance(pixels, np.ndarray):
            raise InvalidInputError(f"Expected numpy array, got {type(pixels).__name__}")
        if pixels.ndim != 3 or pixels.shape[2] != 3:
            raise InvalidInputError(f"Expected (H, W, 3) pixels, got shape {pixels.shape}")
        if pixels.dtype != np.uint8:
            raise InvalidInputError(f"Expected uint8 pixels, got {pixels.dtype}")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise InvalidInputError(f"Image has zero extent: {pixels.shape[1]}x{pixels.shape[0]}")

        frozen = np.array(pixels, dtype=np.uint8, copy=True)
        frozen.flags.writeable = False
        object.__setattr__(self, 'pixels', frozen)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @classmethod
    def from_array(cls, array: np.ndarray) -> 'PixelGrid':
        """Build from (H, W) gray, (H, W, 1), (H, W, 3) RGB or (H, W, 4) RGBA uint8 arrays."""
        array = np.asarray(array)
        if array.dtype != np.uint8:
            raise InvalidInputError(f"Expected uint8 pixels, got {array.dtype}")
        if array.ndim == 2:
            array = np.repeat(array[:, :, np.newaxis], 3, axis=2)
        elif array.ndim == 3 and array.shape[2] == 1:
            array = np.repeat(array, 3, axis=2)
        elif array.ndim == 3 and array.shape[2] == 4:
            array = array[:, :, :3]
        return cls(array)

    @classmethod
    def from_buffer(cls, data: bytes, width: int, height: int) -> 'PixelGrid':
        """Build from a packed row-major RGB byte buffer."""
        if width <= 0 or height <= 0:
            raise InvalidInputError(f"Image has zero extent: {width}x{height}")
        expected = width * height * 3
        if len(data) != expected:
            raise InvalidInputError(
                f"Pixel buffer has {len(data)} bytes, expected {expected} for {width}x{height} RGB"
            )
        array = np.frombuffer(data, dtype=np.uint8).reshape(height, width, 3)
        return cls(array)

    @classmethod
    def from_image(cls, image: Image.Image) -> 'PixelGrid':
        """Build from a PIL image (converted to RGB)."""
        if image.width == 0 or image.height == 0:
            raise InvalidInputError(f"Image has zero extent: {image.width}x{image.height}")
        return cls(np.array(image.convert("RGB"), dtype=np.uint8))


class RasterPlanes:
    """Target, painted, visited and similar planes plus the bad-painted index list.

    Parameters
    ----------
    max_color_difference : sequence of int
        Per-channel tolerance for a well painted pixel
    background_color : sequence of int
        Color of an untouched canvas
    visited_increment : int
        Saturating step added to visited per bristle sample
    """

    def __init__(
        self,
        max_color_difference: Sequence[int],
        background_color: Sequence[int],
        visited_increment: int = 64
    ):
        self.max_color_difference = tuple(int(c) for c in max_color_difference)
        self.background_color = tuple(int(c) for c in background_color)
        self.visited_increment = int(visited_increment)

        self.width = 0
        self.height = 0
        self.target: Optional[np.ndarray] = None
        self.painted: Optional[np.ndarray] = None
        self.visited: Optional[np.ndarray] = None
        self.similar: Optional[np.ndarray] = None
        self.bad_painted = np.empty(0, dtype=np.int64)
        self.n_bad_painted = 0

    @property
    def is_allocated(self) -> bool:
        return self.target is not None

    @property
    def n_pixels(self) -> int:
        return self.width * self.height

    def set_target(self, grid: PixelGrid, clear: bool) -> None:
        """Bind a new target image.

        With clear=True, painted is reset to the background and visited to zero.
        With clear=False, painted and visited are kept (their size must match).
        similar and bad_painted are always recomputed.

        Raises
        ------
        InvalidInputError
            If clear=False and the new size differs from the current planes
        """
        if not clear:
            if self.painted is None:
                raise InvalidInputError("Cannot keep painted pixels: no canvas has been painted yet")
            if (grid.width, grid.height) != (self.width, self.height):
                raise InvalidInputError(
                    f"Image size {grid.width}x{grid.height} differs from canvas size "
                    f"{self.width}x{self.height}; set clear_canvas=True"
                )

        self.width = grid.width
        self.height = grid.height
        self.target = grid.pixels

        if clear:
            self.painted = np.empty((self.height, self.width, 3), dtype=np.uint8)
            self.painted[...] = self.background_color
            self.visited = np.zeros((self.height, self.width), dtype=np.uint8)

        self.update_similar()

    def update_similar(self) -> None:
        """Recompute the similar plane and the bad-painted list from painted and target."""
        well = color_utils.within_color_difference(
            self.painted, self.target, self.max_color_difference
        )
        self.similar = np.where(well, 255, 0).astype(np.uint8)
        self.bad_painted = np.flatnonzero(self.similar.ravel() == 0).astype(np.int64)
        self.n_bad_painted = int(self.bad_painted.size)

    def refresh_after_trace(self, canvas) -> None:
        """Read the canvas back into painted and recompute similar / bad_painted."""
        canvas.readback(self.painted)
        self.update_similar()

    def mark_visited(self, trace) -> None:
        """Saturating-increment visited at every in-canvas bristle sample of the trace."""
        points = trace.bristle_pixels().reshape(-1, 2)
        inside = self.inside_mask(points)
        if not inside.any():
            return

        counts = np.bincount(self.flat_indices(points[inside]), minlength=self.n_pixels)
        counts = counts.reshape(self.height, self.width)
        visited = self.visited.astype(np.int64) + self.visited_increment * counts
        self.visited = np.minimum(visited, 255).astype(np.uint8)

    def inside_mask(self, points: np.ndarray) -> np.ndarray:
        """Boolean mask of (x, y) integer points that fall inside the canvas."""
        points = np.asarray(points)
        x = points[..., 0]
        y = points[..., 1]
        return (x >= 0) & (x < self.width) & (y >= 0) & (y < self.height)

    def flat_indices(self, points: np.ndarray) -> np.ndarray:
        """Flat pixel indices (y * W + x) of in-canvas (x, y) points."""
        points = np.asarray(points, dtype=np.int64)
        return points[..., 1] * self.width + points[..., 0]

    def index_to_point(self, index: int):
        """Inverse of flat_indices for a single index: returns (x, y)."""
        return int(index % self.width), int(index // self.width)

    def sample(self, plane: np.ndarray, points: np.ndarray) -> np.ndarray:
        """Values of a plane at in-canvas (x, y) points."""
        points = np.asarray(points, dtype=np.int64)
        return plane[points[..., 1], points[..., 0]]
