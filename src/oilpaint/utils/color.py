"""Per-channel color comparisons on 8-bit RGB pixels.

Provides:
    - channel_difference: |a - b| per channel without uint8 wrap-around
    - within_color_difference: the "well painted" predicate
    - mean_channel_distance: mean per-channel distance over a set of pixels
    - channel_stdev: per-channel population standard deviation
    - scale_brightness: multiply colors by a brightness factor, clipped to [0, 255]
    - to_rgb_tuple: plain int tuple for drawing APIs

Used by:
    - Raster planes: similar-color plane
    - Acceptance pipeline: trajectory and trace checks
    - Trace: bristle color jitter and mixing

All functions take numpy arrays whose last axis is the RGB channel axis.
Inputs are uint8 or integer/float arrays in [0, 255].
"""

from typing import Sequence, Tuple

import numpy as np


def channel_difference(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Absolute per-channel difference.

    Parameters
    ----------
    a, b : np.ndarray
        Colors, shape (..., 3), broadcastable

    Returns
    -------
    np.ndarray
        int16 array of |a - b|, broadcast shape
    """
    return np.abs(np.asarray(a, dtype=np.int16) - np.asarray(b, dtype=np.int16))


def within_color_difference(
    a: np.ndarray,
    b: np.ndarray,
    max_difference: Sequence[int]
) -> np.ndarray:
    """Check that every channel of a is within max_difference of b.

    Parameters
    ----------
    a, b : np.ndarray
        Colors, shape (..., 3)
    max_difference : sequence of int
        Per-channel tolerance (R, G, B)

    Returns
    -------
    np.ndarray
        bool array, shape (...)

    Examples
    --------
    >>> bool(within_color_difference(np.array([200, 50, 50]), np.array([230, 60, 20]), (40, 40, 40)))
    True
    """
    tolerance = np.asarray(max_difference, dtype=np.int16)
    return np.all(channel_difference(a, b) <= tolerance, axis=-1)


def mean_channel_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Mean of |a - b| over all pixels and channels (0.0 for empty input)."""
    diff = channel_difference(a, b)
    if diff.size == 0:
        return 0.0
    return float(diff.mean())


def channel_stdev(colors: np.ndarray) -> np.ndarray:
    """Population standard deviation per channel.

    Parameters
    ----------
    colors : np.ndarray
        Colors, shape (N, 3)

    Returns
    -------
    np.ndarray
        float64 array, shape (3,); zeros when N == 0
    """
    colors = np.asarray(colors, dtype=np.float64)
    if colors.shape[0] == 0:
        return np.zeros(colors.shape[-1], dtype=np.float64)
    return colors.std(axis=0)


def scale_brightness(colors: np.ndarray, factors: np.ndarray) -> np.ndarray:
    """Scale colors by brightness factors, one per color row.

    Parameters
    ----------
    colors : np.ndarray
        Base color (3,), colors (N, 3), or any (..., N, 3) stack of rows
    factors : np.ndarray
        Factors, shape (N,)

    Returns
    -------
    np.ndarray
        float64 colors, shape (N, 3) or (..., N, 3), clipped to [0, 255]
    """
    colors = np.asarray(colors, dtype=np.float64)
    factors = np.asarray(factors, dtype=np.float64)[:, np.newaxis]
    return np.clip(colors * factors, 0.0, 255.0)


def to_rgb_tuple(color: Sequence) -> Tuple[int, int, int]:
    """Convert a color to a plain (r, g, b) int tuple."""
    r, g, b = (int(c) for c in color)
    return r, g, b
