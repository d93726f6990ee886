"""Tests for the in-memory host display.

Test cases:
    - RGB and single-channel blits
    - Clipping at every edge, fully outside blits
    - Invalid planes and sizes

Run:
    pytest tests/test_display.py -v
"""

import numpy as np
import pytest

from oilpaint.oil_simulator.display import ArrayDisplay


@pytest.fixture
def display():
    return ArrayDisplay(10, 8, background=(9, 9, 9))


def test_initial_background(display):
    assert display.framebuffer.shape == (8, 10, 3)
    assert np.all(display.framebuffer == 9)


def test_rgb_blit(display):
    patch = np.zeros((2, 3, 3), dtype=np.uint8)
    patch[...] = (1, 2, 3)
    display.blit(patch, 4, 5)
    assert np.all(display.framebuffer[5:7, 4:7] == (1, 2, 3))
    assert int(np.any(display.framebuffer != 9, axis=-1).sum()) == 6


def test_gray_blit(display):
    display.blit(np.full((3, 3), 200, dtype=np.uint8), 0, 0)
    assert np.all(display.framebuffer[:3, :3] == 200)


@pytest.mark.parametrize("x,y,n_pixels", [
    (-2, 0, 8),     # left edge
    (8, 0, 8),      # right edge
    (0, -3, 4),     # top edge
    (0, 6, 8),      # bottom edge
    (20, 20, 0),    # fully outside
    (-4, -4, 0),    # fully outside
])
def test_blit_clipping(display, x, y, n_pixels):
    display.blit(np.zeros((4, 4), dtype=np.uint8), x, y)
    assert int(np.any(display.framebuffer != 9, axis=-1).sum()) == n_pixels


def test_clear(display):
    display.blit(np.zeros((2, 2), dtype=np.uint8))
    display.clear()
    assert np.all(display.framebuffer == 9)


def test_invalid(display):
    with pytest.raises(ValueError):
        display.blit(np.zeros((2, 2, 4), dtype=np.uint8))
    with pytest.raises(ValueError):
        ArrayDisplay(0, 5)
