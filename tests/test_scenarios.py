"""End-to-end painting scenarios with the default constants.

Scenarios (seed 42, buffered mixing):
    - 256x256 solid color target: at least 95% of the pixels end up well painted
    - 256x256 half red / half blue target: away from the midline, each side is painted
      with its own color
    - 128x128 random noise target: finishes at the smallest brush size
    - Determinism: same seed, same painting

Each scenario paints a full image and takes a few seconds.

Run:
    pytest tests/test_scenarios.py -v -m slow
"""

import numpy as np
import pytest

from oilpaint.oil_simulator import OilSimulator
from oilpaint.utils import color as color_utils
from oilpaint.utils import metrics
from oilpaint.utils.hashing import sha256_array
from oilpaint.utils.validators import SimulatorConfig


RED = (200, 50, 50)
BLUE = (40, 60, 210)
SIZE = 256
MIDLINE_MARGIN = 10
BLOCK = 4


@pytest.fixture(scope="module")
def config():
    return SimulatorConfig()


def paint(config, target, seed=42):
    sim = OilSimulator(use_canvas_buffer=True, verbose=False, config=config, rng=seed)
    sim.set_image_pixels(target)
    sim.run()
    return sim


@pytest.fixture(scope="module")
def solid_target():
    target = np.empty((SIZE, SIZE, 3), dtype=np.uint8)
    target[...] = RED
    return target


@pytest.fixture(scope="module")
def solid_painting(config, solid_target):
    return paint(config, solid_target)


@pytest.fixture(scope="module")
def split_target():
    target = np.empty((SIZE, SIZE, 3), dtype=np.uint8)
    target[:, :SIZE // 2] = RED
    target[:, SIZE // 2:] = BLUE
    return target


def side_blocks(width):
    """Left edges of the 4x4 block columns lying at least MIDLINE_MARGIN px from the midline."""
    midline = width // 2
    for x in range(0, width - BLOCK + 1, BLOCK):
        if x + BLOCK - 1 <= midline - MIDLINE_MARGIN:
            yield x, RED
        elif x >= midline + MIDLINE_MARGIN:
            yield x, BLUE


@pytest.mark.slow
def test_solid_color_converges(config, solid_painting):
    sim = solid_painting

    assert sim.is_finished()
    assert sim.n_traces > 0
    similar_fraction = np.count_nonzero(sim.planes.similar == 255) / SIZE ** 2
    assert similar_fraction >= 0.95
    assert metrics.well_painted_fraction(
        sim.planes.painted, sim.planes.target, config.max_color_difference
    ) == pytest.approx(similar_fraction)


@pytest.mark.slow
def test_split_target_follows_sides(config, split_target):
    sim = paint(config, split_target)
    assert sim.is_finished()
    assert sim.n_traces > 0

    painted = sim.planes.painted
    background = np.array(config.background_color)
    n_checked = 0
    n_blocks = 0
    for x, expected in side_blocks(SIZE):
        for y in range(0, SIZE - BLOCK + 1, BLOCK):
            n_blocks += 1
            block = painted[y:y + BLOCK, x:x + BLOCK].reshape(-1, 3)
            block = block[np.any(block != background, axis=1)]
            if len(block) == 0:
                continue
            dominant = np.median(block, axis=0)
            assert color_utils.within_color_difference(
                dominant, np.array(expected), config.max_color_difference
            ), (x, y, tuple(dominant))
            n_checked += 1
    assert n_checked >= 0.8 * n_blocks


@pytest.mark.slow
def test_noise_target_terminates_at_smallest_brush(config):
    target = np.random.RandomState(0).randint(0, 256, (128, 128, 3)).astype(np.uint8)
    sim = paint(config, target)

    assert sim.is_finished()
    assert sim.average_brush_size == config.smaller_brush_size
    assert sim.n_traces <= target.shape[0] * target.shape[1]


@pytest.mark.slow
def test_same_seed_same_result(config, solid_target, solid_painting):
    again = paint(config, solid_target)

    assert again.n_traces == solid_painting.n_traces
    assert sha256_array(again.planes.painted) == sha256_array(solid_painting.planes.painted)
    assert again.schedule.invalid_trajectories == solid_painting.schedule.invalid_trajectories
    assert again.schedule.invalid_traces == solid_painting.schedule.invalid_traces
