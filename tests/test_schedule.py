"""Tests for the adaptive brush schedule.

Test cases:
    - Initial size from canvas dimensions (floored at smallest size)
    - Shrink after exceeding the invalid trajectory / trace limits
    - Smaller-size limits at the floor
    - Finish at the floor; finished schedules ignore events
    - Painted traces reset the counters
    - Size is non-increasing and never below the floor

Run:
    pytest tests/test_schedule.py -v
"""

import pytest

from oilpaint.oil_simulator.schedule import BrushSchedule
from oilpaint.utils.validators import SimulatorConfig


@pytest.fixture
def config():
    """Small limits: 3 / 5 invalid trajectories, 2 / 4 invalid traces."""
    return SimulatorConfig(
        max_invalid_trajectories=3,
        max_invalid_trajectories_for_smaller_size=5,
        max_invalid_traces=2,
        max_invalid_traces_for_smaller_size=4,
    )


@pytest.mark.parametrize("width,height,expected", [
    (256, 256, 256 / 6),
    (120, 300, 50.0),
    (12, 12, 4.0),
    (1, 1, 4.0),
])
def test_initial_size(config, width, height, expected):
    schedule = BrushSchedule.for_canvas(config, width, height)
    assert schedule.average_brush_size == pytest.approx(expected)
    assert not schedule.finished


def test_shrinks_after_trajectory_limit(config):
    schedule = BrushSchedule(config, 40.0)
    for _ in range(3):
        schedule.register_invalid_trajectory()
    assert schedule.average_brush_size == 40.0
    assert schedule.invalid_trajectories == 3

    schedule.register_invalid_trajectory()
    assert schedule.average_brush_size == pytest.approx(40.0 * config.brush_size_decrement)
    assert schedule.invalid_trajectories == 0
    assert schedule.invalid_traces == 0


def test_shrinks_after_trace_limit(config):
    schedule = BrushSchedule(config, 40.0)
    schedule.register_invalid_trajectory()
    for _ in range(3):
        schedule.register_invalid_trace()
    assert schedule.average_brush_size == pytest.approx(40.0 * config.brush_size_decrement)
    assert schedule.invalid_trajectories == 0
    assert schedule.invalid_traces == 0


def test_shrink_floors_at_smallest_size(config):
    schedule = BrushSchedule(config, 4.5)
    schedule.shrink()
    assert schedule.average_brush_size == config.smaller_brush_size
    assert schedule.at_smallest_size
    assert not schedule.finished


def test_smaller_size_limits(config):
    schedule = BrushSchedule(config, config.smaller_brush_size)
    assert schedule.max_invalid_trajectories == 5
    assert schedule.max_invalid_traces == 4

    for _ in range(5):
        schedule.register_invalid_trajectory()
    assert not schedule.finished
    schedule.register_invalid_trajectory()
    assert schedule.finished


def test_finished_schedule_ignores_events(config):
    schedule = BrushSchedule(config, config.smaller_brush_size)
    schedule.shrink()
    assert schedule.finished
    state = (schedule.average_brush_size, schedule.invalid_trajectories, schedule.invalid_traces)

    schedule.register_invalid_trajectory()
    schedule.register_invalid_trace()
    schedule.shrink()
    assert schedule.finished
    assert (schedule.average_brush_size, schedule.invalid_trajectories, schedule.invalid_traces) == state


def test_painted_trace_resets_counters(config):
    schedule = BrushSchedule(config, 40.0)
    schedule.register_invalid_trajectory()
    schedule.register_invalid_trace()
    schedule.register_painted_trace()
    assert schedule.invalid_trajectories == 0
    assert schedule.invalid_traces == 0
    assert schedule.average_brush_size == 40.0


def test_size_is_monotone_until_finished(config):
    schedule = BrushSchedule(config, 100.0)
    sizes = [schedule.average_brush_size]
    n_events = 0
    while not schedule.finished:
        schedule.register_invalid_trajectory()
        sizes.append(schedule.average_brush_size)
        n_events += 1
        assert n_events < 1000

    assert all(b <= a for a, b in zip(sizes, sizes[1:]))
    assert min(sizes) == config.smaller_brush_size
