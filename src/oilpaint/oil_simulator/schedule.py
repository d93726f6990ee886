"""Adaptive brush size schedule.

The brush starts large and shrinks whenever too many candidates are rejected in a row:
    - invalid trajectory (visited or invalid): invalid_trajectories += 1
    - valid trajectory but no improvement:    invalid_traces += 1
    - painted trace:                          both counters reset

A counter exceeding its limit triggers a shrink. The limits switch to the
*_for_smaller_size variants once the brush is at the floor size. Shrinking at the
floor finishes the painting.

Invariants:
    - average_brush_size never increases and never drops below smaller_brush_size
    - finished goes False → True at most once; a finished schedule ignores all events
"""

import logging

from oilpaint.utils.validators import SimulatorConfig

logger = logging.getLogger(__name__)


class BrushSchedule:
    """Brush size and rejection counters of one painting session.

    Parameters
    ----------
    config : SimulatorConfig
        Schedule constants
    initial_size : float
        Starting brush size (clamped to smaller_brush_size from below)
    verbose : bool
        Log shrink and finish events at INFO instead of DEBUG
    """

    def __init__(self, config: SimulatorConfig, initial_size: float, verbose: bool = False):
        self.config = config
        self.verbose = verbose
        self.average_brush_size = max(config.smaller_brush_size, float(initial_size))
        self.invalid_trajectories = 0
        self.invalid_traces = 0
        self.finished = False

    @classmethod
    def for_canvas(
        cls,
        config: SimulatorConfig,
        width: int,
        height: int,
        verbose: bool = False
    ) -> 'BrushSchedule':
        """Schedule starting at max(smaller_brush_size, max(width, height) / 6)."""
        return cls(config, max(width, height) / 6.0, verbose=verbose)

    @property
    def at_smallest_size(self) -> bool:
        return self.average_brush_size <= self.config.smaller_brush_size

    @property
    def max_invalid_trajectories(self) -> int:
        if self.at_smallest_size:
            return self.config.max_invalid_trajectories_for_smaller_size
        return self.config.max_invalid_trajectories

    @property
    def max_invalid_traces(self) -> int:
        if self.at_smallest_size:
            return self.config.max_invalid_traces_for_smaller_size
        return self.config.max_invalid_traces

    def _log(self, msg: str) -> None:
        if self.verbose:
            logger.info(msg)
        else:
            logger.debug(msg)

    def register_invalid_trajectory(self) -> None:
        if self.finished:
            return
        self.invalid_trajectories += 1
        if self.invalid_trajectories > self.max_invalid_trajectories:
            self.shrink()

    def register_invalid_trace(self) -> None:
        if self.finished:
            return
        self.invalid_traces += 1
        if self.invalid_traces > self.max_invalid_traces:
            self.shrink()

    def register_painted_trace(self) -> None:
        self.reset_counters()

    def reset_counters(self) -> None:
        self.invalid_trajectories = 0
        self.invalid_traces = 0

    def shrink(self) -> None:
        """Reduce the brush size, or finish the painting at the floor size."""
        if self.finished:
            return

        if self.average_brush_size > self.config.smaller_brush_size:
            old_size = self.average_brush_size
            self.average_brush_size = max(
                self.config.smaller_brush_size,
                self.average_brush_size * self.config.brush_size_decrement
            )
            self._log(
                f"Brush size reduced {old_size:.2f} → {self.average_brush_size:.2f} "
                f"(invalid trajectories={self.invalid_trajectories}, "
                f"invalid traces={self.invalid_traces})"
            )
            self.reset_counters()
        else:
            self.finished = True
            self._log(
                f"Brush schedule exhausted at size {self.average_brush_size:.2f} "
                f"(invalid trajectories={self.invalid_trajectories}, "
                f"invalid traces={self.invalid_traces})"
            )
