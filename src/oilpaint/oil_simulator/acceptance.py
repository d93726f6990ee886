"""Acceptance checks for candidate traces.

Three predicates, evaluated in this order by the simulator:
    1. already_visited_trajectory: the trajectory mostly runs over visited pixels
    2. valid_trajectory: the trajectory is mostly inside the canvas, mostly over badly
       painted pixels, and crosses a region of nearly uniform target color
    3. trace_improves_painting: painting the trace's bristle colors improves the canvas
       (needs OilTrace.calculate_bristle_colors() first)

Every check is a fractional threshold from SimulatorConfig. The predicates only read
the raster planes and the trace: they never mutate either.

Trajectory checks use one point per step (the trajectory centroid). The trace check
uses every (step, bristle) sample.
"""

import logging
from dataclasses import dataclass

import numpy as np

from oilpaint.utils import color as color_utils
from oilpaint.utils.validators import SimulatorConfig
from oilpaint.oil_simulator.rasters import RasterPlanes
from oilpaint.oil_simulator.trace import OilTrace

logger = logging.getLogger(__name__)

# Lower bound for the new color distance in the improvement ratio
MIN_COLOR_DISTANCE = 1e-6


def _inside_trajectory(planes: RasterPlanes, trace: OilTrace):
    points = trace.trajectory_pixels()
    inside = planes.inside_mask(points)
    return points, inside


def already_visited_trajectory(
    planes: RasterPlanes,
    trace: OilTrace,
    config: SimulatorConfig
) -> bool:
    """True if the fraction of in-canvas trajectory points already visited exceeds
    max_visits_fraction_in_trajectory.

    Points outside the canvas count in neither numerator nor denominator; a trajectory
    with no point inside is not considered visited.
    """
    points, inside = _inside_trajectory(planes, trace)
    n_inside = int(inside.sum())
    if n_inside == 0:
        return False

    visited = planes.sample(planes.visited, points[inside])
    n_visited = int(np.count_nonzero(visited))
    return n_visited / n_inside > config.max_visits_fraction_in_trajectory


def valid_trajectory(
    planes: RasterPlanes,
    trace: OilTrace,
    config: SimulatorConfig
) -> bool:
    """True if all hold:

    1. inside fraction >= min_inside_fraction_in_trajectory
    2. fraction of in-canvas points already well painted <= max_similar_color_fraction_in_trajectory
    3. max over channels of the target color stdev along in-canvas points <= max_color_stdev_in_trajectory
    """
    points, inside = _inside_trajectory(planes, trace)
    n_inside = int(inside.sum())
    if n_inside == 0 or n_inside / len(points) < config.min_inside_fraction_in_trajectory:
        return False

    points = points[inside]
    target_colors = planes.sample(planes.target, points)
    painted_colors = planes.sample(planes.painted, points)

    similar = color_utils.within_color_difference(
        target_colors, painted_colors, config.max_color_difference
    )
    if np.count_nonzero(similar) / n_inside > config.max_similar_color_fraction_in_trajectory:
        return False

    stdev = color_utils.channel_stdev(target_colors)
    return float(stdev.max()) <= config.max_color_stdev_in_trajectory


@dataclass(frozen=True)
class TraceEvaluation:
    """Counts and ratios gathered by evaluate_trace().

    Attributes
    ----------
    n_samples : int
        All (step, bristle) samples (Nall)
    n_inside : int
        Samples inside the canvas (Ntot)
    n_similar : int
        Inside samples where painted already matches target (Nsim, also wellBefore)
    n_painted : int
        Inside samples whose painted color differs from the background
    n_well_after : int
        Inside samples where the bristle color would match target
    old_distance, new_distance : float
        Mean per-channel distance to target of painted / bristle colors
    reason : str
        "accepted" or the first failed check
    """
    n_samples: int
    n_inside: int
    n_similar: int = 0
    n_painted: int = 0
    n_well_after: int = 0
    old_distance: float = 0.0
    new_distance: float = 0.0
    reason: str = "accepted"

    @property
    def accepted(self) -> bool:
        return self.reason == "accepted"

    @property
    def color_improvement(self) -> float:
        return self.old_distance / max(self.new_distance, MIN_COLOR_DISTANCE)

    @property
    def well_painted_gain(self) -> int:
        return self.n_well_after - self.n_similar

    @property
    def well_painted_destruction(self) -> float:
        """Net well painted samples lost, over inside samples."""
        return (self.n_similar - self.n_well_after) / self.n_inside if self.n_inside else 0.0

    @property
    def bad_painted_reduction(self) -> float:
        """Net bad painted samples fixed, over inside samples."""
        return -self.well_painted_destruction


def evaluate_trace(
    planes: RasterPlanes,
    trace: OilTrace,
    config: SimulatorConfig
) -> TraceEvaluation:
    """Decide whether painting the trace improves the painting.

    Rejects (in order) when:
        - inside fraction < min_inside_fraction
        - similar fraction > max_similar_color_fraction
        - already-painted fraction > max_painted_fraction

    Otherwise accepts when either
        (a) color improvement ratio >= min_color_improvement_factor, and
            well painted destruction fraction <= max_well_painted_destruction_fraction, and
            bad painted reduction fraction >= min_bad_painted_reduction_fraction
        (b) well painted gain fraction >= big_well_painted_improvement_fraction

    Raises
    ------
    RuntimeError
        If the trace colors have not been computed
    """
    if not trace.has_colors:
        raise RuntimeError("calculate_bristle_colors() must run before evaluating the trace")

    points = trace.bristle_pixels().reshape(-1, 2)
    bristle_colors = trace.colors.reshape(-1, 3)
    inside = planes.inside_mask(points)
    n_samples = int(points.shape[0])
    n_inside = int(inside.sum())

    if n_inside == 0 or n_inside / n_samples < config.min_inside_fraction:
        return TraceEvaluation(n_samples, n_inside, reason="outside canvas")

    points = points[inside]
    bristle_colors = bristle_colors[inside]
    target_colors = planes.sample(planes.target, points)
    painted_colors = planes.sample(planes.painted, points)

    n_similar = int(np.count_nonzero(planes.sample(planes.similar, points) == 255))
    if n_similar / n_inside > config.max_similar_color_fraction:
        return TraceEvaluation(n_samples, n_inside, n_similar, reason="similar colors")

    background = np.asarray(config.background_color, dtype=np.uint8)
    n_painted = int(np.count_nonzero(np.any(painted_colors != background, axis=1)))
    if n_painted / n_inside > config.max_painted_fraction:
        return TraceEvaluation(n_samples, n_inside, n_similar, n_painted, reason="already painted")

    n_well_after = int(np.count_nonzero(color_utils.within_color_difference(
        bristle_colors, target_colors, config.max_color_difference
    )))
    old_distance = color_utils.mean_channel_distance(painted_colors, target_colors)
    new_distance = color_utils.mean_channel_distance(bristle_colors, target_colors)

    evaluation = TraceEvaluation(
        n_samples, n_inside, n_similar, n_painted, n_well_after, old_distance, new_distance
    )

    improves = (
        evaluation.color_improvement >= config.min_color_improvement_factor
        and evaluation.well_painted_destruction <= config.max_well_painted_destruction_fraction
        and evaluation.bad_painted_reduction >= config.min_bad_painted_reduction_fraction
    )
    big_improvement = evaluation.well_painted_gain / n_inside >= config.big_well_painted_improvement_fraction

    if improves or big_improvement:
        return evaluation
    return TraceEvaluation(
        n_samples, n_inside, n_similar, n_painted, n_well_after,
        old_distance, new_distance, reason="no improvement"
    )


def trace_improves_painting(
    planes: RasterPlanes,
    trace: OilTrace,
    config: SimulatorConfig
) -> bool:
    """Boolean form of evaluate_trace()."""
    return evaluate_trace(planes, trace, config).accepted
