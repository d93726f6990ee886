"""Brush trace: one bristle stroke with its trajectory, bristles and colors.

A trace is generated around a pivot position:
    - Trajectory: n_steps centroid positions, TRACE_SPEED px apart, following a gentle
      arc (constant curvature plus per-step heading noise). The pivot is the middle step.
    - Bristles: n_bristles hair-lines spread across the brush width, perpendicular to the
      local heading, each with a thickness and a brightness factor.
    - Colors: per (step, bristle) RGB colors. Each bristle loads the target color under it
      (brightness jittered per bristle) and picks up, step by step, the paint already on
      the canvas under it.

Invariants:
    - n_steps == max(1, int(length / speed))
    - trajectory.shape == (n_steps, 2); bristle_positions.shape == (n_steps, n_bristles, 2)
    - colors is None until calculate_bristle_colors() runs; painting requires colors
    - All randomness comes from the RNG passed at construction

Points are (x, y) floats; pixel coordinates are their floor.
"""

from typing import Optional, Sequence, Tuple

import numpy as np

from oilpaint.utils import color as color_utils
from oilpaint.utils.validators import TraceConfig



class OilTrace:
    """Single brush trace.

    Parameters
    ----------
    position : tuple of float
        Pivot (x, y) in pixels; the trajectory is centered on it
    length : float
        Trajectory length in pixels
    speed : float
        Distance between consecutive steps (px/step)
    brush_size : float
        Brush width in pixels
    rng : np.random.RandomState
        Source of all randomness for this trace
    config : TraceConfig, optional
        Bristle geometry and mixing constants
    """

    def __init__(
        self,
        position: Tuple[float, float],
        length: float,
        speed: float,
        brush_size: float,
        rng: np.random.RandomState,
        config: Optional[TraceConfig] = None
    ):
        if length <= 0 or speed <= 0:
            raise ValueError(f"Trace length and speed must be positive, got {length}, {speed}")

        self.config = config or TraceConfig()
        self.position = (float(position[0]), float(position[1]))
        self.length = float(length)
        self.speed = float(speed)
        self.n_steps = max(1, int(self.length / self.speed))
        self._rng = rng

        self.trajectory, self._headings = self._compute_trajectory()
        self.set_brush_size(brush_size)

    def _compute_trajectory(self) -> Tuple[np.ndarray, np.ndarray]:
        cfg = self.config
        heading0 = self._rng.uniform(0.0, 2.0 * np.pi)
        curvature = self._rng.uniform(-1.0, 1.0) * cfg.max_turn_per_step
        turns = curvature + self._rng.normal(0.0, cfg.turn_noise, self.n_steps)
        turns[0] = 0.0
        headings = heading0 + np.cumsum(turns)

        steps = self.speed * np.stack([np.cos(headings), np.sin(headings)], axis=1)
        relative = np.cumsum(steps, axis=0) - steps[0]
        relative -= relative[self.n_steps // 2]

        return np.asarray(self.position) + relative, headings

    def set_brush_size(self, brush_size: float) -> None:
        """Rebuild the bristles for a new brush size (clears computed colors)."""
        if brush_size <= 0:
            raise ValueError(f"Brush size must be positive, got {brush_size}")
        cfg = self.config
        self.brush_size = float(brush_size)

        n_bristles = max(1, int(round(self.brush_size * cfg.bristle_density)))
        spacing = self.brush_size / n_bristles
        if n_bristles == 1:
            offsets = np.zeros(1)
        else:
            half_span = 0.5 * (self.brush_size - spacing)
            offsets = np.linspace(-half_span, half_span, n_bristles)
        offsets = offsets + self._rng.uniform(-1.0, 1.0, n_bristles) * cfg.bristle_jitter * spacing

        self.bristle_offsets = offsets
        self.bristle_thickness = np.full(n_bristles, int(np.ceil(spacing)) + 1, dtype=np.int64)
        self._brightness = 1.0 + self._rng.uniform(
            -cfg.brightness_relative_change, cfg.brightness_relative_change, n_bristles
        )

        normals = np.stack([-np.sin(self._headings), np.cos(self._headings)], axis=1)
        self.bristle_positions = (
            self.trajectory[:, np.newaxis, :]
            + offsets[np.newaxis, :, np.newaxis] * normals[:, np.newaxis, :]
        )
        self._bristle_pixels = np.floor(self.bristle_positions).astype(np.int64)
        self.colors: Optional[np.ndarray] = None

    @property
    def n_bristles(self) -> int:
        return int(self.bristle_offsets.size)

    @property
    def n_samples(self) -> int:
        return self.n_steps * self.n_bristles

    @property
    def has_colors(self) -> bool:
        return self.colors is not None

    def trajectory_pixels(self) -> np.ndarray:
        """Integer (x, y) pixel of each trajectory step, shape (n_steps, 2)."""
        return np.floor(self.trajectory).astype(np.int64)

    def bristle_pixels(self) -> np.ndarray:
        """Integer (x, y) pixel of every bristle sample, shape (n_steps, n_bristles, 2)."""
        return self._bristle_pixels

    def calculate_bristle_colors(
        self,
        surface: np.ndarray,
        target: np.ndarray,
        background_color: Sequence[int],
        in_place: bool = False
    ) -> np.ndarray:
        """Compute the color of every bristle at every step.

        Each bristle loads the target color under it (brightness jittered), and from
        mix_starting_step on it also picks up the paint it slides over:

            color = keep * load + picked
            keep   <- (1 - mix_strength) * keep
            picked <- (1 - mix_strength) * picked + mix_strength * under

        Surface pixels equal to the background hold no paint and are skipped.

        Parameters
        ----------
        surface : np.ndarray
            (H, W, 3) uint8 paint the bristles mix with
        target : np.ndarray
            (H, W, 3) uint8 image being painted
        background_color : sequence of int
            Color of unpainted surface pixels
        in_place : bool
            If True, each bristle writes its color into surface as soon as it is computed,
            so later bristles of the same trace pick up that paint (order dependent).
            If False, surface is only read.

        Returns
        -------
        np.ndarray
            (n_steps, n_bristles, 3) uint8 colors (also stored in self.colors)
        """
        cfg = self.config
        height, width = target.shape[:2]
        background = np.asarray(background_color, dtype=np.uint8)
        pixels = self._bristle_pixels
        x = pixels[..., 0]
        y = pixels[..., 1]
        in_canvas = (x >= 0) & (x < width) & (y >= 0) & (y < height)

        # Paint loaded at each sample: the target under it, or the trajectory mean
        # where the bristle leaves the canvas
        traj = self.trajectory_pixels()
        on_path = (traj[:, 0] >= 0) & (traj[:, 0] < width) & (traj[:, 1] >= 0) & (traj[:, 1] < height)
        if on_path.any():
            fallback = target[traj[on_path, 1], traj[on_path, 0]].astype(np.float64).mean(axis=0)
        else:
            fallback = background.astype(np.float64)
        load = np.empty((self.n_steps, self.n_bristles, 3), dtype=np.float64)
        load[...] = fallback
        load[in_canvas] = target[y[in_canvas], x[in_canvas]]
        load = color_utils.scale_brightness(load, self._brightness)

        # Paint picked up from the surface: keep * load + picked
        keep = np.ones(self.n_bristles)
        picked = np.zeros((self.n_bristles, 3))
        colors = np.empty((self.n_steps, self.n_bristles, 3), dtype=np.uint8)
        strength = cfg.mix_strength

        for step in range(self.n_steps):
            mixing = strength > 0 and step >= cfg.mix_starting_step
            idx = np.flatnonzero(in_canvas[step])
            xs = x[step, idx]
            ys = y[step, idx]

            if in_place:
                for b, bx, by in zip(idx, xs, ys):
                    under = surface[by, bx]
                    if mixing and np.any(under != background):
                        keep[b] *= 1.0 - strength
                        picked[b] = (1.0 - strength) * picked[b] + strength * under
                    surface[by, bx] = np.rint(keep[b] * load[step, b] + picked[b])
            elif mixing and idx.size:
                under = surface[ys, xs]
                holds_paint = np.any(under != background, axis=1)
                idx = idx[holds_paint]
                keep[idx] *= 1.0 - strength
                picked[idx] = (1.0 - strength) * picked[idx] + strength * under[holds_paint]

            colors[step] = np.rint(keep[:, np.newaxis] * load[step] + picked).astype(np.uint8)

        self.colors = colors
        return colors

    def step_segments(self, step: int):
        """Bristle segments drawn at one step.

        Returns
        -------
        tuple
            (starts, ends, colors, thickness): starts/ends (n_bristles, 2) int (x, y),
            colors (n_bristles, 3) uint8, thickness (n_bristles,) int.
            Step 0 draws dots (start == end).
        """
        if self.colors is None:
            raise RuntimeError("calculate_bristle_colors() must run before painting the trace")
        if not 0 <= step < self.n_steps:
            raise IndexError(f"Step {step} out of range [0, {self.n_steps})")

        ends = self._bristle_pixels[step]
        starts = self._bristle_pixels[step - 1] if step > 0 else ends
        return starts, ends, self.colors[step], self.bristle_thickness

    def paint_step(self, canvas, step: int) -> None:
        """Stamp one step of the trace onto a canvas backend."""
        canvas.stamp_step(self, step)
