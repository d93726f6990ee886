"""Oil painting simulator: the control loop that paints a target image trace by trace.

Each update() performs one unit of work:
    - No current trace: generate one candidate at a badly painted pivot and run the
      acceptance checks. A rejection feeds the brush schedule (which may shrink the brush
      or finish the painting). An acceptance either paints the whole trace
      (step_by_step=False) or arms it for step-by-step painting.
    - Current trace (step-by-step): stamp one step. After the last step the raster planes
      are refreshed from the canvas and the visited plane is updated.

Canvases:
    - canvas: the painting itself; painted is its readback after every trace
    - buffer (use_canvas_buffer=True): a copy of the painting used for color mixing, synced
      after every trace, so a trace never mixes with its own paint

Invariants (at every trace boundary):
    - painted == canvas readback
    - similar / bad_painted consistent with painted and target (see rasters)
    - average_brush_size non-increasing; is_finished() never reverts

Usage:
    >>> sim = OilSimulator(config=SimulatorConfig(), rng=42)
    >>> sim.set_image("target.png")
    >>> sim.run()
    >>> painted = sim.planes.painted
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np
from PIL import Image

from oilpaint.utils import fs, metrics, profiler
from oilpaint.utils.validators import SimulatorConfig
from oilpaint.oil_simulator import acceptance
from oilpaint.oil_simulator.canvas import CanvasBackend, create_canvas
from oilpaint.oil_simulator.display import HostDisplay
from oilpaint.oil_simulator.errors import CanvasUnavailableError, InvalidInputError
from oilpaint.oil_simulator.rasters import PixelGrid, RasterPlanes
from oilpaint.oil_simulator.schedule import BrushSchedule
from oilpaint.oil_simulator.trace import OilTrace

logger = logging.getLogger(__name__)

ImageSource = Union[PixelGrid, np.ndarray, Image.Image, str, Path]


class OilSimulator:
    """Paints a target image with randomly generated, greedily accepted brush traces.

    Parameters
    ----------
    use_canvas_buffer : bool
        Mix bristle colors against a separate buffer canvas (order independent). When False,
        colors are mixed against a scratch copy of painted that each bristle writes into,
        so later bristles of a trace pick up paint from earlier ones.
    verbose : bool
        Log accept / shrink / finish events at INFO instead of DEBUG
    config : SimulatorConfig, optional
        Tuning constants (defaults when None)
    rng : np.random.RandomState or int, optional
        Random source or seed (config.seed when None)
    display : HostDisplay, optional
        Target of the draw_* calls

    Raises
    ------
    CanvasUnavailableError
        From set_image if a canvas cannot be allocated
    """

    def __init__(
        self,
        use_canvas_buffer: bool = True,
        verbose: bool = True,
        config: Optional[SimulatorConfig] = None,
        rng: Optional[Union[np.random.RandomState, int]] = None,
        display: Optional[HostDisplay] = None
    ):
        self.config = config or SimulatorConfig()
        self.use_canvas_buffer = use_canvas_buffer
        self.verbose = verbose
        self.display = display

        if rng is None:
            rng = self.config.seed
        if isinstance(rng, np.random.RandomState):
            self._rng = rng
        else:
            self._rng = np.random.RandomState(rng)

        cfg = self.config
        self._planes = RasterPlanes(
            cfg.max_color_difference, cfg.background_color, cfg.visited_increment
        )
        self._canvas: Optional[CanvasBackend] = None
        self._buffer: Optional[CanvasBackend] = None
        self._mix_surface: Optional[np.ndarray] = None
        self._schedule: Optional[BrushSchedule] = None

        self._trace: Optional[OilTrace] = None
        self._trace_step = 0
        self._obtain_new_trace = True
        self._n_traces = 0

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def planes(self) -> RasterPlanes:
        return self._planes

    @property
    def schedule(self) -> Optional[BrushSchedule]:
        return self._schedule

    @property
    def canvas(self) -> Optional[CanvasBackend]:
        return self._canvas

    @property
    def width(self) -> int:
        return self._planes.width

    @property
    def height(self) -> int:
        return self._planes.height

    @property
    def n_traces(self) -> int:
        return self._n_traces

    @property
    def average_brush_size(self) -> Optional[float]:
        return self._schedule.average_brush_size if self._schedule else None

    @property
    def trace(self) -> Optional[OilTrace]:
        """Trace being painted, or the last painted one."""
        return self._trace

    @property
    def trace_step(self) -> int:
        return self._trace_step

    @property
    def painting_trace(self) -> bool:
        """True while an accepted trace still has steps to stamp."""
        return not self._obtain_new_trace

    def is_finished(self) -> bool:
        return self._schedule is not None and self._schedule.finished

    def snapshot(self) -> Dict[str, np.ndarray]:
        """Copies of the raster planes and the bad-painted index list."""
        if not self._planes.is_allocated:
            raise InvalidInputError("No image has been set")
        planes = self._planes
        return {
            'target': planes.target.copy(),
            'painted': planes.painted.copy(),
            'visited': planes.visited.copy(),
            'similar': planes.similar.copy(),
            'bad_painted': planes.bad_painted.copy(),
        }

    def _log(self, msg: str) -> None:
        if self.verbose:
            logger.info(msg)
        else:
            logger.debug(msg)

    # ------------------------------------------------------------------
    # Target image
    # ------------------------------------------------------------------

    def set_image_pixels(self, pixels: Union[PixelGrid, np.ndarray], clear_canvas: bool = True) -> None:
        """Start a new painting session on a target pixel grid.

        Parameters
        ----------
        pixels : PixelGrid or np.ndarray
            Target image; arrays go through PixelGrid.from_array
        clear_canvas : bool
            Reset the canvas to the background color. When False the existing paint is
            kept (the size must match). The first call always clears.

        Raises
        ------
        InvalidInputError
            Invalid pixels, or clear_canvas=False with a different size
        CanvasUnavailableError
            Canvas allocation failed

        Both errors leave the simulator unchanged.
        """
        grid = pixels if isinstance(pixels, PixelGrid) else PixelGrid.from_array(pixels)
        cfg = self.config
        planes = self._planes
        clear = clear_canvas or not planes.is_allocated

        if clear:
            canvas = create_canvas(cfg.canvas_backend, grid.width, grid.height, cfg.device)
            buffer = None
            if self.use_canvas_buffer:
                buffer = create_canvas(cfg.canvas_backend, grid.width, grid.height, cfg.device)

            planes.set_target(grid, clear=True)
            for surface in (canvas, buffer):
                if surface is not None:
                    with surface.drawing():
                        surface.clear(cfg.background_color)
            self._canvas = canvas
            self._buffer = buffer
            self._mix_surface = np.empty_like(planes.painted)
        else:
            planes.set_target(grid, clear=False)
            # Keep painted equal to the canvas, even if a trace was interrupted
            planes.refresh_after_trace(self._canvas)
            if self._buffer is not None:
                with self._buffer.drawing():
                    self._buffer.load(planes.painted)

        self._schedule = BrushSchedule.for_canvas(cfg, grid.width, grid.height, verbose=self.verbose)
        self._trace = None
        self._trace_step = 0
        self._obtain_new_trace = True
        self._n_traces = 0

        self._log(
            f"Target set: {grid.width}x{grid.height}, cleared={clear}, "
            f"brush size {self._schedule.average_brush_size:.2f}, "
            f"bad painted pixels {planes.n_bad_painted}"
        )

    def set_image(self, image: ImageSource, clear_canvas: bool = True) -> None:
        """Like set_image_pixels, also accepting a PIL image or an image path."""
        if isinstance(image, (str, Path)):
            grid = PixelGrid.from_array(fs.load_image(image))
        elif isinstance(image, Image.Image):
            grid = PixelGrid.from_image(image)
        else:
            grid = image
        self.set_image_pixels(grid, clear_canvas)

    # ------------------------------------------------------------------
    # Painting loop
    # ------------------------------------------------------------------

    def update(self, step_by_step: bool = False) -> None:
        """Do one unit of work (no-op once finished).

        Parameters
        ----------
        step_by_step : bool
            Paint accepted traces one step per call. With False, an accepted trace (or the
            rest of a trace that was being painted step by step) is painted at once.

        Raises
        ------
        InvalidInputError
            If no image has been set
        """
        if not self._planes.is_allocated:
            raise InvalidInputError("set_image() must be called before update()")
        if self.is_finished():
            return

        if self._obtain_new_trace:
            self._try_new_trace(step_by_step)
        elif step_by_step:
            self._paint_trace_step()
        else:
            self._paint_trace()

    def run(self, step_by_step: bool = False, max_updates: Optional[int] = None) -> int:
        """Call update() until the painting finishes or max_updates is reached.

        Returns
        -------
        int
            Number of update() calls made
        """
        n_updates = 0
        while not self.is_finished():
            if max_updates is not None and n_updates >= max_updates:
                break
            self.update(step_by_step)
            n_updates += 1
        return n_updates

    def _get_new_trace(self) -> OilTrace:
        cfg = self.config
        planes = self._planes
        if planes.n_bad_painted > 0:
            index = planes.bad_painted[self._rng.randint(planes.n_bad_painted)]
            x, y = planes.index_to_point(index)
        else:
            x = self._rng.randint(planes.width)
            y = self._rng.randint(planes.height)

        size = self._schedule.average_brush_size
        length = max(cfg.min_trace_length, cfg.relative_trace_length * size)
        return OilTrace((x + 0.5, y + 0.5), length, cfg.trace_speed, size, self._rng, cfg.trace)

    def _try_new_trace(self, step_by_step: bool) -> None:
        cfg = self.config
        planes = self._planes
        trace = self._get_new_trace()

        if (acceptance.already_visited_trajectory(planes, trace, cfg)
                or not acceptance.valid_trajectory(planes, trace, cfg)):
            self._schedule.register_invalid_trajectory()
            self._check_finished()
            return

        if self._buffer is not None:
            self._buffer.readback(self._mix_surface)
        else:
            np.copyto(self._mix_surface, planes.painted)
        trace.calculate_bristle_colors(
            self._mix_surface, planes.target, cfg.background_color,
            in_place=self._buffer is None
        )

        evaluation = acceptance.evaluate_trace(planes, trace, cfg)
        if not evaluation.accepted:
            self._schedule.register_invalid_trace()
            self._check_finished()
            return

        self._trace = trace
        self._trace_step = 0
        self._obtain_new_trace = False
        self._log(
            f"Trace accepted: {trace.n_steps} steps, {trace.n_bristles} bristles, "
            f"color improvement {evaluation.color_improvement:.2f}, "
            f"well painted gain {evaluation.well_painted_gain}/{evaluation.n_inside}"
        )

        if not step_by_step:
            self._paint_trace()

    def _paint_trace(self) -> None:
        """Stamp every remaining step of the current trace, then finish it."""
        trace = self._trace
        with self._canvas.drawing():
            for step in range(self._trace_step, trace.n_steps):
                trace.paint_step(self._canvas, step)
        self._trace_step = trace.n_steps
        self._finish_trace()

    def _paint_trace_step(self) -> None:
        trace = self._trace
        with self._canvas.drawing():
            trace.paint_step(self._canvas, self._trace_step)
        self._trace_step += 1
        if self._trace_step == trace.n_steps:
            self._finish_trace()

    def _finish_trace(self) -> None:
        planes = self._planes
        with profiler.timer("oil_simulator.refresh_after_trace"):
            planes.refresh_after_trace(self._canvas)
        planes.mark_visited(self._trace)
        if self._buffer is not None:
            with self._buffer.drawing():
                self._buffer.load(planes.painted)

        self._n_traces += 1
        self._obtain_new_trace = True
        self._schedule.register_painted_trace()

        if self._n_traces % 100 == 0:
            self._log(
                f"Traces painted: {self._n_traces}, brush size "
                f"{self._schedule.average_brush_size:.2f}, bad painted pixels {planes.n_bad_painted}"
            )

    def _check_finished(self) -> None:
        if not self.is_finished():
            return
        planes = self._planes
        fraction = metrics.well_painted_fraction(
            planes.painted, planes.target, self.config.max_color_difference
        )
        self._log(
            f"Painting finished: {self._n_traces} traces, "
            f"well painted fraction {fraction:.3f}"
        )

    # ------------------------------------------------------------------
    # Host display
    # ------------------------------------------------------------------

    def _blit(self, pixels: np.ndarray, x: int, y: int) -> None:
        if self.display is None:
            raise CanvasUnavailableError("No host display attached")
        if not self._planes.is_allocated:
            raise InvalidInputError("No image has been set")
        self.display.blit(pixels, x, y)

    def draw_canvas(self, x: int = 0, y: int = 0) -> None:
        """Draw the canvas surface (mid-trace this shows a partial stroke)."""
        if self.display is None:
            raise CanvasUnavailableError("No host display attached")
        if self._canvas is None:
            raise InvalidInputError("No image has been set")
        self.display.blit(self._canvas.readback(), x, y)

    def draw_image(self, x: int = 0, y: int = 0) -> None:
        self._blit(self._planes.target, x, y)

    def draw_visited_pixels(self, x: int = 0, y: int = 0) -> None:
        self._blit(self._planes.visited, x, y)

    def draw_similar_color_pixels(self, x: int = 0, y: int = 0) -> None:
        self._blit(self._planes.similar, x, y)
