"""Paint a target image with the oil painting simulator.

Runs one full painting session:
    1. Load and validate the simulator config (oil_simulator.v1.yaml)
    2. Load the target image
    3. Run the simulator until the brush schedule is exhausted
       (optionally showing progress in an OpenCV window)
    4. Save the painted canvas
    5. Report quality metrics (well painted fraction, MAE, PSNR)

Refactored architecture:
    - paint_main(target_image_path, output_dir, ...) → dict
        * Callable function (used by tests and batch jobs)
    - CLI entry point: if __name__ == "__main__"

CLI:
    python scripts/paint.py --target data/sample.png --output out/
    python scripts/paint.py --target sample.png --output out/ --seed 7 --backend torch
    python scripts/paint.py --target sample.png --output out/ --show --step-by-step

Output structure:
    <output_dir>/
        <job_name>_painted.png
        <job_name>_report.yaml
        <job_name>_paint.log      (with --log-file)
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from oilpaint.oil_simulator import OilSimulator
from oilpaint.oil_simulator.display import OpenCVWindowDisplay
from oilpaint.utils import fs, hashing, metrics, profiler, validators
from oilpaint.utils.logging_config import install_excepthook, log_context, setup_logging, shutdown

logger = logging.getLogger(__name__)


def paint_main(
    target_image_path: str,
    output_dir: str,
    config_path: Optional[str] = "configs/oil_simulator.v1.yaml",
    seed: Optional[int] = None,
    backend: Optional[str] = None,
    use_canvas_buffer: bool = True,
    step_by_step: bool = False,
    max_updates: Optional[int] = None,
    show: bool = False,
    verbose: bool = True,
) -> Dict[str, Any]:
    """Run a painting session and write its artifacts.

    Parameters
    ----------
    target_image_path : str
        Path to target image (PNG/JPEG)
    output_dir : str
        Output directory for artifacts
    config_path : Optional[str]
        Simulator config YAML; built-in defaults when None
    seed : Optional[int]
        Overrides config seed
    backend : Optional[str]
        Overrides config canvas_backend ('cpu' or 'torch')
    use_canvas_buffer : bool
        Mix colors against a separate buffer canvas, default True
    step_by_step : bool
        Paint one trace step per update (smoother live display)
    max_updates : Optional[int]
        Stop after this many updates even if the painting is not finished
    show : bool
        Show progress in an OpenCV window (needs a display server)
    verbose : bool
        Simulator events at INFO level

    Returns
    -------
    Dict[str, Any]
        Results dict with:
            - painted_path: str
            - report_path: str
            - n_traces: int
            - n_updates: int
            - finished: bool
            - well_painted_fraction, mae, psnr: float
            - elapsed_s: float
    """
    if config_path is not None:
        cfg = validators.load_simulator_config(config_path)
    else:
        cfg = validators.SimulatorConfig()

    overrides = {}
    if seed is not None:
        overrides['seed'] = seed
    if backend is not None:
        overrides['canvas_backend'] = backend
    if overrides:
        # Re-validate instead of model_copy(update=...), which skips validation
        cfg = validators.SimulatorConfig(**{**cfg.model_dump(by_alias=True), **overrides})

    job_name = Path(target_image_path).stem
    config_hash = hashing.hash_dict(cfg.model_dump(by_alias=True))
    with log_context(job=job_name, cfg=config_hash[:8]):
        logger.info(f"Starting painting: {target_image_path} (config {config_hash[:12]})")
        logger.debug(
            "Config: " + ", ".join(f"{k}={v}" for k, v in validators.flatten_config(cfg).items())
        )

        out_path = fs.ensure_dir(output_dir)
        target = fs.load_image(target_image_path)

        display = None
        if show:
            height, width = target.shape[:2]
            display = OpenCVWindowDisplay("oilpaint", 2 * width, height)

        timings = {}
        try:
            simulator = OilSimulator(
                use_canvas_buffer=use_canvas_buffer,
                verbose=verbose,
                config=cfg,
                rng=cfg.seed,
                display=display
            )
            simulator.set_image_pixels(target)

            with profiler.timer("paint", sink=timings.__setitem__):
                if display is None:
                    n_updates = simulator.run(step_by_step=step_by_step, max_updates=max_updates)
                else:
                    n_updates = _run_with_display(simulator, display, step_by_step, max_updates)
        finally:
            if display is not None:
                display.close()

        planes = simulator.planes
        painted_path = out_path / f"{job_name}_painted.png"
        fs.atomic_save_image(planes.painted, painted_path)

        result = {
            'painted_path': str(painted_path),
            'n_traces': simulator.n_traces,
            'n_updates': n_updates,
            'finished': simulator.is_finished(),
            'final_brush_size': float(simulator.average_brush_size),
            'well_painted_fraction': metrics.well_painted_fraction(
                planes.painted, planes.target, cfg.max_color_difference
            ),
            'mae': metrics.mean_absolute_error(planes.painted, planes.target),
            'psnr': metrics.psnr(planes.painted, planes.target),
            'elapsed_s': timings['paint'],
            'config_hash': config_hash,
            'target_sha256': hashing.sha256_file(target_image_path),
            'painted_sha256': hashing.sha256_array(planes.painted),
        }

        report_path = out_path / f"{job_name}_report.yaml"
        fs.atomic_yaml_dump(result, report_path)
        result['report_path'] = str(report_path)

        logger.info(
            f"Painting done: {result['n_traces']} traces in {result['elapsed_s']:.1f} s, "
            f"well painted {result['well_painted_fraction']:.3f}, PSNR {result['psnr']:.2f} dB"
        )
        return result


def _run_with_display(simulator, display, step_by_step, max_updates) -> int:
    """Run loop that refreshes the window (canvas | target) after every painted trace."""
    n_updates = 0
    last_traces = -1
    while not simulator.is_finished():
        if max_updates is not None and n_updates >= max_updates:
            break
        simulator.update(step_by_step)
        n_updates += 1
        if step_by_step or simulator.n_traces != last_traces:
            last_traces = simulator.n_traces
            simulator.draw_canvas(0, 0)
            simulator.draw_image(simulator.width, 0)
            if display.show() == 27:  # Esc
                logger.info("Painting interrupted from the window")
                break
    return n_updates


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Paint a target image with the oil painting simulator"
    )
    parser.add_argument(
        "--target",
        type=str,
        required=True,
        help="Path to target image (PNG/JPEG)",
    )
    parser.add_argument(
        "--output",
        type=str,
        required=True,
        help="Output directory for artifacts",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="configs/oil_simulator.v1.yaml",
        help="Path to simulator config",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="RNG seed (overrides config)",
    )
    parser.add_argument(
        "--backend",
        choices=["cpu", "torch"],
        default=None,
        help="Canvas backend (overrides config)",
    )
    parser.add_argument(
        "--no-canvas-buffer",
        action="store_true",
        help="Mix colors in place instead of against a buffer canvas",
    )
    parser.add_argument(
        "--step-by-step",
        action="store_true",
        help="Paint one trace step per update",
    )
    parser.add_argument(
        "--max-updates",
        type=int,
        default=None,
        help="Stop after this many updates",
    )
    parser.add_argument(
        "--show",
        action="store_true",
        help="Show progress in an OpenCV window (Esc to stop)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="Logging level",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Optional log file",
    )

    args = parser.parse_args()

    setup_logging(log_level=args.log_level, log_file=args.log_file, context={"app": "paint"})
    install_excepthook()

    try:
        result = paint_main(
            target_image_path=args.target,
            output_dir=args.output,
            config_path=args.config,
            seed=args.seed,
            backend=args.backend,
            use_canvas_buffer=not args.no_canvas_buffer,
            step_by_step=args.step_by_step,
            max_updates=args.max_updates,
            show=args.show,
        )
    finally:
        shutdown()

    print("\n=== Painting Complete ===")
    print(f"Painted image: {result['painted_path']}")
    print(f"Report: {result['report_path']}")
    print(f"Traces: {result['n_traces']} (finished={result['finished']})")
    print(f"Well painted: {result['well_painted_fraction']:.3f}, PSNR: {result['psnr']:.2f} dB")


if __name__ == "__main__":
    main()
