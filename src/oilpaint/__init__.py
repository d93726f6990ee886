"""Oil painting simulator: paints a target image with bristle brush traces.

This package contains the painting simulator (trace selection, acceptance checks,
adaptive brush schedule, raster bookkeeping, canvas backends) and the shared
utilities it is built on.

Architecture layers (strict one-way dependency):
    scripts/ → oilpaint.oil_simulator → oilpaint.utils

Key invariants:
    - All rasters are (H, W[, 3]) uint8 numpy arrays in RGB order
    - Tuning constants live in one immutable SimulatorConfig (YAML-loadable)
    - Randomness comes from one injected, seeded RNG (runs are reproducible)
    - The simulator is single-threaded: one update() is one unit of work
"""

__version__ = "1.0.0"
