"""Oil painting simulator.

Paints a target image by repeatedly proposing brush traces, keeping the ones that improve
the canvas, and shrinking the brush when proposals keep failing:
    - Raster planes: target / painted / visited / similar + bad-painted index list
    - Acceptance: trajectory checks, then the trace improvement check
    - Brush schedule: adaptive brush size and termination
    - Canvas backends: OpenCV (CPU) or torch (any device)

Modules:
    - simulator: OilSimulator control loop
    - rasters: PixelGrid value type and RasterPlanes
    - trace: OilTrace (trajectory, bristles, color mixing, stamping)
    - acceptance: acceptance predicates and TraceEvaluation
    - schedule: BrushSchedule
    - canvas: CanvasBackend, CPUCanvas, TorchCanvas
    - display: HostDisplay, ArrayDisplay, OpenCVWindowDisplay
    - errors: exception hierarchy

Invariants:
    - All pixel arrays are (H, W, 3) uint8 RGB, points are (x, y)
    - All randomness comes from the simulator's RandomState (seeded runs are reproducible)

Used by:
    - scripts/paint.py: command line painting runs
"""

from oilpaint.oil_simulator.errors import (
    CanvasUnavailableError,
    InvalidInputError,
    OilSimulatorError,
)
from oilpaint.oil_simulator.rasters import PixelGrid, RasterPlanes
from oilpaint.oil_simulator.simulator import OilSimulator

__all__ = [
    'OilSimulator',
    'PixelGrid',
    'RasterPlanes',
    'OilSimulatorError',
    'InvalidInputError',
    'CanvasUnavailableError',
]
