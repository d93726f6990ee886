"""Wall-clock timing for painting runs and raster refreshes.

    with timer("paint", sink=timings.__setitem__):
        simulator.run()

    with timer("oil_simulator.refresh_after_trace") as t:   # DEBUG log on exit
        planes.refresh_after_trace(canvas)
    t.elapsed
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

logger = logging.getLogger(__name__)


@dataclass
class Timing:
    name: str
    elapsed: float = 0.0


@contextmanager
def timer(name: str, sink: Optional[Callable[[str, float], None]] = None) -> Iterator[Timing]:
    """Time a block; the result goes to ``sink(name, seconds)`` or to a DEBUG record.

    The block is timed even when it raises.
    """
    timing = Timing(name)
    start = time.perf_counter()
    try:
        yield timing
    finally:
        timing.elapsed = time.perf_counter() - start
        if sink is None:
            logger.debug(f"{name}: {timing.elapsed * 1e3:.2f} ms")
        else:
            sink(name, timing.elapsed)
