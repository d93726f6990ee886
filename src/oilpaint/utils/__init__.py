"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Config validation (validators)
    - Per-channel color predicates (color)
    - Atomic I/O, YAML and images (fs)
    - Painting quality metrics (metrics)
    - Hashing for provenance (hashing)
    - Profiling (profiler)
    - Unified logging (logging_config)

No module in utils/ may import from oil_simulator/.

Convenience imports:
    from oilpaint.utils import fs, color, validators
    from oilpaint.utils.logging_config import setup_logging, get_logger
"""

from . import color
from . import fs
from . import hashing
from . import logging_config
from . import metrics
from . import profiler
from . import validators

from .logging_config import get_logger, log_context, push_context, setup_logging

__all__ = [
    # Modules
    'color',
    'fs',
    'hashing',
    'logging_config',
    'metrics',
    'profiler',
    'validators',
    # Direct exports
    'setup_logging',
    'get_logger',
    'push_context',
    'log_context',
]
