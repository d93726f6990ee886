"""Exceptions raised by the oil painting simulator.

A finished painting is not an error: once the brush schedule is exhausted,
update() simply does nothing.
"""


class OilSimulatorError(Exception):
    """Base class for simulator errors."""


class InvalidInputError(OilSimulatorError, ValueError):
    """Target image or pixel buffer cannot be used (zero extent, wrong shape or dtype)."""


class CanvasUnavailableError(OilSimulatorError, RuntimeError):
    """Canvas surface could not be allocated, or drawing happened outside a valid context."""
