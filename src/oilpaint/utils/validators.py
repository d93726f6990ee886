"""Configuration schema and loading for the oil painting simulator.

Provides centralized validation of the tuning constants using pydantic:
    - Simulator schema (oil_simulator.v1.yaml): brush schedule, acceptance thresholds,
      canvas backend, RNG seed
    - Trace schema (nested under ``trace``): bristle geometry and color mixing

Configs are immutable once built: pass a new config to a new simulator instead of
changing constants mid-run.

Units:
    - Lengths and brush sizes: pixels
    - Speed: pixels/step
    - Colors: 8-bit RGB channels [0, 255]
    - Fractions: [0.0, 1.0]

Usage:
    from oilpaint.utils import validators

    cfg = validators.load_simulator_config("configs/oil_simulator.v1.yaml")
    fast = cfg.model_copy(update={"max_invalid_trajectories": 200})
"""

import math
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator, ValidationError


RGB = Tuple[int, int, int]


# ============================================================================
# TRACE SCHEMA
# ============================================================================

class TraceConfig(BaseModel):
    """Bristle geometry and paint mixing for generated traces."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    bristle_density: float = Field(
        0.6, gt=0.0, le=4.0, description="Bristles per pixel of brush size"
    )
    bristle_jitter: float = Field(
        0.25, ge=0.0, le=1.0, description="Offset jitter, relative to bristle spacing"
    )
    max_turn_per_step: float = Field(
        0.05, ge=0.0, le=math.pi, description="Max constant curvature (rad/step)"
    )
    turn_noise: float = Field(
        0.02, ge=0.0, le=math.pi, description="Stdev of per-step heading noise (rad)"
    )
    brightness_relative_change: float = Field(
        0.09, ge=0.0, lt=1.0, description="Max relative brightness change per bristle"
    )
    mix_strength: float = Field(
        0.012, ge=0.0, le=1.0, description="Fraction of underlying paint picked up per step"
    )
    mix_starting_step: int = Field(
        5, ge=0, description="First step where bristles pick up underlying paint"
    )


# ============================================================================
# SIMULATOR SCHEMA V1
# ============================================================================

class SimulatorConfig(BaseModel):
    """Tuning constants of the painting simulator (oil_simulator.v1.yaml schema).

    Field names are the snake_case form of the classic constants, e.g.
    ``SMALLER_BRUSH_SIZE`` → ``smaller_brush_size``.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    schema_version: str = Field("oil_simulator.v1", alias="schema", description="Schema version")

    # Brush schedule
    smaller_brush_size: float = Field(4.0, gt=0.0, description="Smallest brush size (px)")
    brush_size_decrement: float = Field(
        1.0 / 1.3, gt=0.0, lt=1.0, description="Brush size multiplier applied on shrink"
    )
    max_invalid_trajectories: int = Field(5000, ge=0)
    max_invalid_trajectories_for_smaller_size: int = Field(10000, ge=0)
    max_invalid_traces: int = Field(250, ge=0)
    max_invalid_traces_for_smaller_size: int = Field(350, ge=0)

    # Trace geometry
    trace_speed: float = Field(2.0, gt=0.0, description="Trace speed (px/step)")
    relative_trace_length: float = Field(2.3, gt=0.0, description="Typical length / brush size")
    min_trace_length: float = Field(16.0, gt=0.0, description="Minimum trace length (px)")

    # Colors
    background_color: RGB = Field((255, 255, 255), description="Canvas background (RGB)")
    max_color_difference: RGB = Field(
        (40, 40, 40), description="Per-channel tolerance for a well painted pixel"
    )

    # Trajectory checks
    max_visits_fraction_in_trajectory: float = Field(0.35, ge=0.0, le=1.0)
    min_inside_fraction_in_trajectory: float = Field(0.4, ge=0.0, le=1.0)
    max_similar_color_fraction_in_trajectory: float = Field(0.6, ge=0.0, le=1.0)
    max_color_stdev_in_trajectory: float = Field(45.0, ge=0.0)

    # Trace checks
    min_inside_fraction: float = Field(0.7, ge=0.0, le=1.0)
    max_similar_color_fraction: float = Field(0.8, ge=0.0, le=1.0)
    max_painted_fraction: float = Field(0.65, ge=0.0, le=1.0)
    min_color_improvement_factor: float = Field(1.5, ge=0.0)
    big_well_painted_improvement_fraction: float = Field(0.4, ge=0.0)
    min_bad_painted_reduction_fraction: float = Field(0.2, ge=0.0, le=1.0)
    max_well_painted_destruction_fraction: float = Field(0.4, ge=0.0, le=1.0)

    # Bookkeeping, randomness and backend
    visited_increment: int = Field(
        64, ge=1, le=255, description="Saturating step added to a visited pixel"
    )
    seed: int = Field(42, ge=0, description="Default RNG seed")
    canvas_backend: str = Field("cpu", description="'cpu' (OpenCV) or 'torch'")
    device: Optional[str] = Field(None, description="Torch device for the torch backend")

    trace: TraceConfig = Field(default_factory=TraceConfig)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "oil_simulator.v1":
            raise ValueError(f"Expected schema 'oil_simulator.v1', got '{v}'")
        return v

    @field_validator('background_color', 'max_color_difference')
    @classmethod
    def validate_rgb(cls, v: RGB) -> RGB:
        for channel in v:
            if not 0 <= channel <= 255:
                raise ValueError(f"RGB channels must be in [0, 255], got {v}")
        return v

    @field_validator('canvas_backend')
    @classmethod
    def validate_backend(cls, v: str) -> str:
        allowed = {'cpu', 'torch'}
        if v not in allowed:
            raise ValueError(f"canvas_backend must be one of {allowed}, got {v}")
        return v

    @model_validator(mode='after')
    def validate_trace_lengths(self) -> 'SimulatorConfig':
        """A trace must have at least one step."""
        if self.min_trace_length < self.trace_speed:
            raise ValueError(
                f"min_trace_length ({self.min_trace_length}) must be >= "
                f"trace_speed ({self.trace_speed})"
            )
        return self


# ============================================================================
# PUBLIC API
# ============================================================================

def load_simulator_config(path: Union[str, Path]) -> SimulatorConfig:
    """Load and validate simulator config from YAML.

    Parameters
    ----------
    path : Union[str, Path]
        Path to oil_simulator.v1.yaml file

    Returns
    -------
    SimulatorConfig
        Validated configuration

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ValueError
        If validation fails (message names the file and the offending keys)
    """
    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Simulator config not found: {path}")

    data = fs.load_yaml(path)
    try:
        return SimulatorConfig(**data)
    except (ValidationError, TypeError) as e:
        raise ValueError(f"Simulator config validation failed at {path}: {e}") from e


def flatten_config(cfg: Union[Dict, BaseModel], prefix: str = "") -> Dict[str, Any]:
    """Flatten a nested config into dotted keys.

    Examples
    --------
    >>> flatten_config(SimulatorConfig())["trace.mix_strength"]
    0.012
    """
    if isinstance(cfg, BaseModel):
        cfg = cfg.model_dump(by_alias=True)

    flat = {}
    for key, value in cfg.items():
        full_key = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(flatten_config(value, prefix=f"{full_key}."))
        else:
            flat[full_key] = value
    return flat
