"""
Per-tile bounds in pattern space.

- motor reach: how far a tile's blob can travel within the actuator limits,
  projected from its home position through the measured sensitivities
- footprint: the tile's cell in the grid blueprint
- combined: union of both, for overlays and pattern validation
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
import math

from mirrorcal.core.types import AxisPair, Point2D, TileAddress
from .step_test import DEFAULT_MOTOR_LIMITS, STEP_EPSILON, MotorLimits


def clamp_normalized(value: float) -> float:
    """Clamp to [-1, 1]; non-finite values become 0."""
    if not math.isfinite(value):
        return 0.0
    return max(-1.0, min(1.0, value))


@dataclass(frozen=True)
class AxisBounds:
    min: float
    max: float

    def to_dict(self) -> Dict[str, float]:
        return {"min": self.min, "max": self.max}


@dataclass(frozen=True)
class TileBounds:
    x: AxisBounds
    y: AxisBounds

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {"x": self.x.to_dict(), "y": self.y.to_dict()}


def compute_axis_bounds(
        center: Optional[float],
        center_steps: Optional[float],
        per_step: Optional[float],
        limits: Optional[MotorLimits] = None
) -> Optional[AxisBounds]:
    """
    Reachable range on one axis.

    Args:
        center: Blob position at `center_steps`
        center_steps: Actuator position the center was measured at
        per_step: Pattern units per step
        limits: Actuator bounds

    Returns:
        AxisBounds, or None when any input is missing or the sensitivity
        is below STEP_EPSILON
    """
    if center is None or center_steps is None or per_step is None:
        return None
    if not math.isfinite(per_step) or abs(per_step) < STEP_EPSILON:
        return None

    limits = limits or DEFAULT_MOTOR_LIMITS
    candidate_a = clamp_normalized(center + (limits.min_steps - center_steps) * per_step)
    candidate_b = clamp_normalized(center + (limits.max_steps - center_steps) * per_step)
    return AxisBounds(min=min(candidate_a, candidate_b), max=max(candidate_a, candidate_b))


def compute_live_tile_bounds(
        home: Point2D,
        step_to_displacement: Optional[AxisPair],
        limits: Optional[MotorLimits] = None
) -> Optional[TileBounds]:
    """Motor reach around a home measurement taken at step 0."""
    if step_to_displacement is None:
        return None
    bounds_x = compute_axis_bounds(home.x, 0, step_to_displacement.x, limits)
    bounds_y = compute_axis_bounds(home.y, 0, step_to_displacement.y, limits)
    if bounds_x is None or bounds_y is None:
        return None
    return TileBounds(x=bounds_x, y=bounds_y)


def compute_footprint_bounds(
        grid_origin: Point2D,
        tile: TileAddress,
        spacing: Tuple[float, float],
        tile_size: Tuple[float, float]
) -> TileBounds:
    """Cell occupied by `tile` in a grid starting at `grid_origin`."""
    min_x = grid_origin.x + tile.col * spacing[0]
    min_y = grid_origin.y + tile.row * spacing[1]
    return TileBounds(
        x=AxisBounds(min=min_x, max=min_x + tile_size[0]),
        y=AxisBounds(min=min_y, max=min_y + tile_size[1]),
    )


def merge_bounds_union(current: Optional[TileBounds], candidate: TileBounds) -> TileBounds:
    """Outer envelope of two bounds."""
    if current is None:
        return candidate
    return TileBounds(
        x=AxisBounds(min=min(current.x.min, candidate.x.min), max=max(current.x.max, candidate.x.max)),
        y=AxisBounds(min=min(current.y.min, candidate.y.min), max=max(current.y.max, candidate.y.max)),
    )
