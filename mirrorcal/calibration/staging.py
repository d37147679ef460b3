"""
Staging positions for tiles during calibration.

While one tile is measured, every other tile is parked "aside" so the
camera only sees the reflection under test.
"""
from typing import Optional, Tuple

from mirrorcal.core.types import GridSize, TileAddress
from .step_test import MotorLimits, DEFAULT_MOTOR_LIMITS, validate_rotation

STAGING_POSITIONS = ("nearest-corner", "corner", "bottom", "left")
POSES = ("home", "aside")


def _extremes(rotation: int, limits: MotorLimits) -> Tuple[float, float, float, float]:
    """
    Motor extremes as (left_x, right_x, top_y, bottom_y).

    Baseline wiring: max X is visually left, min Y is visually bottom.
    180/270 degree mounts invert both.
    """
    if validate_rotation(rotation) in (0, 90):
        return limits.max_steps, limits.min_steps, limits.max_steps, limits.min_steps
    return limits.min_steps, limits.max_steps, limits.min_steps, limits.max_steps


def compute_distributed_axis_target(
        column: int,
        total_cols: int,
        limits: Optional[MotorLimits] = None
) -> float:
    """Spread columns evenly across the actuator range."""
    limits = limits or DEFAULT_MOTOR_LIMITS
    cols = max(1, total_cols)
    if cols == 1:
        return limits.clamp((limits.max_steps + limits.min_steps) / 2)
    span = limits.max_steps - limits.min_steps
    return limits.clamp(limits.min_steps + column / (cols - 1) * span)


def compute_nearest_corner_target(
        tile: TileAddress,
        grid: GridSize,
        rotation: int,
        limits: Optional[MotorLimits] = None
) -> Tuple[float, float]:
    """Park the tile in the corner of its grid quadrant."""
    left_x, right_x, top_y, bottom_y = _extremes(rotation, limits or DEFAULT_MOTOR_LIMITS)
    is_top = tile.row < (grid.rows - 1) / 2
    is_left = tile.col < (grid.cols - 1) / 2
    return (left_x if is_left else right_x, top_y if is_top else bottom_y)


def compute_pose_targets(
        tile: TileAddress,
        pose: str,
        grid: GridSize,
        rotation: int = 0,
        staging_position: str = "nearest-corner",
        limits: Optional[MotorLimits] = None
) -> Tuple[float, float]:
    """
    Actuator targets (x_steps, y_steps) for a tile pose.

    Args:
        tile: Tile being moved
        pose: 'home' (centered) or 'aside' (parked)
        grid: Grid dimensions
        rotation: Array rotation in degrees
        staging_position: One of STAGING_POSITIONS
        limits: Actuator bounds

    Returns:
        (x, y) step targets
    """
    if pose not in POSES:
        raise ValueError(f"Unknown pose: {pose!r}")
    if staging_position not in STAGING_POSITIONS:
        raise ValueError(f"Unknown staging position: {staging_position!r}")
    if pose == "home":
        return (0, 0)

    limits = limits or DEFAULT_MOTOR_LIMITS
    left_x, _, _, bottom_y = _extremes(rotation, limits)

    if staging_position == "nearest-corner":
        return compute_nearest_corner_target(tile, grid, rotation, limits)
    if staging_position == "corner":
        return (left_x, bottom_y)
    if staging_position == "bottom":
        return (compute_distributed_axis_target(tile.col, grid.cols, limits), bottom_y)
    return (left_x, compute_distributed_axis_target(tile.col, grid.cols, limits))
