"""
Expected blob positions for tiles that have not been measured yet.

Capture sources use the expected position to pick the right blob when more
than one is visible. Estimates come from a grid fitted to the tiles measured
so far, in pattern space.
"""
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple
import logging

from mirrorcal.core.types import GridSize, Point2D, TileAddress
from .grid_blueprint import MeasuredTile
from .step_test import validate_rotation

logger = logging.getLogger(__name__)

# Spacing assumed when no neighbouring pair has been measured (pattern units)
DEFAULT_TILE_SPACING = 0.3


@dataclass(frozen=True)
class GridEstimate:
    origin: Point2D  # Center of camera cell (0, 0)
    spacing_x: float
    spacing_y: float


def transform_tile_to_camera(tile: TileAddress, grid_size: GridSize, rotation: int) -> Tuple[int, int]:
    """
    Map a logical tile to the (row, col) cell it occupies in the camera view.

    Args:
        tile: Logical tile address
        grid_size: Logical grid dimensions
        rotation: Physical array rotation in degrees

    Returns:
        (camera_row, camera_col)
    """
    rotation = validate_rotation(rotation)
    row, col = tile.row, tile.col
    if rotation == 90:
        return col, grid_size.rows - 1 - row
    if rotation == 180:
        return grid_size.rows - 1 - row, grid_size.cols - 1 - col
    if rotation == 270:
        return grid_size.cols - 1 - col, row
    return row, col


def estimate_grid(
        measured: Sequence[MeasuredTile],
        grid_size: GridSize,
        rotation: int
) -> Optional[GridEstimate]:
    """
    Fit origin and spacing to measured tile homes.

    Spacing is the mean distance between camera-adjacent measured tiles
    (DEFAULT_TILE_SPACING when there is no such pair); the origin is the
    mean of the origins each tile implies.

    Returns:
        GridEstimate, or None without measurements
    """
    if not measured:
        return None

    cells = []
    for entry in measured:
        cam_row, cam_col = transform_tile_to_camera(entry.tile, grid_size, rotation)
        cells.append((cam_row, cam_col, entry.home.x, entry.home.y))

    spacings_x = []
    spacings_y = []
    for i, (row_a, col_a, x_a, y_a) in enumerate(cells):
        for row_b, col_b, x_b, y_b in cells[i + 1:]:
            if row_a == row_b and abs(col_a - col_b) == 1:
                spacings_x.append(abs(x_a - x_b))
            if col_a == col_b and abs(row_a - row_b) == 1:
                spacings_y.append(abs(y_a - y_b))

    spacing_x = sum(spacings_x) / len(spacings_x) if spacings_x else DEFAULT_TILE_SPACING
    spacing_y = sum(spacings_y) / len(spacings_y) if spacings_y else DEFAULT_TILE_SPACING

    origin_x = sum(x - col * spacing_x for _, col, x, _ in cells) / len(cells)
    origin_y = sum(y - row * spacing_y for row, _, _, y in cells) / len(cells)
    return GridEstimate(origin=Point2D(origin_x, origin_y), spacing_x=spacing_x, spacing_y=spacing_y)


def compute_expected_home_position(
        tile: TileAddress,
        measured: Sequence[MeasuredTile],
        grid_size: GridSize,
        rotation: int
) -> Optional[Point2D]:
    """
    Where `tile`'s blob should appear at its home pose.

    Returns:
        Pattern-space position, or None before any tile was measured
    """
    estimate = estimate_grid(measured, grid_size, rotation)
    if estimate is None:
        return None
    cam_row, cam_col = transform_tile_to_camera(tile, grid_size, rotation)
    expected = Point2D(
        x=estimate.origin.x + cam_col * estimate.spacing_x,
        y=estimate.origin.y + cam_row * estimate.spacing_y,
    )
    logger.debug(f"Expected home for {tile.key}: ({expected.x:.4f}, {expected.y:.4f})")
    return expected
