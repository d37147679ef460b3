"""
Grid blueprint and run summary computation.

After every tile has a home measurement, the blueprint describes the ideal
tiled layout in pattern space:
- tile footprint derived from the median neighbour pitch (isotropic, so a
  physically square grid yields equal pitch on both axes) minus the
  configured gap, falling back to a robust statistic over blob sizes
- grid origin as the per-axis median of the origins implied by each tile
- camera origin offset that centers the grid in the frame

Each tile's ideal target and home offset (home minus ideal target) follow
from the blueprint.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union
import logging
import math

from mirrorcal.core.io_utils import atomic_write_yaml
from mirrorcal.core.types import AxisPair, BlobMeasurement, GridSize, Point2D, TileAddress
from .robust_stats import (
    DEFAULT_OUTLIER_MAD_THRESHOLD,
    OutlierDetectionResult,
    compute_median,
    detect_outliers_with_keys,
)
from .bounds import TileBounds, compute_footprint_bounds, compute_live_tile_bounds, merge_bounds_union
from .step_test import MotorLimits, build_step_scale

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_WIDTH = 1920
DEFAULT_SOURCE_HEIGHT = 1080

GRID_GAP_MIN_NORMALIZED = 0.0
GRID_GAP_MAX_NORMALIZED = 0.5

SIZING_STRATEGIES = ("max", "robust-max", "robust-median")

# Tile statuses that carry a usable home measurement
MEASURED_STATUSES = ("completed", "partial", "max-iterations")

# Only fully measured tiles get home offsets
OFFSET_STATUSES = ("completed",)


def _finite_or_none(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


def _bounds_dict(bounds: Optional[TileBounds]) -> Optional[Dict[str, Dict[str, float]]]:
    return bounds.to_dict() if bounds is not None else None


@dataclass
class RobustTileSizeSettings:
    """Outlier rejection for the canonical tile size."""
    enabled: bool = True
    mad_threshold: float = DEFAULT_OUTLIER_MAD_THRESHOLD
    strategy: str = "robust-median"  # "max", "robust-max", "robust-median"


@dataclass(frozen=True)
class HomeOffset:
    """Home position minus ideal target, pattern units."""
    dx: float
    dy: float

    def to_dict(self) -> Dict[str, float]:
        return {"dx": self.dx, "dy": self.dy}


@dataclass(frozen=True)
class TileFootprint:
    width: float
    height: float

    def to_dict(self) -> Dict[str, float]:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class GridBlueprint:
    """Canonical layout derived from a calibration run."""
    adjusted_tile_footprint: TileFootprint
    tile_gap: Point2D
    grid_origin: Point2D  # Relative to camera_origin_offset
    camera_origin_offset: Point2D
    source_width: int
    source_height: int

    @property
    def spacing(self) -> Tuple[float, float]:
        return (
            self.adjusted_tile_footprint.width + self.tile_gap.x,
            self.adjusted_tile_footprint.height + self.tile_gap.y,
        )

    def footprint_bounds(self, tile: TileAddress) -> TileBounds:
        return compute_footprint_bounds(
            self.grid_origin,
            tile,
            self.spacing,
            (self.adjusted_tile_footprint.width, self.adjusted_tile_footprint.height),
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "adjusted_tile_footprint": self.adjusted_tile_footprint.to_dict(),
            "tile_gap": self.tile_gap.to_dict(),
            "grid_origin": self.grid_origin.to_dict(),
            "camera_origin_offset": self.camera_origin_offset.to_dict(),
            "source_width": self.source_width,
            "source_height": self.source_height,
        }


@dataclass(frozen=True)
class OutlierAnalysis:
    """Which tiles were excluded from footprint sizing, and why."""
    enabled: bool
    outlier_tile_keys: Tuple[str, ...] = ()
    median: float = 0.0
    mad: float = 0.0
    n_mad: float = 0.0
    upper_threshold: float = 0.0
    computed_tile_size: float = 0.0

    @property
    def outlier_count(self) -> int:
        return len(self.outlier_tile_keys)

    def to_dict(self) -> Dict[str, object]:
        return {
            "enabled": self.enabled,
            "outlier_tile_keys": list(self.outlier_tile_keys),
            "outlier_count": self.outlier_count,
            "median": self.median,
            "mad": self.mad,
            "n_mad": self.n_mad,
            "upper_threshold": _finite_or_none(self.upper_threshold),
            "computed_tile_size": self.computed_tile_size,
        }


@dataclass(frozen=True)
class TileCalibrationResult:
    """Per-tile outcome of the measurement phase (pattern space)."""
    tile: TileAddress
    status: str
    home_measurement: Optional[BlobMeasurement] = None
    step_to_displacement: Optional[AxisPair] = None
    size_delta_at_step_test: Optional[float] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class TileSummary:
    """Exported per-tile calibration data."""
    tile: TileAddress
    status: str
    home_measurement: BlobMeasurement  # Recentered on the grid
    step_to_displacement: Optional[AxisPair]
    size_delta_at_step_test: Optional[float]
    step_scale: Optional[AxisPair] = None
    ideal_target: Optional[Point2D] = None
    home_offset: Optional[HomeOffset] = None
    is_size_outlier: bool = False
    motor_reach_bounds: Optional[TileBounds] = None
    footprint_bounds: Optional[TileBounds] = None

    @property
    def combined_bounds(self) -> Optional[TileBounds]:
        if self.footprint_bounds is None:
            return self.motor_reach_bounds
        return merge_bounds_union(self.motor_reach_bounds, self.footprint_bounds)

    def to_dict(self) -> Dict[str, object]:
        return {
            "tile": self.tile.to_dict(),
            "status": self.status,
            "home_measurement": self.home_measurement.to_dict(),
            "step_to_displacement": (
                self.step_to_displacement.to_dict() if self.step_to_displacement else None
            ),
            "size_delta_at_step_test": self.size_delta_at_step_test,
            "step_scale": self.step_scale.to_dict() if self.step_scale else None,
            "ideal_target": self.ideal_target.to_dict() if self.ideal_target else None,
            "home_offset": self.home_offset.to_dict() if self.home_offset else None,
            "is_size_outlier": self.is_size_outlier,
            "motor_reach_bounds": _bounds_dict(self.motor_reach_bounds),
            "footprint_bounds": _bounds_dict(self.footprint_bounds),
            "combined_bounds": _bounds_dict(self.combined_bounds),
        }


@dataclass(frozen=True)
class CalibrationRunSummary:
    """Durable, exportable artifact of one calibration run."""
    grid_blueprint: Optional[GridBlueprint]
    step_test_settings: Mapping[str, float]
    tiles: Mapping[str, TileSummary]
    outlier_analysis: Optional[OutlierAnalysis] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "grid_blueprint": self.grid_blueprint.to_dict() if self.grid_blueprint else None,
            "step_test_settings": dict(self.step_test_settings),
            "tiles": {key: tile.to_dict() for key, tile in self.tiles.items()},
            "outlier_analysis": (
                self.outlier_analysis.to_dict() if self.outlier_analysis else None
            ),
        }


@dataclass
class SummaryConfig:
    """Inputs for summary computation besides the tile results."""
    grid_size: GridSize
    grid_gap_normalized: float = 0.0
    delta_steps: float = 1200
    robust_tile_size: RobustTileSizeSettings = field(default_factory=RobustTileSizeSettings)
    motor_limits: MotorLimits = field(default_factory=MotorLimits)


@dataclass(frozen=True)
class MeasuredTile:
    tile: TileAddress
    home: BlobMeasurement


# ---------------------------------------------------------------------------
# Blueprint math
# ---------------------------------------------------------------------------

def compute_axis_pitch(deltas: Sequence[float]) -> float:
    """Median spacing between neighbouring tiles, 0 without neighbours."""
    return compute_median(deltas) if deltas else 0.0


def compute_implied_origin(
        tile_center: Point2D,
        tile: TileAddress,
        spacing: Tuple[float, float],
        half_tile: Tuple[float, float]
) -> Point2D:
    """Where the grid origin would be if this tile sat exactly in its cell."""
    return Point2D(
        x=tile_center.x - (tile.col * spacing[0] + half_tile[0]),
        y=tile_center.y - (tile.row * spacing[1] + half_tile[1]),
    )


def compute_grid_origin(implied_origins: Sequence[Point2D]) -> Point2D:
    if not implied_origins:
        return Point2D(0.0, 0.0)
    return Point2D(
        x=compute_median([p.x for p in implied_origins]),
        y=compute_median([p.y for p in implied_origins]),
    )


def compute_camera_origin_offset(grid_origin: Point2D, total_size: Tuple[float, float]) -> Point2D:
    return Point2D(
        x=grid_origin.x + total_size[0] / 2,
        y=grid_origin.y + total_size[1] / 2,
    )


def compute_adjusted_center(
        grid_origin: Point2D,
        tile: TileAddress,
        spacing: Tuple[float, float],
        half_tile: Tuple[float, float]
) -> Point2D:
    """Ideal tile center for a grid cell."""
    return Point2D(
        x=grid_origin.x + tile.col * spacing[0] + half_tile[0],
        y=grid_origin.y + tile.row * spacing[1] + half_tile[1],
    )


def compute_home_offset(measurement: Point2D, adjusted_center: Point2D) -> HomeOffset:
    return HomeOffset(dx=measurement.x - adjusted_center.x, dy=measurement.y - adjusted_center.y)


def compute_tile_size(
        tiles: Sequence[MeasuredTile],
        settings: RobustTileSizeSettings
) -> Tuple[float, OutlierAnalysis]:
    """
    Canonical blob size across tiles.

    Args:
        tiles: Tiles with home measurements
        settings: Strategy and threshold

    Returns:
        (tile_size, outlier_analysis)
    """
    sizes = [entry.home.size for entry in tiles]
    if not sizes:
        return 0.0, OutlierAnalysis(enabled=settings.enabled)

    strategy = settings.strategy
    if strategy not in SIZING_STRATEGIES:
        raise ValueError(f"Unknown sizing strategy: {strategy!r}")

    if not settings.enabled or strategy == "max" or len(sizes) < 2:
        size = max(sizes)
        return size, OutlierAnalysis(
            enabled=False,
            median=size,
            upper_threshold=size,
            computed_tile_size=size,
        )

    direction = "high" if strategy == "robust-max" else "both"
    detection: OutlierDetectionResult[MeasuredTile] = detect_outliers_with_keys(
        tiles,
        lambda entry: entry.home.size,
        mad_threshold=settings.mad_threshold,
        direction=direction,
    )
    inlier_sizes = [entry.home.size for entry in detection.inliers] or sizes
    if strategy == "robust-max":
        size = max(inlier_sizes)
    else:
        size = compute_median(inlier_sizes)

    outlier_keys = tuple(entry.tile.key for entry in detection.outliers)
    if outlier_keys:
        logger.info(f"Excluded {len(outlier_keys)} tile(s) from sizing: {', '.join(outlier_keys)}")

    return size, OutlierAnalysis(
        enabled=True,
        outlier_tile_keys=outlier_keys,
        median=detection.median,
        mad=detection.mad,
        n_mad=detection.n_mad,
        upper_threshold=detection.upper_threshold,
        computed_tile_size=size,
    )


def compute_grid_blueprint(
        measured_tiles: Sequence[MeasuredTile],
        config: SummaryConfig
) -> Tuple[Optional[GridBlueprint], OutlierAnalysis]:
    """
    Derive the grid blueprint from tile home measurements.

    Args:
        measured_tiles: Tiles with home measurements in pattern space
        config: Grid size, gap and sizing settings

    Returns:
        (blueprint or None when nothing was measured, outlier analysis)
    """
    tile_size, analysis = compute_tile_size(measured_tiles, config.robust_tile_size)
    if not measured_tiles:
        return None, analysis

    first = measured_tiles[0].home
    source_width = first.source_width or DEFAULT_SOURCE_WIDTH
    source_height = first.source_height or DEFAULT_SOURCE_HEIGHT

    # Pattern-space deltas scaled so equal physical distances compare equal
    avg_dim = (source_width + source_height) / 2
    iso_factor_x = source_width / avg_dim
    iso_factor_y = source_height / avg_dim

    by_address = {(entry.tile.row, entry.tile.col): entry.home for entry in measured_tiles}
    deltas_x: List[float] = []
    deltas_y: List[float] = []
    for entry in measured_tiles:
        row, col = entry.tile.row, entry.tile.col
        right = by_address.get((row, col + 1))
        if right is not None:
            deltas_x.append(abs(right.x - entry.home.x) * iso_factor_x)
        below = by_address.get((row + 1, col))
        if below is not None:
            deltas_y.append(abs(below.y - entry.home.y) * iso_factor_y)

    gap = max(GRID_GAP_MIN_NORMALIZED, min(GRID_GAP_MAX_NORMALIZED, config.grid_gap_normalized))
    gap_x = gap_y = gap * 2  # Normalized [0, 1] gap in [-1, 1] pattern units

    iso_pitch_x = compute_axis_pitch(deltas_x)
    iso_pitch_y = compute_axis_pitch(deltas_y)
    if iso_pitch_y <= 0 < iso_pitch_x:
        iso_pitch_y = iso_pitch_x
    if iso_pitch_x <= 0 < iso_pitch_y:
        iso_pitch_x = iso_pitch_y

    tile_width = tile_height = tile_size
    if iso_pitch_x > 0 and iso_pitch_y > 0:
        iso_tile = (iso_pitch_x + iso_pitch_y) / 2 - gap_x
        tile_width = iso_tile / iso_factor_x
        tile_height = iso_tile / iso_factor_y

    spacing = (tile_width + gap_x, tile_height + gap_y)
    half_tile = (tile_width / 2, tile_height / 2)
    rows, cols = config.grid_size.rows, config.grid_size.cols
    total_size = (cols * spacing[0] - gap_x, rows * spacing[1] - gap_y)

    implied = [
        compute_implied_origin(Point2D(entry.home.x, entry.home.y), entry.tile, spacing, half_tile)
        for entry in measured_tiles
    ]
    origin = compute_grid_origin(implied)
    camera_offset = compute_camera_origin_offset(origin, total_size)

    blueprint = GridBlueprint(
        adjusted_tile_footprint=TileFootprint(width=tile_width, height=tile_height),
        tile_gap=Point2D(gap_x, gap_y),
        grid_origin=Point2D(origin.x - camera_offset.x, origin.y - camera_offset.y),
        camera_origin_offset=camera_offset,
        source_width=int(source_width),
        source_height=int(source_height),
    )
    logger.debug(
        f"Blueprint: tile={tile_width:.4f}x{tile_height:.4f}, "
        f"gap={gap_x:.4f}, offset=({camera_offset.x:.4f}, {camera_offset.y:.4f})"
    )
    return blueprint, analysis


def _recenter(measurement: BlobMeasurement, offset: Point2D) -> BlobMeasurement:
    return BlobMeasurement(
        x=measurement.x - offset.x,
        y=measurement.y - offset.y,
        size=measurement.size,
        response=measurement.response,
        captured_at=measurement.captured_at,
        space=measurement.space,
        source_width=measurement.source_width,
        source_height=measurement.source_height,
    )


def compute_calibration_summary(
        tile_results: Mapping[str, TileCalibrationResult],
        config: SummaryConfig
) -> CalibrationRunSummary:
    """
    Build the run summary: blueprint, outlier analysis and per-tile offsets.

    Only tiles with a home measurement appear in the summary; only completed
    tiles get an ideal target and home offset.
    """
    measured = [
        MeasuredTile(tile=result.tile, home=result.home_measurement)
        for result in tile_results.values()
        if result.status in MEASURED_STATUSES and result.home_measurement is not None
    ]
    blueprint, analysis = compute_grid_blueprint(measured, config)
    outlier_keys = set(analysis.outlier_tile_keys)

    tiles: Dict[str, TileSummary] = {}
    for entry in measured:
        result = tile_results[entry.tile.key]
        home = entry.home
        ideal_target = None
        home_offset = None
        footprint = None
        if blueprint is not None:
            home = _recenter(entry.home, blueprint.camera_origin_offset)
            footprint = blueprint.footprint_bounds(entry.tile)
            if result.status in OFFSET_STATUSES:
                ideal_target = compute_adjusted_center(
                    blueprint.grid_origin,
                    entry.tile,
                    blueprint.spacing,
                    (blueprint.adjusted_tile_footprint.width / 2,
                     blueprint.adjusted_tile_footprint.height / 2),
                )
                home_offset = compute_home_offset(Point2D(home.x, home.y), ideal_target)

        tiles[entry.tile.key] = TileSummary(
            tile=entry.tile,
            status=result.status,
            home_measurement=home,
            step_to_displacement=result.step_to_displacement,
            size_delta_at_step_test=result.size_delta_at_step_test,
            step_scale=build_step_scale(result.step_to_displacement),
            ideal_target=ideal_target,
            home_offset=home_offset,
            is_size_outlier=entry.tile.key in outlier_keys,
            motor_reach_bounds=compute_live_tile_bounds(
                Point2D(home.x, home.y), result.step_to_displacement, config.motor_limits
            ),
            footprint_bounds=footprint,
        )

    return CalibrationRunSummary(
        grid_blueprint=blueprint,
        step_test_settings={"delta_steps": config.delta_steps},
        tiles=tiles,
        outlier_analysis=analysis,
    )


def export_summary(summary: CalibrationRunSummary, filepath: Union[str, Path]) -> None:
    """Write a summary to YAML atomically."""
    atomic_write_yaml(Path(filepath), summary.to_dict())
    logger.info(f"Calibration summary exported to {filepath} ({len(summary.tiles)} tiles)")
