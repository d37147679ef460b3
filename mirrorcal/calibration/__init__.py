"""
Calibration module - step tests, robust statistics, grid blueprint, runner.
"""
from .errors import ConfigurationError, CaptureError, MotorCommandError
from .robust_stats import (
    OutlierDetectionResult,
    compute_median,
    compute_mad,
    compute_normalized_mad,
    detect_outliers,
    detect_outliers_with_keys,
    robust_max,
    robust_min,
    robust_median,
)
from .step_test import (
    MotorLimits,
    AxisStepTestResult,
    StepTestResults,
    get_axis_step_delta,
    compute_axis_step_test_result,
    compute_average_size_delta,
    compute_alignment_target_steps,
    compute_expected_step_position,
    combine_step_test_results,
)
from .grid_blueprint import (
    RobustTileSizeSettings,
    GridBlueprint,
    CalibrationRunSummary,
    compute_grid_blueprint,
    compute_calibration_summary,
    export_summary,
)
from .bounds import AxisBounds, TileBounds, compute_live_tile_bounds, compute_footprint_bounds
from .expected_position import compute_expected_home_position, estimate_grid
from .settings import CalibrationConfig, RunnerSettings, StagingSettings, AlignmentSettings
from .collaborators import CaptureSource, MotorController
from .runner_state import (
    RunnerPhase,
    TileStatus,
    CalibrationRunnerState,
    RunnerProgress,
)
from .runner import CalibrationRunner, build_tile_assignments
from .config_loader import load_calibration_config

__all__ = [
    # Errors
    "ConfigurationError",
    "CaptureError",
    "MotorCommandError",
    # Statistics
    "OutlierDetectionResult",
    "compute_median",
    "compute_mad",
    "compute_normalized_mad",
    "detect_outliers",
    "detect_outliers_with_keys",
    "robust_max",
    "robust_min",
    "robust_median",
    # Step test
    "MotorLimits",
    "AxisStepTestResult",
    "StepTestResults",
    "get_axis_step_delta",
    "compute_axis_step_test_result",
    "compute_average_size_delta",
    "compute_alignment_target_steps",
    "compute_expected_step_position",
    "combine_step_test_results",
    # Blueprint
    "RobustTileSizeSettings",
    "GridBlueprint",
    "CalibrationRunSummary",
    "compute_grid_blueprint",
    "compute_calibration_summary",
    "export_summary",
    # Bounds and expected positions
    "AxisBounds",
    "TileBounds",
    "compute_live_tile_bounds",
    "compute_footprint_bounds",
    "compute_expected_home_position",
    "estimate_grid",
    # Runner
    "CalibrationConfig",
    "RunnerSettings",
    "StagingSettings",
    "AlignmentSettings",
    "CaptureSource",
    "MotorController",
    "RunnerPhase",
    "TileStatus",
    "CalibrationRunnerState",
    "RunnerProgress",
    "CalibrationRunner",
    "build_tile_assignments",
    "load_calibration_config",
]
