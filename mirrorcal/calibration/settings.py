"""
Calibration run settings.

Defaults mirror the values the rig has been tuned with; YAML overrides are
applied by mirrorcal.calibration.config_loader.
"""
from dataclasses import dataclass, field

from .grid_blueprint import SIZING_STRATEGIES, RobustTileSizeSettings
from .staging import STAGING_POSITIONS
from .step_test import MotorLimits, validate_rotation

RUN_MODES = ("auto", "step")


@dataclass
class RunnerSettings:
    """Sequencing, timing and retry policy."""
    delta_steps: int = 1200  # Step test perturbation magnitude
    first_tile_interim_step_delta: int = 200  # Short jog before the first full step test, 0 disables
    infer_failed_step_tests: bool = False  # Fall back to the reference sensitivity
    grid_gap_normalized: float = 0.0  # Gap between tiles, fraction of the frame
    sample_timeout_sec: float = 1.5  # Per capture
    move_timeout_sec: float = 15.0  # Per motor command
    max_detection_retries: int = 5  # Extra capture attempts after the first
    retry_delay_sec: float = 0.15
    max_move_attempts: int = 1  # Total attempts per motor command
    array_rotation: int = 0  # Degrees: 0, 90, 180, 270
    mode: str = "auto"  # "auto" or "step"
    home_before_run: bool = True


@dataclass
class StagingSettings:
    """Where tiles are parked while another tile is measured."""
    enabled: bool = True
    position: str = "nearest-corner"


@dataclass
class AlignmentSettings:
    """Optional closed-loop convergence toward each tile's ideal target."""
    enabled: bool = False
    max_iterations: int = 5
    tolerance: float = 0.002  # Pattern units


@dataclass
class CalibrationConfig:
    """Everything a CalibrationRunner needs besides grid and collaborators."""
    runner: RunnerSettings = field(default_factory=RunnerSettings)
    staging: StagingSettings = field(default_factory=StagingSettings)
    robust_tile_size: RobustTileSizeSettings = field(default_factory=RobustTileSizeSettings)
    motor_limits: MotorLimits = field(default_factory=MotorLimits)
    alignment: AlignmentSettings = field(default_factory=AlignmentSettings)

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ValueError: On any out-of-range setting
        """
        runner = self.runner
        if runner.mode not in RUN_MODES:
            raise ValueError(f"mode must be one of {RUN_MODES}, got {runner.mode!r}")
        validate_rotation(runner.array_rotation)
        if runner.sample_timeout_sec <= 0 or runner.move_timeout_sec <= 0:
            raise ValueError("Timeouts must be positive")
        if runner.first_tile_interim_step_delta < 0:
            raise ValueError("first_tile_interim_step_delta must be >= 0")
        if runner.max_detection_retries < 0:
            raise ValueError("max_detection_retries must be >= 0")
        if runner.max_move_attempts < 1:
            raise ValueError("max_move_attempts must be >= 1")
        if runner.retry_delay_sec < 0:
            raise ValueError("retry_delay_sec must be >= 0")
        if self.staging.position not in STAGING_POSITIONS:
            raise ValueError(f"Unknown staging position: {self.staging.position!r}")
        if self.robust_tile_size.strategy not in SIZING_STRATEGIES:
            raise ValueError(f"Unknown sizing strategy: {self.robust_tile_size.strategy!r}")
        if self.alignment.max_iterations < 1:
            raise ValueError("alignment.max_iterations must be >= 1")
        if self.alignment.tolerance <= 0:
            raise ValueError("alignment.tolerance must be positive")
