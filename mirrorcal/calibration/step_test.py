"""
Step test calculations.

A step test jogs one actuator by a small known number of steps and measures
how far the tile's blob moved. The ratio (pattern units per step) is the
tile's displacement sensitivity on that axis; its inverse turns a desired
displacement into a step count for alignment.

Degenerate inputs return None instead of raising or producing NaN/inf.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, Optional
import logging
import math

from mirrorcal.core.types import AxisPair, BlobMeasurement, Point2D, validate_axis

logger = logging.getLogger(__name__)

MOTOR_MIN_POSITION_STEPS = -1200
MOTOR_MAX_POSITION_STEPS = 1200

# Sensitivities below this are noise, not signal
STEP_EPSILON = 1e-6

ARRAY_ROTATIONS = (0, 90, 180, 270)

# Jog sign per (rotation, axis). Baseline wiring moves +X to the left, so at
# 0 degrees X is flipped; axes swap at 90/270.
_JOG_DIRECTIONS: Dict[int, Dict[str, int]] = {
    0: {"x": -1, "y": 1},
    90: {"x": -1, "y": -1},
    180: {"x": 1, "y": -1},
    270: {"x": 1, "y": 1},
}


@dataclass
class MotorLimits:
    """Absolute actuator position bounds in steps."""
    min_steps: int = MOTOR_MIN_POSITION_STEPS
    max_steps: int = MOTOR_MAX_POSITION_STEPS

    def __post_init__(self):
        if self.min_steps >= self.max_steps:
            raise ValueError("min_steps must be below max_steps")

    @property
    def max_abs_steps(self) -> int:
        return max(abs(self.min_steps), abs(self.max_steps))

    def clamp(self, value: float) -> float:
        return min(self.max_steps, max(self.min_steps, value))


DEFAULT_MOTOR_LIMITS = MotorLimits()


@dataclass(frozen=True)
class AxisStepTestResult:
    """Outcome of one axis step test."""
    displacement: float  # Signed, pattern units
    per_step: Optional[float]  # Pattern units per step
    size_delta: Optional[float]  # Blob size change during the jog


@dataclass(frozen=True)
class StepTestResults:
    """Both axis tests merged."""
    step_to_displacement: AxisPair
    size_delta_at_step_test: Optional[float]


def validate_rotation(rotation: int) -> int:
    if rotation not in ARRAY_ROTATIONS:
        raise ValueError(f"Unsupported array rotation: {rotation!r}")
    return rotation


def clamp_steps(value: float, limits: Optional[MotorLimits] = None) -> float:
    return (limits or DEFAULT_MOTOR_LIMITS).clamp(value)


def round_steps(value: float) -> int:
    """Round to an integer step count; non-finite values become 0."""
    if not math.isfinite(value):
        return 0
    return int(round(value))


def get_step_test_jog_direction(axis: str, rotation: int) -> int:
    """
    Jog sign for a physical axis at a given array rotation.

    Args:
        axis: Physical motor axis ('x' or 'y')
        rotation: Array rotation in degrees (0, 90, 180, 270)

    Returns:
        +1 or -1
    """
    return _JOG_DIRECTIONS[validate_rotation(rotation)][validate_axis(axis)]


def get_axis_step_delta(
        axis: str,
        delta_steps: float,
        rotation: int,
        limits: Optional[MotorLimits] = None
) -> Optional[float]:
    """
    Signed, clamped step offset for a step test.

    Args:
        axis: 'x' or 'y'
        delta_steps: Perturbation magnitude (must be > 0)
        rotation: Array rotation in degrees
        limits: Actuator bounds

    Returns:
        Step offset, or None when delta_steps <= 0
    """
    if delta_steps <= 0:
        return None
    direction = get_step_test_jog_direction(axis, rotation)
    return clamp_steps(delta_steps * direction, limits)


def compute_axis_step_test_result(
        home_measurement: BlobMeasurement,
        step_measurement: BlobMeasurement,
        axis: str,
        delta_steps: float
) -> AxisStepTestResult:
    """
    Displacement, per-step sensitivity and size drift for one axis.

    Both measurements must already be in pattern space. delta_steps is the
    signed step offset actually commanded, so per_step carries the true
    sign of the actuator response.
    """
    displacement = step_measurement.axis_value(axis) - home_measurement.axis_value(axis)

    per_step: Optional[float] = None
    if delta_steps != 0 and math.isfinite(delta_steps):
        per_step = displacement / delta_steps
        if not math.isfinite(per_step):
            per_step = None

    size_delta: Optional[float] = step_measurement.size - home_measurement.size
    if not math.isfinite(size_delta):
        size_delta = None

    return AxisStepTestResult(
        displacement=displacement,
        per_step=per_step,
        size_delta=size_delta,
    )


def build_inferred_step_test_result(per_step: float) -> AxisStepTestResult:
    """Stand-in result when a step test failed but a reference sensitivity exists."""
    return AxisStepTestResult(displacement=0.0, per_step=per_step, size_delta=None)


def compute_average_size_delta(size_deltas: Iterable[float]) -> Optional[float]:
    """Arithmetic mean, None for no values."""
    values = list(size_deltas)
    if not values:
        return None
    return sum(values) / len(values)


def compute_alignment_target_steps(
        target_displacement: float,
        per_step: Optional[float],
        limits: Optional[MotorLimits] = None
) -> Optional[int]:
    """
    Step count that moves a tile by `target_displacement`.

    Args:
        target_displacement: Desired displacement in pattern units
        per_step: Measured sensitivity (pattern units per step)
        limits: Actuator bounds

    Returns:
        Rounded step count, or None when the sensitivity is unusable or the
        required move exceeds the actuator range
    """
    if per_step is None or not math.isfinite(per_step) or abs(per_step) < STEP_EPSILON:
        return None

    raw_steps = target_displacement / per_step
    if not math.isfinite(raw_steps):
        return None
    steps = round_steps(raw_steps)
    bound = (limits or DEFAULT_MOTOR_LIMITS).max_abs_steps
    if abs(steps) > bound:
        logger.debug(f"Alignment target {steps} steps exceeds bound {bound}")
        return None
    return steps


def compute_expected_step_position(
        home_measurement: BlobMeasurement,
        axis: str,
        step_delta: float,
        reference_per_step: Optional[float]
) -> Point2D:
    """
    Where the blob should land after jogging `axis` by `step_delta`.

    Without a reference sensitivity the estimate is the home position.
    """
    shift = 0.0
    if reference_per_step is not None and math.isfinite(reference_per_step):
        shift = step_delta * reference_per_step
    if validate_axis(axis) == "x":
        return Point2D(home_measurement.x + shift, home_measurement.y)
    return Point2D(home_measurement.x, home_measurement.y + shift)


def combine_step_test_results(
        x_result: Optional[AxisStepTestResult],
        y_result: Optional[AxisStepTestResult]
) -> StepTestResults:
    """Merge independent axis tests; size drift averages the axes present."""
    size_deltas = [
        result.size_delta
        for result in (x_result, y_result)
        if result is not None and result.size_delta is not None
    ]
    return StepTestResults(
        step_to_displacement=AxisPair(
            x=x_result.per_step if x_result else None,
            y=y_result.per_step if y_result else None,
        ),
        size_delta_at_step_test=compute_average_size_delta(size_deltas),
    )


def compute_step_scale(per_step: Optional[float]) -> Optional[float]:
    """Steps per pattern unit (inverse sensitivity), None if unusable."""
    if per_step is None or not math.isfinite(per_step) or abs(per_step) < STEP_EPSILON:
        return None
    return 1.0 / per_step


def build_step_scale(step_to_displacement: Optional[AxisPair]) -> Optional[AxisPair]:
    if step_to_displacement is None:
        return None
    scale = AxisPair(
        x=compute_step_scale(step_to_displacement.x),
        y=compute_step_scale(step_to_displacement.y),
    )
    if scale.x is None and scale.y is None:
        return None
    return scale
