"""
Unit tests for step test calculations.
"""
import pytest

from mirrorcal.core.types import AxisPair, BlobMeasurement
from mirrorcal.calibration.step_test import (
    AxisStepTestResult,
    MotorLimits,
    build_inferred_step_test_result,
    build_step_scale,
    clamp_steps,
    combine_step_test_results,
    compute_alignment_target_steps,
    compute_average_size_delta,
    compute_axis_step_test_result,
    compute_expected_step_position,
    compute_step_scale,
    get_axis_step_delta,
    get_step_test_jog_direction,
    round_steps,
)


def _blob(x: float, y: float, size: float = 0.1) -> BlobMeasurement:
    return BlobMeasurement(x=x, y=y, size=size, response=1.0, captured_at=0.0, space="pattern")


def test_jog_direction_table():
    """Jog signs per mount rotation."""
    assert get_step_test_jog_direction("x", 0) == -1
    assert get_step_test_jog_direction("y", 0) == 1
    assert get_step_test_jog_direction("x", 90) == -1
    assert get_step_test_jog_direction("y", 90) == -1
    assert get_step_test_jog_direction("x", 180) == 1
    assert get_step_test_jog_direction("y", 180) == -1
    assert get_step_test_jog_direction("x", 270) == 1
    assert get_step_test_jog_direction("y", 270) == 1

    with pytest.raises(ValueError):
        get_step_test_jog_direction("x", 45)
    with pytest.raises(ValueError):
        get_step_test_jog_direction("z", 0)


def test_get_axis_step_delta():
    """Signed by mount, None for non-positive magnitude."""
    assert get_axis_step_delta("x", 100, 0) == -100
    assert get_axis_step_delta("x", 100, 180) == 100
    assert get_axis_step_delta("y", 100, 0) == 100
    assert get_axis_step_delta("x", 0, 0) is None
    assert get_axis_step_delta("y", -5, 90) is None


def test_get_axis_step_delta_clamped_to_limits():
    """A step test is never commanded past the actuator range."""
    assert get_axis_step_delta("y", 5000, 0) == 1200
    assert get_axis_step_delta("x", 5000, 0) == -1200
    limits = MotorLimits(min_steps=-300, max_steps=300)
    assert get_axis_step_delta("y", 500, 0, limits) == 300


def test_clamp_and_round_steps():
    assert clamp_steps(2000) == 1200
    assert clamp_steps(-2000) == -1200
    assert round_steps(104.6) == 105
    assert round_steps(float("nan")) == 0
    assert round_steps(float("inf")) == 0


def test_motor_limits_validation():
    with pytest.raises(ValueError):
        MotorLimits(min_steps=10, max_steps=10)
    assert MotorLimits(min_steps=-500, max_steps=800).max_abs_steps == 800


def test_compute_axis_step_test_result():
    """Displacement, per-step ratio and size drift."""
    home = _blob(0.10, -0.20, size=0.10)
    step = _blob(0.15, -0.20, size=0.12)

    result = compute_axis_step_test_result(home, step, "x", 100)

    assert result.displacement == pytest.approx(0.05)
    assert result.per_step == pytest.approx(0.0005)
    assert result.size_delta == pytest.approx(0.02)


def test_compute_axis_step_test_result_signed_delta():
    """A negative jog that moves the blob right means a negative sensitivity."""
    result = compute_axis_step_test_result(_blob(0.10, 0.0), _blob(0.15, 0.0), "x", -100)

    assert result.displacement == pytest.approx(0.05)
    assert result.per_step == pytest.approx(-0.0005)


def test_compute_axis_step_test_result_zero_delta():
    """No perturbation means no sensitivity."""
    result = compute_axis_step_test_result(_blob(0, 0), _blob(0, 0.1), "y", 0)
    assert result.per_step is None
    assert result.displacement == pytest.approx(0.1)


def test_compute_average_size_delta():
    assert compute_average_size_delta([]) is None
    assert compute_average_size_delta([0.02, 0.04]) == pytest.approx(0.03)


def test_compute_alignment_target_steps():
    """Rounded steps, None for unusable sensitivity or out-of-range moves."""
    assert compute_alignment_target_steps(0.105, 0.001) == 105
    assert compute_alignment_target_steps(-0.05, 0.001) == -50
    assert compute_alignment_target_steps(0.1, None) is None
    assert compute_alignment_target_steps(0.1, 0.0) is None
    assert compute_alignment_target_steps(0.1, 1e-7) is None
    assert compute_alignment_target_steps(1e10, 0.001) is None
    assert compute_alignment_target_steps(0.1, float("nan")) is None


def test_compute_alignment_target_steps_bound_applies_after_rounding():
    assert compute_alignment_target_steps(1.2004, 0.001) == 1200
    assert compute_alignment_target_steps(-1.2004, 0.001) == -1200
    assert compute_alignment_target_steps(1.2006, 0.001) is None
    assert compute_alignment_target_steps(0.5004, 0.001, MotorLimits(-500, 500)) == 500


def test_compute_expected_step_position():
    """Home shifted along the jogged axis by the estimated displacement."""
    home = _blob(0.2, -0.1)

    x = compute_expected_step_position(home, "x", -100, -0.001)
    assert (x.x, x.y) == (pytest.approx(0.3), pytest.approx(-0.1))

    y = compute_expected_step_position(home, "y", 100, 0.002)
    assert (y.x, y.y) == (pytest.approx(0.2), pytest.approx(0.1))

    unknown = compute_expected_step_position(home, "y", 100, None)
    assert (unknown.x, unknown.y) == (0.2, -0.1)


def test_build_inferred_step_test_result():
    result = build_inferred_step_test_result(-0.001)
    assert result.per_step == -0.001
    assert result.displacement == 0.0
    assert result.size_delta is None


def test_combine_step_test_results():
    """Size drift averages the axes that reported one."""
    x = AxisStepTestResult(displacement=0.1, per_step=0.001, size_delta=0.02)
    y = AxisStepTestResult(displacement=-0.1, per_step=-0.001, size_delta=0.04)

    combined = combine_step_test_results(x, y)

    assert combined.step_to_displacement == AxisPair(x=0.001, y=-0.001)
    assert combined.size_delta_at_step_test == pytest.approx(0.03)

    only_x = combine_step_test_results(x, None)
    assert only_x.step_to_displacement.y is None
    assert only_x.size_delta_at_step_test == pytest.approx(0.02)

    none = combine_step_test_results(None, None)
    assert none.size_delta_at_step_test is None


def test_step_scale():
    """Inverse sensitivity, None below epsilon."""
    assert compute_step_scale(0.002) == pytest.approx(500)
    assert compute_step_scale(1e-9) is None
    assert compute_step_scale(None) is None

    scale = build_step_scale(AxisPair(x=0.001, y=None))
    assert scale.x == pytest.approx(1000)
    assert scale.y is None
    assert build_step_scale(AxisPair()) is None
    assert build_step_scale(None) is None
