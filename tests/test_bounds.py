"""
Unit tests for tile bounds.
"""
import pytest

from mirrorcal.core.types import AxisPair, Point2D, TileAddress
from mirrorcal.calibration.bounds import (
    AxisBounds,
    TileBounds,
    clamp_normalized,
    compute_axis_bounds,
    compute_footprint_bounds,
    compute_live_tile_bounds,
    merge_bounds_union,
)
from mirrorcal.calibration.step_test import MotorLimits


def test_clamp_normalized():
    assert clamp_normalized(1.5) == 1.0
    assert clamp_normalized(-3.0) == -1.0
    assert clamp_normalized(0.25) == 0.25
    assert clamp_normalized(float("inf")) == 0.0


def test_compute_axis_bounds():
    """Range between the two actuator extremes, ordered min to max."""
    bounds = compute_axis_bounds(0.0, 0, 0.0005)
    assert bounds.min == pytest.approx(-0.6)
    assert bounds.max == pytest.approx(0.6)

    flipped = compute_axis_bounds(0.0, 0, -0.0005)
    assert (flipped.min, flipped.max) == (pytest.approx(-0.6), pytest.approx(0.6))

    # Measured away from step 0
    shifted = compute_axis_bounds(0.1, 200, 0.0005, MotorLimits(-1000, 1000))
    assert shifted.min == pytest.approx(-0.5)
    assert shifted.max == pytest.approx(0.5)


def test_compute_axis_bounds_missing_data():
    assert compute_axis_bounds(None, 0, 0.001) is None
    assert compute_axis_bounds(0.0, None, 0.001) is None
    assert compute_axis_bounds(0.0, 0, None) is None
    assert compute_axis_bounds(0.0, 0, 1e-9) is None
    assert compute_axis_bounds(0.0, 0, float("nan")) is None


def test_compute_live_tile_bounds():
    bounds = compute_live_tile_bounds(Point2D(0.5, 0.0), AxisPair(x=0.0005, y=0.0005))
    assert bounds.x.min == pytest.approx(-0.1)
    assert bounds.x.max == pytest.approx(1.0)

    assert compute_live_tile_bounds(Point2D(0.0, 0.0), AxisPair(x=0.001)) is None
    assert compute_live_tile_bounds(Point2D(0.0, 0.0), None) is None


def test_compute_footprint_bounds():
    bounds = compute_footprint_bounds(Point2D(-1.0, -0.5), TileAddress(1, 2), (0.5, 0.4), (0.45, 0.35))
    assert bounds.x.min == pytest.approx(0.0)
    assert bounds.x.max == pytest.approx(0.45)
    assert bounds.y.min == pytest.approx(-0.1)
    assert bounds.y.max == pytest.approx(0.25)


def test_merge_bounds_union():
    a = TileBounds(x=AxisBounds(-0.5, 0.1), y=AxisBounds(0.0, 0.2))
    b = TileBounds(x=AxisBounds(0.0, 0.3), y=AxisBounds(-0.4, 0.1))

    merged = merge_bounds_union(a, b)

    assert merged.to_dict() == {"x": {"min": -0.5, "max": 0.3}, "y": {"min": -0.4, "max": 0.2}}
    assert merge_bounds_union(None, b) is b
