"""
Unit tests for coordinate space conversions.
"""
import itertools

import pytest

from mirrorcal.core.coords import (
    ConvertContext,
    Coord,
    CoordSpace,
    Delta,
    NormalizedRoi,
    Transformer,
    as_space,
    clamp01,
    convert,
    convert_delta,
    create_transformer,
)

CTX = ConvertContext(width=1920, height=1080)
SPACES = list(CoordSpace)


def _point_in(space: CoordSpace) -> Coord:
    """A point well inside the image, expressed in `space`."""
    return convert(Coord(0.3, 0.6, CoordSpace.VIEWPORT), CoordSpace.VIEWPORT, space, CTX)


@pytest.mark.parametrize("source,target", list(itertools.product(SPACES, SPACES)))
def test_round_trip_all_pairs(source, target):
    """A -> B -> A reproduces the point."""
    point = _point_in(source)
    there = convert(point, source, target, CTX)
    back = convert(there, target, source, CTX)

    assert back.space == source
    assert back.x == pytest.approx(point.x)
    assert back.y == pytest.approx(point.y)


def test_identity_returns_same_object():
    """Converting to the same space returns the input itself."""
    point = Coord(12.0, 34.0, CoordSpace.CAMERA)
    assert convert(point, "camera", "camera", CTX) is point


def test_camera_to_viewport_and_centered():
    """Frame center maps to viewport 0.5 and centered 0."""
    viewport = convert((960, 540), "camera", "viewport", CTX)
    assert (viewport.x, viewport.y) == pytest.approx((0.5, 0.5))

    centered = convert((960, 540), "camera", "centered", CTX)
    assert (centered.x, centered.y) == pytest.approx((0.0, 0.0))

    corner = convert((0, 0), "camera", "pattern", CTX)
    assert (corner.x, corner.y) == pytest.approx((-1.0, -1.0))


def test_isotropic_letterbox_offset():
    """Top of a landscape frame sits below isotropic y=0."""
    top_left = convert((0.0, 0.0), "viewport", "isotropic", CTX)
    assert top_left.x == pytest.approx(0.0)
    assert top_left.y == pytest.approx(420 / 1920)

    center = convert((0.5, 0.5), "viewport", "isotropic", CTX)
    assert (center.x, center.y) == pytest.approx((0.5, 0.5))


def test_isotropic_target_is_clamped():
    """Points outside the frame clamp to [0, 1] in isotropic space."""
    outside = convert((-0.5, 1.8), "viewport", "isotropic", CTX)
    assert outside.x == 0.0
    assert outside.y == 1.0


def test_from_isotropic_is_unclamped():
    """Isotropic y=0 lies above the frame in a landscape image."""
    viewport = convert((0.5, 0.0), "isotropic", "viewport", CTX)
    assert viewport.y < 0


def test_space_mismatch_raises():
    """A Coord tagged with another space is rejected."""
    point = Coord(0.1, 0.2, CoordSpace.VIEWPORT)
    with pytest.raises(ValueError):
        convert(point, "camera", "centered", CTX)


def test_unknown_space_raises():
    """Unknown space tags are programmer errors."""
    with pytest.raises(ValueError):
        as_space("screen")
    with pytest.raises(ValueError):
        convert((0, 0), "camera", "screen", CTX)
    with pytest.raises(ValueError):
        Coord(0, 0, "world")


def test_convert_delta_scales_per_axis():
    """Deltas ignore origins and scale by the axis dimension."""
    assert convert_delta(192, "x", "camera", "viewport", CTX) == pytest.approx(0.1)
    assert convert_delta(192, "x", "camera", "pattern", CTX) == pytest.approx(0.2)
    assert convert_delta(0.1, "y", "viewport", "isotropic", CTX) == pytest.approx(0.05625)
    assert convert_delta(0.1, "x", "viewport", "isotropic", CTX) == pytest.approx(0.1)


def test_convert_delta_tagged():
    """Tagged deltas come back tagged with the target space."""
    delta = Delta(108.0, "y", CoordSpace.CAMERA)
    result = convert_delta(delta, "y", "camera", "centered", CTX)

    assert isinstance(result, Delta)
    assert result.space == CoordSpace.CENTERED
    assert result.value == pytest.approx(0.2)

    with pytest.raises(ValueError):
        convert_delta(delta, "x", "camera", "centered", CTX)


def test_context_validation():
    """Non-positive dimensions and invalid ROIs are rejected."""
    with pytest.raises(ValueError):
        ConvertContext(width=0, height=1080)
    with pytest.raises(ValueError):
        NormalizedRoi(x=0.1, y=0.1, width=0.0, height=0.5)
    with pytest.raises(ValueError):
        NormalizedRoi(x=0.1, y=0.1, width=0.5, height=1.5)


def test_roi_clamped():
    """clamped() keeps the rectangle inside the unit square."""
    roi = NormalizedRoi(x=0.9, y=-0.2, width=0.5, height=0.5).clamped()
    assert roi.x == pytest.approx(0.5)
    assert roi.y == 0.0
    assert roi.x + roi.width <= 1.0


def test_clamp01():
    assert clamp01(-1) == 0.0
    assert clamp01(0.25) == 0.25
    assert clamp01(3) == 1.0


def test_transformer_helpers():
    """Transformer defaults to camera input and is immutable."""
    transformer = create_transformer(CTX)
    assert isinstance(transformer, Transformer)

    pattern = transformer.to_pattern((1920, 1080))
    assert (pattern.x, pattern.y) == pytest.approx((1.0, 1.0))

    camera = transformer.to_camera((0.5, 0.25))
    assert (camera.x, camera.y) == pytest.approx((960.0, 270.0))

    roi = NormalizedRoi(x=0.1, y=0.1, width=0.5, height=0.5)
    with_roi = transformer.with_roi(roi)
    assert with_roi is not transformer
    assert with_roi.context.roi == roi
    assert transformer.context.roi is None

    assert transformer.delta(960, "x", "camera", "viewport") == pytest.approx(0.5)


def test_context_from_measurement():
    """Source dimensions override the fallback context."""
    class Sample:
        source_width = 640
        source_height = 480

    ctx = ConvertContext.from_measurement(Sample(), CTX)
    assert (ctx.width, ctx.height) == (640, 480)

    class NoSize:
        source_width = None
        source_height = None

    assert ConvertContext.from_measurement(NoSize(), CTX) is CTX
