"""
Coordinate spaces and conversions between them.

Five spaces are kept mutually convertible:
- camera: raw pixels, origin top-left
- viewport: normalized [0, 1] x [0, 1], aspect-distorted
- isotropic: normalized to the longer image dimension, aspect-corrected
- centered: [-1, 1] x [-1, 1], viewport recentered
- pattern: device/target space, numerically identical to centered

Every conversion routes through viewport, so each space only needs a
to_viewport and a from_viewport rule.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple, Union
import logging

logger = logging.getLogger(__name__)


class CoordSpace(str, Enum):
    """Coordinate space tags."""
    CAMERA = "camera"
    VIEWPORT = "viewport"
    ISOTROPIC = "isotropic"
    CENTERED = "centered"
    PATTERN = "pattern"


SpaceLike = Union[CoordSpace, str]


def as_space(space: SpaceLike) -> CoordSpace:
    """
    Parse a space tag.

    Raises:
        ValueError: If tag is not one of the five spaces
    """
    return CoordSpace(space)


def clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


@dataclass(frozen=True)
class Coord:
    """2D point tagged with its coordinate space."""
    x: float
    y: float
    space: CoordSpace

    def __post_init__(self):
        object.__setattr__(self, "space", as_space(self.space))

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class Delta:
    """1D displacement along one axis, tagged with its coordinate space."""
    value: float
    axis: str
    space: CoordSpace

    def __post_init__(self):
        if self.axis not in ("x", "y"):
            raise ValueError(f"Unknown axis: {self.axis!r}")
        object.__setattr__(self, "space", as_space(self.space))


@dataclass(frozen=True)
class NormalizedRoi:
    """
    Region of interest in viewport space.
    """
    x: float
    y: float
    width: float
    height: float
    enabled: bool = True

    def __post_init__(self):
        if not (0.0 < self.width <= 1.0) or not (0.0 < self.height <= 1.0):
            raise ValueError("ROI dimensions must lie in (0, 1]")

    def clamped(self) -> "NormalizedRoi":
        """Return a copy that fits inside the unit square."""
        width = min(1.0, max(0.01, self.width))
        height = min(1.0, max(0.01, self.height))
        return NormalizedRoi(
            x=clamp01(min(self.x, 1.0 - width)),
            y=clamp01(min(self.y, 1.0 - height)),
            width=width,
            height=height,
            enabled=self.enabled,
        )


@dataclass(frozen=True)
class ConvertContext:
    """
    Image context needed by camera and isotropic conversions.
    Rebuilt whenever image dimensions change.
    """
    width: float
    height: float
    roi: Optional[NormalizedRoi] = None

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError("Image dimensions must be positive")

    @property
    def max_dim(self) -> float:
        return max(self.width, self.height)

    def axis_dim(self, axis: str) -> float:
        return self.width if axis == "x" else self.height

    @classmethod
    def from_measurement(cls, measurement, fallback: "ConvertContext") -> "ConvertContext":
        """
        Build a context from a measurement's source dimensions.

        Args:
            measurement: Object with optional source_width/source_height
            fallback: Context used when dimensions are missing

        Returns:
            ConvertContext for the frame the measurement came from
        """
        width = getattr(measurement, "source_width", None)
        height = getattr(measurement, "source_height", None)
        if width and height:
            return cls(width=width, height=height, roi=fallback.roi)
        return fallback


PointLike = Union[Coord, Tuple[float, float]]


def _coerce(point: PointLike, space: CoordSpace) -> Coord:
    if isinstance(point, Coord):
        if point.space != space:
            raise ValueError(
                f"Coordinate tagged '{point.space.value}' used as '{space.value}'"
            )
        return point
    x, y = point
    return Coord(x, y, space)


def _to_viewport(point: Coord, ctx: ConvertContext) -> Tuple[float, float]:
    space = point.space
    if space == CoordSpace.VIEWPORT:
        return point.x, point.y
    if space == CoordSpace.CAMERA:
        return point.x / ctx.width, point.y / ctx.height
    if space in (CoordSpace.CENTERED, CoordSpace.PATTERN):
        return (point.x + 1) / 2, (point.y + 1) / 2
    # isotropic
    max_dim = ctx.max_dim
    offset_x = (max_dim - ctx.width) / 2
    offset_y = (max_dim - ctx.height) / 2
    return (
        (point.x * max_dim - offset_x) / ctx.width,
        (point.y * max_dim - offset_y) / ctx.height,
    )


def _from_viewport(vx: float, vy: float, space: CoordSpace, ctx: ConvertContext) -> Coord:
    if space == CoordSpace.VIEWPORT:
        return Coord(vx, vy, space)
    if space == CoordSpace.CAMERA:
        return Coord(vx * ctx.width, vy * ctx.height, space)
    if space in (CoordSpace.CENTERED, CoordSpace.PATTERN):
        return Coord(vx * 2 - 1, vy * 2 - 1, space)
    # isotropic, clamped: detector noise can push edge blobs slightly outside
    max_dim = ctx.max_dim
    offset_x = (max_dim - ctx.width) / 2
    offset_y = (max_dim - ctx.height) / 2
    return Coord(
        clamp01((vx * ctx.width + offset_x) / max_dim),
        clamp01((vy * ctx.height + offset_y) / max_dim),
        space,
    )


def convert(
        point: PointLike,
        from_space: SpaceLike,
        to_space: SpaceLike,
        ctx: ConvertContext
) -> Coord:
    """
    Convert a point between coordinate spaces.

    Args:
        point: Coord tagged with from_space, or a plain (x, y) tuple
        from_space: Source space
        to_space: Destination space
        ctx: Image context

    Returns:
        Coord tagged with to_space (the input itself when spaces match)

    Raises:
        ValueError: On unknown space tags or a Coord tagged with another space
    """
    source = as_space(from_space)
    target = as_space(to_space)
    coord = _coerce(point, source)
    if source == target:
        return coord
    vx, vy = _to_viewport(coord, ctx)
    return _from_viewport(vx, vy, target, ctx)


def _delta_to_viewport(value: float, axis: str, space: CoordSpace, ctx: ConvertContext) -> float:
    if space == CoordSpace.CAMERA:
        return value / ctx.axis_dim(axis)
    if space in (CoordSpace.CENTERED, CoordSpace.PATTERN):
        return value / 2
    if space == CoordSpace.ISOTROPIC:
        return value * ctx.max_dim / ctx.axis_dim(axis)
    return value


def _delta_from_viewport(value: float, axis: str, space: CoordSpace, ctx: ConvertContext) -> float:
    if space == CoordSpace.CAMERA:
        return value * ctx.axis_dim(axis)
    if space in (CoordSpace.CENTERED, CoordSpace.PATTERN):
        return value * 2
    if space == CoordSpace.ISOTROPIC:
        return value * ctx.axis_dim(axis) / ctx.max_dim
    return value


def convert_delta(
        delta: Union[float, Delta],
        axis: str,
        from_space: SpaceLike,
        to_space: SpaceLike,
        ctx: ConvertContext
) -> Union[float, Delta]:
    """
    Convert a displacement between coordinate spaces.

    Only scale factors apply (a delta has no origin); camera and isotropic
    scale the two axes differently, so the axis must be named.

    Args:
        delta: Plain float, or a Delta tagged with from_space and axis
        axis: 'x' or 'y'
        from_space: Source space
        to_space: Destination space
        ctx: Image context

    Returns:
        Converted value, as a Delta if a Delta was given
    """
    if axis not in ("x", "y"):
        raise ValueError(f"Unknown axis: {axis!r}")
    source = as_space(from_space)
    target = as_space(to_space)

    if isinstance(delta, Delta):
        if delta.space != source or delta.axis != axis:
            raise ValueError(
                f"Delta tagged '{delta.space.value}/{delta.axis}' "
                f"used as '{source.value}/{axis}'"
            )
        if source == target:
            return delta
        value = _delta_from_viewport(
            _delta_to_viewport(delta.value, axis, source, ctx), axis, target, ctx
        )
        return Delta(value, axis, target)

    if source == target:
        return delta
    return _delta_from_viewport(_delta_to_viewport(delta, axis, source, ctx), axis, target, ctx)


class Transformer:
    """
    Bundles a ConvertContext with convenience conversions.

    The context is never mutated; with_roi() returns a new instance.
    """

    def __init__(self, ctx: ConvertContext):
        self._ctx = ctx

    @property
    def context(self) -> ConvertContext:
        return self._ctx

    def with_roi(self, roi: Optional[NormalizedRoi]) -> "Transformer":
        return Transformer(replace(self._ctx, roi=roi))

    def to_viewport(self, point: PointLike, from_space: SpaceLike = CoordSpace.CAMERA) -> Coord:
        return convert(point, from_space, CoordSpace.VIEWPORT, self._ctx)

    def to_camera(self, point: PointLike, from_space: SpaceLike = CoordSpace.VIEWPORT) -> Coord:
        return convert(point, from_space, CoordSpace.CAMERA, self._ctx)

    def to_centered(self, point: PointLike, from_space: SpaceLike = CoordSpace.CAMERA) -> Coord:
        return convert(point, from_space, CoordSpace.CENTERED, self._ctx)

    def to_pattern(self, point: PointLike, from_space: SpaceLike = CoordSpace.CAMERA) -> Coord:
        return convert(point, from_space, CoordSpace.PATTERN, self._ctx)

    def to_isotropic(self, point: PointLike, from_space: SpaceLike = CoordSpace.CAMERA) -> Coord:
        return convert(point, from_space, CoordSpace.ISOTROPIC, self._ctx)

    def delta(
            self,
            value: Union[float, Delta],
            axis: str,
            from_space: SpaceLike,
            to_space: SpaceLike
    ) -> Union[float, Delta]:
        return convert_delta(value, axis, from_space, to_space, self._ctx)


def create_transformer(ctx: ConvertContext) -> Transformer:
    return Transformer(ctx)
