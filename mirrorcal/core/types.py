"""
Core data types for mirror array calibration.
Defines contracts between modules to ensure stable interfaces.
"""
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

AXES: Tuple[str, str] = ("x", "y")


def validate_axis(axis: str) -> str:
    """Return axis unchanged or raise for anything other than 'x'/'y'."""
    if axis not in AXES:
        raise ValueError(f"Unknown axis: {axis!r}")
    return axis


@dataclass(frozen=True)
class BlobMeasurement:
    """
    A single blob observation from the capture pipeline.

    Position is expressed in `space` (a coordinate space tag, see
    mirrorcal.core.coords). Never mutated once captured.
    """
    x: float
    y: float
    size: float  # Blob diameter in `space` units
    response: float  # Detector confidence
    captured_at: float  # Unix timestamp
    space: str = "centered"
    source_width: Optional[int] = None  # Camera frame width in pixels
    source_height: Optional[int] = None  # Camera frame height in pixels

    def axis_value(self, axis: str) -> float:
        """Position along the named axis."""
        return self.x if validate_axis(axis) == "x" else self.y

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {
            "x": self.x,
            "y": self.y,
            "size": self.size,
            "response": self.response,
            "captured_at": self.captured_at,
            "space": self.space,
        }
        if self.source_width is not None:
            data["source_width"] = self.source_width
        if self.source_height is not None:
            data["source_height"] = self.source_height
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "BlobMeasurement":
        return cls(
            x=float(data["x"]),
            y=float(data["y"]),
            size=float(data["size"]),
            response=float(data.get("response", 0.0)),
            captured_at=float(data.get("captured_at", 0.0)),
            space=str(data.get("space", "centered")),
            source_width=data.get("source_width"),
            source_height=data.get("source_height"),
        )


@dataclass(frozen=True)
class GridSize:
    """Tile grid dimensions."""
    rows: int
    cols: int

    @property
    def tile_count(self) -> int:
        return self.rows * self.cols


@dataclass(frozen=True)
class TileAddress:
    """
    Grid cell identity. `key` is the canonical "row-col" string.
    """
    row: int
    col: int

    @property
    def key(self) -> str:
        return tile_key(self.row, self.col)

    def to_dict(self) -> Dict[str, object]:
        return {"row": self.row, "col": self.col, "key": self.key}


def tile_key(row: int, col: int) -> str:
    """Canonical tile key."""
    return f"{row}-{col}"


def parse_tile_key(key: str) -> TileAddress:
    """
    Parse "row-col" or "row,col" into a TileAddress.

    Raises:
        ValueError: If key is malformed
    """
    separator = "," if "," in key else "-"
    parts = key.split(separator)
    if len(parts) != 2:
        raise ValueError(f"Malformed tile key: {key!r}")
    try:
        return TileAddress(row=int(parts[0]), col=int(parts[1]))
    except ValueError as e:
        raise ValueError(f"Malformed tile key: {key!r}") from e


@dataclass(frozen=True)
class MotorRef:
    """One actuator: controller node MAC plus motor index on that node."""
    mac: str
    motor_index: int

    @property
    def key(self) -> str:
        return f"{self.mac}:{self.motor_index}"

    def to_dict(self) -> Dict[str, object]:
        return {"mac": self.mac, "motor_index": self.motor_index}


@dataclass(frozen=True)
class TileAssignment:
    """X and Y actuators responsible for one tile."""
    x: Optional[MotorRef] = None
    y: Optional[MotorRef] = None

    @property
    def is_complete(self) -> bool:
        return self.x is not None and self.y is not None

    def motor(self, axis: str) -> Optional[MotorRef]:
        return self.x if validate_axis(axis) == "x" else self.y

    def to_dict(self) -> Dict[str, object]:
        return {
            "x": self.x.to_dict() if self.x else None,
            "y": self.y.to_dict() if self.y else None,
        }


@dataclass(frozen=True)
class Point2D:
    """Plain 2D value in pattern space (positions and offsets)."""
    x: float
    y: float

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class AxisPair:
    """Per-axis optional value (sensitivities, step scales)."""
    x: Optional[float] = None
    y: Optional[float] = None

    def get(self, axis: str) -> Optional[float]:
        return self.x if validate_axis(axis) == "x" else self.y

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {"x": self.x, "y": self.y}
