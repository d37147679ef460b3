"""
Core module - shared data types, coordinate spaces, and I/O utilities.
"""
from .types import (
    AXES,
    BlobMeasurement,
    GridSize,
    TileAddress,
    MotorRef,
    TileAssignment,
    Point2D,
    AxisPair,
    tile_key,
    parse_tile_key,
    validate_axis,
)
from .coords import (
    CoordSpace,
    Coord,
    Delta,
    NormalizedRoi,
    ConvertContext,
    Transformer,
    convert,
    convert_delta,
    create_transformer,
)
from .io_utils import (
    atomic_write_yaml,
    load_yaml,
)

__all__ = [
    # Types
    "AXES",
    "BlobMeasurement",
    "GridSize",
    "TileAddress",
    "MotorRef",
    "TileAssignment",
    "Point2D",
    "AxisPair",
    "tile_key",
    "parse_tile_key",
    "validate_axis",
    # Coordinates
    "CoordSpace",
    "Coord",
    "Delta",
    "NormalizedRoi",
    "ConvertContext",
    "Transformer",
    "convert",
    "convert_delta",
    "create_transformer",
    # I/O
    "atomic_write_yaml",
    "load_yaml",
]
