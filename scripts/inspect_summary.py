"""
Inspect an exported calibration summary.

Prints the grid blueprint, the tile-size outlier analysis and, per tile, the
actuator steps needed to move from the measured home to the ideal target.

Usage:
    python scripts/inspect_summary.py calibration_summary.yaml
    python scripts/inspect_summary.py summary.yaml --bounds --max-steps 1000
"""
import sys
import argparse
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from mirrorcal.core import load_yaml
from mirrorcal.calibration.step_test import (
    MotorLimits,
    compute_alignment_target_steps,
)
import logging

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Inspect an exported calibration summary"
    )

    parser.add_argument(
        "summary",
        type=str,
        help="Summary YAML written by export_summary()"
    )

    parser.add_argument(
        "--bounds",
        action="store_true",
        help="Also print per-tile motor reach and footprint bounds"
    )

    parser.add_argument(
        "--max-steps",
        type=int,
        default=1200,
        help="Actuator range limit in steps (default: 1200)"
    )

    return parser.parse_args()


def format_value(value, precision: int = 4) -> str:
    if value is None:
        return "-"
    return f"{value:.{precision}f}"


def print_blueprint(blueprint) -> None:
    print("\nGrid blueprint")
    print("-" * 60)
    if not blueprint:
        print("  (none - no tile was measured)")
        return
    footprint = blueprint["adjusted_tile_footprint"]
    print(f"  Tile footprint: {format_value(footprint['width'])} x {format_value(footprint['height'])}")
    print(f"  Tile gap:       {format_value(blueprint['tile_gap']['x'])}, {format_value(blueprint['tile_gap']['y'])}")
    print(f"  Grid origin:    ({format_value(blueprint['grid_origin']['x'])}, {format_value(blueprint['grid_origin']['y'])})")
    offset = blueprint["camera_origin_offset"]
    print(f"  Camera offset:  ({format_value(offset['x'])}, {format_value(offset['y'])})")
    print(f"  Source frame:   {blueprint['source_width']}x{blueprint['source_height']}")


def print_outliers(analysis) -> None:
    print("\nTile size outliers")
    print("-" * 60)
    if not analysis or not analysis.get("enabled"):
        print("  Outlier rejection disabled")
        return
    print(f"  Median size: {format_value(analysis['median'])} (MAD {format_value(analysis['mad'])})")
    print(f"  Threshold:   {format_value(analysis.get('upper_threshold'))}")
    print(f"  Tile size:   {format_value(analysis['computed_tile_size'])}")
    keys = analysis.get("outlier_tile_keys") or []
    print(f"  Outliers:    {', '.join(keys) if keys else 'none'}")


def print_tiles(tiles, limits: MotorLimits) -> None:
    print("\nTiles (steps to reach ideal target)")
    print("-" * 60)
    print(f"  {'tile':<6} {'status':<15} {'offset x':>9} {'offset y':>9} {'steps x':>8} {'steps y':>8}")
    for key, tile in tiles.items():
        offset = tile.get("home_offset") or {}
        per_step = tile.get("step_to_displacement") or {}
        steps = {}
        for axis, offset_key in (("x", "dx"), ("y", "dy")):
            value = offset.get(offset_key)
            steps[axis] = None
            if value is not None:
                steps[axis] = compute_alignment_target_steps(-value, per_step.get(axis), limits)
        flag = " *" if tile.get("is_size_outlier") else ""
        print(
            f"  {key:<6} {tile['status']:<15} "
            f"{format_value(offset.get('dx')):>9} {format_value(offset.get('dy')):>9} "
            f"{steps['x'] if steps['x'] is not None else '-':>8} "
            f"{steps['y'] if steps['y'] is not None else '-':>8}{flag}"
        )


def format_bounds(bounds) -> str:
    if not bounds:
        return "-"
    return (
        f"x [{format_value(bounds['x']['min'])}, {format_value(bounds['x']['max'])}] "
        f"y [{format_value(bounds['y']['min'])}, {format_value(bounds['y']['max'])}]"
    )


def print_bounds(tiles) -> None:
    print("\nTile bounds (pattern units)")
    print("-" * 60)
    for key, tile in tiles.items():
        print(f"  {key:<6} reach     {format_bounds(tile.get('motor_reach_bounds'))}")
        print(f"  {'':<6} footprint {format_bounds(tile.get('footprint_bounds'))}")


def main():
    """Main entry point."""
    args = parse_args()

    try:
        summary = load_yaml(args.summary)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Cannot read summary: {e}")
        sys.exit(1)

    limits = MotorLimits(min_steps=-args.max_steps, max_steps=args.max_steps)

    print("=" * 60)
    print(f"Calibration summary: {args.summary}")
    print(f"Step test delta: {summary.get('step_test_settings', {}).get('delta_steps')} steps")
    print("=" * 60)

    print_blueprint(summary.get("grid_blueprint"))
    print_outliers(summary.get("outlier_analysis"))
    print_tiles(summary.get("tiles") or {}, limits)
    if args.bounds:
        print_bounds(summary.get("tiles") or {})
    print()


if __name__ == "__main__":
    main()
