"""
Calibration runner state snapshots.

Phase flow:
- IDLE: Constructed, not started
- HOMING: Homing every actuator node
- STAGING: Parking every tile aside
- MEASURING: Per-tile baseline capture and step tests
- ALIGNING: Optional convergence of each tile toward its ideal target
- PAUSED: Suspended at a safe point
- COMPLETED / ERROR / ABORTED: Terminal

Snapshots are immutable; the runner publishes a fresh one on every change so
observers never see a half-updated state.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Mapping, Optional

from mirrorcal.core.types import AxisPair, BlobMeasurement, Point2D, TileAddress, TileAssignment
from .grid_blueprint import CalibrationRunSummary, HomeOffset


class RunnerPhase(Enum):
    """Runner lifecycle phases."""
    IDLE = "idle"
    HOMING = "homing"
    STAGING = "staging"
    MEASURING = "measuring"
    ALIGNING = "aligning"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"
    ABORTED = "aborted"


TERMINAL_PHASES = (RunnerPhase.COMPLETED, RunnerPhase.ERROR, RunnerPhase.ABORTED)


class TileStatus(Enum):
    """Per-tile outcome."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    PARTIAL = "partial"  # One axis produced no usable sensitivity
    MAX_ITERATIONS = "max-iterations"  # Alignment did not converge
    SKIPPED = "skipped"
    ERROR = "error"


FAILED_STATUSES = (TileStatus.ERROR,)
SUCCESS_STATUSES = (TileStatus.COMPLETED, TileStatus.PARTIAL, TileStatus.MAX_ITERATIONS)


@dataclass(frozen=True)
class TileCalibrationMetrics:
    """Measured and derived values for one tile (pattern space)."""
    home: Optional[BlobMeasurement] = None
    home_offset: Optional[HomeOffset] = None
    alignment_target: Optional[Point2D] = None  # Ideal target in the measurement frame, home - home_offset
    step_to_displacement: Optional[AxisPair] = None
    size_delta_at_step_test: Optional[float] = None


@dataclass(frozen=True)
class TileRunState:
    tile: TileAddress
    assignment: TileAssignment
    status: TileStatus = TileStatus.PENDING
    metrics: TileCalibrationMetrics = field(default_factory=TileCalibrationMetrics)
    error: Optional[str] = None

    def with_status(self, status: TileStatus, error: Optional[str] = None) -> "TileRunState":
        return replace(self, status=status, error=error)


@dataclass(frozen=True)
class RunnerProgress:
    total: int = 0  # Calibratable tiles
    completed: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "skipped": self.skipped,
        }


@dataclass(frozen=True)
class CalibrationRunnerState:
    """One immutable snapshot of a calibration run."""
    phase: RunnerPhase = RunnerPhase.IDLE
    tiles: Mapping[str, TileRunState] = field(default_factory=dict)
    progress: RunnerProgress = field(default_factory=RunnerProgress)
    active_tile: Optional[TileAddress] = None
    summary: Optional[CalibrationRunSummary] = None
    error: Optional[str] = None
    awaiting_step: bool = False
    pending_step: Optional[str] = None  # Name of the step waiting for advance_step()

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES


def compute_progress(tiles: Mapping[str, TileRunState], total: int) -> RunnerProgress:
    """
    Count tile outcomes.

    Args:
        tiles: Current per-tile state
        total: Number of calibratable tiles

    Returns:
        RunnerProgress
    """
    completed = failed = skipped = 0
    for tile_state in tiles.values():
        if tile_state.status in SUCCESS_STATUSES:
            completed += 1
        elif tile_state.status in FAILED_STATUSES:
            failed += 1
        elif tile_state.status == TileStatus.SKIPPED:
            skipped += 1
    return RunnerProgress(total=total, completed=completed, failed=failed, skipped=skipped)
