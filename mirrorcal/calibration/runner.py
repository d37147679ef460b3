"""
Calibration runner: sequences a whole tile grid.

Per run:
1. HOMING: home every actuator node once
2. STAGING: park every tile aside so only the tile under test is visible
3. MEASURING: per tile, move home, capture a baseline, then X and Y step
   tests (jog, capture, restore). Until an axis has a reference sensitivity
   a short interim jog runs first so the step-test capture knows where to
   look
4. Summary pass: outlier rejection, grid blueprint, ideal targets and home
   offsets
5. ALIGNING (optional): iterate each tile toward its ideal target

Exactly one tile is in flight at a time because every tile shares the same
camera. Capture or motor failures mark the current tile ERROR and the run
moves on. Abort and pause are cooperative and observed at the next
suspension point.
"""
from dataclasses import replace
from typing import Callable, Dict, List, Mapping, Optional, Tuple
import asyncio
import logging
import time

from mirrorcal.core.coords import ConvertContext, CoordSpace, Transformer
from mirrorcal.core.types import (
    BlobMeasurement,
    GridSize,
    MotorRef,
    Point2D,
    TileAddress,
    TileAssignment,
    parse_tile_key,
)
from .collaborators import CaptureSource, MotorController
from .errors import CaptureError, ConfigurationError, MotorCommandError, RunnerAborted
from .expected_position import compute_expected_home_position
from .grid_blueprint import (
    DEFAULT_SOURCE_HEIGHT,
    DEFAULT_SOURCE_WIDTH,
    CalibrationRunSummary,
    MeasuredTile,
    SummaryConfig,
    TileCalibrationResult,
    compute_calibration_summary,
)
from .runner_state import (
    CalibrationRunnerState,
    RunnerPhase,
    TileRunState,
    TileStatus,
    compute_progress,
)
from .settings import CalibrationConfig
from .staging import compute_pose_targets
from .step_test import (
    AxisStepTestResult,
    build_inferred_step_test_result,
    combine_step_test_results,
    compute_alignment_target_steps,
    compute_axis_step_test_result,
    compute_expected_step_position,
    compute_step_scale,
    get_axis_step_delta,
    round_steps,
)

logger = logging.getLogger(__name__)

StateCallback = Callable[[CalibrationRunnerState], None]


class CalibrationRunner:
    """
    Drives calibration of a mirror tile grid.

    State is published as immutable CalibrationRunnerState snapshots to
    subscribers; get_state() returns the latest one.
    """

    def __init__(
            self,
            grid_size: GridSize,
            mirror_config: Optional[Mapping[str, TileAssignment]],
            motors: MotorController,
            capture: CaptureSource,
            settings: Optional[CalibrationConfig] = None,
            on_state_change: Optional[StateCallback] = None,
            convert_context: Optional[ConvertContext] = None
    ):
        """
        Initialize runner.

        Args:
            grid_size: Grid rows/cols
            mirror_config: Tile key ("row-col") -> actuator assignment
            motors: Motor command collaborator
            capture: Blob capture collaborator
            settings: Run settings (defaults if None)
            on_state_change: Optional observer, same as subscribe()
            convert_context: Frame context for measurements that carry no
                source dimensions (default 1920x1080)

        Raises:
            ConfigurationError: If grid or mapping cannot be calibrated
            ValueError: If settings are out of range
        """
        self.settings = settings or CalibrationConfig()
        self.settings.validate()
        self.grid_size = grid_size
        self.motors = motors
        self.capture = capture
        self.convert_context = convert_context or ConvertContext(
            width=DEFAULT_SOURCE_WIDTH, height=DEFAULT_SOURCE_HEIGHT
        )

        tiles = self._build_tiles(grid_size, mirror_config)
        self._calibratable = [key for key, tile in tiles.items() if tile.assignment.is_complete]
        if not self._calibratable:
            raise ConfigurationError("No tile has both X and Y actuators assigned")

        self._subscribers: List[StateCallback] = []
        if on_state_change is not None:
            self._subscribers.append(on_state_change)

        self._state = CalibrationRunnerState(
            tiles=tiles,
            progress=compute_progress(tiles, len(self._calibratable)),
        )

        # Control flags
        self._started = False
        self._aborted = False
        self._paused = False
        self._step_event: Optional[asyncio.Event] = None
        self._resume_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

        # Sensitivity of the first tile measured on each axis
        self._reference_per_step: Dict[str, Optional[float]] = {"x": None, "y": None}

        logger.info(
            f"CalibrationRunner initialized: {grid_size.rows}x{grid_size.cols} grid, "
            f"{len(self._calibratable)} calibratable tiles, mode={self.settings.runner.mode}"
        )

    @staticmethod
    def _build_tiles(
            grid_size: GridSize,
            mirror_config: Optional[Mapping[str, TileAssignment]]
    ) -> Dict[str, TileRunState]:
        if grid_size.rows < 1 or grid_size.cols < 1:
            raise ConfigurationError(
                f"Grid size must be at least 1x1, got {grid_size.rows}x{grid_size.cols}"
            )
        if not mirror_config:
            raise ConfigurationError("No mirror-to-actuator mapping supplied")

        assignments: Dict[str, TileAssignment] = {}
        for raw_key, assignment in mirror_config.items():
            try:
                address = parse_tile_key(raw_key)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
            if not (0 <= address.row < grid_size.rows and 0 <= address.col < grid_size.cols):
                raise ConfigurationError(f"Mapping key {raw_key!r} lies outside the grid")
            assignments[address.key] = assignment or TileAssignment()

        tiles: Dict[str, TileRunState] = {}
        for row in range(grid_size.rows):
            for col in range(grid_size.cols):
                address = TileAddress(row, col)
                assignment = assignments.get(address.key, TileAssignment())
                status = TileStatus.PENDING if assignment.is_complete else TileStatus.SKIPPED
                tiles[address.key] = TileRunState(
                    tile=address,
                    assignment=assignment,
                    status=status,
                    error=None if assignment.is_complete else "No actuator assignment",
                )
        return tiles

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def get_state(self) -> CalibrationRunnerState:
        return self._state

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """
        Register an observer.

        Returns:
            Callable that removes the observer
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, state: CalibrationRunnerState) -> None:
        if self._state.is_terminal:
            logger.debug("Ignoring state update after terminal phase")
            return
        self._state = state
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                logger.exception("State observer raised")

    def _update(self, **changes) -> None:
        state = replace(self._state, **changes)
        if "tiles" in changes:
            state = replace(state, progress=compute_progress(state.tiles, len(self._calibratable)))
        self._publish(state)

    def _set_phase(self, phase: RunnerPhase) -> None:
        logger.info(f"Phase: {self._state.phase.value} -> {phase.value}")
        self._update(phase=phase)

    def _update_tile(self, key: str, **changes) -> None:
        tiles = dict(self._state.tiles)
        tiles[key] = replace(tiles[key], **changes)
        self._update(tiles=tiles)

    def _update_metrics(self, key: str, **changes) -> None:
        metrics = replace(self._state.tiles[key].metrics, **changes)
        self._update_tile(key, metrics=metrics)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Schedule run() on the running event loop."""
        self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    def advance_step(self) -> None:
        """Release the step gate in step mode."""
        if self._step_event is not None:
            self._step_event.set()

    def pause(self) -> None:
        if self._state.is_terminal or self._paused:
            return
        self._paused = True
        if self._resume_event is not None:
            self._resume_event.clear()
        logger.info("Pause requested")

    def resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        if self._resume_event is not None:
            self._resume_event.set()
        logger.info("Resume requested")

    def abort(self) -> None:
        """Stop at the next suspension point."""
        if self._state.is_terminal or self._aborted:
            return
        self._aborted = True
        logger.info("Abort requested")
        for event in (self._step_event, self._resume_event):
            if event is not None:
                event.set()
        if not self._started:
            self._finish_aborted()

    def dispose(self) -> None:
        """Abort and drop all observers."""
        self.abort()
        self._subscribers.clear()

    def _raise_if_aborted(self) -> None:
        if self._aborted:
            raise RunnerAborted()

    async def _checkpoint(self, step: str) -> None:
        """Suspension point: honours abort, pause and the step gate."""
        self._raise_if_aborted()

        if self._paused:
            resume_phase = self._state.phase
            self._update(phase=RunnerPhase.PAUSED)
            await self._resume_event.wait()
            self._raise_if_aborted()
            self._update(phase=resume_phase)

        if self.settings.runner.mode == "step":
            self._step_event.clear()
            self._update(awaiting_step=True, pending_step=step)
            logger.debug(f"Awaiting step: {step}")
            await self._step_event.wait()
            self._raise_if_aborted()
            self._update(awaiting_step=False, pending_step=None)

    # ------------------------------------------------------------------
    # Collaborator calls
    # ------------------------------------------------------------------

    async def _move_motor(self, motor: MotorRef, position_steps: float) -> None:
        target = round_steps(self.settings.motor_limits.clamp(position_steps))
        attempts = self.settings.runner.max_move_attempts
        for attempt in range(1, attempts + 1):
            try:
                await asyncio.wait_for(
                    self.motors.move_motor(motor.mac, motor.motor_index, target),
                    timeout=self.settings.runner.move_timeout_sec,
                )
                logger.debug(f"Moved {motor.key} to {target}")
                break
            except asyncio.TimeoutError as e:
                error = MotorCommandError(f"Move of {motor.key} to {target} timed out")
                cause: Exception = e
            except Exception as e:
                error = MotorCommandError(f"Move of {motor.key} to {target} failed: {e}")
                cause = e
            logger.debug(f"Move attempt {attempt}/{attempts} failed: {error}")
            if attempt == attempts:
                raise error from cause
        self._raise_if_aborted()

    async def _move_tile(self, tile_state: TileRunState, targets: Tuple[float, float]) -> None:
        """Move a tile's X/Y pair concurrently."""
        assignment = tile_state.assignment
        results = await asyncio.gather(
            self._move_motor(assignment.x, targets[0]),
            self._move_motor(assignment.y, targets[1]),
            return_exceptions=True,
        )
        self._raise_if_aborted()
        for result in results:
            if isinstance(result, BaseException):
                raise result

    def _pose_targets(self, tile: TileAddress, pose: str) -> Tuple[float, float]:
        return compute_pose_targets(
            tile,
            pose,
            self.grid_size,
            rotation=self.settings.runner.array_rotation,
            staging_position=self.settings.staging.position,
            limits=self.settings.motor_limits,
        )

    def _to_pattern(self, measurement: BlobMeasurement) -> BlobMeasurement:
        """Normalize a raw measurement into pattern space."""
        ctx = ConvertContext.from_measurement(measurement, self.convert_context)
        transformer = Transformer(ctx)
        point = transformer.to_pattern((measurement.x, measurement.y), from_space=measurement.space)
        size = transformer.delta(measurement.size, "x", measurement.space, CoordSpace.PATTERN)
        return BlobMeasurement(
            x=point.x,
            y=point.y,
            size=size,
            response=measurement.response,
            captured_at=measurement.captured_at,
            space=CoordSpace.PATTERN.value,
            source_width=int(ctx.width),
            source_height=int(ctx.height),
        )

    async def _capture(self, label: str, expected: Optional[Point2D] = None) -> BlobMeasurement:
        """
        Capture with retries.

        Raises:
            CaptureError: If every attempt failed
        """
        runner = self.settings.runner
        attempts = runner.max_detection_retries + 1
        last_error = "no blob found"
        for attempt in range(1, attempts + 1):
            try:
                measurement = await asyncio.wait_for(
                    self.capture.capture_measurement(runner.sample_timeout_sec, expected),
                    timeout=runner.sample_timeout_sec,
                )
            except asyncio.TimeoutError:
                measurement = None
                last_error = "capture timed out"
            except Exception as e:
                measurement = None
                last_error = f"capture failed: {e}"
            self._raise_if_aborted()

            if measurement is not None:
                return self._to_pattern(measurement)

            logger.debug(f"{label}: attempt {attempt}/{attempts} failed ({last_error})")
            if attempt < attempts and runner.retry_delay_sec > 0:
                await asyncio.sleep(runner.retry_delay_sec)
                self._raise_if_aborted()

        raise CaptureError(f"{label}: {last_error}")

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self) -> CalibrationRunnerState:
        """
        Execute the full calibration run.

        Returns:
            Terminal state snapshot (never raises for run failures)

        Raises:
            ValueError: If the runner was already started
        """
        if self._started:
            raise ValueError("Calibration runner can only be started once")
        self._started = True
        self._step_event = asyncio.Event()
        self._resume_event = asyncio.Event()
        if not self._paused:
            self._resume_event.set()
        started_at = time.time()

        try:
            self._raise_if_aborted()
            await self._home_all()
            await self._stage_all()

            self._set_phase(RunnerPhase.MEASURING)
            for key in self._calibratable:
                await self._calibrate_tile(key)
            self._update(active_tile=None)

            await self._checkpoint("summary")
            summary = self._apply_summary()

            if self.settings.alignment.enabled:
                self._set_phase(RunnerPhase.ALIGNING)
                for key in self._calibratable:
                    await self._align_tile(key)
                self._update(active_tile=None)
                summary = self._apply_summary()

            self._update(phase=RunnerPhase.COMPLETED, summary=summary, active_tile=None)
            progress = self._state.progress
            logger.info(
                f"Calibration completed in {time.time() - started_at:.1f}s: "
                f"{progress.completed}/{progress.total} tiles, {progress.failed} failed"
            )

        except RunnerAborted:
            self._finish_aborted()

        except Exception as e:
            logger.exception("Calibration run failed")
            self._update(
                phase=RunnerPhase.ERROR,
                error=str(e) or type(e).__name__,
                active_tile=None,
                awaiting_step=False,
                pending_step=None,
            )

        return self._state

    def _finish_aborted(self) -> None:
        tiles = dict(self._state.tiles)
        for key, tile_state in tiles.items():
            if tile_state.status in (TileStatus.PENDING, TileStatus.IN_PROGRESS):
                tiles[key] = tile_state.with_status(TileStatus.SKIPPED, "Aborted")
        self._update(tiles=tiles)
        self._update(
            phase=RunnerPhase.ABORTED,
            summary=self._build_summary(),
            active_tile=None,
            awaiting_step=False,
            pending_step=None,
        )
        logger.info("Calibration aborted")

    async def _home_all(self) -> None:
        if not self.settings.runner.home_before_run:
            return
        await self._checkpoint("home-all")
        self._set_phase(RunnerPhase.HOMING)

        macs: List[str] = []
        for key in self._calibratable:
            assignment = self._state.tiles[key].assignment
            for motor in (assignment.x, assignment.y):
                if motor.mac not in macs:
                    macs.append(motor.mac)

        try:
            await asyncio.wait_for(
                self.motors.home_all(macs), timeout=self.settings.runner.move_timeout_sec
            )
        except asyncio.TimeoutError as e:
            raise MotorCommandError("Homing timed out") from e
        except Exception as e:
            raise MotorCommandError(f"Homing failed: {e}") from e
        self._raise_if_aborted()
        logger.info(f"Homed {len(macs)} node(s)")

    async def _stage_all(self) -> None:
        if not self.settings.staging.enabled:
            return
        await self._checkpoint("stage-all")
        self._set_phase(RunnerPhase.STAGING)

        for key in self._calibratable:
            tile_state = self._state.tiles[key]
            try:
                await self._move_tile(tile_state, self._pose_targets(tile_state.tile, "aside"))
            except MotorCommandError as e:
                logger.warning(f"Staging failed for tile {key}: {e}")
                self._update_tile(key, status=TileStatus.ERROR, error=str(e))

    async def _park(self, key: str) -> None:
        """Return a tile to its staging pose after measurement."""
        if not self.settings.staging.enabled:
            return
        tile_state = self._state.tiles[key]
        await self._move_tile(tile_state, self._pose_targets(tile_state.tile, "aside"))

    def _measured_tiles(self) -> List[MeasuredTile]:
        return [
            MeasuredTile(tile=tile_state.tile, home=tile_state.metrics.home)
            for tile_state in self._state.tiles.values()
            if tile_state.status in (TileStatus.COMPLETED, TileStatus.PARTIAL)
            and tile_state.metrics.home is not None
        ]

    async def _calibrate_tile(self, key: str) -> None:
        tile_state = self._state.tiles[key]
        if tile_state.status != TileStatus.PENDING:
            return

        self._update(active_tile=tile_state.tile)
        self._update_tile(key, status=TileStatus.IN_PROGRESS)
        logger.info(f"Measuring tile {key}")

        try:
            await self._checkpoint(f"measure-home:{key}")
            expected_home = compute_expected_home_position(
                tile_state.tile,
                self._measured_tiles(),
                self.grid_size,
                self.settings.runner.array_rotation,
            )
            await self._move_tile(tile_state, self._pose_targets(tile_state.tile, "home"))
            home = await self._capture(f"Home {key}", expected_home)
            self._update_metrics(key, home=home)

            axis_results: Dict[str, Optional[AxisStepTestResult]] = {}
            inferred: List[str] = []
            for axis in ("x", "y"):
                await self._checkpoint(f"step-test-{axis}:{key}")
                result, was_inferred = await self._run_axis_step_test(tile_state, axis, home)
                axis_results[axis] = result
                if was_inferred:
                    inferred.append(axis)

            results = combine_step_test_results(axis_results["x"], axis_results["y"])
            self._update_metrics(
                key,
                step_to_displacement=results.step_to_displacement,
                size_delta_at_step_test=results.size_delta_at_step_test,
            )

            unusable = [
                axis for axis in ("x", "y")
                if compute_step_scale(results.step_to_displacement.get(axis)) is None
            ]
            for axis in ("x", "y"):
                if axis not in inferred and axis not in unusable and self._reference_per_step[axis] is None:
                    self._reference_per_step[axis] = results.step_to_displacement.get(axis)
            await self._park(key)

            problems = []
            if inferred:
                problems.append(f"Inferred sensitivity on axis {', '.join(inferred)}")
            if unusable:
                problems.append(f"No usable sensitivity on axis {', '.join(unusable)}")
            if problems:
                message = "; ".join(problems)
                logger.warning(f"Tile {key} partial: {message}")
                self._update_tile(key, status=TileStatus.PARTIAL, error=message)
            else:
                self._update_tile(key, status=TileStatus.COMPLETED, error=None)
                logger.info(
                    f"Tile {key} complete: per_step=({results.step_to_displacement.x:.6f}, "
                    f"{results.step_to_displacement.y:.6f})"
                )

        except (CaptureError, MotorCommandError) as e:
            logger.warning(f"Tile {key} failed: {e}")
            self._update_tile(key, status=TileStatus.ERROR, error=str(e))
            try:
                await self._park(key)
            except MotorCommandError as park_error:
                logger.warning(f"Could not park tile {key}: {park_error}")

    async def _run_interim_step_test(
            self,
            tile_state: TileRunState,
            axis: str,
            home: BlobMeasurement
    ) -> Optional[float]:
        """Short jog that estimates sensitivity before any reference exists."""
        runner = self.settings.runner
        interim_delta = get_axis_step_delta(
            axis, runner.first_tile_interim_step_delta, runner.array_rotation, self.settings.motor_limits
        )
        if interim_delta is None:
            return None

        key = tile_state.tile.key
        await self._move_motor(tile_state.assignment.motor(axis), interim_delta)
        try:
            measurement = await self._capture(
                f"{axis.upper()} interim step test {key}", Point2D(home.x, home.y)
            )
        except CaptureError as e:
            logger.debug(f"Interim {axis.upper()} step test skipped for {key}: {e}")
            return None

        result = compute_axis_step_test_result(home, measurement, axis, interim_delta)
        logger.debug(f"{axis.upper()} interim step test {key}: per_step={result.per_step}")
        return result.per_step

    async def _run_axis_step_test(
            self,
            tile_state: TileRunState,
            axis: str,
            home: BlobMeasurement
    ) -> Tuple[Optional[AxisStepTestResult], bool]:
        """
        Jog one axis, measure, restore.

        Returns:
            (result, inferred); result is None when the axis was not tested
        """
        runner = self.settings.runner
        step_delta = get_axis_step_delta(
            axis, runner.delta_steps, runner.array_rotation, self.settings.motor_limits
        )
        if step_delta is None:
            return None, False

        motor = tile_state.assignment.motor(axis)
        key = tile_state.tile.key
        label = f"{axis.upper()} step test {key}"
        reference = self._reference_per_step[axis]

        estimate = reference
        if reference is None:
            estimate = await self._run_interim_step_test(tile_state, axis, home)
        expected = compute_expected_step_position(home, axis, step_delta, estimate)

        await self._move_motor(motor, step_delta)
        try:
            measurement = await self._capture(label, expected)
        except CaptureError as e:
            await self._move_motor(motor, 0)
            if not runner.infer_failed_step_tests or reference is None:
                raise
            logger.warning(f"{label} failed, using reference per_step={reference:.6f}: {e}")
            return build_inferred_step_test_result(reference), True
        await self._move_motor(motor, 0)

        result = compute_axis_step_test_result(home, measurement, axis, step_delta)
        logger.debug(
            f"{label}: displacement={result.displacement:.4f}, per_step={result.per_step}"
        )
        return result, False

    # ------------------------------------------------------------------
    # Summary and alignment
    # ------------------------------------------------------------------

    def _build_summary(self) -> CalibrationRunSummary:
        tile_results = {
            key: TileCalibrationResult(
                tile=tile_state.tile,
                status=tile_state.status.value,
                home_measurement=tile_state.metrics.home,
                step_to_displacement=tile_state.metrics.step_to_displacement,
                size_delta_at_step_test=tile_state.metrics.size_delta_at_step_test,
                error=tile_state.error,
            )
            for key, tile_state in self._state.tiles.items()
        }
        config = SummaryConfig(
            grid_size=self.grid_size,
            grid_gap_normalized=self.settings.runner.grid_gap_normalized,
            delta_steps=self.settings.runner.delta_steps,
            robust_tile_size=self.settings.robust_tile_size,
            motor_limits=self.settings.motor_limits,
        )
        return compute_calibration_summary(tile_results, config)

    def _apply_summary(self) -> CalibrationRunSummary:
        """Compute the summary and merge home offsets and alignment targets into tile metrics."""
        summary = self._build_summary()
        tiles = dict(self._state.tiles)
        for key, tile_summary in summary.tiles.items():
            tile_state = tiles[key]
            home = tile_state.metrics.home
            offset = tile_summary.home_offset
            if home is None or offset is None:
                continue
            metrics = replace(
                tile_state.metrics,
                home_offset=offset,
                alignment_target=Point2D(home.x - offset.dx, home.y - offset.dy),
            )
            tiles[key] = replace(tile_state, metrics=metrics)
        self._update(tiles=tiles, summary=summary)
        logger.info(f"Summary computed for {len(summary.tiles)} tile(s)")
        return summary

    async def _align_tile(self, key: str) -> None:
        tile_state = self._state.tiles[key]
        metrics = tile_state.metrics
        if tile_state.status != TileStatus.COMPLETED:
            return
        if metrics.alignment_target is None or metrics.step_to_displacement is None:
            return

        per_step = metrics.step_to_displacement
        if per_step.x is None and per_step.y is None:
            logger.info(f"Tile {key} has no sensitivity, not aligning")
            return

        self._update(active_tile=tile_state.tile)
        alignment = self.settings.alignment
        limits = self.settings.motor_limits
        target = metrics.alignment_target
        position: Dict[str, float] = {"x": 0, "y": 0}

        try:
            await self._checkpoint(f"align:{key}")
            await self._move_tile(tile_state, (position["x"], position["y"]))
            measurement = await self._capture(f"Align {key}", target)

            corrections = 0
            while True:
                error = {"x": target.x - measurement.x, "y": target.y - measurement.y}
                if all(abs(value) <= alignment.tolerance for value in error.values()):
                    logger.info(f"Tile {key} aligned after {corrections} correction(s)")
                    return
                if corrections >= alignment.max_iterations:
                    break

                moved = False
                for axis in ("x", "y"):
                    steps = compute_alignment_target_steps(error[axis], per_step.get(axis), limits)
                    if not steps:
                        continue
                    position[axis] = limits.clamp(position[axis] + steps)
                    moved = True
                if not moved:
                    break

                await self._move_tile(tile_state, (position["x"], position["y"]))
                corrections += 1
                await self._checkpoint(f"align:{key}")
                measurement = await self._capture(f"Align {key}", target)

            message = f"Not within {alignment.tolerance} after {corrections} correction(s)"
            logger.warning(f"Tile {key}: {message}")
            self._update_tile(key, status=TileStatus.MAX_ITERATIONS, error=message)

        except (CaptureError, MotorCommandError) as e:
            logger.warning(f"Alignment of tile {key} failed: {e}")
            self._update_tile(key, status=TileStatus.ERROR, error=str(e))


def build_tile_assignments(
        mapping: Mapping[str, Mapping[str, Optional[Mapping[str, object]]]]
) -> Dict[str, TileAssignment]:
    """
    Build assignments from a plain mapping, e.g. loaded from YAML:

        {"0-0": {"x": {"mac": "aa:bb", "motor_index": 0}, "y": {...}}}
    """
    assignments: Dict[str, TileAssignment] = {}
    for key, axes in mapping.items():
        motors: Dict[str, Optional[MotorRef]] = {}
        for axis in ("x", "y"):
            entry = (axes or {}).get(axis)
            motors[axis] = (
                MotorRef(mac=str(entry["mac"]), motor_index=int(entry["motor_index"]))
                if entry else None
            )
        assignments[key] = TileAssignment(x=motors["x"], y=motors["y"])
    return assignments
