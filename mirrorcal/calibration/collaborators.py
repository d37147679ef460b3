"""
External collaborators the calibration runner drives.

Capture/detection and motor transport live outside this package; concrete
implementations subclass these and are injected into CalibrationRunner.
"""
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from mirrorcal.core.types import BlobMeasurement, Point2D


class CaptureSource(ABC):
    """Produces blob measurements from the camera pipeline."""

    @abstractmethod
    async def capture_measurement(
            self,
            timeout_sec: float,
            expected_position: Optional[Point2D] = None
    ) -> Optional[BlobMeasurement]:
        """
        Capture a single blob measurement.

        Args:
            timeout_sec: Time budget for this sample
            expected_position: Where the blob should appear (pattern space),
                used by detectors to pick the right blob

        Returns:
            Measurement, or None if no blob was found
        """
        pass


class MotorController(ABC):
    """Sends actuator commands. Every method may raise on failure."""

    @abstractmethod
    async def move_motor(
            self,
            mac: str,
            motor_id: int,
            position_steps: int,
            speed_sps: Optional[int] = None
    ) -> None:
        """Move to an absolute position (steps) and wait for completion."""
        pass

    @abstractmethod
    async def home_motor(self, mac: str, motor_id: int) -> None:
        """Home a single actuator."""
        pass

    @abstractmethod
    async def nudge_motor(self, mac: str, motor_id: int, delta_steps: int) -> None:
        """Relative move by delta_steps."""
        pass

    @abstractmethod
    async def home_all(self, macs: Sequence[str]) -> None:
        """Home every actuator on the given nodes."""
        pass
