"""
Calibration exceptions.
"""


class ConfigurationError(ValueError):
    """Runner configuration cannot produce a calibration run."""


class CaptureError(RuntimeError):
    """No usable blob measurement could be obtained."""


class MotorCommandError(RuntimeError):
    """An actuator command failed or timed out."""


class RunnerAborted(Exception):
    """Raised inside the run loop when an abort was requested."""
