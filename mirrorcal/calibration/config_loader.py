"""
Build a CalibrationConfig from `config/calibration.yaml`.

Each top-level section maps onto one settings dataclass. YAML scalars are
checked against the type of the default they replace, so `delta_steps: 1.5`
or `enabled: "yes"` fail loudly instead of reaching the runner. Unknown
keys and sections are logged and skipped.
"""
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Optional
import logging

import yaml

from mirrorcal.core.io_utils import load_yaml
from .settings import CalibrationConfig

logger = logging.getLogger(__name__)

# Default location for calibration settings
DEFAULT_CONFIG_PATH = Path("config/calibration.yaml")

SECTIONS = ("runner", "staging", "robust_tile_size", "motor_limits", "alignment")

# Errors that make a config file unusable; the run then uses defaults
_UNREADABLE_CONFIG_ERRORS = (OSError, yaml.YAMLError, ValueError)


def _coerce_value(current: Any, value: Any, name: str) -> Any:
    """
    Check a YAML scalar against the default it replaces.

    Integers are accepted for float settings and whole floats for integer
    settings; strings pass through for the settings validator to check.

    Raises:
        ValueError: On a type mismatch
    """
    if isinstance(current, bool):
        if not isinstance(value, bool):
            raise ValueError(f"{name} must be true or false, got {value!r}")
        return value

    if isinstance(current, (int, float)):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{name} must be a number, got {value!r}")
        if isinstance(current, float):
            return float(value)
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError(f"{name} must be a whole number, got {value!r}")
            return int(value)

    return value


def _apply_section(target: Any, section: str, overrides: Any) -> None:
    """Copy one YAML section onto its settings dataclass."""
    if overrides is None:
        return
    if not isinstance(overrides, dict):
        raise ValueError(f"Config section '{section}' must be a mapping")

    known = {f.name for f in fields(target)}
    for key, value in overrides.items():
        if key not in known:
            logger.debug(f"Ignoring unknown config key: {section}.{key}")
            continue
        setattr(target, key, _coerce_value(getattr(target, key), value, f"{section}.{key}"))


def load_calibration_settings(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Read the raw settings mapping.

    Args:
        config_path: YAML file (defaults to DEFAULT_CONFIG_PATH)

    Returns:
        Settings dictionary; empty when the file is missing or unreadable
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not path.is_file():
        logger.info(f"No calibration config at {path}, using defaults")
        return {}

    try:
        settings = load_yaml(path)
    except _UNREADABLE_CONFIG_ERRORS as exc:
        logger.warning(f"Ignoring unreadable calibration config {path}: {exc}")
        return {}

    logger.info(f"Loaded calibration config from {path}")
    return settings


def build_calibration_config(settings: Optional[Dict[str, Any]] = None) -> CalibrationConfig:
    """
    Apply a settings mapping to the defaults.

    Raises:
        ValueError: On a mistyped or out-of-range value
    """
    settings = settings or {}
    config = CalibrationConfig()

    for section, overrides in settings.items():
        if section not in SECTIONS:
            logger.debug(f"Ignoring unknown config section: {section}")
            continue
        _apply_section(getattr(config, section), section, overrides)

    # MotorLimits checks its range in __post_init__, which setattr skips
    limits = config.motor_limits
    if limits.min_steps >= limits.max_steps:
        raise ValueError("motor_limits.min_steps must be below max_steps")

    config.validate()
    return config


def load_calibration_config(config_path: Optional[Path] = None) -> CalibrationConfig:
    """load_calibration_settings followed by build_calibration_config."""
    return build_calibration_config(load_calibration_settings(config_path))
