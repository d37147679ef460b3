"""
YAML persistence for calibration settings and exported run summaries.

A summary is serialised completely before its target file is touched and is
then swapped in with os.replace, so readers only ever see the previous
summary or the new one.
"""
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Union
import logging

import yaml

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def dump_yaml(data: Dict[str, Any]) -> str:
    """Block-style YAML with keys in insertion order."""
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)


def atomic_write_text(filepath: PathLike, text: str) -> Path:
    """
    Replace `filepath` with `text` in a single rename.

    The partial file lives next to the target and is removed on failure.

    Args:
        filepath: Target file, parent directories are created
        text: Complete file contents

    Returns:
        The written path

    Raises:
        IOError: If writing or renaming fails
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_name = tempfile.mkstemp(
        dir=filepath.parent,
        prefix=f".{filepath.name}.",
        suffix=".partial"
    )
    temp_path = Path(temp_name)

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, filepath)
    except OSError as e:
        temp_path.unlink(missing_ok=True)
        logger.error(f"Failed to write {filepath}: {e}")
        raise IOError(f"Atomic write to {filepath} failed: {e}") from e

    logger.debug(f"Wrote {len(text)} characters to {filepath}")
    return filepath


def atomic_write_yaml(filepath: PathLike, data: Dict[str, Any]) -> Path:
    """
    Serialise `data` and write it with atomic_write_text.

    Raises:
        yaml.YAMLError: If `data` holds values safe_dump cannot represent;
            the target is left untouched
        IOError: If the write fails
    """
    return atomic_write_text(filepath, dump_yaml(data))


def load_yaml(filepath: PathLike) -> Dict[str, Any]:
    """
    Load a YAML mapping.

    Returns:
        Parsed dictionary (empty for an empty document)

    Raises:
        FileNotFoundError: If file does not exist
        yaml.YAMLError: If file is malformed
        ValueError: If the document is not a mapping
    """
    filepath = Path(filepath)

    try:
        text = filepath.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise FileNotFoundError(f"File not found: {filepath}") from None

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse {filepath}: {e}")
        raise

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping in {filepath}, got {type(data).__name__}")

    logger.debug(f"Loaded {len(data)} top-level keys from {filepath}")
    return data
