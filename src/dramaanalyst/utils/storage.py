"""Storage utilities for persisting analysis artifacts to disk."""

import logging
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def ensure_dir(directory: PathLike) -> Path:
    """Ensure the directory (and its parents) exists."""
    path = Path(directory)
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_text(directory: PathLike, filename: str, text: str) -> Path:
    """
    Write a UTF-8 text artifact.

    Args:
        directory: Target directory, created if missing
        filename: File name inside the directory
        text: Content

    Returns:
        Path of the written file

    Raises:
        OSError: If the file cannot be written
    """
    file_path = ensure_dir(directory) / filename
    with open(file_path, 'w', encoding='utf-8') as f:
        f.write(text)
    logger.debug(f"Saved {file_path}")
    return file_path
