"""Delete or archive consumed input files."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from .config import InputConfig

LOGGER = logging.getLogger(__name__)


class MoverError(RuntimeError):
    """Raised when a source file cannot be deleted or archived."""


class Disposition(str, Enum):
    DELETED = "deleted"
    ARCHIVED = "archived"
    KEPT = "kept"


class SourceMover:
    """Apply the configured archive policy to a consumed file."""

    def __init__(self, input_config: InputConfig) -> None:
        self._delete = input_config.delete
        self._archive_dir = input_config.archive_dir

    @property
    def policy(self) -> Disposition:
        if self._delete:
            return Disposition.DELETED
        if self._archive_dir is not None:
            return Disposition.ARCHIVED
        return Disposition.KEPT

    def dispose(self, path: Path) -> Disposition:
        policy = self.policy
        if policy is Disposition.DELETED:
            self.delete(path)
        elif policy is Disposition.ARCHIVED:
            self.archive(path)
        return policy

    def delete(self, path: Path) -> None:
        LOGGER.debug("Deleting %s", path)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise MoverError(f"File does not exist: {path}") from exc
        except OSError as exc:
            raise MoverError(f"Failed to delete {path}: {exc}") from exc

    def archive(self, path: Path) -> Path:
        """Move *path* into the archive directory, keeping its base name."""

        if self._archive_dir is None:
            raise MoverError("Archive directory is not configured.")
        if not path.is_file():
            raise MoverError(f"Path is not a file: {path}")
        destination = self._archive_dir / path.name
        LOGGER.debug("Archiving %s to %s", path, destination)
        try:
            path.replace(destination)
        except FileNotFoundError as exc:
            raise MoverError(f"File disappeared during archive: {path}") from exc
        except OSError as exc:
            raise MoverError(f"Failed to archive {path}: {exc}") from exc
        return destination


__all__ = ["Disposition", "MoverError", "SourceMover"]
