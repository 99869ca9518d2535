"""Disk backup provider: every regular file in a directory is a backup.

Use a dedicated directory. Any file placed in it counts toward the
retention limit and may be deleted once it is among the oldest.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable
from operator import attrgetter
from pathlib import Path
from typing import Any

from ...config.constants import COPY_CHUNK_SIZE
from ...exceptions import BackendError, ConfigurationError
from ..backup_types import Backup

logger = logging.getLogger(__name__)

# prepare(path) returns content to write, or None after writing the file itself
PrepareFn = Callable[[Path], Any]


def created_at_ms(stats: os.stat_result) -> float:
    """Best available creation time of a file in milliseconds.

    Birth time is not reported on every platform, so fall back to the
    modification time and then to the change time.
    """
    for attr in ("st_birthtime", "st_mtime", "st_ctime"):
        value = getattr(stats, attr, None)
        if value:
            return value * 1000
    return 0


class DiskBackend:
    """Stores backups as files in a local directory."""

    def __init__(
        self,
        path: str | os.PathLike[str],
        name: Callable[[], str],
        prepare: PrepareFn,
    ) -> None:
        if not path or not isinstance(path, (str, os.PathLike)):
            raise ConfigurationError(
                "path must point to the directory where backups are stored",
                setting="path",
            )
        if not callable(name):
            raise ConfigurationError(
                "name must be a callable returning a unique backup file name",
                setting="name",
            )
        if not callable(prepare):
            raise ConfigurationError(
                "prepare must be a callable that produces the backup content",
                setting="prepare",
            )

        self.path = Path(path).expanduser().resolve()
        self.name = name
        self.prepare = prepare

        try:
            self.path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create backup directory: {e}", setting="path", path=str(self.path)
            ) from e

    def __repr__(self) -> str:
        return f"DiskBackend(path={str(self.path)!r})"

    def list(self, limit: int) -> list[Backup] | bool:
        """List every file in the directory as a Backup.

        Returns False without any stat calls when the directory holds fewer
        entries than the limit.
        """
        with os.scandir(self.path) as it:
            entries = list(it)

        if len(entries) < limit:
            return False

        # Name order breaks ties between files stamped within one clock tick
        backups: list[Backup] = []
        for entry in sorted(entries, key=attrgetter("name")):
            if not entry.is_file(follow_symlinks=False):
                continue
            backups.append(Backup(entry.name, created_at_ms(entry.stat())))
        return backups

    def create(self) -> Backup:
        """Write a new backup file named by `name()` with content from `prepare()`."""
        filename = self.name()
        target = self._target(filename)

        content = self.prepare(target)
        if isinstance(content, (bytes, bytearray, memoryview)):
            target.write_bytes(content)
        elif content is not None and callable(getattr(content, "read", None)):
            try:
                with open(target, "wb") as f_out:
                    shutil.copyfileobj(content, f_out, COPY_CHUNK_SIZE)
            finally:
                close = getattr(content, "close", None)
                if callable(close):
                    close()
        elif content is not None:
            raise BackendError(
                "prepare must return bytes, a readable stream, or None",
                backend="disk",
                operation="create",
                returned=type(content).__name__,
            )

        if not target.is_file():
            raise BackendError(
                "prepare did not produce a backup file",
                backend="disk",
                operation="create",
                path=str(target),
            )

        logger.debug("Wrote backup file %s", target)
        return Backup(filename, created_at_ms(target.stat()))

    def delete(self, backups: list[Backup]) -> None:
        """Remove the given backup files, attempting every one before failing."""
        failed: list[str] = []
        for backup in backups:
            try:
                self._target(backup.id).unlink()
            except (OSError, BackendError) as e:
                logger.warning("Failed to delete backup %s: %s", backup.id, e)
                failed.append(backup.id)

        if failed:
            raise BackendError(
                f"Failed to delete {len(failed)} of {len(backups)} backup(s)",
                backend="disk",
                operation="delete",
                ids=failed,
            )

    def _target(self, filename: str) -> Path:
        if (
            not isinstance(filename, str)
            or not filename
            or filename in (".", "..")
            or "/" in filename
            or (os.sep != "/" and os.sep in filename)
        ):
            raise BackendError(
                "Backup names must be plain file names",
                backend="disk",
                name=filename,
            )
        return self.path / filename
