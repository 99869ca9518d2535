"""Helpers that name backups and produce their content.

These build the `name` and `prepare` callables the disk and S3 providers
expect, for the common cases of snapshotting a file or capturing the output
of a command such as a database dump.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from ..config.constants import DEFAULT_NAME_PREFIX, NAME_TIMESTAMP_FORMAT
from ..exceptions import BackendError, ConfigurationError

logger = logging.getLogger(__name__)


def timestamped_name(prefix: str = DEFAULT_NAME_PREFIX, suffix: str = "") -> Callable[[], str]:
    """Return a name generator like ``backup-2026-10-19_140502_123456.db``.

    Timestamps are UTC with microseconds, so names sort chronologically.
    """

    def generate() -> str:
        timestamp = datetime.now(tz=timezone.utc).strftime(NAME_TIMESTAMP_FORMAT)
        return f"{prefix}-{timestamp}{suffix}"

    return generate


def copy_file(source: str | os.PathLike[str]) -> Callable[[Path | str], bytes | None]:
    """Return a prepare callable that snapshots `source`.

    Given a filesystem path (disk provider) the file is copied there and None
    is returned. The copy gets fresh timestamps so it dates from the backup,
    not the source. Given an object key (S3 provider) the file's bytes are
    returned for upload.
    """
    source_path = Path(source).expanduser()

    def prepare(target: Path | str) -> bytes | None:
        if not source_path.is_file():
            raise BackendError("Backup source not found", source=str(source_path))
        if isinstance(target, Path):
            shutil.copyfile(source_path, target)
            return None
        return source_path.read_bytes()

    return prepare


def run_command(command: str, timeout: float | None = None) -> Callable[[Path | str], bytes]:
    """Return a prepare callable that captures the stdout of a shell command.

    A non-zero exit status raises BackendError with the command's stderr.
    """
    if not command or not command.strip():
        raise ConfigurationError("command must not be empty", setting="command")

    def prepare(target: Path | str) -> bytes:
        logger.debug("Running backup command for %s: %s", target, command)
        try:
            result = subprocess.run(
                command, shell=True, capture_output=True, timeout=timeout, check=False
            )
        except subprocess.TimeoutExpired as e:
            raise BackendError("Backup command timed out", command=command, timeout=timeout) from e

        if result.returncode != 0:
            stderr = result.stderr.decode(errors="replace").strip()
            raise BackendError(
                f"Backup command failed: {stderr or 'no error output'}",
                command=command,
                returncode=result.returncode,
            )
        return result.stdout

    return prepare
