"""Backup record and the protocol that storage backends implement."""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal, Protocol, Union, runtime_checkable

from ..exceptions import BackupValidationError, ConfigurationError

# What a backend's list() may hand back: False short-circuits enumeration
ListResult = Union[Literal[False], Sequence["Backup"]]


@dataclass(frozen=True)
class Backup:
    """An artifact already committed to upstream storage.

    Attributes:
        id: Identifier of the artifact in the backend's namespace.
        created_at: Creation time in milliseconds since the epoch.
    """

    id: str
    created_at: float

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            raise BackupValidationError(
                "Backup id must be a non-empty string", id=self.id
            )
        # bool is an int subclass but never a timestamp
        if (
            isinstance(self.created_at, bool)
            or not isinstance(self.created_at, (int, float))
            or not 0 < self.created_at < math.inf
        ):
            raise BackupValidationError(
                "Backup created_at must be a positive timestamp in milliseconds",
                id=self.id,
                created_at=self.created_at,
            )

    @property
    def created(self) -> datetime:
        """Creation time as an aware UTC datetime."""
        return datetime.fromtimestamp(self.created_at / 1000, tz=timezone.utc)


@runtime_checkable
class BackupBackend(Protocol):
    """Protocol that all storage backends must implement."""

    def list(self, limit: int) -> ListResult:
        """Return every current backup, or False if provably fewer than limit exist."""
        ...

    def create(self) -> Backup | None:
        """Create and persist a new backup under a unique name."""
        ...

    def delete(self, backups: list[Backup]) -> None:
        """Remove the given backups from storage."""
        ...


class CallableBackend:
    """Adapts three plain callables to the BackupBackend protocol."""

    def __init__(
        self,
        list_fn: Callable[[int], ListResult],
        create_fn: Callable[[], Backup | None],
        delete_fn: Callable[[list[Backup]], None],
    ) -> None:
        for setting, fn in (
            ("list_fn", list_fn),
            ("create_fn", create_fn),
            ("delete_fn", delete_fn),
        ):
            if not callable(fn):
                raise ConfigurationError(f"{setting} must be callable", setting=setting)
        self._list_fn = list_fn
        self._create_fn = create_fn
        self._delete_fn = delete_fn

    def list(self, limit: int) -> ListResult:
        return self._list_fn(limit)

    def create(self) -> Backup | None:
        return self._create_fn()

    def delete(self, backups: list[Backup]) -> None:
        self._delete_fn(backups)
