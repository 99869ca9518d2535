"""Backup provider implementations."""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..backup_types import BackupBackend

PROVIDERS: dict[str, str] = {
    "disk": "retainer.services.backup_providers.disk:DiskBackend",
    "s3": "retainer.services.backup_providers.s3:S3Backend",
}


def get_provider(provider: str, /, **options: Any) -> BackupBackend:
    """Get a backup provider instance by name.

    Keyword options are passed to the provider's constructor, including the
    provider's own `name` option.

    Raises ValueError if the provider is not recognized.
    """
    if provider not in PROVIDERS:
        available = ", ".join(sorted(PROVIDERS))
        raise ValueError(f"Unknown provider: {provider}. Available: {available}")

    module_path, class_name = PROVIDERS[provider].rsplit(":", 1)

    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls(**options)  # type: ignore[no-any-return]
