"""
retainer - periodic backup creation with count-based retention
"""

from retainer.services.backup_scheduler import BackupScheduler
from retainer.services.backup_types import Backup, BackupBackend, CallableBackend

__version__ = "0.1.0"

__all__ = [
    "Backup",
    "BackupBackend",
    "BackupScheduler",
    "CallableBackend",
    "__version__",
]
