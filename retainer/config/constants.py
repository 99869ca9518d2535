"""
Centralized constants for retainer.

Defaults for the scheduler, the storage backends and the CLI live here so
they can be tuned in one place.
"""

import os
from pathlib import Path

# =============================================================================
# PATHS
# =============================================================================

# RETAINER_HOME overrides the config directory (used by tests)
RETAINER_CONFIG_DIR = Path(
    os.environ.get("RETAINER_HOME", str(Path.home() / ".config" / "retainer"))
)
LOG_FILENAME = "retainer.log"

# =============================================================================
# SCHEDULER DEFAULTS
# =============================================================================

DEFAULT_INTERVAL_SECONDS = 3600  # 1 hour between cycles
DEFAULT_RETENTION_LIMIT = 24  # Keep one day of hourly backups
TIMER_THREAD_NAME = "backup-scheduler"

# =============================================================================
# BACKENDS
# =============================================================================

DEFAULT_PROVIDER = "disk"
DEFAULT_NAME_PREFIX = "backup"
NAME_TIMESTAMP_FORMAT = "%Y-%m-%d_%H%M%S_%f"

COPY_CHUNK_SIZE = 65536  # 64KB chunks when streaming content to disk
S3_DELETE_BATCH_SIZE = 1000  # delete_objects accepts at most 1000 keys

# =============================================================================
# LOGGING
# =============================================================================

MAX_LOG_BYTES = 5 * 1024 * 1024  # 5MB per log file
LOG_BACKUP_COUNT = 2

# =============================================================================
# ENVIRONMENT VARIABLES
# =============================================================================

ENV_VAR_DEFINITIONS = {
    "RETAINER_HOME": {
        "description": "Directory for retainer logs and state",
        "default": None,
        "valid_values": None,
    },
    "RETAINER_PROVIDER": {
        "description": "Storage provider used by the CLI",
        "default": DEFAULT_PROVIDER,
        "valid_values": ["disk", "s3"],
    },
    "RETAINER_INTERVAL": {
        "description": "Seconds between backup cycles",
        "default": str(DEFAULT_INTERVAL_SECONDS),
        "valid_values": None,
    },
    "RETAINER_LIMIT": {
        "description": "Number of backups to retain",
        "default": str(DEFAULT_RETENTION_LIMIT),
        "valid_values": None,
    },
    "RETAINER_BACKUP_DIR": {
        "description": "Directory used by the disk provider",
        "default": None,
        "valid_values": None,
    },
    "RETAINER_S3_BUCKET": {
        "description": "Bucket used by the s3 provider",
        "default": None,
        "valid_values": None,
    },
    "RETAINER_S3_REGION": {
        "description": "Region of the s3 bucket",
        "default": None,
        "valid_values": None,
    },
    "RETAINER_S3_ENDPOINT_URL": {
        "description": "Endpoint for S3-compatible object stores",
        "default": None,
        "valid_values": None,
    },
    "RETAINER_S3_ACCESS_KEY_ID": {
        "description": "Access key ID for the s3 provider",
        "default": None,
        "valid_values": None,
        "sensitive": True,
    },
    "RETAINER_S3_SECRET_ACCESS_KEY": {
        "description": "Secret access key for the s3 provider",
        "default": None,
        "valid_values": None,
        "sensitive": True,
    },
    "RETAINER_LOG_LEVEL": {
        "description": "Level for the rotating log file",
        "default": "INFO",
        "valid_values": ["DEBUG", "INFO", "WARNING", "ERROR"],
    },
}
