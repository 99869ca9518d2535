"""S3 backup provider (optional dependency).

Every object in the bucket (or under `prefix`, when given) is a backup.
Works with AWS S3 and S3-compatible stores through `endpoint_url`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from ...config.constants import S3_DELETE_BATCH_SIZE
from ...exceptions import BackendError, ConfigurationError
from ..backup_types import Backup

logger = logging.getLogger(__name__)

# prepare(key) returns bytes or a readable stream to upload, or None after uploading itself
PrepareFn = Callable[[str], Any]


class S3Backend:
    """Stores backups as objects in an S3 bucket.

    Requires boto3 unless a pre-built `client` is passed in. boto3 is an
    optional dependency; the backend raises a clear error on first use if it
    is not installed.
    """

    def __init__(
        self,
        bucket: str,
        name: Callable[[], str],
        prepare: PrepareFn,
        *,
        region: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        prefix: str = "",
        endpoint_url: str | None = None,
        client_options: dict[str, Any] | None = None,
        client: Any = None,
    ) -> None:
        if not bucket or not isinstance(bucket, str):
            raise ConfigurationError("bucket must be a non-empty bucket name", setting="bucket")
        if not callable(name):
            raise ConfigurationError(
                "name must be a callable returning a unique object key", setting="name"
            )
        if not callable(prepare):
            raise ConfigurationError(
                "prepare must be a callable that produces the backup content",
                setting="prepare",
            )
        if bool(access_key_id) != bool(secret_access_key):
            raise ConfigurationError(
                "access_key_id and secret_access_key must be provided together",
                setting="credentials",
            )

        self.bucket = bucket
        self.name = name
        self.prepare = prepare
        self.prefix = prefix or ""
        self.region = region
        self.endpoint_url = endpoint_url
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._client_options = dict(client_options or {})
        self._client = client

    def __repr__(self) -> str:
        # Credentials stay out of logs and tracebacks
        return f"S3Backend(bucket={self.bucket!r}, prefix={self.prefix!r}, region={self.region!r})"

    @property
    def client(self) -> Any:
        """The S3 client, built with boto3 on first access."""
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _build_client(self) -> Any:
        try:
            import boto3
        except ImportError:
            raise RuntimeError(
                "S3 support requires boto3. Install it with:\n"
                "  pip install 'retainer[s3]'"
            ) from None

        options: dict[str, Any] = dict(self._client_options)
        if self.region:
            options["region_name"] = self.region
        if self.endpoint_url:
            options["endpoint_url"] = self.endpoint_url
        if self._access_key_id:
            options["aws_access_key_id"] = self._access_key_id
            options["aws_secret_access_key"] = self._secret_access_key
        return boto3.client("s3", **options)

    def list(self, limit: int) -> list[Backup] | bool:
        """List every object as a Backup, following continuation tokens.

        Returns False when the first page is complete and holds fewer objects
        than the limit.
        """
        backups: list[Backup] = []
        token: str | None = None
        first_page = True

        while True:
            request: dict[str, Any] = {"Bucket": self.bucket}
            if self.prefix:
                request["Prefix"] = self.prefix
            if token:
                request["ContinuationToken"] = token

            response = self.client.list_objects_v2(**request)
            contents = response.get("Contents") or []
            count = response.get("KeyCount", len(contents))
            token = response.get("NextContinuationToken") if response.get("IsTruncated") else None

            if first_page and token is None and count < limit:
                return False
            first_page = False

            for obj in contents:
                backups.append(Backup(obj["Key"], obj["LastModified"].timestamp() * 1000))

            if token is None:
                return backups

    def create(self) -> None:
        """Upload a new backup object keyed by `prefix + name()`."""
        key = f"{self.prefix}{self.name()}"
        content = self.prepare(key)
        if content is None:
            # prepare uploaded the object itself
            return

        if not isinstance(content, (bytes, bytearray)) and not callable(
            getattr(content, "read", None)
        ):
            raise BackendError(
                "prepare must return bytes, a readable stream, or None",
                backend="s3",
                operation="create",
                returned=type(content).__name__,
            )

        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=content)
        finally:
            close = getattr(content, "close", None)
            if callable(close):
                close()
        logger.debug("Uploaded backup object s3://%s/%s", self.bucket, key)

    def delete(self, backups: list[Backup]) -> None:
        """Delete the given objects in batches accepted by delete_objects."""
        failed: list[str] = []
        for start in range(0, len(backups), S3_DELETE_BATCH_SIZE):
            batch = backups[start : start + S3_DELETE_BATCH_SIZE]
            response = self.client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": backup.id} for backup in batch], "Quiet": True},
            )
            for error in response.get("Errors") or []:
                logger.warning(
                    "Failed to delete s3://%s/%s: %s",
                    self.bucket,
                    error.get("Key"),
                    error.get("Message") or error.get("Code"),
                )
                failed.append(error.get("Key", "?"))

        if failed:
            raise BackendError(
                f"Failed to delete {len(failed)} of {len(backups)} backup(s)",
                backend="s3",
                operation="delete",
                ids=failed,
            )
