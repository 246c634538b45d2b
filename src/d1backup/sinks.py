"""Blob sinks: where finished dumps are archived."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from d1backup.errors import UploadFailed

logger = logging.getLogger(__name__)


@runtime_checkable
class BlobSink(Protocol):
    """Key-addressed byte storage."""

    async def put(self, key: str, data: bytes) -> None:
        """Store *data* under *key*, raising UploadFailed on error."""
        ...


class MemorySink:
    """In-process sink; useful for tests and dry runs."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}

    async def put(self, key: str, data: bytes) -> None:
        self.blobs[key] = bytes(data)


class FileSystemSink:
    """Writes each blob to ``root / key``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _write(self, key: str, data: bytes) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise UploadFailed(f"Key escapes sink root: {key!r}")
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".part")
        try:
            tmp.write_bytes(data)
            tmp.replace(path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
        return path

    async def put(self, key: str, data: bytes) -> None:
        try:
            path = await asyncio.to_thread(self._write, key, data)
        except OSError as exc:
            raise UploadFailed(f"Writing {key} under {self.root} failed: {exc}") from exc
        logger.debug("Wrote %s", path)


class S3Sink:
    """S3-compatible bucket sink (Cloudflare R2, MinIO, AWS S3).

    ``client`` may be any object with boto3's ``put_object`` signature; when
    omitted a boto3 client is built from the remaining arguments.
    """

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        region: str = "auto",
        client: Any = None,
    ) -> None:
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        if client is None:
            import boto3
            from botocore.config import Config as BotoConfig

            client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                region_name=region,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                config=BotoConfig(signature_version="s3v4"),
            )
        self._s3 = client

    async def put(self, key: str, data: bytes) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            response = await asyncio.to_thread(
                self._s3.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType="application/sql",
            )
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            raise UploadFailed(
                f"Put s3://{self.bucket}/{key} failed ({code}): {exc}"
            ) from exc
        except BotoCoreError as exc:
            raise UploadFailed(f"Put s3://{self.bucket}/{key} failed: {exc}") from exc

        etag = str(response.get("ETag", "")).strip('"')
        logger.debug("Put object: s3://%s/%s (ETag: %s)", self.bucket, key, etag)

    def __repr__(self) -> str:
        return f"S3Sink(bucket={self.bucket!r}, endpoint_url={self.endpoint_url!r})"
