"""d1backup: archive a Cloudflare D1 database via the bookmark export API.

Public API:
    - run_backup(): One export-and-archive run from a Config
    - ExportPoller: The bookmark-driven export protocol
    - ExportPipeline: Poll, download and store
    - Config: Configuration dataclass
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from d1backup.client import ApiClient, RequestSender
from d1backup.config import Config
from d1backup.envelope import Envelope, decode, decode_envelope, unwrap
from d1backup.errors import (
    ConfigurationError,
    D1BackupError,
    DownloadFailed,
    JobFailed,
    JobRejected,
    MalformedResponse,
    PollTimeout,
    ProtocolViolation,
    RequestRejected,
    TransportFailure,
    UploadFailed,
)
from d1backup.export import (
    Bookmark,
    ExportOutcome,
    ExportPoller,
    ExportResult,
    ExportStatus,
    drive,
)
from d1backup.pipeline import (
    ArtifactFetcher,
    BackupReport,
    ExportPipeline,
    HttpArtifactFetcher,
    backup_key,
)
from d1backup.policy import PollPolicy
from d1backup.sinks import BlobSink, FileSystemSink, MemorySink, S3Sink

if TYPE_CHECKING:
    import httpx

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("d1-backup")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("d1backup").addHandler(logging.NullHandler())

logger = logging.getLogger(__name__)


async def run_backup(
    config: Config,
    *,
    sink: BlobSink | None = None,
    policy: PollPolicy | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BackupReport:
    """Export the configured database and store the dump.

    Args:
        config: Credentials, database id and sink settings.
        sink: Where to store the dump. Defaults to an ``S3Sink`` for
            ``config.bucket``.
        policy: Polling bounds; defaults to ``config.poll``.
        transport: Optional httpx transport shared by the API client and the
            artifact download (mainly for tests).

    Returns:
        BackupReport describing the stored blob.

    Example:
        report = await run_backup(Config(), sink=FileSystemSink("backups"))
        print(report.key)
    """
    if sink is None:
        if not config.bucket:
            raise ConfigurationError(
                "No sink given and no bucket configured",
                hint="Set BACKUP_BUCKET or pass sink=...",
            )
        sink = S3Sink(
            config.bucket,
            endpoint_url=config.endpoint_url,
            access_key_id=config.access_key_id,
            secret_access_key=config.secret_access_key,
        )

    account_id, api_token, db_id = config.account_id, config.api_token, config.db_id
    if not (account_id and api_token and db_id):
        raise ConfigurationError(
            "Config is missing account_id, api_token or db_id",
            hint="Build Config normally so unset values resolve from the environment.",
        )

    client = ApiClient(api_token, account_id, transport=transport)
    fetcher = HttpArtifactFetcher(transport=transport)
    async with client, fetcher:
        pipeline = ExportPipeline(
            ExportPoller(client, account_id=account_id),
            fetcher,
            sink,
            policy=policy or config.poll,
            key_prefix=config.key_prefix,
        )
        logger.debug("Running backup with %s", config)
        return await pipeline.run(db_id)


__all__ = [  # noqa: RUF022
    # Entry point
    "run_backup",
    # Core types
    "Config",
    "PollPolicy",
    "Bookmark",
    "ExportStatus",
    "ExportResult",
    "ExportOutcome",
    "BackupReport",
    "Envelope",
    # Components
    "ApiClient",
    "RequestSender",
    "ExportPoller",
    "drive",
    "ExportPipeline",
    "ArtifactFetcher",
    "HttpArtifactFetcher",
    "backup_key",
    "BlobSink",
    "MemorySink",
    "FileSystemSink",
    "S3Sink",
    "decode",
    "decode_envelope",
    "unwrap",
    # Errors
    "D1BackupError",
    "ConfigurationError",
    "TransportFailure",
    "RequestRejected",
    "JobRejected",
    "JobFailed",
    "ProtocolViolation",
    "MalformedResponse",
    "PollTimeout",
    "DownloadFailed",
    "UploadFailed",
]
