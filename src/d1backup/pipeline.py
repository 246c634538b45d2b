"""Export-and-archive: drive an export, download the dump, store it.

A run is not transactional. Any failure aborts it before the sink is
written, and a re-run starts a brand-new export.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from d1backup._http import DEFAULT_TIMEOUT_S
from d1backup.errors import DownloadFailed, UploadFailed
from d1backup.export import drive

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType

    from d1backup.export import ExportPoller
    from d1backup.policy import PollPolicy
    from d1backup.sinks import BlobSink

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "db-backup-"
DEFAULT_KEY_SUFFIX = ".sql"


@runtime_checkable
class ArtifactFetcher(Protocol):
    """Downloads the bytes behind a pre-authenticated URL."""

    async def fetch(self, url: str) -> bytes:
        """Return the body at *url*."""
        ...


class HttpArtifactFetcher:
    """Plain, unauthenticated GET of a signed URL."""

    def __init__(
        self,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout_s = timeout_s
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout_s,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def fetch(self, url: str) -> bytes:
        """Download *url*.

        Raises:
            DownloadFailed: non-2xx status, transport error or unusable URL.
        """
        try:
            response = await self._get_client().get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            raise DownloadFailed(
                f"Downloading export failed (status={status_code})",
                status_code=status_code,
                hint="Signed URLs expire; re-run the backup to get a fresh one.",
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise DownloadFailed(f"Downloading export failed: {exc}") from exc
        return response.content

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpArtifactFetcher:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def backup_key(
    now: datetime,
    *,
    prefix: str = DEFAULT_KEY_PREFIX,
    suffix: str = DEFAULT_KEY_SUFFIX,
) -> str:
    """Return the storage key for a dump taken at *now*.

    Naive datetimes are taken to be UTC.

    Example:
        >>> backup_key(datetime(2024, 5, 1, 3, 4, 5, tzinfo=timezone.utc))
        'db-backup-2024-05-01T03:04:05Z.sql'
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    stamp = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return f"{prefix}{stamp}{suffix}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BackupReport:
    """What a successful run stored."""

    key: str
    size: int
    polls: int
    signed_url: str


class ExportPipeline:
    """Runs one export through to a stored blob."""

    def __init__(
        self,
        poller: ExportPoller,
        fetcher: ArtifactFetcher,
        sink: BlobSink,
        *,
        policy: PollPolicy | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        key_suffix: str = DEFAULT_KEY_SUFFIX,
    ) -> None:
        self.poller = poller
        self.fetcher = fetcher
        self.sink = sink
        self.policy = policy
        self._clock = clock
        self._sleep = sleep
        self.key_prefix = key_prefix
        self.key_suffix = key_suffix

    async def run(self, db_id: str) -> BackupReport:
        """Export *db_id*, download the dump and write it to the sink."""
        # One clock read per run, before polling starts.
        key = backup_key(self._clock(), prefix=self.key_prefix, suffix=self.key_suffix)

        result, polls = await drive(
            self.poller, db_id, policy=self.policy, sleep=self._sleep
        )
        data = await self.fetcher.fetch(result.signed_url)
        logger.debug("Downloaded %d bytes for %s", len(data), key)

        try:
            await self.sink.put(key, data)
        except UploadFailed:
            raise
        except Exception as exc:
            raise UploadFailed(f"Writing {key} to blob sink failed: {exc}") from exc

        logger.info("Stored DB backup %s (%d bytes, %d polls)", key, len(data), polls)
        return BackupReport(
            key=key, size=len(data), polls=polls, signed_url=result.signed_url
        )
