"""The bookmark-driven D1 export protocol.

Each call to the export endpoint submits the bookmark received from the
previous call (none on the first) and receives the next bookmark. The job is
finished once a call reports ``status: complete``, at which point the
response also carries the signed download URL of the SQL dump.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
import logging
import time
from typing import TYPE_CHECKING, Any, NewType
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, field_validator

from d1backup.envelope import decode
from d1backup.errors import JobFailed, JobRejected, PollTimeout, ProtocolViolation
from d1backup.policy import PollPolicy

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from d1backup.client import RequestSender

logger = logging.getLogger(__name__)

Bookmark = NewType("Bookmark", str)

_UNKNOWN_ERROR = "unknown error"


class ExportStatus(str, Enum):
    """Job-level status of an export. ``ABSENT`` stands for a missing field."""

    COMPLETE = "complete"
    ACTIVE = "active"
    ERROR = "error"
    ABSENT = "absent"


class ExportResult(BaseModel):
    """Location of the finished export."""

    signed_url: str

    @field_validator("signed_url")
    @classmethod
    def _absolute_http_url(cls, value: str) -> str:
        try:
            parts = urlsplit(value)
        except ValueError as exc:
            raise ValueError(f"invalid signed URL: {exc}") from exc
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError("signed URL must be an absolute http(s) URL")
        return value


class JobStatus(BaseModel):
    """Body of an export endpoint response, inside the envelope."""

    model_config = ConfigDict(extra="ignore")

    success: bool
    status: ExportStatus = ExportStatus.ABSENT
    error: str | None = None
    at_bookmark: str | None = None
    result: ExportResult | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _absent_status(cls, value: Any) -> Any:
        if value is None:
            return ExportStatus.ABSENT
        if value == ExportStatus.ABSENT.value and not isinstance(value, ExportStatus):
            # "absent" is not a wire value
            raise ValueError("unknown export status 'absent'")
        return value


@dataclass(frozen=True)
class ExportOutcome:
    """Result of one poll: the next bookmark and, once finished, the export."""

    bookmark: Bookmark
    result: ExportResult | None = None

    @property
    def is_complete(self) -> bool:
        return self.result is not None


def export_request_body(bookmark: Bookmark | None) -> dict[str, Any]:
    """Build the JSON body for one export call."""
    body: dict[str, Any] = {"output_format": "polling"}
    if bookmark is not None:
        body["current_bookmark"] = bookmark
    return body


def interpret(job: JobStatus) -> ExportOutcome:
    """Map a decoded job status onto an outcome, or raise.

    The job-level ``status: error`` wins over the envelope's success flag.
    """
    if not job.success:
        raise JobRejected(f"Export request failed with error: {job.error or _UNKNOWN_ERROR}")

    if job.status is ExportStatus.ERROR:
        raise JobFailed(f"Export failed with error: {job.error or _UNKNOWN_ERROR}")

    if job.at_bookmark is None:
        raise ProtocolViolation(
            "No bookmark in export response, even though the response did not "
            "indicate an error"
        )
    bookmark = Bookmark(job.at_bookmark)

    if job.status is ExportStatus.COMPLETE:
        if job.result is None:
            raise ProtocolViolation("Export reported complete without a result")
        return ExportOutcome(bookmark=bookmark, result=job.result)

    return ExportOutcome(bookmark=bookmark)


class ExportPoller:
    """Advances one D1 export job, one call at a time."""

    def __init__(self, sender: RequestSender, *, account_id: str) -> None:
        self.sender = sender
        self.account_id = account_id

    def export_path(self, db_id: str) -> str:
        return f"accounts/{self.account_id}/d1/database/{db_id}/export"

    async def poll(self, db_id: str, bookmark: Bookmark | None) -> ExportOutcome:
        """Submit *bookmark* to the export endpoint and interpret the answer.

        Raises:
            TransportFailure: the request did not reach a 2xx response.
            RequestRejected: the envelope reported failure.
            MalformedResponse: the body does not match the job-status shape.
            JobRejected: the job body reported failure.
            JobFailed: the export job ended in error.
            ProtocolViolation: a guaranteed field was missing.
        """
        raw = await self.sender.send(
            "POST", self.export_path(db_id), json=export_request_body(bookmark)
        )
        job = decode(raw, JobStatus)
        logger.debug(
            "Export status for DB ID %s: %s (bookmark=%s)",
            db_id,
            job.status.value,
            job.at_bookmark,
        )

        outcome = interpret(job)
        if bookmark is None:
            logger.info("Started DB export for DB ID: %s", db_id)
        if outcome.result is not None:
            logger.info(
                "DB export complete for DB ID %s: %s",
                db_id,
                _redact_url(outcome.result.signed_url),
            )
        return outcome

    async def run_to_completion(
        self,
        db_id: str,
        *,
        policy: PollPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> tuple[ExportResult, int]:
        """Drive this poller until the export completes."""
        return await drive(self, db_id, policy=policy, sleep=sleep)


async def drive(
    poller: ExportPoller,
    db_id: str,
    *,
    policy: PollPolicy | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> tuple[ExportResult, int]:
    """Poll from a fresh start until the export completes.

    Returns the export result and the number of poll calls made.

    Raises:
        PollTimeout: the policy's poll count or elapsed-time bound ran out.
    """
    policy = policy or PollPolicy()
    start = time.monotonic()
    bookmark: Bookmark | None = None
    polls = 0

    while True:
        outcome = await poller.poll(db_id, bookmark)
        polls += 1
        if outcome.result is not None:
            return outcome.result, polls

        bookmark = outcome.bookmark
        delay = policy.delay_before(polls + 1)
        elapsed = time.monotonic() - start
        if policy.allows(polls=polls, elapsed_s=elapsed, next_delay_s=delay):
            if delay > 0:
                await sleep(delay)
        else:
            raise PollTimeout(
                f"DB export for {db_id} still running after {polls} polls "
                f"({elapsed:.1f}s)",
                polls=polls,
                elapsed_s=elapsed,
                hint="Raise PollPolicy.max_polls or max_elapsed_s for large databases.",
            )


def _redact_url(url: str) -> str:
    """Drop the query string, which carries the URL's signature."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<url>"
    return f"{parts.scheme}://{parts.netloc}{parts.path}" if parts.netloc else "<url>"
