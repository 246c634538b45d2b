"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: wire payload builders and scripted
collaborators for the poller and pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from typing import Any

from d1backup.errors import DownloadFailed


def envelope(
    result: Any,
    *,
    success: bool = True,
    errors: list[str] | None = None,
) -> bytes:
    """Encode an API envelope as the server would send it."""
    return json.dumps(
        {
            "success": success,
            "result": result,
            "errors": [{"code": 1000, "message": m} for m in errors or []],
            "messages": [],
        }
    ).encode()


def job(
    status: str | None = None,
    *,
    bookmark: str | None = None,
    signed_url: str | None = None,
    success: bool = True,
    error: str | None = None,
    omit_status: bool = False,
) -> dict[str, Any]:
    """Build a job-status body; ``omit_status`` drops the key entirely."""
    body: dict[str, Any] = {
        "success": success,
        "error": error,
        "at_bookmark": bookmark,
        "result": {"signed_url": signed_url} if signed_url is not None else None,
    }
    if not omit_status:
        body["status"] = status
    return body


def active(bookmark: str) -> bytes:
    return envelope(job("active", bookmark=bookmark))


def complete(bookmark: str, signed_url: str) -> bytes:
    return envelope(job("complete", bookmark=bookmark, signed_url=signed_url))


@dataclass
class ScriptedSender:
    """RequestSender that replays a scripted sequence of bodies/exceptions.

    Every call is recorded as ``(method, path, json)``.
    """

    script: list[bytes | BaseException] = field(default_factory=list)
    calls: list[tuple[str, str, dict[str, Any] | None]] = field(default_factory=list)

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
    ) -> bytes:
        self.calls.append((method, path, json))
        if not self.script:
            raise AssertionError("ScriptedSender ran out of responses")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    @property
    def bookmarks(self) -> list[str | None]:
        return [(body or {}).get("current_bookmark") for _, _, body in self.calls]


@dataclass
class FakeFetcher:
    """ArtifactFetcher returning fixed bytes, or failing with DownloadFailed."""

    payload: bytes = b""
    fail: bool = False
    urls: list[str] = field(default_factory=list)

    async def fetch(self, url: str) -> bytes:
        self.urls.append(url)
        if self.fail:
            raise DownloadFailed("download failed", status_code=403)
        return self.payload


@dataclass
class FailingSink:
    """BlobSink whose writes always fail with a raw exception."""

    attempts: int = 0

    async def put(self, key: str, data: bytes) -> None:
        del key, data
        self.attempts += 1
        raise ConnectionError("sink unavailable")
