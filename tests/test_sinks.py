"""Blob sink tests."""

from __future__ import annotations

from typing import Any

from botocore.exceptions import ClientError
import pytest

from d1backup.errors import UploadFailed
from d1backup.sinks import BlobSink, FileSystemSink, MemorySink, S3Sink

pytestmark = pytest.mark.unit


class _FakeS3:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.puts: list[dict[str, Any]] = []

    def put_object(self, **kwargs: Any) -> dict[str, Any]:
        if self.error is not None:
            raise self.error
        self.puts.append(kwargs)
        return {"ETag": '"abc123"'}


@pytest.mark.parametrize(
    "sink", [MemorySink(), FileSystemSink("."), S3Sink("b", client=_FakeS3())]
)
def test_sinks_satisfy_protocol(sink: Any) -> None:
    assert isinstance(sink, BlobSink)


@pytest.mark.asyncio
async def test_memory_sink_stores_bytes() -> None:
    sink = MemorySink()
    await sink.put("k", b"v")
    assert sink.blobs == {"k": b"v"}


@pytest.mark.asyncio
async def test_filesystem_sink_writes_file(tmp_path) -> None:
    sink = FileSystemSink(tmp_path / "backups")

    await sink.put("db-backup-2024-05-01T03:04:05Z.sql", b"SQL...")

    written = tmp_path / "backups" / "db-backup-2024-05-01T03:04:05Z.sql"
    assert written.read_bytes() == b"SQL..."
    assert [p.name for p in (tmp_path / "backups").iterdir()] == [written.name]


@pytest.mark.asyncio
async def test_filesystem_sink_rejects_escaping_keys(tmp_path) -> None:
    sink = FileSystemSink(tmp_path / "backups")

    with pytest.raises(UploadFailed, match="escapes"):
        await sink.put("../outside.sql", b"x")

    assert not (tmp_path / "outside.sql").exists()


@pytest.mark.asyncio
async def test_filesystem_sink_wraps_os_errors(tmp_path) -> None:
    blocker = tmp_path / "file"
    blocker.write_bytes(b"")
    sink = FileSystemSink(blocker)

    with pytest.raises(UploadFailed):
        await sink.put("k.sql", b"x")


@pytest.mark.asyncio
async def test_s3_sink_puts_object() -> None:
    s3 = _FakeS3()
    sink = S3Sink("backups", client=s3)

    await sink.put("db-backup-x.sql", b"SQL...")

    assert s3.puts == [
        {
            "Bucket": "backups",
            "Key": "db-backup-x.sql",
            "Body": b"SQL...",
            "ContentType": "application/sql",
        }
    ]


@pytest.mark.asyncio
async def test_s3_sink_wraps_client_errors() -> None:
    error = ClientError({"Error": {"Code": "NoSuchBucket", "Message": "nope"}}, "PutObject")
    sink = S3Sink("missing", client=_FakeS3(error))

    with pytest.raises(UploadFailed, match="NoSuchBucket") as exc:
        await sink.put("k", b"x")

    assert exc.value.__cause__ is error


def test_s3_sink_builds_boto3_client_for_endpoint() -> None:
    sink = S3Sink(
        "backups",
        endpoint_url="https://acct.r2.cloudflarestorage.com",
        access_key_id="AKIA",
        secret_access_key="secret",
    )

    assert sink._s3.meta.endpoint_url == "https://acct.r2.cloudflarestorage.com"
    assert "secret" not in repr(sink)


@pytest.mark.asyncio
async def test_filesystem_sink_leaves_no_partial_file_on_failure(
    tmp_path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def failing_replace(self, target):
        raise OSError("disk full")

    monkeypatch.setattr("pathlib.Path.replace", failing_replace)
    root = tmp_path / "backups"
    sink = FileSystemSink(root)

    with pytest.raises(UploadFailed, match="disk full"):
        await sink.put("db-backup-x.sql", b"SQL...")

    assert list(root.iterdir()) == []
