"""Exception hierarchy for d1backup."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class D1BackupError(Exception):
    """Base exception for all d1backup errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(D1BackupError):
    """Configuration validation or resolution failed."""


class TransportFailure(D1BackupError):
    """The API endpoint could not be reached or answered with a non-2xx status.

    ``retryable`` is a signal for the caller; nothing in d1backup retries.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code
        self.retryable = retryable


class RequestRejected(D1BackupError):
    """The response envelope reported ``success: false``."""

    def __init__(self, messages: Sequence[str], *, hint: str | None = None) -> None:
        self.messages: tuple[str, ...] = tuple(messages)
        joined = "; ".join(self.messages) or "no error message given"
        super().__init__(f"Request failed with errors: {joined}", hint=hint)


class JobRejected(D1BackupError):
    """The export job body reported ``success: false``."""


class JobFailed(D1BackupError):
    """The export job reached the terminal ``error`` status."""


class ProtocolViolation(D1BackupError):
    """The server omitted a field the export protocol guarantees."""


class MalformedResponse(D1BackupError):
    """A response body did not parse into the expected shape."""


class PollTimeout(D1BackupError):
    """The export did not complete within the polling policy's bounds."""

    def __init__(
        self,
        message: str,
        *,
        polls: int,
        elapsed_s: float,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.polls = polls
        self.elapsed_s = elapsed_s


class DownloadFailed(D1BackupError):
    """Fetching the exported artifact from its signed URL failed."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code


class UploadFailed(D1BackupError):
    """Writing the artifact to the blob sink failed."""


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
