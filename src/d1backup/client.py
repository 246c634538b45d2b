"""Authenticated access to the Cloudflare REST API."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from d1backup._http import API_ENDPOINT, DEFAULT_TIMEOUT_S, RETRYABLE_STATUS_CODES
from d1backup.errors import TransportFailure, _walk_exception_chain

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)


@runtime_checkable
class RequestSender(Protocol):
    """Minimal interface the export poller needs: one authenticated call."""

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
    ) -> bytes:
        """Send a request relative to the API root and return the raw body."""
        ...


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None


def wrap_transport_error(exc: BaseException, *, method: str, url: str) -> TransportFailure:
    """Map an httpx exception into TransportFailure with retry metadata."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    if isinstance(exc, TransportFailure):
        return exc

    status_code = extract_status_code(exc)
    retryable = False
    if isinstance(status_code, int):
        retryable = status_code in RETRYABLE_STATUS_CODES
    elif isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        retryable = True

    hint = None
    if status_code in {401, 403}:
        hint = "Check the API token and its D1 permissions (API_TOKEN)."
    elif status_code == 404:
        hint = "Check the account id and database id (ACCOUNT_ID, DB_ID)."

    status_note = f" (status={status_code})" if isinstance(status_code, int) else ""
    cause = str(exc)
    msg = f"{method} {url} failed{status_note}"
    return TransportFailure(
        f"{msg}: {cause}" if cause else msg,
        hint=hint,
        status_code=status_code,
        retryable=retryable,
    )


class ApiClient:
    """Cloudflare API client bound to one account and bearer token."""

    def __init__(
        self,
        api_token: str,
        account_id: str,
        *,
        base_url: str = API_ENDPOINT,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize with credentials; the HTTP client is created lazily."""
        self.account_id = account_id
        self._api_token = api_token
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "Authorization": f"Bearer {self._api_token}",
                    "Content-Type": "application/json",
                },
                timeout=self._timeout_s,
                transport=self._transport,
            )
        return self._client

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
    ) -> bytes:
        """Send an authenticated request and return the raw response body.

        Raises:
            TransportFailure: connection error or a non-2xx status.
        """
        url = f"{self._base_url}/{path.lstrip('/')}"
        logger.debug("%s %s", method, url)
        try:
            response = await self._get_client().request(method, url, json=json)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise wrap_transport_error(exc, method=method, url=url) from exc
        return response.content

    async def aclose(self) -> None:
        """Close the underlying HTTP client, if one was created."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"ApiClient(account_id={self.account_id!r}, api_token='[REDACTED]')"
