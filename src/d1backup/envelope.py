"""Decoding of the success/result/errors envelope wrapping every API response.

The envelope is decoded in two steps. The outer wrapper is parsed first with
``result`` left as raw JSON, and ``result`` is only validated against the
expected model once ``success`` is known to be true. A rejected request
therefore always surfaces as ``RequestRejected``, whatever its ``result``
holds.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from d1backup.errors import MalformedResponse, RequestRejected

T = TypeVar("T", bound=BaseModel)


class EnvelopeError(BaseModel):
    """A single entry of the envelope's ``errors`` list."""

    message: str


class Envelope(BaseModel):
    """Generic API response wrapper.

    All keys are required: the API documents them as optional, but a response
    missing any of them cannot be told apart from a server bug.
    """

    success: bool
    result: Any
    errors: list[EnvelopeError]

    @property
    def messages(self) -> list[str]:
        return [e.message for e in self.errors]


def decode_envelope(raw: bytes | str) -> Envelope:
    """Parse raw response bytes into an :class:`Envelope`."""
    try:
        return Envelope.model_validate_json(raw)
    except ValidationError as exc:
        raise MalformedResponse(
            f"Response is not a valid API envelope: {_summarize(exc)}"
        ) from exc


def unwrap(envelope: Envelope, model: type[T]) -> T:
    """Return the envelope's result decoded as *model*.

    Raises:
        RequestRejected: ``success`` is false.
        MalformedResponse: the result lacks a required field of *model*.
    """
    if not envelope.success:
        raise RequestRejected(envelope.messages)

    try:
        return model.model_validate(envelope.result)
    except ValidationError as exc:
        raise MalformedResponse(
            f"Response result is not a valid {model.__name__}: {_summarize(exc)}"
        ) from exc


def decode(raw: bytes | str, model: type[T]) -> T:
    """Decode and unwrap a raw response in one step."""
    return unwrap(decode_envelope(raw), model)


def _summarize(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)
