"""Decoding of accepted response bodies into typed values.

Decoding happens once, after the retry loop has produced an accepted
response. Failures raise :class:`~retrying_client.errors.DecodeError` and are
never retried.
"""

from __future__ import annotations

from typing import Protocol, cast

import msgspec

from retrying_client.errors import DecodeError

__all__ = ["Decoder", "MsgspecDecoder", "media_type"]


class Decoder(Protocol):
    """Protocol for the serialization collaborator."""

    def decode[T](self, body: bytes, content_type: str | None, type_: type[T]) -> T:
        """Decode ``body`` into ``type_``.

        Raises
        ------
        DecodeError
            If the body cannot be decoded into ``type_``.
        """
        ...


def media_type(content_type: str | None) -> str:
    """Return the lower-cased media type without parameters.

    Examples
    --------
    >>> media_type("Application/JSON; charset=utf-8")
    'application/json'
    """
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _is_json(kind: str) -> bool:
    return kind == "application/json" or kind.endswith("+json")


class MsgspecDecoder:
    """Decoder backed by :mod:`msgspec`.

    JSON media types decode with ``msgspec.json.decode`` into any type msgspec
    supports (``msgspec.Struct``, dataclasses, builtins). ``bytes`` returns the
    raw body and ``str`` the UTF-8 text of any ``text/*`` body.

    Parameters
    ----------
    default_content_type : str, optional
        Media type assumed when the response carries none.
        Defaults to ``application/json``.

    Examples
    --------
    >>> MsgspecDecoder().decode(b'{"a": 1}', "application/json", dict)
    {'a': 1}
    """

    def __init__(self, default_content_type: str = "application/json") -> None:
        self.default_content_type = default_content_type

    def decode[T](self, body: bytes, content_type: str | None, type_: type[T]) -> T:
        """Decode ``body`` into ``type_`` according to ``content_type``.

        Raises
        ------
        DecodeError
            If the media type is unsupported or the body does not match ``type_``.
        """
        if type_ is bytes:
            return cast("T", body)
        kind = media_type(content_type) or self.default_content_type
        context = {"content_type": kind, "target_type": getattr(type_, "__name__", repr(type_))}
        if _is_json(kind):
            try:
                return msgspec.json.decode(body, type=type_)
            except msgspec.DecodeError as exc:
                msg = f"Could not decode {kind} body as {context['target_type']}: {exc}"
                raise DecodeError(msg, cause=exc, context=context) from exc
        if kind.startswith("text/") and type_ is str:
            try:
                return cast("T", body.decode("utf-8"))
            except UnicodeDecodeError as exc:
                msg = f"Body is not valid UTF-8 text: {exc}"
                raise DecodeError(msg, cause=exc, context=context) from exc
        msg = f"Cannot decode {kind or 'unknown'} body as {context['target_type']}"
        raise DecodeError(msg, context=context)
