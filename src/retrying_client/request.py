"""Request descriptors and attempt outcomes.

A :class:`RequestDescriptor` is the immutable description of one logical GET
request; every attempt of that request reuses the same instance. Each attempt
produces an :data:`Outcome`: either a :class:`Success` carrying the status
code and body, or a :class:`Failure` carrying the transport error.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Final

from retrying_client.status import ACCEPTED_STATUS

__all__ = [
    "DEFAULT_ACCEPTED_TYPE",
    "Failure",
    "Outcome",
    "RequestDescriptor",
    "Success",
]

DEFAULT_ACCEPTED_TYPE: Final[str] = "application/json"

_EMPTY: Final[Mapping[str, str]] = MappingProxyType({})


def _freeze(values: Mapping[str, str] | None) -> Mapping[str, str]:
    if not values:
        return _EMPTY
    return MappingProxyType(dict(values))


@dataclass(frozen=True, slots=True)
class RequestDescriptor:
    """Immutable description of one logical GET request.

    Attributes
    ----------
    target : str
        Absolute URI of the resource. Must not be blank.
    accepted_type : str
        Media type sent in the ``Accept`` header. Defaults to ``application/json``.
    headers : Mapping[str, str]
        Request headers. Keys are case-sensitive at this layer.
    query_params : Mapping[str, str]
        Query string parameters.

    Examples
    --------
    >>> descriptor = RequestDescriptor("http://localhost:8080/my/resource")
    >>> descriptor.accepted_type
    'application/json'
    >>> descriptor.with_headers({"X-Trace": "1"}).headers["X-Trace"]
    '1'
    """

    target: str
    accepted_type: str = DEFAULT_ACCEPTED_TYPE
    headers: Mapping[str, str] = field(default=_EMPTY)
    query_params: Mapping[str, str] = field(default=_EMPTY)

    def __post_init__(self) -> None:
        if not isinstance(self.target, str) or not self.target.strip():
            msg = "RequestDescriptor.target must be a non-empty URI"
            raise ValueError(msg)
        if not self.accepted_type or not self.accepted_type.strip():
            msg = "RequestDescriptor.accepted_type must be a non-empty media type"
            raise ValueError(msg)
        object.__setattr__(self, "headers", _freeze(self.headers))
        object.__setattr__(self, "query_params", _freeze(self.query_params))

    def with_headers(self, headers: Mapping[str, str]) -> RequestDescriptor:
        """Return a copy with ``headers`` merged over the existing headers."""
        return replace(self, headers={**self.headers, **headers})

    def with_query_params(self, params: Mapping[str, str]) -> RequestDescriptor:
        """Return a copy with ``params`` merged over the existing query parameters."""
        return replace(self, query_params={**self.query_params, **params})


@dataclass(frozen=True, slots=True)
class Success:
    """A transport attempt that produced a response.

    "Success" refers to the transport: the status code may still be one the
    caller does not accept.

    Attributes
    ----------
    status_code : int
        HTTP status code.
    body : bytes
        Raw response payload.
    content_type : str | None
        Value of the ``Content-Type`` response header, if any.
    headers : Mapping[str, str]
        Response headers.
    """

    status_code: int
    body: bytes = b""
    content_type: str | None = None
    headers: Mapping[str, str] = field(default=_EMPTY, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", _freeze(self.headers))

    @property
    def accepted(self) -> bool:
        """Whether the status is the accepted success status."""
        return self.status_code == ACCEPTED_STATUS

    @property
    def text(self) -> str:
        """Body decoded as UTF-8, with undecodable bytes replaced."""
        return self.body.decode("utf-8", errors="replace")


@dataclass(frozen=True, slots=True)
class Failure:
    """A transport attempt that raised instead of producing a response."""

    error: Exception


type Outcome = Success | Failure
